import logging
import yaml
from typing import Dict, Any, List, Optional
from snes_segmenter.common.errors import ConfigError
from .models import (
    ProjectConfig, TraceConfig, WidthStateConfig, HintSet,
    EntryPointHint, RangeHint, JumpTableHint,
)

logger = logging.getLogger(__name__)

class ConfigLoader:
    def load_from_file(self, path: str) -> ProjectConfig:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
        logger.info("Loaded project configuration from %s", path)
        return self.parse(data or {})

    def load_from_string(self, text: str) -> ProjectConfig:
        return self.parse(yaml.safe_load(text) or {})

    def parse(self, data: Dict[str, Any]) -> ProjectConfig:
        if not isinstance(data, dict):
            raise ConfigError(f"Project configuration must be a mapping, got {type(data).__name__}")

        trace = self._parse_trace(data.get("trace") or {})
        hints = self._parse_hints(data.get("hints") or {})

        return ProjectConfig(
            mapping=str(data.get("mapping", "LOROM")),
            speed=str(data.get("speed", "SLOW")),
            trace=trace,
            hints=hints
        )

    def _parse_trace(self, data: Dict[str, Any]) -> TraceConfig:
        step_budget = data.get("step_budget", 1_000_000)
        time_budget = data.get("time_budget")
        return TraceConfig(
            initial_state=self._parse_state(data.get("initial_state")) or WidthStateConfig(),
            use_vectors=bool(data.get("use_vectors", True)),
            worker_count=self._parse_int(data.get("worker_count", 4)),
            step_budget=None if step_budget is None else self._parse_int(step_budget),
            time_budget=None if time_budget is None else self._parse_float(time_budget)
        )

    def _parse_hints(self, data: Dict[str, Any]) -> HintSet:
        # Parse Entry Points
        entry_points = []
        for entry in self._list(data, "entry_points"):
            entry_points.append(EntryPointHint(
                address=self._parse_int(entry.get("address")),
                name=entry.get("name", ""),
                state=self._parse_state(entry.get("state"))
            ))

        # Parse Jump Tables
        jump_tables = []
        for table_data in self._list(data, "jump_tables"):
            table = table_data.get("table")
            jump_tables.append(JumpTableHint(
                site=self._parse_int(table_data.get("site")),
                targets=[self._parse_int(t) for t in table_data.get("targets", [])],
                table=None if table is None else self._parse_int(table),
                count=self._parse_int(table_data.get("count", 0)),
                long_pointers=bool(table_data.get("long_pointers", False)),
                returns=bool(table_data.get("returns", False)),
                label=table_data.get("label", "")
            ))

        return HintSet(
            entry_points=entry_points,
            data_ranges=self._parse_ranges(self._list(data, "data_ranges")),
            code_ranges=self._parse_ranges(self._list(data, "code_ranges")),
            jump_tables=jump_tables
        )

    def _parse_ranges(self, items: List[Dict[str, Any]]) -> List[RangeHint]:
        ranges = []
        for range_data in items:
            ranges.append(RangeHint(
                start=self._parse_int(range_data.get("start")),
                end=self._parse_int(range_data.get("end")),
                label=range_data.get("label", "")
            ))
        return ranges

    def _parse_state(self, value: Any) -> Optional[WidthStateConfig]:
        if value is None:
            return None
        if isinstance(value, str):
            # "m16x8" のような短縮表記
            text = value.lower().replace(" ", "")
            if text in ("m8x8", "m8x16", "m16x8", "m16x16"):
                m_bits, x_bits = text[1:].split("x")
                return WidthStateConfig(m16=m_bits == "16", x16=x_bits == "16")
            raise ConfigError(f"Invalid width state: {value}")
        if isinstance(value, dict):
            return WidthStateConfig(m16=bool(value.get("m16", False)), x16=bool(value.get("x16", False)))
        raise ConfigError(f"Invalid width state: {value}")

    def _list(self, data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
        items = data.get(key) or []
        if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
            raise ConfigError(f"'{key}' must be a list of mappings")
        return items

    def _parse_int(self, value: Any) -> int:
        if isinstance(value, bool):
            raise ConfigError(f"Invalid integer format: {value}")
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            text = value.strip()
            try:
                if text.lower().startswith("0x"):
                    return int(text, 16)
                if text.startswith("$"):
                    return int(text[1:], 16)
                return int(text)
            except ValueError:
                raise ConfigError(f"Invalid integer format: {value}") from None
        raise ConfigError(f"Invalid integer format: {value}")

    def _parse_float(self, value: Any) -> float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        raise ConfigError(f"Invalid number format: {value}")
