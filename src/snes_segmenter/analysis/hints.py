# src/snes_segmenter/analysis/hints.py
"""
外部ヒントの取り込み

設定ファイル等から与えられたHintSetを検証し、トレーサ・分類器・ラベル付与が
直接参照できる形 (ROMオフセット区間、正規化アドレスをキーとするジャンプ表) に解決します。
マップ外のアドレスを参照するヒントはInvalidHintとして個別に拒否され、実行全体は継続します。
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, NamedTuple, Optional, Set, Tuple

from snes_segmenter.common.errors import InvalidHint
from snes_segmenter.common.types import HintTable, LinearAddress, OffsetRange
from snes_segmenter.core.model import Classification
from snes_segmenter.transport.rom import MappedRom
from snes_segmenter.arch.wdc65816.state import ProcessorWidthState
from snes_segmenter.config.models import EntryPointHint, HintSet, JumpTableHint, RangeHint
from snes_segmenter.analysis.report import Conflict, ConflictKind

logger = logging.getLogger(__name__)

# 自動生成ラベルの名前空間。明示名がこれと衝突すると一意性が崩れるため拒否する。
_SYNTHETIC_NAME = re.compile(r"^(SUB|CODE|DATA)_[0-9A-Fa-f]{6}$")


# @intent:data_structure トレースの起点となるエントリポイント。stateがNoneなら既定の初期状態を使う。
class EntrySeed(NamedTuple):
    address: LinearAddress
    state: Optional[ProcessorWidthState]
    name: str


# @intent:data_structure 検証済みの範囲ヒント。orderは宣言順で、同じ大きさの範囲が重なった場合に後勝ちとするために使う。
class RangeSpec(NamedTuple):
    offsets: OffsetRange
    classification: Classification
    order: int
    label: str
    address: LinearAddress  # 先頭の正規リニアアドレス
    source: str             # 例: "data_ranges[2]"


# @intent:responsibility 検証・解決済みのヒント一式。
@dataclass(frozen=True)
class ResolvedHints:
    entry_points: Tuple[EntrySeed, ...] = ()
    jump_tables: HintTable = field(default_factory=dict)
    returning_sites: FrozenSet[LinearAddress] = frozenset()
    ranges: Tuple[RangeSpec, ...] = ()

    @property
    def data_ranges(self) -> Tuple[RangeSpec, ...]:
        return tuple(r for r in self.ranges if r.classification == Classification.DATA)

    @property
    def code_ranges(self) -> Tuple[RangeSpec, ...]:
        return tuple(r for r in self.ranges if r.classification == Classification.CODE)

    # @intent:responsibility 呼び出し地点(正規アドレス)に対するジャンプ表の飛び先を返します。
    def targets_for(self, site: LinearAddress) -> Optional[FrozenSet[LinearAddress]]:
        return self.jump_tables.get(site)


# @intent:responsibility HintSetを検証し、ResolvedHintsと拒否されたヒントのレポートを返します。
# @intent:rationale ヒントは1件ずつ検証し、不正なものだけを取り除きます。1件の誤りで実行全体を止めません。
class HintResolver:
    def __init__(self, rom: MappedRom):
        self._rom = rom
        self._mapper = rom.mapper
        self._names: Set[str] = set()
        self._order = 0
        self.conflicts: List[Conflict] = []

    def resolve(self, hints: Optional[HintSet]) -> ResolvedHints:
        hints = hints or HintSet()
        self._names = set()
        self._order = 0
        self.conflicts = []

        entries: List[EntrySeed] = []
        tables: Dict[LinearAddress, FrozenSet[LinearAddress]] = {}
        returning: Set[LinearAddress] = set()
        ranges: List[RangeSpec] = []

        for index, entry in enumerate(hints.entry_points):
            self._guard(entries.append, self._resolve_entry, entry, f"entry_points[{index}]")

        # ポインタ表 -> データ範囲 -> コード範囲 の順に宣言順序を振る
        for index, table in enumerate(hints.jump_tables):
            resolved = self._guard(None, self._resolve_jump_table, table, f"jump_tables[{index}]")
            if resolved is None:
                continue
            site, targets, table_range = resolved
            if targets:
                tables[site] = tables.get(site, frozenset()) | targets
            if table.returns:
                returning.add(site)
            if table_range is not None:
                ranges.append(table_range)

        for index, hint in enumerate(hints.data_ranges):
            self._guard(ranges.append, self._resolve_range, hint, f"data_ranges[{index}]", Classification.DATA)
        for index, hint in enumerate(hints.code_ranges):
            self._guard(ranges.append, self._resolve_range, hint, f"code_ranges[{index}]", Classification.CODE)

        logger.info(
            "Resolved hints: %d entry points, %d jump tables, %d ranges, %d rejected",
            len(entries), len(tables), len(ranges), len(self.conflicts)
        )
        return ResolvedHints(
            entry_points=tuple(entries),
            jump_tables=tables,
            returning_sites=frozenset(returning),
            ranges=tuple(ranges),
        )

    def _guard(self, sink, resolver, hint, source: str, *args):
        try:
            value = resolver(hint, source, *args)
        except InvalidHint as e:
            self._reject(e, source)
            return None
        if sink is not None:
            sink(value)
        return value

    def _reject(self, error: InvalidHint, source: str) -> None:
        logger.warning("Rejected hint %s: %s", source, error.reason)
        self.conflicts.append(Conflict(
            address=error.address,
            kind=ConflictKind.INVALID_HINT,
            reason=f"{source}: {error.reason}",
        ))

    # --- Individual hint kinds ---

    def _resolve_entry(self, hint: EntryPointHint, source: str) -> EntrySeed:
        self._require_mapped(hint, hint.address, "entry point")
        state = hint.state.to_state() if hint.state is not None else None
        self._claim_name(hint, hint.name, hint.address)
        return EntrySeed(hint.address, state, hint.name)

    def _resolve_range(self, hint: RangeHint, source: str, classification: Classification) -> RangeSpec:
        start = self._require_mapped(hint, hint.start, "range start")
        end = self._require_mapped(hint, hint.end, "range end")
        if end < start:
            raise InvalidHint(hint, f"range end ${hint.end:06X} precedes start ${hint.start:06X}", hint.start)
        self._claim_name(hint, hint.label, hint.start)
        return self._range_spec(OffsetRange(start, end + 1), classification, hint.label, source)

    def _resolve_jump_table(self, hint: JumpTableHint, source: str):
        self._require_mapped(hint, hint.site, "jump-table site")
        site = self._mapper.canonical(hint.site)

        targets = set()
        for target in hint.targets:
            self._require_mapped(hint, target, "jump-table target")
            targets.add(target)

        table_range = None
        if hint.table is not None:
            pointers, offsets = self._read_pointer_table(hint)
            for index, pointer in enumerate(pointers):
                if self._mapper.is_mapped(pointer):
                    targets.add(pointer)
                else:
                    # 表の一部(終端マーカー等)だけが不正な場合は、その項目のみを拒否する
                    self._reject(InvalidHint(
                        hint, f"pointer #{index} -> ${pointer:06X} is not mapped to ROM", hint.table
                    ), source)
            self._claim_name(hint, hint.label, hint.table)
            table_range = self._range_spec(offsets, Classification.DATA, hint.label, source)
        elif not targets:
            raise InvalidHint(hint, "jump table declares neither targets nor a pointer table", hint.site)

        return site, frozenset(targets), table_range

    # @intent:responsibility ROM上のポインタ表を読み出します。2バイトポインタは呼び出し地点のバンクを補います。
    def _read_pointer_table(self, hint: JumpTableHint) -> Tuple[List[LinearAddress], OffsetRange]:
        if hint.count <= 0:
            raise InvalidHint(hint, "pointer table count must be positive", hint.table)
        width = 3 if hint.long_pointers else 2
        size = hint.count * width
        first = self._require_mapped(hint, hint.table, "pointer table")
        last = self._mapper.to_rom_offset(hint.table + size - 1)
        if last != first + size - 1:
            raise InvalidHint(hint, "pointer table is not contiguous in ROM", hint.table)

        raw = self._rom.image.read_span(first, size)
        bank = hint.site & 0xFF0000
        pointers = []
        for i in range(0, size, width):
            value = raw[i] | (raw[i + 1] << 8)
            if hint.long_pointers:
                value |= raw[i + 2] << 16
            else:
                value |= bank
            pointers.append(value)
        return pointers, OffsetRange(first, first + size)

    # --- Helpers ---

    def _require_mapped(self, hint, address: LinearAddress, what: str) -> int:
        offset = self._mapper.to_rom_offset(address)
        if offset is None:
            raise InvalidHint(hint, f"{what} ${address & 0xFFFFFF:06X} is not mapped to ROM", address)
        return offset

    def _claim_name(self, hint, name: str, address: LinearAddress) -> None:
        if not name:
            return
        if not name.isidentifier():
            raise InvalidHint(hint, f"label '{name}' is not a valid symbol name", address)
        if _SYNTHETIC_NAME.match(name):
            raise InvalidHint(hint, f"label '{name}' collides with generated label names", address)
        if name in self._names:
            raise InvalidHint(hint, f"label '{name}' is already declared", address)
        self._names.add(name)

    def _range_spec(self, offsets: OffsetRange, classification: Classification, label: str, source: str) -> RangeSpec:
        spec = RangeSpec(
            offsets=offsets,
            classification=classification,
            order=self._order,
            label=label,
            address=self._mapper.to_linear(offsets.start),
            source=source,
        )
        self._order += 1
        return spec


# @intent:responsibility HintResolverの簡易呼び出し口。
def resolve_hints(hints: Optional[HintSet], rom: MappedRom) -> Tuple[ResolvedHints, List[Conflict]]:
    resolver = HintResolver(rom)
    resolved = resolver.resolve(hints)
    return resolved, list(resolver.conflicts)
