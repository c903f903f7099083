import logging
from snes_segmenter.common.errors import ConfigError
from snes_segmenter.transport.mapper import MappingMode, RomSpeed
from snes_segmenter.transport.rom import BytesLike, MappedRom
from snes_segmenter.engine.segmenter import Segmenter
from .models import ProjectConfig

logger = logging.getLogger(__name__)

# @intent:responsibility プロジェクト構成（Config）とROMのバイト列から、マッパー、ROMビュー、Segmenterを生成・接続します。
class SegmenterBuilder:
    def build_rom(self, config: ProjectConfig, data: BytesLike) -> MappedRom:
        mode = self._parse_mode(config.mapping)
        speed = self._parse_speed(config.speed)
        try:
            return MappedRom.from_bytes(data, mode, speed)
        except ValueError as e:
            raise ConfigError(f"ROM image cannot be mapped as {mode.value}: {e}") from e

    # @intent:responsibility Configで定義されたトレース設定とヒントを持つSegmenterを生成します。
    # @intent:rationale ヒントの検証はSegmenter.run()の中で行い、不正なヒントは例外ではなくレポートとして返します。
    def build_segmenter(self, config: ProjectConfig, data: BytesLike) -> Segmenter:
        """
        ROMのバイト列をマップし、Configのヒントと設定を適用したSegmenterを返します。
        """
        if config.trace.worker_count < 1:
            raise ConfigError(f"worker_count must be at least 1, got {config.trace.worker_count}")
        if config.trace.step_budget is not None and config.trace.step_budget < 0:
            raise ConfigError(f"step_budget must not be negative, got {config.trace.step_budget}")

        rom = self.build_rom(config, data)
        logger.info(
            "Built segmenter for %s/%s ROM (%d bytes, %d hint entries)",
            rom.mapper.mode.value, rom.mapper.speed.value, rom.mapper.rom_size,
            len(config.hints.entry_points) + len(config.hints.data_ranges)
            + len(config.hints.code_ranges) + len(config.hints.jump_tables)
        )
        return Segmenter(rom, config.hints, config.trace)

    def _parse_mode(self, value: str) -> MappingMode:
        try:
            return MappingMode.parse(value)
        except ValueError as e:
            raise ConfigError(str(e)) from None

    def _parse_speed(self, value: str) -> RomSpeed:
        try:
            return RomSpeed(value.upper())
        except ValueError:
            raise ConfigError(f"Unknown ROM speed: {value}") from None
