# snes_segmenter/transport/mapper.py
"""
Transport Layer (アドレスマッパー)

このモジュールは、ROMファイル上のオフセットとCPUの24bitリニアアドレス空間との
相互変換を担います。状態を持たない純粋な変換のみを提供するため、
複数のトレースワーカーから同期なしで共有できます。
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from snes_segmenter.common.errors import MappingError
from snes_segmenter.common.types import LinearAddress, RomOffset

BANK_MASK = 0xFF0000
ADDR_MASK = 0x00FFFF
MAX_ROM_SIZE = 0x400000


# @intent:responsibility ROMのバンク配置方式を定義します。
class MappingMode(Enum):
    LOROM = "LOROM"  # 32KiBバンクを $8000-$FFFF に連続配置
    HIROM = "HIROM"  # 64KiBバンクを $C0-$FF にそのまま配置

    # @intent:responsibility 設定ファイル等の文字列表現からモードを解決します。
    @classmethod
    def parse(cls, value: str) -> "MappingMode":
        try:
            return cls(value.upper())
        except ValueError:
            raise ValueError(f"Unknown mapping mode: {value}") from None


# @intent:responsibility ヘッダのFastROMビット。マッピングには影響せず、外部のヘッダ解析のために保持します。
class RomSpeed(Enum):
    SLOW = "SLOW"
    FAST = "FAST"


# @intent:responsibility ROMオフセットとリニアアドレスを相互変換します。
# @intent:rationale 不変のデータクラスとし、隠れた状態を一切持たないことでスレッド間共有を安全にします。
@dataclass(frozen=True)
class AddressMapper:
    """
    マッピングモードとROMサイズに基づくアドレス変換器。
    """
    mode: MappingMode
    rom_size: int
    speed: RomSpeed = RomSpeed.SLOW

    def __post_init__(self):
        if not 0 < self.rom_size <= MAX_ROM_SIZE:
            raise ValueError(f"ROM size {self.rom_size:#x} is outside the supported range (1..{MAX_ROM_SIZE:#x}).")

    # @intent:responsibility ROMオフセットを正規のリニアアドレスへ変換します。
    # @intent:pre-condition offsetはROMイメージの範囲内である必要があります。
    def to_linear(self, offset: RomOffset) -> LinearAddress:
        if not 0 <= offset < self.rom_size:
            raise MappingError(offset, f"ROM offset {offset:#x} outside image of size {self.rom_size:#x}")
        if self.mode == MappingMode.LOROM:
            linear = ((offset << 1) & 0x7F0000) | (offset & 0x7FFF) | 0x8000
            # $7E/$7F はWRAMのため、FastROM側のミラーを正規アドレスとする
            if (linear & 0xFE0000) == 0x7E0000:
                linear |= 0x800000
            return linear
        return offset | 0xC00000

    # @intent:responsibility リニアアドレスをROMオフセットへ変換します。ROM外であればNoneを返します。
    def to_rom_offset(self, address: LinearAddress) -> Optional[RomOffset]:
        address &= 0xFFFFFF
        wram = (address & 0xFE0000) == 0x7E0000
        junk = (address & 0x408000) == 0x000000  # レジスタ/WRAMミラーの下位半分
        if wram or junk:
            return None
        if self.mode == MappingMode.LOROM:
            sram = (address & 0x708000) == 0x700000
            if sram:
                return None
            offset = ((address & 0x7F0000) >> 1) | (address & 0x7FFF)
        else:
            offset = address & 0x3FFFFF
        if offset >= self.rom_size:
            return None
        return offset

    # @intent:responsibility to_rom_offsetの例外送出版。トレース経路の打ち切りに使用します。
    def require_rom_offset(self, address: LinearAddress) -> RomOffset:
        offset = self.to_rom_offset(address)
        if offset is None:
            raise MappingError(address)
        return offset

    def is_mapped(self, address: LinearAddress) -> bool:
        return self.to_rom_offset(address) is not None

    # @intent:responsibility ミラーアドレスを正規のリニアアドレスへ畳み込みます。ROM外のアドレスはそのまま返します。
    def canonical(self, address: LinearAddress) -> LinearAddress:
        offset = self.to_rom_offset(address)
        if offset is None:
            return address & 0xFFFFFF
        return self.to_linear(offset)
