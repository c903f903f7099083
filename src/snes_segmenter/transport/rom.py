# snes_segmenter/transport/rom.py
"""
Transport Layer (ROMイメージ)

このモジュールは、読み込み専用のROMイメージと、それをCPUのリニアアドレス空間から
参照するためのビューを提供します。トレース中はROM全体がメモリ上にあり、
I/Oで待機することはありません。
"""
from typing import List, Sequence, Union

from snes_segmenter.common.types import LinearAddress, RomOffset
from snes_segmenter.transport.mapper import AddressMapper, MappingMode, RomSpeed, BANK_MASK, ADDR_MASK

BytesLike = Union[bytes, bytearray, memoryview, Sequence[int]]


# @intent:responsibility 読み込み専用メモリ(ROM)の内容を保持します。
class RomImage:
    """
    ROMファイルのバイト列を保持する読み込み専用デバイス。
    書き込みインターフェースは持ちません。
    """
    # @intent:responsibility バイト列から不変のイメージを作成します。
    # @intent:pre-condition dataは空でない必要があります。
    def __init__(self, data: BytesLike):
        image = bytes(data)
        if not image:
            raise ValueError("ROM image must not be empty.")
        self._memory = image
        self._size = len(image)

    # @intent:responsibility 指定されたオフセットから8bitのデータを読み出します。
    def read(self, offset: RomOffset) -> int:
        if not 0 <= offset < self._size:
            raise IndexError(f"Offset {offset:#x} out of bounds for ROM of size {self._size:#x}.")
        return self._memory[offset]

    # @intent:responsibility 指定範囲のバイト列をスライスとして返します。範囲外は切り詰めます。
    def read_span(self, offset: RomOffset, length: int) -> bytes:
        return self._memory[offset:offset + length]

    def get_size(self) -> int:
        return self._size

    def to_bytes(self) -> bytes:
        return self._memory


# @intent:responsibility ROMイメージをリニアアドレスで読み出すためのビュー。
# @intent:rationale アドレス変換はAddressMapperに委譲し、このクラスは読み出しのディスパッチのみを担います。
class MappedRom:
    """
    AddressMapperを介してリニアアドレスからROMイメージを読み出すビュー。
    マップ外のアドレスはMappingErrorになります。
    """
    def __init__(self, image: RomImage, mapper: AddressMapper):
        if mapper.rom_size != image.get_size():
            raise ValueError(
                f"Mapper ROM size ({mapper.rom_size:#x}) does not match the image size ({image.get_size():#x})."
            )
        self._image = image
        self._mapper = mapper

    # @intent:responsibility バイト列とマッピングモードから直接ビューを作成するファクトリ。
    @classmethod
    def from_bytes(cls, data: BytesLike, mode: MappingMode, speed: RomSpeed = RomSpeed.SLOW) -> "MappedRom":
        image = RomImage(data)
        return cls(image, AddressMapper(mode, image.get_size(), speed))

    @property
    def mapper(self) -> AddressMapper:
        return self._mapper

    @property
    def image(self) -> RomImage:
        return self._image

    # @intent:responsibility 指定されたリニアアドレスから8bitのデータを読み出します。
    def read(self, address: LinearAddress) -> int:
        return self._image.read(self._mapper.require_rom_offset(address))

    # @intent:responsibility リトルエンディアンの16bit値を読み出します。バンク内でアドレスが折り返します。
    def read_word(self, address: LinearAddress) -> int:
        return self.read(address) | (self.read(bank_offset(address, 1)) << 8)

    # @intent:responsibility 命令オペランドのように、プログラムバンク内で連続するバイト列を読み出します。
    # @intent:post-condition 1バイトでもマップ外であればMappingErrorを送出します。
    def read_bytes(self, address: LinearAddress, length: int) -> List[int]:
        return [self.read(bank_offset(address, i)) for i in range(length)]

    def is_mapped(self, address: LinearAddress) -> bool:
        return self._mapper.is_mapped(address)


# @intent:responsibility バンクを固定したまま16bitのオフセット部分だけを加算します（PCの折り返しと同じ規則）。
def bank_offset(address: LinearAddress, delta: int) -> LinearAddress:
    return (address & BANK_MASK) | ((address + delta) & ADDR_MASK)
