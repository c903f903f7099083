# tests/conftest.py
"""
テスト用の合成ROMを組み立てるフィクスチャ。
"""
import pytest

from snes_segmenter.transport.mapper import MappingMode
from snes_segmenter.transport.rom import MappedRom

RESET_VECTOR = 0x00FFFC
NMI_VECTOR = 0x00FFEA


# @intent:utility_function バンク$00に配置するプログラム片からLoROMイメージを作成します。
# programは {リニアアドレス: バイト列}。未使用領域はfillの値で埋めます。
def build_lorom(program, reset=0x8000, vectors=None, size=0x8000, fill=0x00) -> MappedRom:
    data = bytearray([fill]) * size
    rom = MappedRom.from_bytes(bytes(size), MappingMode.LOROM)
    mapper = rom.mapper

    def put(address, values):
        for i, value in enumerate(values):
            data[mapper.require_rom_offset(address + i)] = value

    # ベクタ表は未使用(0x0000)で初期化
    put(0x00FFE4, bytes(0x1C))
    all_vectors = {RESET_VECTOR: reset}
    all_vectors.update(vectors or {})
    for slot, target in all_vectors.items():
        put(slot, [target & 0xFF, (target >> 8) & 0xFF])
    for address, code in program.items():
        put(address, code)
    return MappedRom.from_bytes(bytes(data), MappingMode.LOROM)


@pytest.fixture
def lorom():
    return build_lorom
