# tests/transport/test_mapper.py
"""
snes_segmenter.transport.mapperモジュールの単体テスト。
"""
import pytest

from snes_segmenter.common.errors import MappingError
from snes_segmenter.transport.mapper import AddressMapper, MappingMode, RomSpeed

# @intent:test_suite ROMオフセットとリニアアドレスの相互変換の検証。

class TestLoRom:
    @pytest.fixture
    def mapper(self):
        return AddressMapper(MappingMode.LOROM, 0x100000)

    def test_to_linear(self, mapper):
        assert mapper.to_linear(0x0000) == 0x008000
        assert mapper.to_linear(0x7FFF) == 0x00FFFF
        assert mapper.to_linear(0x8000) == 0x018000
        assert mapper.to_linear(0x0FFFFF) == 0x1FFFFF

    def test_to_rom_offset_mirrors(self, mapper):
        assert mapper.to_rom_offset(0x008000) == 0x0000
        assert mapper.to_rom_offset(0x808000) == 0x0000
        assert mapper.to_rom_offset(0x80FFFF) == 0x7FFF
        assert mapper.to_rom_offset(0x018123) == 0x8123

    def test_unmapped_space(self, mapper):
        assert mapper.to_rom_offset(0x7E0000) is None   # WRAM
        assert mapper.to_rom_offset(0x7F8000) is None
        assert mapper.to_rom_offset(0x002100) is None   # PPUレジスタ
        assert mapper.to_rom_offset(0x800000) is None   # WRAMミラー
        assert mapper.to_rom_offset(0x700000) is None   # SRAM
        assert mapper.to_rom_offset(0x208000) is None   # イメージの末尾より後ろ
        assert not mapper.is_mapped(0x7E0000)
        assert mapper.is_mapped(0x808000)

    def test_require_rom_offset(self, mapper):
        assert mapper.require_rom_offset(0x808000) == 0
        with pytest.raises(MappingError):
            mapper.require_rom_offset(0x7E0000)
        with pytest.raises(IndexError):
            mapper.require_rom_offset(0x000000)

    def test_to_linear_out_of_bounds(self, mapper):
        with pytest.raises(MappingError):
            mapper.to_linear(0x100000)
        with pytest.raises(MappingError):
            mapper.to_linear(-1)

    def test_canonical(self, mapper):
        assert mapper.canonical(0x808000) == 0x008000
        assert mapper.canonical(0x80FFFF) == 0x00FFFF
        assert mapper.canonical(0x7E1234) == 0x7E1234

    def test_wram_banks_use_fastrom_mirror(self):
        mapper = AddressMapper(MappingMode.LOROM, 0x400000)
        assert mapper.to_linear(0x3F0000) == 0xFE8000
        assert mapper.to_rom_offset(0xFE8000) == 0x3F0000
        assert mapper.to_linear(0x3F8000) == 0xFF8000

class TestHiRom:
    @pytest.fixture
    def mapper(self):
        return AddressMapper(MappingMode.HIROM, 0x100000)

    def test_to_linear(self, mapper):
        assert mapper.to_linear(0x0000) == 0xC00000
        assert mapper.to_linear(0x0FFFFF) == 0xCFFFFF

    def test_to_rom_offset(self, mapper):
        assert mapper.to_rom_offset(0xC01234) == 0x1234
        assert mapper.to_rom_offset(0x008000) == 0x8000
        assert mapper.to_rom_offset(0x808000) == 0x8000
        assert mapper.to_rom_offset(0x400000) == 0x0000

    def test_unmapped_space(self, mapper):
        assert mapper.to_rom_offset(0x000000) is None
        assert mapper.to_rom_offset(0x206000) is None   # SRAM
        assert mapper.to_rom_offset(0x7E8000) is None
        assert mapper.to_rom_offset(0xD00000) is None   # イメージの末尾より後ろ

    def test_round_trip(self, mapper):
        for offset in (0, 0x7FFF, 0x8000, 0x54321, 0x0FFFFF):
            assert mapper.to_rom_offset(mapper.to_linear(offset)) == offset

    def test_canonical(self, mapper):
        assert mapper.canonical(0x008000) == 0xC08000

def test_mapping_mode_parse():
    assert MappingMode.parse("lorom") == MappingMode.LOROM
    assert MappingMode.parse("HiRom") == MappingMode.HIROM
    with pytest.raises(ValueError):
        MappingMode.parse("exhirom")

def test_invalid_rom_size():
    with pytest.raises(ValueError):
        AddressMapper(MappingMode.LOROM, 0)
    with pytest.raises(ValueError):
        AddressMapper(MappingMode.HIROM, 0x400001)

def test_speed_does_not_change_mapping():
    slow = AddressMapper(MappingMode.LOROM, 0x80000, RomSpeed.SLOW)
    fast = AddressMapper(MappingMode.LOROM, 0x80000, RomSpeed.FAST)
    for address in (0x008000, 0x808000, 0x0FFFFF, 0x7E0000):
        assert slow.to_rom_offset(address) == fast.to_rom_offset(address)

def test_mapper_is_immutable():
    mapper = AddressMapper(MappingMode.LOROM, 0x8000)
    with pytest.raises(AttributeError):
        mapper.rom_size = 0x10000
