# src/snes_segmenter/arch/wdc65816/disassembler.py
"""
WDC 65816 逆アセンブラ (シンボル付きリスト)。
"""
from typing import List, Tuple

from snes_segmenter.common.types import LinearAddress
from snes_segmenter.core.model import Classification
from snes_segmenter.transport.rom import MappedRom

# データ行1行あたりのバイト数
DB_BYTES_PER_LINE = 8


# @intent:responsibility 指定されたアドレス範囲を、解析結果に基づいて逆アセンブルする。
# @intent:pre-condition resultは同じROMに対する解析結果であること。endは含まない。
def disassemble(result, rom: MappedRom, start: LinearAddress, end: LinearAddress) -> List[Tuple[int, str, str]]:
    """
    解析結果を参照し、(アドレス, HEX, テキスト) のリストを返す。
    ラベルは対応するアドレスの直前に "NAME:" の行として出力し、
    確定したCODE領域は命令として、それ以外 (DATA/UNKNOWN/AMBIGUOUS) は db 行として出力する。
    """
    mapper = rom.mapper
    first = mapper.require_rom_offset(start)
    last = mapper.require_rom_offset(end - 1) + 1
    region_map = result.region_map
    labels = result.labels

    results = []
    offset = first
    while offset < last:
        addr = mapper.to_linear(offset)
        label = labels.get(addr)
        if label:
            results.append((addr, "", f"{label.name}:"))

        region = region_map.region_at_offset(offset)
        instr = result.instructions.get(addr)
        if region.classification == Classification.CODE and instr is not None:
            hex_str = " ".join(f"{b:02X}" for b in instr.raw_bytes)
            results.append((addr, hex_str, _render(instr, labels, mapper)))
            offset += instr.length
            continue

        # 領域の終端、次のラベル、次の確定命令の手前でデータ行を区切る
        stop = min(region.end, offset + DB_BYTES_PER_LINE, last)
        count = 1
        while offset + count < stop:
            next_addr = mapper.to_linear(offset + count)
            if next_addr in labels or next_addr in result.instructions:
                break
            count += 1
        data = rom.image.read_span(offset, count)
        hex_str = " ".join(f"{b:02X}" for b in data)
        results.append((addr, hex_str, "db " + ",".join(f"${b:02X}" for b in data)))
        offset += count

    return results


# @intent:responsibility 静的な飛び先にラベルがあれば、オペランドをラベル名に置き換えて命令を文字列化する。
def _render(instr, labels, mapper) -> str:
    if instr.targets:
        label = labels.get(mapper.canonical(instr.targets[0]))
        if label:
            return f"{instr.mnemonic} {label.name}"
    return str(instr)
