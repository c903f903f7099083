# src/snes_segmenter/arch/wdc65816/instructions/__init__.py
"""
WDC 65816 命令セット定義パッケージ。
"""
from typing import Optional

from .maps import OPCODE_MAP, RESERVED_OPCODES, OpcodeEntry

# @intent:responsibility オペコードから命令表のエントリを引きます。
# @intent:post-condition 予約済み・未定義のオペコードに対してはNoneを返します。
def decode_opcode(opcode: int) -> Optional[OpcodeEntry]:
    """
    65816のオペコードを (ニーモニック, アドレッシングモード, 制御フロー種別) に解決します。
    """
    if opcode in RESERVED_OPCODES:
        return None
    return OPCODE_MAP.get(opcode)
