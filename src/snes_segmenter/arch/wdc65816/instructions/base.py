# src/snes_segmenter/arch/wdc65816/instructions/base.py
"""
WDC 65816 アドレッシングモード解決ロジック。
"""
from enum import Enum
from typing import Callable, Dict, NamedTuple, Optional, Tuple

from snes_segmenter.transport.rom import MappedRom, bank_offset
from snes_segmenter.arch.wdc65816.state import ProcessorWidthState


# @intent:responsibility 65816のアドレッシングモードを定義します。値はアセンブラ表記の雛形です。
class AddressingMode(Enum):
    IMPLIED = "imp"
    ACCUMULATOR = "A"
    IMMEDIATE_M = "#m"          # アキュムレータ幅に従う即値
    IMMEDIATE_X = "#x"          # インデックス幅に従う即値
    IMMEDIATE_8 = "#8"          # REP/SEP, BRK/COP シグネチャ, WDM
    DIRECT = "dp"
    DIRECT_X = "dp,X"
    DIRECT_Y = "dp,Y"
    DIRECT_INDIRECT = "(dp)"
    DIRECT_INDEXED_INDIRECT = "(dp,X)"
    DIRECT_INDIRECT_INDEXED = "(dp),Y"
    DIRECT_INDIRECT_LONG = "[dp]"
    DIRECT_INDIRECT_LONG_INDEXED = "[dp],Y"
    STACK_RELATIVE = "sr,S"
    STACK_RELATIVE_INDIRECT_INDEXED = "(sr,S),Y"
    ABSOLUTE = "abs"
    ABSOLUTE_X = "abs,X"
    ABSOLUTE_Y = "abs,Y"
    ABSOLUTE_INDIRECT = "(abs)"
    ABSOLUTE_INDEXED_INDIRECT = "(abs,X)"
    ABSOLUTE_INDIRECT_LONG = "[abs]"
    ABSOLUTE_LONG = "long"
    ABSOLUTE_LONG_X = "long,X"
    RELATIVE = "rel8"
    RELATIVE_LONG = "rel16"
    BLOCK_MOVE = "src,dst"


# @intent:responsibility アドレッシングモードの解決結果を返す型。
# operand_bytes: オペランドとしてフェッチされたバイト列
# operand_text: 逆アセンブリ用のオペランド文字列表現
# target: オペランドから静的に決まるコードアドレス（JMP/JSR/分岐の飛び先として使われ得るもの）
class AddressingResult(NamedTuple):
    operand_bytes: Tuple[int, ...]
    operand_text: str
    target: Optional[int] = None


AddrFunc = Callable[[int, MappedRom, ProcessorWidthState], AddressingResult]

# モードごとの固定オペランド長。即値の幅依存モードは operand_size() で解決する。
OPERAND_SIZES: Dict[AddressingMode, int] = {
    AddressingMode.IMPLIED: 0,
    AddressingMode.ACCUMULATOR: 0,
    AddressingMode.IMMEDIATE_8: 1,
    AddressingMode.DIRECT: 1,
    AddressingMode.DIRECT_X: 1,
    AddressingMode.DIRECT_Y: 1,
    AddressingMode.DIRECT_INDIRECT: 1,
    AddressingMode.DIRECT_INDEXED_INDIRECT: 1,
    AddressingMode.DIRECT_INDIRECT_INDEXED: 1,
    AddressingMode.DIRECT_INDIRECT_LONG: 1,
    AddressingMode.DIRECT_INDIRECT_LONG_INDEXED: 1,
    AddressingMode.STACK_RELATIVE: 1,
    AddressingMode.STACK_RELATIVE_INDIRECT_INDEXED: 1,
    AddressingMode.ABSOLUTE: 2,
    AddressingMode.ABSOLUTE_X: 2,
    AddressingMode.ABSOLUTE_Y: 2,
    AddressingMode.ABSOLUTE_INDIRECT: 2,
    AddressingMode.ABSOLUTE_INDEXED_INDIRECT: 2,
    AddressingMode.ABSOLUTE_INDIRECT_LONG: 2,
    AddressingMode.ABSOLUTE_LONG: 3,
    AddressingMode.ABSOLUTE_LONG_X: 3,
    AddressingMode.RELATIVE: 1,
    AddressingMode.RELATIVE_LONG: 2,
    AddressingMode.BLOCK_MOVE: 2,
}


# @intent:responsibility モードと幅状態からオペランドのバイト数を返す。
# @intent:note 即値のみが幅状態に依存し、命令長が1バイト変わる。これが幅状態を追跡する理由である。
def operand_size(mode: AddressingMode, state: ProcessorWidthState) -> int:
    if mode == AddressingMode.IMMEDIATE_M:
        return state.accumulator_bytes
    if mode == AddressingMode.IMMEDIATE_X:
        return state.index_bytes
    return OPERAND_SIZES[mode]


# @intent:responsibility オペコード直後からプログラムバンク内でオペランドを読み出す。
def _fetch(pc: int, rom: MappedRom, count: int) -> Tuple[int, ...]:
    if count == 0:
        return ()
    return tuple(rom.read_bytes(bank_offset(pc, 1), count))


def _word(operand: Tuple[int, ...]) -> int:
    return operand[0] | (operand[1] << 8)


def _long(operand: Tuple[int, ...]) -> int:
    return operand[0] | (operand[1] << 8) | (operand[2] << 16)


# --- Addressing Modes ---

# @intent:responsibility Implied Mode
def addr_implied(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    return AddressingResult((), "")

# @intent:responsibility Accumulator Mode (ASL A など)
def addr_accumulator(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    return AddressingResult((), "A")

# @intent:responsibility Immediate Mode (#$xx / #$xxxx) - アキュムレータ幅
def addr_immediate_m(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    return _immediate(pc, rom, state.accumulator_bytes)

# @intent:responsibility Immediate Mode (#$xx / #$xxxx) - インデックス幅
def addr_immediate_x(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    return _immediate(pc, rom, state.index_bytes)

# @intent:responsibility Immediate Mode (#$xx) - 常に8bit
def addr_immediate_8(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    return _immediate(pc, rom, 1)

def _immediate(pc: int, rom: MappedRom, size: int) -> AddressingResult:
    op = _fetch(pc, rom, size)
    if size == 2:
        return AddressingResult(op, f"#${_word(op):04X}")
    return AddressingResult(op, f"#${op[0]:02X}")

# @intent:responsibility Direct Page Mode ($xx)
def addr_direct(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 1)
    return AddressingResult(op, f"${op[0]:02X}")

# @intent:responsibility Direct Page, X Mode ($xx,X)
def addr_direct_x(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 1)
    return AddressingResult(op, f"${op[0]:02X},X")

# @intent:responsibility Direct Page, Y Mode ($xx,Y) - LDX, STX only
def addr_direct_y(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 1)
    return AddressingResult(op, f"${op[0]:02X},Y")

# @intent:responsibility Direct Page Indirect Mode ($xx)
def addr_direct_indirect(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 1)
    return AddressingResult(op, f"(${op[0]:02X})")

# @intent:responsibility Direct Page Indexed Indirect Mode ($xx,X) - "Pre-indexed"
def addr_direct_indexed_indirect(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 1)
    return AddressingResult(op, f"(${op[0]:02X},X)")

# @intent:responsibility Direct Page Indirect Indexed Mode ($xx),Y - "Post-indexed"
def addr_direct_indirect_indexed(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 1)
    return AddressingResult(op, f"(${op[0]:02X}),Y")

# @intent:responsibility Direct Page Indirect Long Mode [$xx]
def addr_direct_indirect_long(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 1)
    return AddressingResult(op, f"[${op[0]:02X}]")

# @intent:responsibility Direct Page Indirect Long Indexed Mode [$xx],Y
def addr_direct_indirect_long_indexed(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 1)
    return AddressingResult(op, f"[${op[0]:02X}],Y")

# @intent:responsibility Stack Relative Mode $xx,S
def addr_stack_relative(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 1)
    return AddressingResult(op, f"${op[0]:02X},S")

# @intent:responsibility Stack Relative Indirect Indexed Mode ($xx,S),Y
def addr_stack_relative_indirect_indexed(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 1)
    return AddressingResult(op, f"(${op[0]:02X},S),Y")

# @intent:responsibility Absolute Mode ($xxxx)
# @intent:note JMP/JSRの飛び先はプログラムバンク内となるため、命令のバンクを付与した値をtargetとする。
def addr_absolute(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 2)
    value = _word(op)
    return AddressingResult(op, f"${value:04X}", (pc & 0xFF0000) | value)

# @intent:responsibility Absolute, X Mode ($xxxx,X)
def addr_absolute_x(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 2)
    return AddressingResult(op, f"${_word(op):04X},X")

# @intent:responsibility Absolute, Y Mode ($xxxx,Y)
def addr_absolute_y(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 2)
    return AddressingResult(op, f"${_word(op):04X},Y")

# @intent:responsibility Absolute Indirect Mode ($xxxx) - JMP only
# @intent:note 飛び先はRAM上のポインタ次第のため静的には解決しない。
def addr_absolute_indirect(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 2)
    return AddressingResult(op, f"(${_word(op):04X})")

# @intent:responsibility Absolute Indexed Indirect Mode ($xxxx,X) - JMP, JSR
def addr_absolute_indexed_indirect(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 2)
    return AddressingResult(op, f"(${_word(op):04X},X)")

# @intent:responsibility Absolute Indirect Long Mode [$xxxx] - JML only
def addr_absolute_indirect_long(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 2)
    return AddressingResult(op, f"[${_word(op):04X}]")

# @intent:responsibility Absolute Long Mode ($xxxxxx)
def addr_absolute_long(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 3)
    value = _long(op)
    return AddressingResult(op, f"${value:06X}", value)

# @intent:responsibility Absolute Long, X Mode ($xxxxxx,X)
def addr_absolute_long_x(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 3)
    return AddressingResult(op, f"${_long(op):06X},X")

# @intent:responsibility Relative Mode (8bit分岐)
# @intent:note 戻り値のtargetは「分岐先の絶対アドレス」とする。PCはバンク内で折り返す。
def addr_relative(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 1)
    offset = op[0]
    # 符号付き8bitとして解釈
    if offset >= 0x80:
        offset -= 0x100
    dest = bank_offset(pc, 2 + offset)
    return AddressingResult(op, f"${dest:06X}", dest)

# @intent:responsibility Relative Long Mode (BRL, PER)
def addr_relative_long(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 2)
    offset = _word(op)
    if offset >= 0x8000:
        offset -= 0x10000
    dest = bank_offset(pc, 3 + offset)
    return AddressingResult(op, f"${dest:06X}", dest)

# @intent:responsibility Block Move Mode (MVN/MVP)
# @intent:note 機械語のバイト順は (転送先バンク, 転送元バンク)、アセンブラ表記は "src,dst"。
def addr_block_move(pc: int, rom: MappedRom, state: ProcessorWidthState) -> AddressingResult:
    op = _fetch(pc, rom, 2)
    dst, src = op
    return AddressingResult(op, f"${src:02X},${dst:02X}")


ADDRESSING_FUNCS: Dict[AddressingMode, AddrFunc] = {
    AddressingMode.IMPLIED: addr_implied,
    AddressingMode.ACCUMULATOR: addr_accumulator,
    AddressingMode.IMMEDIATE_M: addr_immediate_m,
    AddressingMode.IMMEDIATE_X: addr_immediate_x,
    AddressingMode.IMMEDIATE_8: addr_immediate_8,
    AddressingMode.DIRECT: addr_direct,
    AddressingMode.DIRECT_X: addr_direct_x,
    AddressingMode.DIRECT_Y: addr_direct_y,
    AddressingMode.DIRECT_INDIRECT: addr_direct_indirect,
    AddressingMode.DIRECT_INDEXED_INDIRECT: addr_direct_indexed_indirect,
    AddressingMode.DIRECT_INDIRECT_INDEXED: addr_direct_indirect_indexed,
    AddressingMode.DIRECT_INDIRECT_LONG: addr_direct_indirect_long,
    AddressingMode.DIRECT_INDIRECT_LONG_INDEXED: addr_direct_indirect_long_indexed,
    AddressingMode.STACK_RELATIVE: addr_stack_relative,
    AddressingMode.STACK_RELATIVE_INDIRECT_INDEXED: addr_stack_relative_indirect_indexed,
    AddressingMode.ABSOLUTE: addr_absolute,
    AddressingMode.ABSOLUTE_X: addr_absolute_x,
    AddressingMode.ABSOLUTE_Y: addr_absolute_y,
    AddressingMode.ABSOLUTE_INDIRECT: addr_absolute_indirect,
    AddressingMode.ABSOLUTE_INDEXED_INDIRECT: addr_absolute_indexed_indirect,
    AddressingMode.ABSOLUTE_INDIRECT_LONG: addr_absolute_indirect_long,
    AddressingMode.ABSOLUTE_LONG: addr_absolute_long,
    AddressingMode.ABSOLUTE_LONG_X: addr_absolute_long_x,
    AddressingMode.RELATIVE: addr_relative,
    AddressingMode.RELATIVE_LONG: addr_relative_long,
    AddressingMode.BLOCK_MOVE: addr_block_move,
}
