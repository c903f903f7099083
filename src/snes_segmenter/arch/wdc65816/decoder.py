# src/snes_segmenter/arch/wdc65816/decoder.py
"""
WDC 65816 命令デコーダ。

幅状態を明示的な引数として受け取り、指定アドレスの1命令だけをデコードします。
共有構造を一切変更しない純粋関数のため、複数のトレースワーカーから同時に呼び出せます。
"""
from snes_segmenter.common.errors import DecodeError, DecodeFailure, MappingError
from snes_segmenter.common.types import LinearAddress
from snes_segmenter.core.model import FlowKind, Instruction
from snes_segmenter.transport.rom import MappedRom
from snes_segmenter.arch.wdc65816.state import ProcessorWidthState
from snes_segmenter.arch.wdc65816.instructions import decode_opcode
from snes_segmenter.arch.wdc65816.instructions.base import ADDRESSING_FUNCS, operand_size

# 静的な飛び先を持ち得る制御フロー種別。それ以外のモードが計算したアドレス(PEA, PER等)は飛び先として扱わない。
_TARGETED_FLOWS = frozenset({FlowKind.BRANCH, FlowKind.BRANCH_ALWAYS, FlowKind.JUMP, FlowKind.CALL})


# @intent:responsibility 指定されたリニアアドレスの命令を、与えられた幅状態の下でデコードします。
# @intent:pre-condition addressはプログラムカウンタとして有効な24bit値である必要があります。
# @intent:post-condition 未定義オペコードはUNDEFINED、マップ外への読み出しはOUT_OF_BOUNDSのDecodeErrorになります。
def decode(rom: MappedRom, address: LinearAddress, state: ProcessorWidthState) -> Instruction:
    """
    1命令をデコードしてInstructionを返します。
    オペランドはプログラムバンク内で読み出され、16bitのPCは折り返します。
    """
    try:
        opcode = rom.read(address)
    except MappingError as e:
        raise DecodeError(address, DecodeFailure.OUT_OF_BOUNDS, str(e)) from e

    entry = decode_opcode(opcode)
    if entry is None:
        raise DecodeError(address, DecodeFailure.UNDEFINED, f"opcode ${opcode:02X}")
    mnemonic, mode, flow = entry

    try:
        result = ADDRESSING_FUNCS[mode](address, rom, state)
    except MappingError as e:
        raise DecodeError(address, DecodeFailure.OUT_OF_BOUNDS, f"{mnemonic} operand: {e}") from e

    targets = ()
    if flow in _TARGETED_FLOWS and result.target is not None:
        targets = (result.target,)

    return Instruction(
        address=address,
        opcode=opcode,
        mnemonic=mnemonic,
        mode=mode,
        operand_bytes=result.operand_bytes,
        operand_text=result.operand_text,
        flow=flow,
        targets=targets,
        state=state,
    )


# @intent:responsibility ROMを読まずに、オペコードと幅状態だけから命令長を求めます。
# @intent:post-condition 予約済み・未定義のオペコードに対してはDecodeError(UNDEFINED)を送出します。
def instruction_length(opcode: int, state: ProcessorWidthState) -> int:
    entry = decode_opcode(opcode)
    if entry is None:
        raise DecodeError(0, DecodeFailure.UNDEFINED, f"opcode ${opcode:02X}")
    return 1 + operand_size(entry[1], state)
