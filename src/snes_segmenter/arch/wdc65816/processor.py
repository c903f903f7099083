# src/snes_segmenter/arch/wdc65816/processor.py
"""
WDC 65816 幅状態の遷移規則。

命令がM/Xフラグに与える影響と、XCEの行き先を決めるキャリーフラグの既知の値だけを評価します。
レジスタ値やメモリへの副作用は扱いません。
"""
from typing import Tuple

from snes_segmenter.core.model import Instruction
from snes_segmenter.arch.wdc65816.state import ProcessorWidthState

M_FLAG = ProcessorWidthState.M_FLAG
X_FLAG = ProcessorWidthState.X_FLAG
C_FLAG = ProcessorWidthState.C_FLAG

# キャリーを値の分からない形で書き換える命令。呼び出し先でも書き換わり得るためJSR/JSLも含む
CARRY_CLOBBERS = frozenset({
    "ADC", "SBC", "CMP", "CPX", "CPY", "ASL", "LSR", "ROL", "ROR", "RTI", "JSR", "JSL",
})


def _rep(state: ProcessorWidthState, instr: Instruction) -> ProcessorWidthState:
    mask = instr.operand_bytes[0]
    state = state.with_widths(
        state.m16 or bool(mask & M_FLAG),
        state.x16 or bool(mask & X_FLAG),
    )
    return state.with_carry(False) if mask & C_FLAG else state


def _sep(state: ProcessorWidthState, instr: Instruction) -> ProcessorWidthState:
    mask = instr.operand_bytes[0]
    state = state.with_widths(
        state.m16 and not (mask & M_FLAG),
        state.x16 and not (mask & X_FLAG),
    )
    return state.with_carry(True) if mask & C_FLAG else state


def _clc(state: ProcessorWidthState, instr: Instruction) -> ProcessorWidthState:
    return state.with_carry(False)


def _sec(state: ProcessorWidthState, instr: Instruction) -> ProcessorWidthState:
    return state.with_carry(True)


# @intent:rationale C=1でエミュレーションモードへ入るとM/Xは8bitに強制され、C=0でネイティブモードへ
#                  入る場合は幅はそのまま残る。交換後のキャリーは旧Eフラグであり追跡していないため不明となる。
#                  キャリーが不明な場合、単一の結果としては8bit/8bitを返す（両方の候補はoutcomes()で得る）。
def _xce(state: ProcessorWidthState, instr: Instruction) -> ProcessorWidthState:
    if state.carry is False:
        return state.with_carry(None)
    return state.with_widths(False, False).with_carry(None)


def _php(state: ProcessorWidthState, instr: Instruction) -> ProcessorWidthState:
    return state.push()


def _plp(state: ProcessorWidthState, instr: Instruction) -> ProcessorWidthState:
    return state.pop()


STATE_EFFECTS = {
    0xC2: _rep,
    0xE2: _sep,
    0x18: _clc,
    0x38: _sec,
    0xFB: _xce,
    0x08: _php,
    0x28: _plp,
}


# @intent:responsibility 命令実行後の幅状態を返します。
# @intent:post-condition 幅にもキャリーにも影響しない命令では、引数と同一のインスタンスを返します。
def apply(state: ProcessorWidthState, instr: Instruction) -> ProcessorWidthState:
    effect = STATE_EFFECTS.get(instr.opcode)
    if effect is not None:
        return effect(state, instr)
    if instr.mnemonic in CARRY_CLOBBERS:
        return state.with_carry(None)
    return state


# @intent:responsibility 命令実行後に取り得る幅状態を全て返します。
# @intent:post-condition 通常は apply() の結果1つのみ。キャリーが不明なままXCEを実行し、かつ
#                       8bit/8bitでない場合だけ、(幅を維持, 8bit/8bitへ強制) の2つを返します。
def outcomes(state: ProcessorWidthState, instr: Instruction) -> Tuple[ProcessorWidthState, ...]:
    forced = apply(state, instr)
    if instr.opcode == 0xFB and state.carry is None and state.widths != (False, False):
        return (state.with_carry(None), forced)
    return (forced,)
