# tests/arch/wdc65816/test_decoder.py
"""
snes_segmenter.arch.wdc65816.decoderモジュールの単体テスト。
"""
import pytest

from snes_segmenter.common.errors import DecodeError, DecodeFailure
from snes_segmenter.core.model import FlowKind
from snes_segmenter.arch.wdc65816.decoder import decode, instruction_length
from snes_segmenter.arch.wdc65816.instructions import OPCODE_MAP, RESERVED_OPCODES, decode_opcode
from snes_segmenter.arch.wdc65816.instructions.base import AddressingMode
from snes_segmenter.arch.wdc65816.state import ProcessorWidthState

# @intent:test_suite 幅状態に依存する命令長と、静的な飛び先の解決の検証。

# 8bitアキュムレータ/8bitインデックス時の命令長 (WDC W65C816S データシート)
LENGTHS_M8X8 = [
    # x0 x1 x2 x3 x4 x5 x6 x7 x8 x9 xA xB xC xD xE xF
    2, 2, 2, 2, 2, 2, 2, 2, 1, 2, 1, 1, 3, 3, 3, 4,  # 0x
    2, 2, 2, 2, 2, 2, 2, 2, 1, 3, 1, 1, 3, 3, 3, 4,  # 1x
    3, 2, 4, 2, 2, 2, 2, 2, 1, 2, 1, 1, 3, 3, 3, 4,  # 2x
    2, 2, 2, 2, 2, 2, 2, 2, 1, 3, 1, 1, 3, 3, 3, 4,  # 3x
    1, 2, 2, 2, 3, 2, 2, 2, 1, 2, 1, 1, 3, 3, 3, 4,  # 4x
    2, 2, 2, 2, 3, 2, 2, 2, 1, 3, 1, 1, 4, 3, 3, 4,  # 5x
    1, 2, 3, 2, 2, 2, 2, 2, 1, 2, 1, 1, 3, 3, 3, 4,  # 6x
    2, 2, 2, 2, 2, 2, 2, 2, 1, 3, 1, 1, 3, 3, 3, 4,  # 7x
    2, 2, 3, 2, 2, 2, 2, 2, 1, 2, 1, 1, 3, 3, 3, 4,  # 8x
    2, 2, 2, 2, 2, 2, 2, 2, 1, 3, 1, 1, 3, 3, 3, 4,  # 9x
    2, 2, 2, 2, 2, 2, 2, 2, 1, 2, 1, 1, 3, 3, 3, 4,  # Ax
    2, 2, 2, 2, 2, 2, 2, 2, 1, 3, 1, 1, 3, 3, 3, 4,  # Bx
    2, 2, 2, 2, 2, 2, 2, 2, 1, 2, 1, 1, 3, 3, 3, 4,  # Cx
    2, 2, 2, 2, 2, 2, 2, 2, 1, 3, 1, 1, 3, 3, 3, 4,  # Dx
    2, 2, 2, 2, 2, 2, 2, 2, 1, 2, 1, 1, 3, 3, 3, 4,  # Ex
    2, 2, 2, 2, 3, 2, 2, 2, 1, 3, 1, 1, 3, 3, 3, 4,  # Fx
]

# 16bitアキュムレータで1バイト伸びる即値命令
M_DEPENDENT = {0x09, 0x29, 0x49, 0x69, 0x89, 0xA9, 0xC9, 0xE9}
# 16bitインデックスで1バイト伸びる即値命令
X_DEPENDENT = {0xA0, 0xA2, 0xC0, 0xE0}

ALL_STATES = [
    ProcessorWidthState(m16=False, x16=False),
    ProcessorWidthState(m16=True, x16=False),
    ProcessorWidthState(m16=False, x16=True),
    ProcessorWidthState(m16=True, x16=True),
]


def expected_length(opcode, state):
    length = LENGTHS_M8X8[opcode]
    if opcode in M_DEPENDENT and state.m16:
        length += 1
    if opcode in X_DEPENDENT and state.x16:
        length += 1
    return length


class TestOpcodeTable:
    def test_every_opcode_except_wdm_is_defined(self):
        assert set(OPCODE_MAP) | set(RESERVED_OPCODES) == set(range(256))
        assert set(RESERVED_OPCODES) == {0x42}
        assert decode_opcode(0x42) is None

    @pytest.mark.parametrize("state", ALL_STATES, ids=str)
    def test_length_table(self, state):
        for opcode in OPCODE_MAP:
            assert instruction_length(opcode, state) == expected_length(opcode, state), f"opcode ${opcode:02X}"

    def test_decoded_length_matches_table(self, lorom):
        # 各オペコードを実際にROM上でデコードし、命令長が表と一致することを確認する
        for opcode in OPCODE_MAP:
            rom = lorom({0x008000: [opcode, 0x00, 0x80, 0x00]})
            for state in ALL_STATES:
                instr = decode(rom, 0x008000, state)
                assert instr.length == expected_length(opcode, state), f"opcode ${opcode:02X} {state}"
                assert len(instr.raw_bytes) == instr.length

    def test_wdm_is_undefined(self):
        with pytest.raises(DecodeError) as excinfo:
            instruction_length(0x42, ProcessorWidthState())
        assert excinfo.value.reason == DecodeFailure.UNDEFINED


class TestDecode:
    def test_immediate_follows_accumulator_width(self, lorom):
        rom = lorom({0x008000: [0xA9, 0x34, 0x12]})
        short = decode(rom, 0x008000, ProcessorWidthState(m16=False))
        wide = decode(rom, 0x008000, ProcessorWidthState(m16=True))
        assert (short.length, short.operand_text) == (2, "#$34")
        assert (wide.length, wide.operand_text) == (3, "#$1234")
        assert str(wide) == "LDA #$1234"
        assert wide.state.m16

    def test_immediate_follows_index_width(self, lorom):
        rom = lorom({0x008000: [0xA2, 0xFF, 0x01]})
        assert decode(rom, 0x008000, ProcessorWidthState(m16=True, x16=False)).length == 2
        assert decode(rom, 0x008000, ProcessorWidthState(m16=False, x16=True)).length == 3

    def test_rep_sep_operand_is_always_8bit(self, lorom):
        rom = lorom({0x008000: [0xC2, 0x30, 0xE2, 0x20]})
        instr = decode(rom, 0x008000, ProcessorWidthState(m16=True, x16=True))
        assert instr.mnemonic == "REP"
        assert instr.operand_bytes == (0x30,)
        assert instr.next_address == 0x008002

    def test_jmp_absolute_uses_program_bank(self, lorom):
        rom = lorom({0x008000: [0x4C, 0x00, 0x90]})
        instr = decode(rom, 0x808000, ProcessorWidthState())
        assert instr.flow == FlowKind.JUMP
        assert instr.targets == (0x809000,)

    def test_jsl_long_target(self, lorom):
        rom = lorom({0x008000: [0x22, 0x56, 0x34, 0x01]})
        instr = decode(rom, 0x008000, ProcessorWidthState())
        assert instr.flow == FlowKind.CALL
        assert instr.targets == (0x013456,)
        assert instr.operand_text == "$013456"

    def test_branch_targets(self, lorom):
        rom = lorom({
            0x008000: [0x80, 0xFE],        # BRA *
            0x008010: [0xD0, 0x10],        # BNE +16
            0x008020: [0x82, 0xFD, 0xFF],  # BRL *
        })
        bra = decode(rom, 0x008000, ProcessorWidthState())
        bne = decode(rom, 0x008010, ProcessorWidthState())
        brl = decode(rom, 0x008020, ProcessorWidthState())
        assert (bra.flow, bra.targets) == (FlowKind.BRANCH_ALWAYS, (0x008000,))
        assert (bne.flow, bne.targets) == (FlowKind.BRANCH, (0x008022,))
        assert (brl.flow, brl.targets) == (FlowKind.BRANCH_ALWAYS, (0x008020,))

    def test_branch_wraps_within_bank(self, lorom):
        rom = lorom({0x00FFF0: [0x10, 0x7F]})  # BPL +127
        instr = decode(rom, 0x00FFF0, ProcessorWidthState())
        assert instr.targets == (0x000071,)

    @pytest.mark.parametrize("code, flow", [
        ([0x6C, 0x00, 0x02], FlowKind.INDIRECT_JUMP),  # JMP ($0200)
        ([0x7C, 0x00, 0x90], FlowKind.INDIRECT_JUMP),  # JMP ($9000,X)
        ([0xDC, 0x00, 0x02], FlowKind.INDIRECT_JUMP),  # JML [$0200]
        ([0xFC, 0x00, 0x90], FlowKind.INDIRECT_CALL),  # JSR ($9000,X)
    ])
    def test_indirect_modes_have_no_static_target(self, lorom, code, flow):
        rom = lorom({0x008000: code})
        instr = decode(rom, 0x008000, ProcessorWidthState())
        assert instr.flow == flow
        assert instr.targets == ()

    def test_non_control_operands_are_not_targets(self, lorom):
        rom = lorom({0x008000: [0xF4, 0x00, 0x90, 0x62, 0x00, 0x10, 0xAD, 0x00, 0x90]})
        pea = decode(rom, 0x008000, ProcessorWidthState())
        per = decode(rom, 0x008003, ProcessorWidthState())
        lda = decode(rom, 0x008006, ProcessorWidthState())
        assert (pea.mnemonic, pea.targets) == ("PEA", ())
        assert (per.mnemonic, per.targets) == ("PER", ())
        assert (lda.mode, lda.targets) == (AddressingMode.ABSOLUTE, ())

    def test_block_move_operand_order(self, lorom):
        rom = lorom({0x008000: [0x54, 0x7E, 0x01]})
        instr = decode(rom, 0x008000, ProcessorWidthState())
        assert str(instr) == "MVN $01,$7E"

    def test_terminal_instructions(self, lorom):
        rom = lorom({0x008000: [0x60, 0x6B, 0x40, 0xDB, 0x00, 0x00]})
        flows = [decode(rom, address, ProcessorWidthState()).flow for address in (0x008000, 0x008001, 0x008002, 0x008003, 0x008004)]
        assert flows == [FlowKind.RETURN, FlowKind.RETURN, FlowKind.RETURN, FlowKind.HALT, FlowKind.HALT]

    def test_undefined_opcode(self, lorom):
        rom = lorom({0x008000: [0x42, 0x00]})
        with pytest.raises(DecodeError) as excinfo:
            decode(rom, 0x008000, ProcessorWidthState())
        assert excinfo.value.reason == DecodeFailure.UNDEFINED
        assert excinfo.value.address == 0x008000

    def test_operand_past_mapped_region(self, lorom):
        # $00:FFFF の次は $00:0000 (WRAMミラー) に折り返すためオペランドを読めない
        rom = lorom({0x00FFFF: [0xAD]})
        with pytest.raises(DecodeError) as excinfo:
            decode(rom, 0x00FFFF, ProcessorWidthState())
        assert excinfo.value.reason == DecodeFailure.OUT_OF_BOUNDS

    def test_opcode_outside_rom(self, lorom):
        rom = lorom({})
        with pytest.raises(DecodeError) as excinfo:
            decode(rom, 0x7E2000, ProcessorWidthState())
        assert excinfo.value.reason == DecodeFailure.OUT_OF_BOUNDS

    def test_decode_is_pure(self, lorom):
        rom = lorom({0x008000: [0xA9, 0x34, 0x12]})
        state = ProcessorWidthState(m16=True)
        assert decode(rom, 0x008000, state) == decode(rom, 0x008000, state)
        assert state == ProcessorWidthState(m16=True)
