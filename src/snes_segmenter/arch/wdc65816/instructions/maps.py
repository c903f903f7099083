# src/snes_segmenter/arch/wdc65816/instructions/maps.py
"""
WDC 65816 命令マップ。

各オペコードに (ニーモニック, アドレッシングモード, 制御フロー種別) を対応付けます。
実行意味論（レジスタ演算）は持たず、命令の「形」と制御フローへの影響のみを記述します。
"""
from typing import Dict, Tuple

from snes_segmenter.arch.wdc65816.instructions.base import AddressingMode as Mode
from snes_segmenter.core.model import FlowKind as Flow

# Opcode Entry: (Mnemonic, Addressing Mode, Flow Kind)
OpcodeEntry = Tuple[str, Mode, Flow]

_SEQ = Flow.SEQUENTIAL

OPCODE_MAP: Dict[int, OpcodeEntry] = {
    # --- Load/Store ---
    0xA9: ("LDA", Mode.IMMEDIATE_M, _SEQ),
    0xA5: ("LDA", Mode.DIRECT, _SEQ),
    0xB5: ("LDA", Mode.DIRECT_X, _SEQ),
    0xAD: ("LDA", Mode.ABSOLUTE, _SEQ),
    0xBD: ("LDA", Mode.ABSOLUTE_X, _SEQ),
    0xB9: ("LDA", Mode.ABSOLUTE_Y, _SEQ),
    0xAF: ("LDA", Mode.ABSOLUTE_LONG, _SEQ),
    0xBF: ("LDA", Mode.ABSOLUTE_LONG_X, _SEQ),
    0xA1: ("LDA", Mode.DIRECT_INDEXED_INDIRECT, _SEQ),
    0xB1: ("LDA", Mode.DIRECT_INDIRECT_INDEXED, _SEQ),
    0xB2: ("LDA", Mode.DIRECT_INDIRECT, _SEQ),
    0xA7: ("LDA", Mode.DIRECT_INDIRECT_LONG, _SEQ),
    0xB7: ("LDA", Mode.DIRECT_INDIRECT_LONG_INDEXED, _SEQ),
    0xA3: ("LDA", Mode.STACK_RELATIVE, _SEQ),
    0xB3: ("LDA", Mode.STACK_RELATIVE_INDIRECT_INDEXED, _SEQ),

    0xA2: ("LDX", Mode.IMMEDIATE_X, _SEQ),
    0xA6: ("LDX", Mode.DIRECT, _SEQ),
    0xB6: ("LDX", Mode.DIRECT_Y, _SEQ),
    0xAE: ("LDX", Mode.ABSOLUTE, _SEQ),
    0xBE: ("LDX", Mode.ABSOLUTE_Y, _SEQ),

    0xA0: ("LDY", Mode.IMMEDIATE_X, _SEQ),
    0xA4: ("LDY", Mode.DIRECT, _SEQ),
    0xB4: ("LDY", Mode.DIRECT_X, _SEQ),
    0xAC: ("LDY", Mode.ABSOLUTE, _SEQ),
    0xBC: ("LDY", Mode.ABSOLUTE_X, _SEQ),

    0x85: ("STA", Mode.DIRECT, _SEQ),
    0x95: ("STA", Mode.DIRECT_X, _SEQ),
    0x8D: ("STA", Mode.ABSOLUTE, _SEQ),
    0x9D: ("STA", Mode.ABSOLUTE_X, _SEQ),
    0x99: ("STA", Mode.ABSOLUTE_Y, _SEQ),
    0x8F: ("STA", Mode.ABSOLUTE_LONG, _SEQ),
    0x9F: ("STA", Mode.ABSOLUTE_LONG_X, _SEQ),
    0x81: ("STA", Mode.DIRECT_INDEXED_INDIRECT, _SEQ),
    0x91: ("STA", Mode.DIRECT_INDIRECT_INDEXED, _SEQ),
    0x92: ("STA", Mode.DIRECT_INDIRECT, _SEQ),
    0x87: ("STA", Mode.DIRECT_INDIRECT_LONG, _SEQ),
    0x97: ("STA", Mode.DIRECT_INDIRECT_LONG_INDEXED, _SEQ),
    0x83: ("STA", Mode.STACK_RELATIVE, _SEQ),
    0x93: ("STA", Mode.STACK_RELATIVE_INDIRECT_INDEXED, _SEQ),

    0x86: ("STX", Mode.DIRECT, _SEQ),
    0x96: ("STX", Mode.DIRECT_Y, _SEQ),
    0x8E: ("STX", Mode.ABSOLUTE, _SEQ),

    0x84: ("STY", Mode.DIRECT, _SEQ),
    0x94: ("STY", Mode.DIRECT_X, _SEQ),
    0x8C: ("STY", Mode.ABSOLUTE, _SEQ),

    0x64: ("STZ", Mode.DIRECT, _SEQ),
    0x74: ("STZ", Mode.DIRECT_X, _SEQ),
    0x9C: ("STZ", Mode.ABSOLUTE, _SEQ),
    0x9E: ("STZ", Mode.ABSOLUTE_X, _SEQ),

    # --- Transfer ---
    0xAA: ("TAX", Mode.IMPLIED, _SEQ),
    0xA8: ("TAY", Mode.IMPLIED, _SEQ),
    0xBA: ("TSX", Mode.IMPLIED, _SEQ),
    0x8A: ("TXA", Mode.IMPLIED, _SEQ),
    0x9A: ("TXS", Mode.IMPLIED, _SEQ),
    0x98: ("TYA", Mode.IMPLIED, _SEQ),
    0x9B: ("TXY", Mode.IMPLIED, _SEQ),
    0xBB: ("TYX", Mode.IMPLIED, _SEQ),
    0x5B: ("TCD", Mode.IMPLIED, _SEQ),
    0x7B: ("TDC", Mode.IMPLIED, _SEQ),
    0x1B: ("TCS", Mode.IMPLIED, _SEQ),
    0x3B: ("TSC", Mode.IMPLIED, _SEQ),
    0xEB: ("XBA", Mode.IMPLIED, _SEQ),

    # --- Block Move ---
    0x44: ("MVP", Mode.BLOCK_MOVE, _SEQ),
    0x54: ("MVN", Mode.BLOCK_MOVE, _SEQ),

    # --- Stack ---
    0x48: ("PHA", Mode.IMPLIED, _SEQ),
    0xDA: ("PHX", Mode.IMPLIED, _SEQ),
    0x5A: ("PHY", Mode.IMPLIED, _SEQ),
    0x08: ("PHP", Mode.IMPLIED, _SEQ),
    0x8B: ("PHB", Mode.IMPLIED, _SEQ),
    0x0B: ("PHD", Mode.IMPLIED, _SEQ),
    0x4B: ("PHK", Mode.IMPLIED, _SEQ),
    0x68: ("PLA", Mode.IMPLIED, _SEQ),
    0xFA: ("PLX", Mode.IMPLIED, _SEQ),
    0x7A: ("PLY", Mode.IMPLIED, _SEQ),
    0x28: ("PLP", Mode.IMPLIED, _SEQ),
    0xAB: ("PLB", Mode.IMPLIED, _SEQ),
    0x2B: ("PLD", Mode.IMPLIED, _SEQ),
    0xF4: ("PEA", Mode.ABSOLUTE, _SEQ),
    0xD4: ("PEI", Mode.DIRECT_INDIRECT, _SEQ),
    0x62: ("PER", Mode.RELATIVE_LONG, _SEQ),

    # --- Arithmetic / Logic ---
    0x69: ("ADC", Mode.IMMEDIATE_M, _SEQ),
    0x65: ("ADC", Mode.DIRECT, _SEQ),
    0x75: ("ADC", Mode.DIRECT_X, _SEQ),
    0x6D: ("ADC", Mode.ABSOLUTE, _SEQ),
    0x7D: ("ADC", Mode.ABSOLUTE_X, _SEQ),
    0x79: ("ADC", Mode.ABSOLUTE_Y, _SEQ),
    0x6F: ("ADC", Mode.ABSOLUTE_LONG, _SEQ),
    0x7F: ("ADC", Mode.ABSOLUTE_LONG_X, _SEQ),
    0x61: ("ADC", Mode.DIRECT_INDEXED_INDIRECT, _SEQ),
    0x71: ("ADC", Mode.DIRECT_INDIRECT_INDEXED, _SEQ),
    0x72: ("ADC", Mode.DIRECT_INDIRECT, _SEQ),
    0x67: ("ADC", Mode.DIRECT_INDIRECT_LONG, _SEQ),
    0x77: ("ADC", Mode.DIRECT_INDIRECT_LONG_INDEXED, _SEQ),
    0x63: ("ADC", Mode.STACK_RELATIVE, _SEQ),
    0x73: ("ADC", Mode.STACK_RELATIVE_INDIRECT_INDEXED, _SEQ),

    0xE9: ("SBC", Mode.IMMEDIATE_M, _SEQ),
    0xE5: ("SBC", Mode.DIRECT, _SEQ),
    0xF5: ("SBC", Mode.DIRECT_X, _SEQ),
    0xED: ("SBC", Mode.ABSOLUTE, _SEQ),
    0xFD: ("SBC", Mode.ABSOLUTE_X, _SEQ),
    0xF9: ("SBC", Mode.ABSOLUTE_Y, _SEQ),
    0xEF: ("SBC", Mode.ABSOLUTE_LONG, _SEQ),
    0xFF: ("SBC", Mode.ABSOLUTE_LONG_X, _SEQ),
    0xE1: ("SBC", Mode.DIRECT_INDEXED_INDIRECT, _SEQ),
    0xF1: ("SBC", Mode.DIRECT_INDIRECT_INDEXED, _SEQ),
    0xF2: ("SBC", Mode.DIRECT_INDIRECT, _SEQ),
    0xE7: ("SBC", Mode.DIRECT_INDIRECT_LONG, _SEQ),
    0xF7: ("SBC", Mode.DIRECT_INDIRECT_LONG_INDEXED, _SEQ),
    0xE3: ("SBC", Mode.STACK_RELATIVE, _SEQ),
    0xF3: ("SBC", Mode.STACK_RELATIVE_INDIRECT_INDEXED, _SEQ),

    0x29: ("AND", Mode.IMMEDIATE_M, _SEQ),
    0x25: ("AND", Mode.DIRECT, _SEQ),
    0x35: ("AND", Mode.DIRECT_X, _SEQ),
    0x2D: ("AND", Mode.ABSOLUTE, _SEQ),
    0x3D: ("AND", Mode.ABSOLUTE_X, _SEQ),
    0x39: ("AND", Mode.ABSOLUTE_Y, _SEQ),
    0x2F: ("AND", Mode.ABSOLUTE_LONG, _SEQ),
    0x3F: ("AND", Mode.ABSOLUTE_LONG_X, _SEQ),
    0x21: ("AND", Mode.DIRECT_INDEXED_INDIRECT, _SEQ),
    0x31: ("AND", Mode.DIRECT_INDIRECT_INDEXED, _SEQ),
    0x32: ("AND", Mode.DIRECT_INDIRECT, _SEQ),
    0x27: ("AND", Mode.DIRECT_INDIRECT_LONG, _SEQ),
    0x37: ("AND", Mode.DIRECT_INDIRECT_LONG_INDEXED, _SEQ),
    0x23: ("AND", Mode.STACK_RELATIVE, _SEQ),
    0x33: ("AND", Mode.STACK_RELATIVE_INDIRECT_INDEXED, _SEQ),

    0x09: ("ORA", Mode.IMMEDIATE_M, _SEQ),
    0x05: ("ORA", Mode.DIRECT, _SEQ),
    0x15: ("ORA", Mode.DIRECT_X, _SEQ),
    0x0D: ("ORA", Mode.ABSOLUTE, _SEQ),
    0x1D: ("ORA", Mode.ABSOLUTE_X, _SEQ),
    0x19: ("ORA", Mode.ABSOLUTE_Y, _SEQ),
    0x0F: ("ORA", Mode.ABSOLUTE_LONG, _SEQ),
    0x1F: ("ORA", Mode.ABSOLUTE_LONG_X, _SEQ),
    0x01: ("ORA", Mode.DIRECT_INDEXED_INDIRECT, _SEQ),
    0x11: ("ORA", Mode.DIRECT_INDIRECT_INDEXED, _SEQ),
    0x12: ("ORA", Mode.DIRECT_INDIRECT, _SEQ),
    0x07: ("ORA", Mode.DIRECT_INDIRECT_LONG, _SEQ),
    0x17: ("ORA", Mode.DIRECT_INDIRECT_LONG_INDEXED, _SEQ),
    0x03: ("ORA", Mode.STACK_RELATIVE, _SEQ),
    0x13: ("ORA", Mode.STACK_RELATIVE_INDIRECT_INDEXED, _SEQ),

    0x49: ("EOR", Mode.IMMEDIATE_M, _SEQ),
    0x45: ("EOR", Mode.DIRECT, _SEQ),
    0x55: ("EOR", Mode.DIRECT_X, _SEQ),
    0x4D: ("EOR", Mode.ABSOLUTE, _SEQ),
    0x5D: ("EOR", Mode.ABSOLUTE_X, _SEQ),
    0x59: ("EOR", Mode.ABSOLUTE_Y, _SEQ),
    0x4F: ("EOR", Mode.ABSOLUTE_LONG, _SEQ),
    0x5F: ("EOR", Mode.ABSOLUTE_LONG_X, _SEQ),
    0x41: ("EOR", Mode.DIRECT_INDEXED_INDIRECT, _SEQ),
    0x51: ("EOR", Mode.DIRECT_INDIRECT_INDEXED, _SEQ),
    0x52: ("EOR", Mode.DIRECT_INDIRECT, _SEQ),
    0x47: ("EOR", Mode.DIRECT_INDIRECT_LONG, _SEQ),
    0x57: ("EOR", Mode.DIRECT_INDIRECT_LONG_INDEXED, _SEQ),
    0x43: ("EOR", Mode.STACK_RELATIVE, _SEQ),
    0x53: ("EOR", Mode.STACK_RELATIVE_INDIRECT_INDEXED, _SEQ),

    0xC9: ("CMP", Mode.IMMEDIATE_M, _SEQ),
    0xC5: ("CMP", Mode.DIRECT, _SEQ),
    0xD5: ("CMP", Mode.DIRECT_X, _SEQ),
    0xCD: ("CMP", Mode.ABSOLUTE, _SEQ),
    0xDD: ("CMP", Mode.ABSOLUTE_X, _SEQ),
    0xD9: ("CMP", Mode.ABSOLUTE_Y, _SEQ),
    0xCF: ("CMP", Mode.ABSOLUTE_LONG, _SEQ),
    0xDF: ("CMP", Mode.ABSOLUTE_LONG_X, _SEQ),
    0xC1: ("CMP", Mode.DIRECT_INDEXED_INDIRECT, _SEQ),
    0xD1: ("CMP", Mode.DIRECT_INDIRECT_INDEXED, _SEQ),
    0xD2: ("CMP", Mode.DIRECT_INDIRECT, _SEQ),
    0xC7: ("CMP", Mode.DIRECT_INDIRECT_LONG, _SEQ),
    0xD7: ("CMP", Mode.DIRECT_INDIRECT_LONG_INDEXED, _SEQ),
    0xC3: ("CMP", Mode.STACK_RELATIVE, _SEQ),
    0xD3: ("CMP", Mode.STACK_RELATIVE_INDIRECT_INDEXED, _SEQ),

    0xE0: ("CPX", Mode.IMMEDIATE_X, _SEQ),
    0xE4: ("CPX", Mode.DIRECT, _SEQ),
    0xEC: ("CPX", Mode.ABSOLUTE, _SEQ),
    0xC0: ("CPY", Mode.IMMEDIATE_X, _SEQ),
    0xC4: ("CPY", Mode.DIRECT, _SEQ),
    0xCC: ("CPY", Mode.ABSOLUTE, _SEQ),

    0x89: ("BIT", Mode.IMMEDIATE_M, _SEQ),
    0x24: ("BIT", Mode.DIRECT, _SEQ),
    0x34: ("BIT", Mode.DIRECT_X, _SEQ),
    0x2C: ("BIT", Mode.ABSOLUTE, _SEQ),
    0x3C: ("BIT", Mode.ABSOLUTE_X, _SEQ),

    0x04: ("TSB", Mode.DIRECT, _SEQ),
    0x0C: ("TSB", Mode.ABSOLUTE, _SEQ),
    0x14: ("TRB", Mode.DIRECT, _SEQ),
    0x1C: ("TRB", Mode.ABSOLUTE, _SEQ),

    # --- Increment / Decrement ---
    0x1A: ("INC", Mode.ACCUMULATOR, _SEQ),
    0xE6: ("INC", Mode.DIRECT, _SEQ),
    0xF6: ("INC", Mode.DIRECT_X, _SEQ),
    0xEE: ("INC", Mode.ABSOLUTE, _SEQ),
    0xFE: ("INC", Mode.ABSOLUTE_X, _SEQ),
    0x3A: ("DEC", Mode.ACCUMULATOR, _SEQ),
    0xC6: ("DEC", Mode.DIRECT, _SEQ),
    0xD6: ("DEC", Mode.DIRECT_X, _SEQ),
    0xCE: ("DEC", Mode.ABSOLUTE, _SEQ),
    0xDE: ("DEC", Mode.ABSOLUTE_X, _SEQ),
    0xE8: ("INX", Mode.IMPLIED, _SEQ),
    0xC8: ("INY", Mode.IMPLIED, _SEQ),
    0xCA: ("DEX", Mode.IMPLIED, _SEQ),
    0x88: ("DEY", Mode.IMPLIED, _SEQ),

    # --- Shift / Rotate ---
    0x0A: ("ASL", Mode.ACCUMULATOR, _SEQ),
    0x06: ("ASL", Mode.DIRECT, _SEQ),
    0x16: ("ASL", Mode.DIRECT_X, _SEQ),
    0x0E: ("ASL", Mode.ABSOLUTE, _SEQ),
    0x1E: ("ASL", Mode.ABSOLUTE_X, _SEQ),
    0x4A: ("LSR", Mode.ACCUMULATOR, _SEQ),
    0x46: ("LSR", Mode.DIRECT, _SEQ),
    0x56: ("LSR", Mode.DIRECT_X, _SEQ),
    0x4E: ("LSR", Mode.ABSOLUTE, _SEQ),
    0x5E: ("LSR", Mode.ABSOLUTE_X, _SEQ),
    0x2A: ("ROL", Mode.ACCUMULATOR, _SEQ),
    0x26: ("ROL", Mode.DIRECT, _SEQ),
    0x36: ("ROL", Mode.DIRECT_X, _SEQ),
    0x2E: ("ROL", Mode.ABSOLUTE, _SEQ),
    0x3E: ("ROL", Mode.ABSOLUTE_X, _SEQ),
    0x6A: ("ROR", Mode.ACCUMULATOR, _SEQ),
    0x66: ("ROR", Mode.DIRECT, _SEQ),
    0x76: ("ROR", Mode.DIRECT_X, _SEQ),
    0x6E: ("ROR", Mode.ABSOLUTE, _SEQ),
    0x7E: ("ROR", Mode.ABSOLUTE_X, _SEQ),

    # --- Status Flags ---
    0x18: ("CLC", Mode.IMPLIED, _SEQ),
    0x38: ("SEC", Mode.IMPLIED, _SEQ),
    0x58: ("CLI", Mode.IMPLIED, _SEQ),
    0x78: ("SEI", Mode.IMPLIED, _SEQ),
    0xB8: ("CLV", Mode.IMPLIED, _SEQ),
    0xD8: ("CLD", Mode.IMPLIED, _SEQ),
    0xF8: ("SED", Mode.IMPLIED, _SEQ),
    0xC2: ("REP", Mode.IMMEDIATE_8, _SEQ),
    0xE2: ("SEP", Mode.IMMEDIATE_8, _SEQ),
    0xFB: ("XCE", Mode.IMPLIED, _SEQ),

    # --- Branch ---
    0x10: ("BPL", Mode.RELATIVE, Flow.BRANCH),
    0x30: ("BMI", Mode.RELATIVE, Flow.BRANCH),
    0x50: ("BVC", Mode.RELATIVE, Flow.BRANCH),
    0x70: ("BVS", Mode.RELATIVE, Flow.BRANCH),
    0x90: ("BCC", Mode.RELATIVE, Flow.BRANCH),
    0xB0: ("BCS", Mode.RELATIVE, Flow.BRANCH),
    0xD0: ("BNE", Mode.RELATIVE, Flow.BRANCH),
    0xF0: ("BEQ", Mode.RELATIVE, Flow.BRANCH),
    0x80: ("BRA", Mode.RELATIVE, Flow.BRANCH_ALWAYS),
    0x82: ("BRL", Mode.RELATIVE_LONG, Flow.BRANCH_ALWAYS),

    # --- Jump / Call / Return ---
    0x4C: ("JMP", Mode.ABSOLUTE, Flow.JUMP),
    0x5C: ("JML", Mode.ABSOLUTE_LONG, Flow.JUMP),
    0x6C: ("JMP", Mode.ABSOLUTE_INDIRECT, Flow.INDIRECT_JUMP),
    0x7C: ("JMP", Mode.ABSOLUTE_INDEXED_INDIRECT, Flow.INDIRECT_JUMP),
    0xDC: ("JML", Mode.ABSOLUTE_INDIRECT_LONG, Flow.INDIRECT_JUMP),
    0x20: ("JSR", Mode.ABSOLUTE, Flow.CALL),
    0x22: ("JSL", Mode.ABSOLUTE_LONG, Flow.CALL),
    0xFC: ("JSR", Mode.ABSOLUTE_INDEXED_INDIRECT, Flow.INDIRECT_CALL),
    0x60: ("RTS", Mode.IMPLIED, Flow.RETURN),
    0x6B: ("RTL", Mode.IMPLIED, Flow.RETURN),
    0x40: ("RTI", Mode.IMPLIED, Flow.RETURN),

    # --- Interrupt / System ---
    # BRK/COP は次のバイトをシグネチャとして読み飛ばす2バイト命令として扱う
    0x00: ("BRK", Mode.IMMEDIATE_8, Flow.HALT),
    0x02: ("COP", Mode.IMMEDIATE_8, Flow.HALT),
    0xDB: ("STP", Mode.IMPLIED, Flow.HALT),
    0xCB: ("WAI", Mode.IMPLIED, _SEQ),
    0xEA: ("NOP", Mode.IMPLIED, _SEQ),
}

# WDM は将来の拡張用に予約されたオペコード。実機では2バイトNOPだが、
# コード中に現れることはまず無いため未定義命令としてトレースを止める。
RESERVED_OPCODES: Dict[int, str] = {
    0x42: "WDM",
}
