# snes_segmenter/core/model.py
"""
解析結果の不変データ構造

このモジュールは、デコードされた命令、トレースノード、相互参照、領域、ラベルといった
解析の成果物を表す不変のデータ構造を定義します。
全てROMイメージとヒントから再計算可能な派生データであり、直接編集されることはありません。
"""
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional, Tuple

from snes_segmenter.arch.wdc65816.state import ProcessorWidthState
from snes_segmenter.common.types import LinearAddress, RomOffset


# @intent:responsibility 命令が制御フローに与える影響を分類します。
class FlowKind(Enum):
    SEQUENTIAL = "SEQUENTIAL"        # 次の命令へ進むのみ
    BRANCH = "BRANCH"                # 条件分岐 (フォールスルー + 分岐先)
    BRANCH_ALWAYS = "BRANCH_ALWAYS"  # BRA / BRL
    JUMP = "JUMP"                    # JMP / JML (静的な飛び先)
    CALL = "CALL"                    # JSR / JSL (静的な呼び出し先)
    INDIRECT_JUMP = "INDIRECT_JUMP"  # 飛び先がメモリ上のポインタで決まる
    INDIRECT_CALL = "INDIRECT_CALL"
    RETURN = "RETURN"                # RTS / RTL / RTI
    HALT = "HALT"                    # STP, BRK / COP (ソフトウェア割り込み)

    @property
    def is_terminal(self) -> bool:
        return self in (FlowKind.RETURN, FlowKind.HALT)

    @property
    def is_call(self) -> bool:
        return self in (FlowKind.CALL, FlowKind.INDIRECT_CALL)

    @property
    def is_indirect(self) -> bool:
        return self in (FlowKind.INDIRECT_JUMP, FlowKind.INDIRECT_CALL)


# @intent:responsibility デコード済みの1命令を記録します。
@dataclass(frozen=True) # 不変データ構造
class Instruction:
    """
    デコードされた命令（オペコード、アドレッシングモード、命令長、静的な飛び先）を記録するデータクラス。
    """
    address: LinearAddress
    opcode: int
    mnemonic: str # 例: "LDA"
    mode: Enum # アドレッシングモード
    operand_bytes: Tuple[int, ...] = ()
    operand_text: str = "" # 例: "#$1234"
    flow: FlowKind = FlowKind.SEQUENTIAL
    targets: Tuple[LinearAddress, ...] = () # 静的に解決できた飛び先 (間接モードでは空)
    state: ProcessorWidthState = field(default_factory=ProcessorWidthState) # デコード時の幅状態

    @property
    def length(self) -> int:
        return 1 + len(self.operand_bytes)

    # @intent:responsibility フォールスルー先（同一バンク内で折り返す）を返します。
    @property
    def next_address(self) -> LinearAddress:
        return (self.address & 0xFF0000) | ((self.address + self.length) & 0xFFFF)

    @property
    def raw_bytes(self) -> Tuple[int, ...]:
        return (self.opcode,) + self.operand_bytes

    def __str__(self) -> str:
        return f"{self.mnemonic} {self.operand_text}".strip()


# @intent:responsibility 「訪問済み」の単位。同じアドレスでも幅状態が異なれば別ノードとして扱います。
@dataclass(frozen=True)
class TraceNode:
    address: LinearAddress
    state: ProcessorWidthState = field(default_factory=ProcessorWidthState)

    def sort_key(self) -> Tuple:
        carry = -1 if self.state.carry is None else int(self.state.carry)
        return (self.address, self.state.m16, self.state.x16, self.state.pushed, carry)


# @intent:responsibility 相互参照の種類を定義します。
class XrefKind(Enum):
    CALL = "CALL"
    BRANCH = "BRANCH"
    JUMP = "JUMP"
    INTERRUPT_VECTOR = "INTERRUPT_VECTOR"
    JUMP_TABLE = "JUMP_TABLE"
    INDIRECT_UNRESOLVED = "INDIRECT_UNRESOLVED"


# @intent:responsibility あるアドレスの命令から別のアドレスへの制御移動を記録します。
@dataclass(frozen=True)
class Xref:
    """
    制御移動の有向辺。targetがNoneのものは静的に解決できなかった間接移動を表します。
    """
    source: LinearAddress
    target: Optional[LinearAddress]
    kind: XrefKind

    def sort_key(self) -> Tuple[int, int, str]:
        return (self.source, -1 if self.target is None else self.target, self.kind.value)


# @intent:responsibility バイト範囲の最終分類を定義します。
# @intent:rationale bytearrayに1バイト1分類で格納するため整数値を持たせます。
class Classification(IntEnum):
    UNKNOWN = 0
    CODE = 1
    DATA = 2
    AMBIGUOUS = 3


# @intent:responsibility 分類が一様な連続区間 [start, end) をROMオフセットで記録します。
@dataclass(frozen=True)
class Region:
    start: RomOffset
    end: RomOffset
    classification: Classification

    @property
    def size(self) -> int:
        return self.end - self.start

    def contains(self, offset: RomOffset) -> bool:
        return self.start <= offset < self.end


# @intent:responsibility ラベルの種類を定義します。
class LabelKind(Enum):
    SUBROUTINE = "SUBROUTINE"
    BRANCH_TARGET = "BRANCH_TARGET"
    DATA_BLOCK = "DATA_BLOCK"


# @intent:responsibility アドレスに付与されたシンボル名と、その根拠となった相互参照を記録します。
@dataclass(frozen=True)
class Label:
    name: str
    address: LinearAddress
    kind: LabelKind
    provenance: Tuple[Xref, ...] = ()
