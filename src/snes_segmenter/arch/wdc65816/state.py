# src/snes_segmenter/arch/wdc65816/state.py
"""
WDC 65816 のオペランド幅状態定義。
"""
from dataclasses import dataclass, replace
from typing import Optional, Tuple

# PHPで退避した幅状態を覚えておく最大の深さ
MAX_PUSHED_STATES = 8


# @intent:responsibility 命令長を左右する2つのステータスフラグ（M, X）を保持する。
# @intent:rationale 同じアドレスでも幅状態が異なれば命令境界が変わるため、訪問済み判定のキーの一部となる。
#                  frozen=Trueとし、命令の適用は常に新しいインスタンスを返す。
@dataclass(frozen=True)
class ProcessorWidthState:
    """
    アキュムレータ/インデックスレジスタが16bitかどうか。
    リセット直後（エミュレーションモード）はどちらも8bit。
    carryはXCEの行き先を決めるキャリーフラグの既知の値で、不明な場合はNone。
    """
    m16: bool = False
    x16: bool = False
    pushed: Tuple[Tuple[bool, bool], ...] = ()
    carry: Optional[bool] = None

    # Status register bit masks (REP/SEP operand)
    M_FLAG = 0x20  # Accumulator/Memory width (1 = 8bit)
    X_FLAG = 0x10  # Index width (1 = 8bit)
    C_FLAG = 0x01  # Carry

    @property
    def accumulator_bytes(self) -> int:
        return 2 if self.m16 else 1

    @property
    def index_bytes(self) -> int:
        return 2 if self.x16 else 1

    @property
    def widths(self) -> Tuple[bool, bool]:
        return (self.m16, self.x16)

    # @intent:responsibility 状態を変更した新しいインスタンスを返す（不変性の維持）。
    def with_widths(self, m16: bool, x16: bool) -> 'ProcessorWidthState':
        if (m16, x16) == self.widths:
            return self
        return replace(self, m16=m16, x16=x16)

    def with_carry(self, carry: Optional[bool]) -> 'ProcessorWidthState':
        if carry is self.carry:
            return self
        return replace(self, carry=carry)

    # @intent:responsibility PHP相当。現在の幅を退避スタックに積んだ新しい状態を返す。
    def push(self) -> 'ProcessorWidthState':
        stack = (self.pushed + (self.widths,))[-MAX_PUSHED_STATES:]
        return replace(self, pushed=stack)

    # @intent:responsibility PLP相当。退避スタックが空であれば復元すべき値が不明なため、幅は変えない。
    # @intent:post-condition 復元されたPのキャリーは追跡していないため、常に不明となる。
    def pop(self) -> 'ProcessorWidthState':
        if not self.pushed:
            return self.with_carry(None)
        m16, x16 = self.pushed[-1]
        return replace(self, m16=m16, x16=x16, pushed=self.pushed[:-1], carry=None)

    def __str__(self) -> str:
        return f"m{16 if self.m16 else 8}x{16 if self.x16 else 8}"


RESET_STATE = ProcessorWidthState()
