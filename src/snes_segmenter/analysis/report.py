# src/snes_segmenter/analysis/report.py
"""
衝突・曖昧性レポート

トレースと分類の過程で「黙って解決してはならない」事象を記録します。
各項目はアドレス、種類、理由、そして利用者が手動でヒントを与える際の候補解決策を持ちます。
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Tuple

from snes_segmenter.common.types import LinearAddress


# @intent:responsibility レポート項目の種類を定義します。
class ConflictKind(Enum):
    AMBIGUOUS_WIDTH = "AMBIGUOUS_WIDTH"                  # 同一アドレスが異なる命令長でデコードされた
    WIDTH_DIVERGENCE = "WIDTH_DIVERGENCE"                # 同一アドレスに異なる幅状態で到達した (命令長は同じ)
    UNCERTAIN_WIDTH = "UNCERTAIN_WIDTH"                  # キャリー不明のXCEにより実行後の幅状態が定まらない
    OVERLAPPING_INSTRUCTION = "OVERLAPPING_INSTRUCTION"  # 命令が別の命令の途中から始まっている
    DECODE_FAILURE = "DECODE_FAILURE"                    # 未定義オペコード、またはマップ外への読み出し
    INDIRECT_UNRESOLVED = "INDIRECT_UNRESOLVED"          # ヒントの無い間接ジャンプ/コール
    UNMAPPED_TARGET = "UNMAPPED_TARGET"                  # 飛び先がROM外 (WRAM上のコード等)
    HINT_OVERRIDE = "HINT_OVERRIDE"                      # ヒントがトレース結果を上書きした
    HINT_OVERLAP = "HINT_OVERLAP"                        # ヒント同士の範囲が食い違っている
    INVALID_HINT = "INVALID_HINT"                        # 取り込み時に拒否されたヒント
    BUDGET_EXHAUSTED = "BUDGET_EXHAUSTED"                # ステップ/時間予算の枯渇、またはキャンセル


# @intent:responsibility 1件の衝突・曖昧性を記録する不変データ。
@dataclass(frozen=True)
class Conflict:
    """
    address: 問題の起きたリニアアドレス (実行全体に関わる項目ではNone)
    candidates: 取り得る解決策の候補 (例: "m8x8: LDA #$12 (2 bytes)")
    """
    address: Optional[LinearAddress]
    kind: ConflictKind
    reason: str
    candidates: Tuple[str, ...] = ()

    def sort_key(self) -> Tuple[int, str, str, Tuple[str, ...]]:
        return (-1 if self.address is None else self.address, self.kind.value, self.reason, self.candidates)

    def __str__(self) -> str:
        where = "------" if self.address is None else f"{self.address:06X}"
        text = f"${where} {self.kind.value}: {self.reason}"
        if self.candidates:
            text += " [" + " | ".join(self.candidates) + "]"
        return text


# @intent:responsibility 衝突レポートの集合を保持し、決定的な順序で提供します。
# @intent:rationale 追加順は並行トレースのスケジューリングに依存するため、参照時は常にソート済みの列を返します。
class ConflictReport:
    def __init__(self, entries: Iterable[Conflict] = ()):
        self._entries: List[Conflict] = list(entries)

    def add(self, conflict: Conflict) -> None:
        self._entries.append(conflict)

    def extend(self, conflicts: Iterable[Conflict]) -> None:
        self._entries.extend(conflicts)

    # @intent:responsibility 重複を除き、アドレス順に並べた項目を返します。
    def entries(self) -> List[Conflict]:
        return sorted(set(self._entries), key=Conflict.sort_key)

    def of_kind(self, kind: ConflictKind) -> List[Conflict]:
        return [c for c in self.entries() if c.kind == kind]

    def at(self, address: LinearAddress) -> List[Conflict]:
        return [c for c in self.entries() if c.address == address]

    def __iter__(self) -> Iterator[Conflict]:
        return iter(self.entries())

    def __len__(self) -> int:
        return len(self.entries())

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConflictReport):
            return NotImplemented
        return self.entries() == other.entries()
