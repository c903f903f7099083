"""
共通の型定義を提供するモジュール。
プロジェクト全体で使用される汎用的な型エイリアスなどを定義します。
"""
from typing import Dict, FrozenSet, NamedTuple, Tuple

# @intent:data_structure CPUアドレス空間上の24bitリニアアドレス ((bank << 16) | offset)。
LinearAddress = int

# @intent:data_structure ROMファイル先頭からのバイトオフセット。
RomOffset = int

# @intent:data_structure シンボル名とアドレスをマッピングする辞書の型エイリアス。
# 逆アセンブルリストの描画など、ラベルを名前で引く層で共通して使用されます。
SymbolMap = Dict[str, LinearAddress]

# @intent:data_structure 間接ジャンプ地点のアドレスから候補ジャンプ先集合へのヒント表。
HintTable = Dict[LinearAddress, FrozenSet[LinearAddress]]


# @intent:data_structure ROMオフセットの半開区間 [start, end)。
class OffsetRange(NamedTuple):
    start: RomOffset
    end: RomOffset

    @property
    def size(self) -> int:
        return self.end - self.start

    def contains(self, offset: RomOffset) -> bool:
        return self.start <= offset < self.end

    def overlaps(self, other: Tuple[int, int]) -> bool:
        return self.start < other[1] and other[0] < self.end
