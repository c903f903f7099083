# src/snes_segmenter/analysis/labels.py
"""
ラベル付与

相互参照の飛び先とデータ範囲ヒントに、アドレスから決定的に導かれる名前を付けます。
ラベルは正規リニアアドレスをキーとするため、1アドレスにつき1ラベルであり、
自動生成名どうしが衝突することはありません。
"""
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from snes_segmenter.common.types import LinearAddress, SymbolMap
from snes_segmenter.core.model import Classification, Label, LabelKind, Xref, XrefKind
from snes_segmenter.transport.mapper import AddressMapper
from snes_segmenter.analysis.hints import ResolvedHints
from snes_segmenter.analysis.classifier import RegionMap

logger = logging.getLogger(__name__)

_PREFIXES = {
    LabelKind.SUBROUTINE: "SUB",
    LabelKind.BRANCH_TARGET: "CODE",
    LabelKind.DATA_BLOCK: "DATA",
}

# 呼び出し先として扱う参照の種類。それ以外の解決済み参照は分岐先となる。
_SUBROUTINE_XREFS = frozenset({XrefKind.CALL, XrefKind.INTERRUPT_VECTOR, XrefKind.JUMP_TABLE})


def synthesize_name(kind: LabelKind, address: LinearAddress) -> str:
    return f"{_PREFIXES[kind]}_{address:06X}"


# @intent:responsibility 相互参照とヒントからラベル集合を導出します。
class LabelAssigner:
    def __init__(self, mapper: AddressMapper):
        self._mapper = mapper

    # @intent:post-condition 戻り値はアドレス順に並んだ {正規アドレス: Label} です。
    # @intent:note region_mapが与えられた場合、最終的にDATAと分類されたアドレスのラベルはデータブロックとなります。
    def assign(self, xrefs: Iterable[Xref], hints: Optional[ResolvedHints] = None,
               region_map: Optional[RegionMap] = None) -> Dict[LinearAddress, Label]:
        hints = hints or ResolvedHints()
        provenance: Dict[LinearAddress, List[Xref]] = defaultdict(list)
        kinds: Dict[LinearAddress, LabelKind] = {}
        names: Dict[LinearAddress, str] = {}

        for xref in xrefs:
            if xref.target is None or not self._mapper.is_mapped(xref.target):
                continue
            address = self._mapper.canonical(xref.target)
            provenance[address].append(xref)
            kind = LabelKind.SUBROUTINE if xref.kind in _SUBROUTINE_XREFS else LabelKind.BRANCH_TARGET
            # サブルーチンの種別は分岐先より優先する
            if kinds.get(address) != LabelKind.SUBROUTINE:
                kinds[address] = kind

        for entry in hints.entry_points:
            address = self._mapper.canonical(entry.address)
            kinds[address] = LabelKind.SUBROUTINE
            if entry.name:
                names[address] = entry.name

        # データ範囲はトレース結果より優先されるため、ラベルの種別も上書きする
        for spec in hints.data_ranges:
            kinds[spec.address] = LabelKind.DATA_BLOCK
            if spec.label:
                names[spec.address] = spec.label
        for spec in hints.code_ranges:
            if spec.label:
                kinds.setdefault(spec.address, LabelKind.BRANCH_TARGET)
                names[spec.address] = spec.label

        # データ範囲の内側を指す参照も、分類の結果に合わせてデータブロックとする
        if region_map is not None:
            for address in kinds:
                if region_map.classification_at(address) == Classification.DATA:
                    kinds[address] = LabelKind.DATA_BLOCK

        labels = {}
        for address in sorted(kinds):
            kind = kinds[address]
            labels[address] = Label(
                name=names.get(address) or synthesize_name(kind, address),
                address=address,
                kind=kind,
                provenance=tuple(sorted(set(provenance[address]), key=Xref.sort_key)),
            )
        logger.info("Assigned %d labels", len(labels))
        return labels


# @intent:responsibility ラベル集合を名前から引けるシンボル表に変換します。
def symbol_map(labels: Dict[LinearAddress, Label]) -> SymbolMap:
    return {label.name: address for address, label in labels.items()}
