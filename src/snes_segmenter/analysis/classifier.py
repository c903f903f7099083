# src/snes_segmenter/analysis/classifier.py
"""
領域分類器

トレース結果をROMオフセット単位の分類に落とし込み、分類が一様な連続区間の列 (RegionMap) を作ります。
幅状態の食い違い、命令の途中から始まる命令、飛び先の分からない間接ジャンプ/コールは黙って解決せず、
AMBIGUOUSとしてレポートに記録します。外部ヒントの範囲はトレースの推論より優先されます。
"""
import bisect
import logging
import re
from collections import defaultdict
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from snes_segmenter.common.errors import DecodeFailure
from snes_segmenter.common.types import LinearAddress, RomOffset
from snes_segmenter.core.model import Classification, Instruction, Region, XrefKind
from snes_segmenter.transport.mapper import AddressMapper
from snes_segmenter.transport.rom import bank_offset
from snes_segmenter.analysis.hints import RangeSpec, ResolvedHints
from snes_segmenter.analysis.report import Conflict, ConflictKind
from snes_segmenter.analysis.tracer import TraceResult

logger = logging.getLogger(__name__)

# 同じ値が続くバイト列 (分類の連続区間) を一度に切り出す
_RUN = re.compile(rb"(.)\1*", re.DOTALL)


# @intent:responsibility ROMオフセット空間 [0, rom_size) を隙間なく重なりなく覆う領域の列。
class RegionMap:
    """
    分類済み領域の不変な列。リニアアドレスでの参照はマッパーを介してROMオフセットに変換されます。
    """
    def __init__(self, regions: Sequence[Region], mapper: AddressMapper):
        regions = tuple(regions)
        expected = 0
        for region in regions:
            if region.start != expected or region.end <= region.start:
                raise ValueError(f"Regions do not partition the ROM at offset {expected:#x}: {region}")
            expected = region.end
        if expected != mapper.rom_size:
            raise ValueError(f"Regions end at {expected:#x}, ROM size is {mapper.rom_size:#x}")
        self._regions = regions
        self._starts = [r.start for r in regions]
        self._mapper = mapper

    # @intent:responsibility 1バイト1分類の配列から連続区間を作ります。
    @classmethod
    def from_classes(cls, classes: bytes, mapper: AddressMapper) -> "RegionMap":
        regions = [
            Region(m.start(), m.end(), Classification(classes[m.start()]))
            for m in _RUN.finditer(classes)
        ]
        return cls(regions, mapper)

    @property
    def regions(self) -> Tuple[Region, ...]:
        return self._regions

    @property
    def mapper(self) -> AddressMapper:
        return self._mapper

    def region_at_offset(self, offset: RomOffset) -> Region:
        if not 0 <= offset < self._mapper.rom_size:
            raise IndexError(f"Offset {offset:#x} out of bounds for ROM of size {self._mapper.rom_size:#x}.")
        return self._regions[bisect.bisect_right(self._starts, offset) - 1]

    # @intent:responsibility リニアアドレスを含む領域を返します。ROM外のアドレスではNoneを返します。
    def region_at(self, address: LinearAddress) -> Optional[Region]:
        offset = self._mapper.to_rom_offset(address)
        if offset is None:
            return None
        return self.region_at_offset(offset)

    def classification_at(self, address: LinearAddress) -> Optional[Classification]:
        region = self.region_at(address)
        return None if region is None else region.classification

    def of_classification(self, classification: Classification) -> List[Region]:
        return [r for r in self._regions if r.classification == classification]

    def __iter__(self) -> Iterator[Region]:
        return iter(self._regions)

    def __len__(self) -> int:
        return len(self._regions)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RegionMap):
            return NotImplemented
        return self._regions == other._regions and self._mapper == other._mapper

    def __repr__(self) -> str:
        return f"RegionMap({len(self._regions)} regions over {self._mapper.rom_size:#x} bytes)"


# @intent:responsibility トレース結果とヒントを合成して最終的な分類を決定します。
class RegionClassifier:
    def __init__(self, mapper: AddressMapper):
        self._mapper = mapper

    def classify(self, trace: TraceResult, hints: Optional[ResolvedHints] = None) -> Tuple[RegionMap, List[Conflict]]:
        hints = hints or ResolvedHints()
        classes = bytearray(self._mapper.rom_size)  # 全てUNKNOWN(0)で開始
        conflicts: List[Conflict] = []

        spans = self._instruction_spans(trace)

        # 1. デコードされた命令のバイトは全てCODE
        for _, offsets in spans:
            for offset in offsets:
                classes[offset] = Classification.CODE

        # 2. 同じ開始位置に異なる幅状態で到達した -> AMBIGUOUS
        conflicts.extend(self._ambiguous_widths(spans, classes))

        # 3. 命令の内部から別の命令が始まっている -> AMBIGUOUS
        conflicts.extend(self._overlaps(spans, classes))

        # 4. デコード失敗
        conflicts.extend(self._decode_failures(trace, classes))

        # 5. 飛び先が解決できなかった間接ジャンプ/コール -> AMBIGUOUS
        self._unresolved_sites(trace, classes)

        # 6. ヒントによる上書き
        conflicts.extend(self._apply_hints(hints, classes))

        region_map = RegionMap.from_classes(bytes(classes), self._mapper)
        logger.info(
            "Classified %d bytes into %d regions (%d conflicts)",
            self._mapper.rom_size, len(region_map), len(conflicts)
        )
        return region_map, conflicts

    # @intent:responsibility 各命令が占めるROMオフセットの列を求めます。PCはバンク内で折り返すため連続とは限りません。
    def _instruction_spans(self, trace: TraceResult) -> List[Tuple[Instruction, Tuple[RomOffset, ...]]]:
        spans = []
        for node in trace.nodes():
            instr = trace.instructions[node]
            offsets = tuple(
                self._mapper.require_rom_offset(bank_offset(instr.address, i)) for i in range(instr.length)
            )
            spans.append((instr, offsets))
        return spans

    # @intent:responsibility 同じ開始位置に異なる幅状態 (M, X) で到達した命令を検出し、AMBIGUOUSにします。
    # @intent:note 命令長が食い違えばAMBIGUOUS_WIDTH、長さが同じでも幅状態が1つに決まらなければ
    #              WIDTH_DIVERGENCEとして記録します。退避スタックやキャリーの違いは対象外です。
    def _ambiguous_widths(self, spans, classes: bytearray) -> List[Conflict]:
        by_start: Dict[RomOffset, List[Tuple[Instruction, Tuple[RomOffset, ...]]]] = defaultdict(list)
        for instr, offsets in spans:
            by_start[offsets[0]].append((instr, offsets))

        conflicts = []
        for start in sorted(by_start):
            candidates = by_start[start]
            widths = {instr.state.widths for instr, _ in candidates}
            if len(widths) < 2:
                continue
            for _, offsets in candidates:
                for offset in offsets:
                    classes[offset] = Classification.AMBIGUOUS
            address = self._mapper.to_linear(start)
            lengths = {instr.length for instr, _ in candidates}
            if len(lengths) > 1:
                logger.debug("Ambiguous width at $%06X: lengths %s", address, sorted(lengths))
                conflicts.append(Conflict(
                    address=address,
                    kind=ConflictKind.AMBIGUOUS_WIDTH,
                    reason=f"decoded with {len(lengths)} different lengths under different width states",
                    candidates=tuple(sorted({
                        f"{instr.state}: {instr} ({instr.length} bytes)" for instr, _ in candidates
                    })),
                ))
            else:
                logger.debug("Width divergence at $%06X: %d width states", address, len(widths))
                conflicts.append(Conflict(
                    address=address,
                    kind=ConflictKind.WIDTH_DIVERGENCE,
                    reason=f"reached under {len(widths)} different width states",
                    candidates=tuple(sorted({f"{instr.state}: {instr}" for instr, _ in candidates})),
                ))
        return conflicts

    # @intent:responsibility 解決できなかった間接ジャンプ/コールの命令バイトをAMBIGUOUSにします。
    # @intent:note 飛び先が不明な分岐点はヒントが与えられるまで確定させません。レポートはトレーサが記録済みです。
    def _unresolved_sites(self, trace: TraceResult, classes: bytearray) -> None:
        sites = {x.source for x in trace.xrefs if x.kind == XrefKind.INDIRECT_UNRESOLVED}
        for node in trace.nodes():
            instr = trace.instructions[node]
            if instr.address not in sites:
                continue
            for i in range(instr.length):
                classes[self._mapper.require_rom_offset(bank_offset(instr.address, i))] = Classification.AMBIGUOUS

    def _overlaps(self, spans, classes: bytearray) -> List[Conflict]:
        starts: Dict[RomOffset, List[Tuple[Instruction, Tuple[RomOffset, ...]]]] = defaultdict(list)
        for instr, offsets in spans:
            starts[offsets[0]].append((instr, offsets))

        reported: Set[Tuple[RomOffset, RomOffset]] = set()
        conflicts = []
        for instr, offsets in spans:
            for inner in offsets[1:]:
                if inner not in starts:
                    continue
                key = (offsets[0], inner)
                if key in reported:
                    continue
                reported.add(key)
                for offset in offsets:
                    classes[offset] = Classification.AMBIGUOUS
                for _, other in starts[inner]:
                    for offset in other:
                        classes[offset] = Classification.AMBIGUOUS
                address = self._mapper.to_linear(inner)
                conflicts.append(Conflict(
                    address=address,
                    kind=ConflictKind.OVERLAPPING_INSTRUCTION,
                    reason=f"instruction starts inside {instr} at ${self._mapper.to_linear(offsets[0]):06X}",
                    candidates=tuple(sorted(
                        {f"{instr.state}: {instr} at ${self._mapper.to_linear(offsets[0]):06X}"}
                        | {f"{o.state}: {o} at ${address:06X}" for o, _ in starts[inner]}
                    )),
                ))
        return conflicts

    def _decode_failures(self, trace: TraceResult, classes: bytearray) -> List[Conflict]:
        grouped: Dict[Tuple[LinearAddress, DecodeFailure], List[str]] = defaultdict(list)
        details: Dict[Tuple[LinearAddress, DecodeFailure], str] = {}
        for node, error in trace.failures.items():
            key = (node.address, error.reason)
            grouped[key].append(str(node.state))
            details[key] = error.detail

        conflicts = []
        for (address, reason) in sorted(grouped, key=lambda k: (k[0], k[1].value)):
            offset = self._mapper.to_rom_offset(address)
            if offset is not None:
                if reason == DecodeFailure.UNDEFINED or classes[offset] != Classification.UNKNOWN:
                    classes[offset] = Classification.AMBIGUOUS
            detail = details[(address, reason)]
            conflicts.append(Conflict(
                address=address,
                kind=ConflictKind.DECODE_FAILURE,
                reason=f"{reason.value}: {detail}" if detail else reason.value,
                candidates=tuple(sorted(set(grouped[(address, reason)]))),
            ))
        return conflicts

    # @intent:responsibility 範囲ヒントを適用します。小さい範囲ほど、同じ大きさなら後に宣言されたものほど優先されます。
    # @intent:post-condition トレース結果を上書きした連続区間と、食い違うヒント同士の重なりは全てレポートされます。
    def _apply_hints(self, hints: ResolvedHints, classes: bytearray) -> List[Conflict]:
        if not hints.ranges:
            return []
        traced = bytes(classes)
        ordered = sorted(hints.ranges, key=lambda r: (-r.offsets.size, r.order))
        for spec in ordered:
            start, end = spec.offsets
            classes[start:end] = bytes([spec.classification]) * spec.offsets.size

        conflicts = self._hint_overlaps(ordered)
        conflicts.extend(self._hint_overrides(ordered, traced, classes))
        return conflicts

    def _hint_overlaps(self, ordered: List[RangeSpec]) -> List[Conflict]:
        conflicts = []
        for i, low in enumerate(ordered):
            for high in ordered[i + 1:]:
                if low.classification == high.classification or not low.offsets.overlaps(high.offsets):
                    continue
                start = max(low.offsets.start, high.offsets.start)
                address = self._mapper.to_linear(start)
                logger.info(
                    "Hint %s (%s) overrides %s (%s) at $%06X",
                    high.source, high.classification.name, low.source, low.classification.name, address
                )
                conflicts.append(Conflict(
                    address=address,
                    kind=ConflictKind.HINT_OVERLAP,
                    reason=f"{high.source} ({high.classification.name}) overrides {low.source} "
                           f"({low.classification.name}) where they overlap",
                    candidates=(self._describe(high), self._describe(low)),
                ))
        return conflicts

    def _hint_overrides(self, ordered: List[RangeSpec], traced: bytes, classes: bytearray) -> List[Conflict]:
        conflicts = []
        for start, end in self._merged([r.offsets for r in ordered]):
            offset = start
            while offset < end:
                before, after = traced[offset], classes[offset]
                if before == Classification.UNKNOWN or before == after:
                    offset += 1
                    continue
                run_end = offset + 1
                while run_end < end and traced[run_end] == before and classes[run_end] == after:
                    run_end += 1
                winner = self._winner(ordered, offset)
                address = self._mapper.to_linear(offset)
                logger.info(
                    "%s overrides traced %s with %s at $%06X (%d bytes)",
                    winner.source, Classification(before).name, Classification(after).name, address, run_end - offset
                )
                conflicts.append(Conflict(
                    address=address,
                    kind=ConflictKind.HINT_OVERRIDE,
                    reason=f"{winner.source} declares {run_end - offset} byte(s) as {Classification(after).name}, "
                           f"traced as {Classification(before).name}",
                    candidates=(self._describe(winner), f"traced {Classification(before).name}"),
                ))
                offset = run_end
        return conflicts

    @staticmethod
    def _winner(ordered: List[RangeSpec], offset: RomOffset) -> RangeSpec:
        for spec in reversed(ordered):
            if spec.offsets.contains(offset):
                return spec
        raise ValueError(f"No hint covers offset {offset:#x}")

    @staticmethod
    def _merged(ranges) -> List[Tuple[RomOffset, RomOffset]]:
        merged: List[Tuple[RomOffset, RomOffset]] = []
        for start, end in sorted(ranges):
            if merged and start <= merged[-1][1]:
                merged[-1] = (merged[-1][0], max(merged[-1][1], end))
            else:
                merged.append((start, end))
        return merged

    def _describe(self, spec: RangeSpec) -> str:
        last = self._mapper.to_linear(spec.offsets.end - 1)
        name = f" '{spec.label}'" if spec.label else ""
        return f"{spec.source}{name} {spec.classification.name} ${spec.address:06X}-${last:06X}"
