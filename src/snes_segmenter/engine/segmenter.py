# src/snes_segmenter/engine/segmenter.py
"""
セグメンテーションエンジン

ヒントの取り込み、制御フローのトレース、領域分類、ラベル付与を順に実行し、
エディタ群が参照する最終結果 (SegmentationResult) を組み立てます。
同じROM・マッピング・設定・ヒントからは常に同じ結果が得られます。
"""
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from snes_segmenter.common.types import LinearAddress, SymbolMap
from snes_segmenter.core.model import Classification, Instruction, Label, Xref
from snes_segmenter.transport.rom import MappedRom, bank_offset
from snes_segmenter.config.models import HintSet, TraceConfig
from snes_segmenter.analysis.hints import resolve_hints
from snes_segmenter.analysis.tracer import ControlFlowTracer, TraceResult
from snes_segmenter.analysis.classifier import RegionClassifier, RegionMap
from snes_segmenter.analysis.labels import LabelAssigner, symbol_map
from snes_segmenter.analysis.report import Conflict, ConflictReport

logger = logging.getLogger(__name__)


# @intent:responsibility 1回の解析の最終結果。
@dataclass(frozen=True)
class SegmentationResult:
    """
    region_map: ROM全体を覆う分類済み領域
    xrefs: ソート済みの相互参照
    labels: 正規アドレスをキーとするラベル
    instructions: 確定した命令 (曖昧でないCODE領域の命令のみ、正規アドレスをキーとする)
    report: 衝突・曖昧性レポート
    truncated: 予算の枯渇またはキャンセルによりトレースが打ち切られたかどうか
    """
    region_map: RegionMap
    xrefs: Tuple[Xref, ...]
    labels: Dict[LinearAddress, Label]
    instructions: Dict[LinearAddress, Instruction]
    report: ConflictReport
    truncated: bool = False
    steps: int = 0

    @property
    def conflicts(self) -> List[Conflict]:
        return self.report.entries()

    def instruction_at(self, address: LinearAddress) -> Optional[Instruction]:
        return self.instructions.get(self.region_map.mapper.canonical(address))

    def label_at(self, address: LinearAddress) -> Optional[Label]:
        return self.labels.get(self.region_map.mapper.canonical(address))

    # @intent:responsibility エディタ向けに、ラベル名から正規アドレスを引くシンボル表を返します。
    @property
    def symbols(self) -> SymbolMap:
        return symbol_map(self.labels)


# @intent:responsibility 解析パイプライン全体を実行します。
class Segmenter:
    def __init__(self, rom: MappedRom, hints: Optional[HintSet] = None, config: Optional[TraceConfig] = None):
        self._rom = rom
        self._hints = hints or HintSet()
        self._config = config or TraceConfig()
        self._cancel_event = threading.Event()

    @property
    def rom(self) -> MappedRom:
        return self._rom

    # @intent:responsibility 実行中(または次回)のトレースを中断させます。打ち切られた結果はtruncated=Trueになります。
    def cancel(self) -> None:
        self._cancel_event.set()

    def run(self) -> SegmentationResult:
        mapper = self._rom.mapper
        logger.info("Segmenting %s ROM of %d bytes", mapper.mode.value, mapper.rom_size)

        resolved, rejected = resolve_hints(self._hints, self._rom)
        tracer = ControlFlowTracer(self._rom, resolved, self._config, self._cancel_event)
        trace = tracer.run()

        region_map, classifier_conflicts = RegionClassifier(mapper).classify(trace, resolved)
        labels = LabelAssigner(mapper).assign(trace.xrefs, resolved, region_map)

        report = ConflictReport(rejected)
        report.extend(trace.conflicts)
        report.extend(classifier_conflicts)

        result = SegmentationResult(
            region_map=region_map,
            xrefs=trace.xrefs,
            labels=labels,
            instructions=self._confirmed_instructions(trace, region_map),
            report=report,
            truncated=trace.truncated,
            steps=trace.steps,
        )
        logger.info(
            "Segmentation finished: %d regions, %d labels, %d report entries%s",
            len(region_map), len(labels), len(report), " (truncated)" if trace.truncated else ""
        )
        return result

    # @intent:responsibility アドレスごとに1つの命令を確定させます。
    # @intent:rationale 全バイトがCODEに分類された命令のみを採用するため、AMBIGUOUSなアドレスに命令が選ばれることはありません。
    #                  コード範囲ヒントでCODEとされた場合でも、複数の幅状態で到達したアドレスは確定させません。
    def _confirmed_instructions(self, trace: TraceResult, region_map: RegionMap) -> Dict[LinearAddress, Instruction]:
        mapper = self._rom.mapper
        widths: Dict[LinearAddress, Set[Tuple[bool, bool]]] = defaultdict(set)
        for node in trace.nodes():
            widths[mapper.canonical(node.address)].add(node.state.widths)

        confirmed: Dict[LinearAddress, Instruction] = {}
        for node in trace.nodes():
            instr = trace.instructions[node]
            address = mapper.canonical(instr.address)
            if address in confirmed or len(widths[address]) > 1:
                continue
            if all(
                region_map.classification_at(bank_offset(instr.address, i)) == Classification.CODE
                for i in range(instr.length)
            ):
                confirmed[address] = instr
        return dict(sorted(confirmed.items()))
