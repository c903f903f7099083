# src/snes_segmenter/analysis/tracer.py
"""
制御フロートレーサ

ハードウェアベクタと外部ヒントのエントリポイントを起点に、静的に到達可能な命令を
ワークリストで探索します。訪問済みの単位は (アドレス, 幅状態) の組であり、
同じ組に再び到達した時点で探索を打ち切ることで、ループや合流で必ず停止します。

ノードのデコードと後続計算は固定サイズのスレッドプールで並行に行い、
訪問済み集合と結果の蓄積は1つのロックで保護します。
"""
import logging
import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Deque, Dict, Iterable, List, Optional, Set, Tuple

from snes_segmenter.common.errors import DecodeError, MappingError
from snes_segmenter.common.types import LinearAddress
from snes_segmenter.core.model import FlowKind, Instruction, TraceNode, Xref, XrefKind
from snes_segmenter.transport.rom import MappedRom
from snes_segmenter.arch.wdc65816.decoder import decode
from snes_segmenter.arch.wdc65816.processor import outcomes
from snes_segmenter.arch.wdc65816.state import ProcessorWidthState
from snes_segmenter.config.models import TraceConfig
from snes_segmenter.analysis.hints import ResolvedHints
from snes_segmenter.analysis.report import Conflict, ConflictKind

logger = logging.getLogger(__name__)

# ハードウェアベクタ表 (バンク$00)。(ベクタのアドレス, 名称)
HARDWARE_VECTORS: Tuple[Tuple[LinearAddress, str], ...] = (
    (0x00FFE4, "native COP"),
    (0x00FFE6, "native BRK"),
    (0x00FFE8, "native ABORT"),
    (0x00FFEA, "native NMI"),
    (0x00FFEE, "native IRQ"),
    (0x00FFF4, "emulation COP"),
    (0x00FFF8, "emulation ABORT"),
    (0x00FFFA, "emulation NMI"),
    (0x00FFFC, "emulation RESET"),
    (0x00FFFE, "emulation IRQ/BRK"),
)

# 未使用のベクタに置かれる値
_EMPTY_VECTORS = (0x0000, 0xFFFF)


# @intent:responsibility 1回のトレースの成果物を保持します。
@dataclass(frozen=True)
class TraceResult:
    """
    instructions: デコードに成功したノードとその命令
    failures: デコードに失敗したノードとその理由
    xrefs: 重複を除いてソートされた相互参照
    conflicts: トレース中に検出された曖昧性 (間接ジャンプ、マップ外の飛び先、XCE後の幅、予算枯渇)
    """
    instructions: Dict[TraceNode, Instruction]
    failures: Dict[TraceNode, DecodeError]
    xrefs: Tuple[Xref, ...]
    conflicts: Tuple[Conflict, ...]
    truncated: bool = False
    steps: int = 0

    def nodes(self) -> List[TraceNode]:
        return sorted(self.instructions, key=TraceNode.sort_key)

    # @intent:responsibility 指定アドレスでデコードされた命令を、幅状態の順に返します。
    def instructions_at(self, address: LinearAddress) -> List[Instruction]:
        found = [i for n, i in self.instructions.items() if n.address == address]
        return sorted(found, key=lambda i: TraceNode(i.address, i.state).sort_key())


# @intent:responsibility ワークリストによる到達可能性解析を行います。
class ControlFlowTracer:
    """
    ROMとヒントから静的に到達可能な命令を探索するトレーサ。
    run()は何度呼んでも同じ結果を返します (予算による打ち切りが起きない限り)。
    """
    def __init__(self, rom: MappedRom, hints: Optional[ResolvedHints] = None,
                 config: Optional[TraceConfig] = None, cancel_event: Optional[threading.Event] = None):
        self._rom = rom
        self._mapper = rom.mapper
        self._hints = hints or ResolvedHints()
        self._config = config or TraceConfig()
        self._cancel = cancel_event or threading.Event()
        self._lock = threading.Lock()
        self._reset()

    def _reset(self) -> None:
        self._visited: Set[TraceNode] = set()
        self._instructions: Dict[TraceNode, Instruction] = {}
        self._failures: Dict[TraceNode, DecodeError] = {}
        self._xrefs: Set[Xref] = set()
        self._conflicts: Set[Conflict] = set()
        self._steps = 0

    # @intent:responsibility 実行中のトレースを協調的に中断します。次のノードの投入前に反映されます。
    def cancel(self) -> None:
        self._cancel.set()

    # @intent:responsibility トレースを実行し、ワークリストと処理中のノードが尽きるまで待ちます。
    # @intent:post-condition 予算の枯渇またはキャンセル時は、処理中のノードを完了させた上でtruncated=Trueを返します。
    def run(self) -> TraceResult:
        self._reset()
        config = self._config
        workers = max(1, config.worker_count)
        window = workers * 4
        deadline = None if config.time_budget is None else time.monotonic() + config.time_budget

        seeds = self._collect_seeds(config.initial_state.to_state())
        queue: Deque[TraceNode] = deque(node for node in seeds if self._claim(node))
        logger.info("Tracing from %d seed(s) with %d worker(s)", len(queue), workers)

        stop_reason = None
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="trace") as pool:
            in_flight: Set[Future] = set()
            while queue or in_flight:
                while queue and len(in_flight) < window and stop_reason is None:
                    stop_reason = self._stop_reason(deadline)
                    if stop_reason is None:
                        self._steps += 1
                        in_flight.add(pool.submit(self._step, queue.popleft()))
                if stop_reason is not None:
                    # 新たなノードは投入せず、処理中のノードだけを完了させる
                    queue.clear()
                if not in_flight:
                    break
                done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    successors = future.result()
                    if stop_reason is None:
                        queue.extend(successors)

        truncated = stop_reason is not None
        if truncated:
            logger.warning("Trace truncated after %d steps: %s", self._steps, stop_reason)
            self._conflicts.add(Conflict(
                address=None,
                kind=ConflictKind.BUDGET_EXHAUSTED,
                reason=f"trace truncated after {self._steps} steps: {stop_reason}",
                candidates=("raise step_budget/time_budget", "add data_ranges hints for runaway regions"),
            ))

        conflicts = tuple(sorted(self._conflicts, key=Conflict.sort_key))
        for conflict in conflicts:
            if conflict.kind in (ConflictKind.INDIRECT_UNRESOLVED, ConflictKind.UNMAPPED_TARGET, ConflictKind.UNCERTAIN_WIDTH):
                logger.warning("%s", conflict)

        logger.info(
            "Trace finished: %d steps, %d instructions, %d decode failures, %d xrefs",
            self._steps, len(self._instructions), len(self._failures), len(self._xrefs)
        )
        return TraceResult(
            instructions=dict(self._instructions),
            failures=dict(self._failures),
            xrefs=tuple(sorted(self._xrefs, key=Xref.sort_key)),
            conflicts=conflicts,
            truncated=truncated,
            steps=self._steps,
        )

    def _stop_reason(self, deadline: Optional[float]) -> Optional[str]:
        if self._cancel.is_set():
            return "cancelled"
        budget = self._config.step_budget
        if budget is not None and self._steps >= budget:
            return f"step budget of {budget} exhausted"
        if deadline is not None and time.monotonic() >= deadline:
            return f"time budget of {self._config.time_budget}s exhausted"
        return None

    # @intent:responsibility 訪問済み集合への「無ければ追加」を原子的に行います。追加できた場合のみTrue。
    def _claim(self, node: TraceNode) -> bool:
        with self._lock:
            if node in self._visited:
                return False
            self._visited.add(node)
            return True

    # --- Seeds ---

    def _collect_seeds(self, initial: ProcessorWidthState) -> List[TraceNode]:
        seeds = []
        if self._config.use_vectors:
            seeds.extend(self._vector_seeds(initial))
        for entry in self._hints.entry_points:
            seeds.append(TraceNode(entry.address, entry.state or initial))
        return seeds

    # @intent:responsibility ハードウェアベクタ表を読み、各ベクタの指す先を起点とします。
    def _vector_seeds(self, state: ProcessorWidthState) -> List[TraceNode]:
        seeds = []
        for slot, name in HARDWARE_VECTORS:
            try:
                target = self._rom.read_word(slot)
            except MappingError:
                logger.debug("Vector table is not mapped in this image; skipping hardware vectors")
                return []
            if target in _EMPTY_VECTORS:
                continue
            self._xrefs.add(Xref(slot, target, XrefKind.INTERRUPT_VECTOR))
            if self._mapper.is_mapped(target):
                logger.debug("Vector %s -> $%06X", name, target)
                seeds.append(TraceNode(target, state))
            else:
                self._conflicts.add(Conflict(
                    address=slot,
                    kind=ConflictKind.UNMAPPED_TARGET,
                    reason=f"{name} vector points to ${target:06X} outside mapped ROM",
                ))
        return seeds

    # --- Worker ---

    # @intent:responsibility 1ノードをデコードし、後続ノードのうち新たに確保できたものを返します。
    def _step(self, node: TraceNode) -> List[TraceNode]:
        try:
            instr = decode(self._rom, node.address, node.state)
        except DecodeError as e:
            logger.debug("Decode failed at $%06X (%s): %s", node.address, node.state, e)
            with self._lock:
                self._failures[node] = e
            return []

        successors, xrefs, conflicts = self._successors(instr)
        logger.debug("$%06X %-6s %s -> %d successor(s)", node.address, node.state, instr, len(successors))

        claimed = []
        with self._lock:
            self._instructions[node] = instr
            self._xrefs.update(xrefs)
            self._conflicts.update(conflicts)
            for succ in successors:
                if succ not in self._visited:
                    self._visited.add(succ)
                    claimed.append(succ)
        return claimed

    # @intent:responsibility 命令の制御フロー種別に従って後続ノード・相互参照・曖昧性を求めます。
    # @intent:note 呼び出し先から戻るかどうかは静的に決まらないため、コール直後の命令は
    #              コール直前の幅状態で新たな起点として扱います。
    #              実行後の幅状態が1つに決まらない場合は、候補の状態ごとに後続ノードを作ります。
    def _successors(self, instr: Instruction) -> Tuple[List[TraceNode], List[Xref], List[Conflict]]:
        flow = instr.flow
        if flow.is_terminal:
            return [], [], []

        states = outcomes(instr.state, instr)
        site = self._mapper.canonical(instr.address)
        hinted = self._hints.targets_for(site)
        nodes: List[TraceNode] = []
        xrefs: List[Xref] = []
        conflicts: List[Conflict] = []

        if len(states) > 1:
            conflicts.append(Conflict(
                address=instr.address,
                kind=ConflictKind.UNCERTAIN_WIDTH,
                reason=f"{instr} with unknown carry from {instr.state}: widths after the mode switch are not statically known",
                candidates=tuple(f"{s} afterwards" for s in states),
            ))

        def follow(targets: Iterable[LinearAddress], kind: XrefKind) -> None:
            for target in targets:
                xrefs.append(Xref(instr.address, target, kind))
                if self._mapper.is_mapped(target):
                    nodes.extend(TraceNode(target, s) for s in states)
                else:
                    conflicts.append(Conflict(
                        address=instr.address,
                        kind=ConflictKind.UNMAPPED_TARGET,
                        reason=f"{instr} transfers to ${target:06X} outside mapped ROM",
                    ))

        fallthrough = [TraceNode(instr.next_address, s) for s in states]

        if flow == FlowKind.SEQUENTIAL:
            nodes.extend(fallthrough)
        elif flow == FlowKind.BRANCH:
            nodes.extend(fallthrough)
            follow(instr.targets, XrefKind.BRANCH)
        elif flow == FlowKind.BRANCH_ALWAYS:
            follow(instr.targets, XrefKind.BRANCH)
        elif flow == FlowKind.JUMP:
            follow(instr.targets, XrefKind.JUMP)
            if hinted:
                follow(sorted(hinted), XrefKind.JUMP_TABLE)
        elif flow == FlowKind.CALL:
            follow(instr.targets, XrefKind.CALL)
            if hinted:
                # ディスパッチルーチンの呼び出し直後にポインタ表が続く形。戻る場合のみ続きを辿る
                follow(sorted(hinted), XrefKind.JUMP_TABLE)
                if site in self._hints.returning_sites:
                    nodes.extend(fallthrough)
            else:
                nodes.extend(fallthrough)
        elif flow.is_indirect:
            if hinted:
                follow(sorted(hinted), XrefKind.JUMP_TABLE)
            else:
                xrefs.append(Xref(instr.address, None, XrefKind.INDIRECT_UNRESOLVED))
                conflicts.append(Conflict(
                    address=instr.address,
                    kind=ConflictKind.INDIRECT_UNRESOLVED,
                    reason=f"{instr}: indirect {'call' if flow.is_call else 'jump'} target is not statically known",
                    candidates=(f"add a jump_tables hint for site ${site:06X}",),
                ))
            if flow.is_call:
                nodes.extend(fallthrough)

        return nodes, xrefs, conflicts
