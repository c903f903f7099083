from dataclasses import dataclass, field
from typing import List, Optional

from snes_segmenter.arch.wdc65816.state import ProcessorWidthState

@dataclass
class WidthStateConfig:
    m16: bool = False
    x16: bool = False

    def to_state(self) -> ProcessorWidthState:
        return ProcessorWidthState(m16=self.m16, x16=self.x16)

@dataclass
class TraceConfig:
    initial_state: WidthStateConfig = field(default_factory=WidthStateConfig)
    use_vectors: bool = True # ハードウェアベクタを起点に含めるかどうか
    worker_count: int = 4
    step_budget: Optional[int] = 1_000_000 # 処理ノード数の上限 (Noneで無制限)
    time_budget: Optional[float] = None # 秒

@dataclass
class EntryPointHint:
    address: int
    name: str = ""
    state: Optional[WidthStateConfig] = None # Noneの場合はTraceConfig.initial_stateを使用

@dataclass
class RangeHint:
    start: int
    end: int # 終端を含む
    label: str = ""

@dataclass
class JumpTableHint:
    site: int # 間接ジャンプ/コール命令、またはディスパッチルーチンを呼ぶJSR/JSLのアドレス
    targets: List[int] = field(default_factory=list)
    table: Optional[int] = None # ROM上のポインタ表の先頭
    count: int = 0
    long_pointers: bool = False # Trueなら3バイトポインタ、Falseなら呼び出し元バンク内の2バイトポインタ
    returns: bool = False # 直接コールの場合、呼び出し元の続きを起点として追加するかどうか
    label: str = ""

@dataclass
class HintSet:
    entry_points: List[EntryPointHint] = field(default_factory=list)
    data_ranges: List[RangeHint] = field(default_factory=list)
    code_ranges: List[RangeHint] = field(default_factory=list)
    jump_tables: List[JumpTableHint] = field(default_factory=list)

@dataclass
class ProjectConfig:
    mapping: str = "LOROM"
    speed: str = "SLOW"
    trace: TraceConfig = field(default_factory=TraceConfig)
    hints: HintSet = field(default_factory=HintSet)
