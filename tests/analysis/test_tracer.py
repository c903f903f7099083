# tests/analysis/test_tracer.py
"""
snes_segmenter.analysis.tracerモジュールの単体テスト。
"""
import pytest

from snes_segmenter.common.errors import DecodeFailure
from snes_segmenter.core.model import TraceNode, Xref, XrefKind
from snes_segmenter.arch.wdc65816.state import RESET_STATE, ProcessorWidthState
from snes_segmenter.config.models import EntryPointHint, HintSet, JumpTableHint, TraceConfig, WidthStateConfig
from snes_segmenter.analysis.hints import resolve_hints
from snes_segmenter.analysis.report import ConflictKind
from snes_segmenter.analysis.tracer import ControlFlowTracer

# @intent:test_suite ワークリストによる到達可能性解析の検証。


def run_trace(rom, hint_set=None, **config):
    resolved, _ = resolve_hints(hint_set, rom)
    return ControlFlowTracer(rom, resolved, TraceConfig(**config)).run()

def addresses(result):
    return sorted({node.address for node in result.nodes()})

def kinds(result, kind):
    return [c for c in result.conflicts if c.kind == kind]


class TestTermination:
    # @intent:test_case_loop 自分自身への無条件分岐は1ノードだけで停止することを検証します。
    def test_tight_loop(self, lorom):
        rom = lorom({0x008000: [0x80, 0xFE]})  # BRA *
        result = run_trace(rom)
        assert result.nodes() == [TraceNode(0x008000, RESET_STATE)]
        assert result.steps == 1
        assert not result.truncated
        assert Xref(0x008000, 0x008000, XrefKind.BRANCH) in result.xrefs

    def test_diamond_rejoins(self, lorom):
        rom = lorom({0x008000: [
            0xD0, 0x02,  # BNE $8004
            0xEA,        # NOP
            0xEA,        # NOP
            0x60,        # RTS
        ]})
        result = run_trace(rom)
        assert addresses(result) == [0x008000, 0x008002, 0x008003, 0x008004]
        assert len(result.nodes()) == 4


class TestSuccessors:
    def test_call_target_and_fallthrough(self, lorom):
        rom = lorom({
            0x008000: [0x20, 0x00, 0x90, 0x60],  # JSR $9000 / RTS
            0x009000: [0x60],                    # RTS
        })
        result = run_trace(rom)
        assert addresses(result) == [0x008000, 0x008003, 0x009000]
        assert Xref(0x008000, 0x009000, XrefKind.CALL) in result.xrefs

    def test_jump_does_not_fall_through(self, lorom):
        rom = lorom({
            0x008000: [0x4C, 0x00, 0x90, 0xEA],  # JMP $9000 / NOP
            0x009000: [0x60],
        })
        result = run_trace(rom)
        assert addresses(result) == [0x008000, 0x009000]
        assert Xref(0x008000, 0x009000, XrefKind.JUMP) in result.xrefs

    def test_width_changes_follow_rep_sep(self, lorom):
        rom = lorom({0x008000: [
            0xC2, 0x20,        # REP #$20
            0xA9, 0x34, 0x12,  # LDA #$1234
            0xE2, 0x20,        # SEP #$20
            0xA9, 0x12,        # LDA #$12
            0x60,              # RTS
        ]})
        result = run_trace(rom)
        assert addresses(result) == [0x008000, 0x008002, 0x008005, 0x008007, 0x008009]
        assert result.instructions_at(0x008002)[0].length == 3
        assert result.instructions_at(0x008007)[0].length == 2

    def test_plp_restores_pushed_widths(self, lorom):
        rom = lorom({0x008000: [
            0x08,        # PHP
            0xC2, 0x30,  # REP #$30
            0x28,        # PLP
            0xA9, 0x12,  # LDA #$12
            0x60,        # RTS
        ]})
        result = run_trace(rom)
        lda = result.instructions_at(0x008004)
        assert len(lda) == 1
        assert lda[0].length == 2

    # @intent:test_case_native_mode CLC; XCE でネイティブモードへ入った後は、REPで広げた幅がXCEを越えて維持されることを検証します。
    def test_xce_with_clear_carry_keeps_widths(self, lorom):
        rom = lorom({0x008000: [
            0x18,              # CLC
            0xFB,              # XCE
            0xC2, 0x30,        # REP #$30
            0x18,              # CLC
            0xFB,              # XCE
            0xA9, 0x34, 0x12,  # LDA #$1234
            0x60,              # RTS
        ]})
        result = run_trace(rom)
        lda = result.instructions_at(0x008006)
        assert [i.length for i in lda] == [3]
        assert lda[0].state.widths == (True, True)
        assert not kinds(result, ConflictKind.UNCERTAIN_WIDTH)

    def test_xce_with_set_carry_forces_8bit(self, lorom):
        rom = lorom({0x008000: [
            0xC2, 0x30,  # REP #$30
            0x38,        # SEC
            0xFB,        # XCE
            0xA9, 0x12,  # LDA #$12
            0x60,        # RTS
        ]})
        result = run_trace(rom)
        assert [i.length for i in result.instructions_at(0x008004)] == [2]
        assert not kinds(result, ConflictKind.UNCERTAIN_WIDTH)

    # @intent:test_case_uncertain_width キャリーが不明なXCEでは両方の幅で後続を辿り、レポートに記録することを検証します。
    def test_xce_with_unknown_carry_follows_both_widths(self, lorom):
        rom = lorom({0x008000: [
            0xC2, 0x30,        # REP #$30
            0xFB,              # XCE
            0xA9, 0x34, 0x12,  # LDA #$1234 / LDA #$34
            0x60,              # RTS
        ]})
        result = run_trace(rom)
        assert [i.length for i in result.instructions_at(0x008003)] == [2, 3]
        uncertain = kinds(result, ConflictKind.UNCERTAIN_WIDTH)
        assert [c.address for c in uncertain] == [0x008002]
        assert uncertain[0].candidates == ("m16x16 afterwards", "m8x8 afterwards")

    def test_return_has_no_successors(self, lorom):
        rom = lorom({0x008000: [0x60, 0xEA]})  # RTS / NOP
        result = run_trace(rom)
        assert addresses(result) == [0x008000]
        assert result.xrefs == (Xref(0x00FFFC, 0x008000, XrefKind.INTERRUPT_VECTOR),)

    def test_decode_failure_stops_path(self, lorom):
        rom = lorom({0x008000: [0xEA, 0x42, 0x00]})  # NOP / WDM
        result = run_trace(rom)
        assert addresses(result) == [0x008000]
        failure = result.failures[TraceNode(0x008001, RESET_STATE)]
        assert failure.reason == DecodeFailure.UNDEFINED

    def test_unmapped_target_is_reported(self, lorom):
        rom = lorom({0x008000: [0x4C, 0x00, 0x10]})  # JMP $1000 (WRAMミラー)
        result = run_trace(rom)
        assert addresses(result) == [0x008000]
        assert Xref(0x008000, 0x001000, XrefKind.JUMP) in result.xrefs
        unmapped = kinds(result, ConflictKind.UNMAPPED_TARGET)
        assert [c.address for c in unmapped] == [0x008000]


class TestIndirect:
    def test_unresolved_indirect_jump(self, lorom):
        rom = lorom({0x008000: [0x7C, 0x00, 0x90]})  # JMP ($9000,X)
        result = run_trace(rom)
        assert addresses(result) == [0x008000]
        assert Xref(0x008000, None, XrefKind.INDIRECT_UNRESOLVED) in result.xrefs
        unresolved = kinds(result, ConflictKind.INDIRECT_UNRESOLVED)
        assert len(unresolved) == 1
        assert unresolved[0].address == 0x008000
        assert unresolved[0].candidates

    def test_unresolved_indirect_call_keeps_fallthrough(self, lorom):
        rom = lorom({0x008000: [0xFC, 0x00, 0x90, 0x60]})  # JSR ($9000,X) / RTS
        result = run_trace(rom)
        assert addresses(result) == [0x008000, 0x008003]
        assert len(kinds(result, ConflictKind.INDIRECT_UNRESOLVED)) == 1

    # @intent:test_case_jump_table 3つの候補を持つジャンプ表ヒントが3つの後続と3つのJUMP_TABLE参照を生むことを検証します。
    def test_jump_table_hint_expands_all_targets(self, lorom):
        rom = lorom({
            0x008000: [0x7C, 0x00, 0x90],  # JMP ($9000,X)
            0x008100: [0x60],
            0x008200: [0x60],
            0x008300: [0x60],
        })
        hints = HintSet(jump_tables=[JumpTableHint(site=0x008000, targets=[0x008100, 0x008200, 0x008300])])
        result = run_trace(rom, hints)
        assert addresses(result) == [0x008000, 0x008100, 0x008200, 0x008300]
        table_xrefs = [x for x in result.xrefs if x.kind == XrefKind.JUMP_TABLE]
        assert table_xrefs == [
            Xref(0x008000, 0x008100, XrefKind.JUMP_TABLE),
            Xref(0x008000, 0x008200, XrefKind.JUMP_TABLE),
            Xref(0x008000, 0x008300, XrefKind.JUMP_TABLE),
        ]
        assert not kinds(result, ConflictKind.INDIRECT_UNRESOLVED)

    def test_hint_matches_mirrored_site(self, lorom):
        rom = lorom({
            0x008000: [0x5C, 0x04, 0x80, 0x80],  # JML $808004
            0x008004: [0x6C, 0x00, 0x02],        # JMP ($0200)
            0x008100: [0x60],
        })
        hints = HintSet(jump_tables=[JumpTableHint(site=0x008004, targets=[0x808100])])
        result = run_trace(rom, hints)
        assert Xref(0x808004, 0x808100, XrefKind.JUMP_TABLE) in result.xrefs

    def test_dispatch_call_with_inline_pointer_table(self, lorom):
        rom = lorom({
            0x008000: [0x22, 0x00, 0x90, 0x00,   # JSL $009000
                       0x00, 0x81, 0x00, 0x82],  # .dw $8100, $8200
            0x008100: [0x60],
            0x008200: [0x60],
            0x009000: [0x60],
        })
        hints = HintSet(jump_tables=[JumpTableHint(site=0x008000, table=0x008004, count=2)])
        result = run_trace(rom, hints)
        assert addresses(result) == [0x008000, 0x008100, 0x008200, 0x009000]
        assert Xref(0x008000, 0x009000, XrefKind.CALL) in result.xrefs
        assert Xref(0x008000, 0x008100, XrefKind.JUMP_TABLE) in result.xrefs

    def test_returning_dispatch_call(self, lorom):
        rom = lorom({
            0x008000: [0x20, 0x00, 0x90, 0x60],  # JSR $9000 / RTS
            0x008100: [0x60],
            0x009000: [0x60],
        })
        hints = HintSet(jump_tables=[JumpTableHint(site=0x008000, targets=[0x008100], returns=True)])
        result = run_trace(rom, hints)
        assert addresses(result) == [0x008000, 0x008003, 0x008100, 0x009000]


class TestSeeds:
    def test_hardware_vectors(self, lorom):
        rom = lorom(
            {0x008000: [0x60], 0x008100: [0x40]},
            vectors={0x00FFEA: 0x8100, 0x00FFEE: 0x1000},
        )
        result = run_trace(rom)
        assert addresses(result) == [0x008000, 0x008100]
        assert Xref(0x00FFFC, 0x008000, XrefKind.INTERRUPT_VECTOR) in result.xrefs
        assert Xref(0x00FFEA, 0x008100, XrefKind.INTERRUPT_VECTOR) in result.xrefs
        unmapped = kinds(result, ConflictKind.UNMAPPED_TARGET)
        assert [c.address for c in unmapped] == [0x00FFEE]

    def test_entry_point_with_width_state(self, lorom):
        rom = lorom({0x008000: [0x60], 0x009000: [0xA9, 0x34, 0x12, 0x60]})
        hints = HintSet(entry_points=[EntryPointHint(address=0x009000, state=WidthStateConfig(m16=True))])
        result = run_trace(rom, hints, use_vectors=False)
        assert addresses(result) == [0x009000, 0x009003]
        assert result.instructions_at(0x009000)[0].state == ProcessorWidthState(m16=True)
        assert result.instructions_at(0x009000)[0].length == 3

    def test_initial_state_from_config(self, lorom):
        rom = lorom({0x008000: [0xA2, 0x00, 0x10, 0x60]})  # LDX #$1000 / RTS
        result = run_trace(rom, initial_state=WidthStateConfig(x16=True))
        assert addresses(result) == [0x008000, 0x008003]


class TestBudgets:
    def test_step_budget_truncates(self, lorom):
        rom = lorom({0x008000: [0xEA] * 100 + [0x60]})
        result = run_trace(rom, step_budget=10)
        assert result.truncated
        assert result.steps == 10
        assert len(result.instructions) == 10
        assert len(kinds(result, ConflictKind.BUDGET_EXHAUSTED)) == 1

    def test_budget_large_enough_is_not_truncation(self, lorom):
        rom = lorom({0x008000: [0xEA, 0xEA, 0x60]})
        result = run_trace(rom, step_budget=3)
        assert not result.truncated
        assert result.steps == 3

    def test_time_budget_truncates(self, lorom):
        rom = lorom({0x008000: [0xEA, 0x60]})
        result = run_trace(rom, time_budget=0)
        assert result.truncated
        assert result.steps == 0
        assert result.instructions == {}
        budget = kinds(result, ConflictKind.BUDGET_EXHAUSTED)
        assert len(budget) == 1
        assert "time budget" in budget[0].reason

    def test_cancel_before_run(self, lorom):
        rom = lorom({0x008000: [0xEA, 0x60]})
        resolved, _ = resolve_hints(None, rom)
        tracer = ControlFlowTracer(rom, resolved, TraceConfig())
        tracer.cancel()
        result = tracer.run()
        assert result.truncated
        assert result.steps == 0
        assert result.instructions == {}


class TestConcurrency:
    @pytest.fixture
    def branchy_rom(self, lorom):
        program = []
        # 分岐と呼び出しが入り組んだ命令列
        for i in range(32):
            program += [0xD0, 0x03,                     # BNE +3
                        0x20, 0x00, 0x90,               # JSR $9000
                        0xC2 if i % 2 else 0xE2, 0x20]  # REP/SEP #$20
        program += [0x60]
        return lorom({0x008000: program, 0x009000: [0xA9, 0x00, 0x00, 0x60]})

    def test_worker_count_does_not_change_result(self, branchy_rom):
        single = run_trace(branchy_rom, worker_count=1)
        parallel = run_trace(branchy_rom, worker_count=8)
        assert single.instructions == parallel.instructions
        assert single.failures.keys() == parallel.failures.keys()
        assert single.xrefs == parallel.xrefs
        assert single.conflicts == parallel.conflicts

    def test_repeated_runs_are_identical(self, branchy_rom):
        resolved, _ = resolve_hints(None, branchy_rom)
        tracer = ControlFlowTracer(branchy_rom, resolved, TraceConfig(worker_count=4))
        first = tracer.run()
        second = tracer.run()
        assert first.instructions == second.instructions
        assert first.xrefs == second.xrefs
