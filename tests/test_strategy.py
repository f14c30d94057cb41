from __future__ import annotations

import asyncio

import pytest
from conftest import (
    FakeAdapter,
    StreamingAdapter,
    SubAgentAdapter,
    advanced_profile,
    basic_profile,
    make_task,
)
from switchyard_core.config import StrategyConfig
from switchyard_core.errors import AllStrategiesExhaustedError
from switchyard_core.types import AttemptStatus
from switchyard_runtime.events import (
    BATCH_COMPLETED,
    STATISTICS_RESET,
    STRATEGY_EXHAUSTED,
    STRATEGY_FAILED,
    STRATEGY_SUCCESS,
    STREAM_CHUNK,
)
from switchyard_runtime.strategy import StrategyEngine

SKIPPED = AttemptStatus.SKIPPED
SUCCESS = AttemptStatus.SUCCESS
FAILED = AttemptStatus.FAILED


def _trail(result_or_error):
    return [(a.strategy, a.status) for a in result_or_error.attempts]


@pytest.fixture
def engine(basic_adapter, events):
    return StrategyEngine(basic_adapter, events=events)


class TestDegradation:
    async def test_basic_adapter_resolves_sequentially(self, engine, basic_adapter):
        result = await engine.execute(make_task())

        assert result.strategy == "sequential"
        assert _trail(result) == [
            ("sub_agents", SKIPPED),
            ("parallel", SKIPPED),
            ("streaming", SKIPPED),
            ("batched", SKIPPED),
            ("sequential", SUCCESS),
        ]
        assert [a.reason for a in result.attempts[:4]] == [
            "Not available",
            "Not available",
            "Not available",
            "Not suitable for task",
        ]
        assert len(basic_adapter.calls) == 1
        assert result.total_duration_ms >= 0

    async def test_many_files_run_in_batches(self, engine, basic_adapter, event_log):
        result = await engine.execute(make_task(files=25))

        assert result.strategy == "batched"
        assert result.batch_count == 5
        assert len(basic_adapter.calls) == 5
        assert [t.id for t in basic_adapter.calls] == [
            "t1-batch-0", "t1-batch-5", "t1-batch-10", "t1-batch-15", "t1-batch-20",
        ]
        assert all(len(t.context.files) == 5 for t in basic_adapter.calls)
        progress = [e.payload["progress"] for e in event_log.named(BATCH_COMPLETED)]
        assert progress == pytest.approx([0.2, 0.4, 0.6, 0.8, 1.0])
        assert result.output.count("\n---\n") == 4
        assert len(result.artifacts) == 5

    async def test_explicit_strategy_failure_falls_back(self, engine):
        result = await engine.execute(make_task(execution_strategy="parallel"))

        assert result.strategy == "sequential"
        first = result.attempts[0]
        assert (first.strategy, first.status) == ("parallel", FAILED)
        assert first.error == "Parallel execution not supported"
        assert result.attempts[-1].status is SUCCESS

    async def test_failed_explicit_strategy_can_run_again_in_chain(self, events):
        adapter = FakeAdapter(
            "adv", advanced_profile(), fail_when=lambda t: "-parallel-" in t.id
        )
        engine = StrategyEngine(adapter, events=events)

        result = await engine.execute(make_task(files=3, execution_strategy="parallel"))

        assert _trail(result) == [
            ("parallel", FAILED),
            ("sub_agents", SKIPPED),
            ("parallel", FAILED),
            ("streaming", SKIPPED),
            ("batched", SKIPPED),
            ("sequential", SUCCESS),
        ]
        assert result.attempts[0].error == "All parallel tasks failed"

    async def test_vendor_extension_strategy_is_tried_first(self, engine, basic_adapter):
        task = make_task(files=12, extensions={"basic": {"execution_strategy": "batched"}})
        result = await engine.execute(task)
        assert _trail(result) == [("batched", SUCCESS)]
        assert result.batch_count == 3

    async def test_vendor_extension_keyed_by_engine_name(self, events, basic_adapter):
        engine = StrategyEngine(basic_adapter, events=events, name="alias")
        task = make_task(
            files=12,
            extensions={
                "alias": {"execution_strategy": "batched"},
                "basic": {"execution_strategy": "parallel"},
            },
        )
        result = await engine.execute(task)
        assert engine.adapter_name == "alias"
        assert result.attempts[0].strategy == "batched"

    async def test_strategy_argument_is_lowest_priority_override(self, engine):
        result = await engine.execute(make_task(files=12), strategy="batched")
        assert result.attempts[0].strategy == "batched"
        result = await engine.execute(
            make_task(files=12, execution_strategy="sequential"), strategy="batched"
        )
        assert result.attempts[0].strategy == "sequential"

    async def test_unknown_explicit_strategy_is_skipped(self, engine):
        result = await engine.execute(make_task(execution_strategy="teleport"))
        first = result.attempts[0]
        assert (first.strategy, first.status, first.reason) == (
            "teleport", SKIPPED, "Unknown strategy",
        )
        assert result.strategy == "sequential"

    async def test_custom_chain(self, engine):
        result = await engine.execute(make_task(), strategies=["streaming", "sequential"])
        assert _trail(result) == [("streaming", SKIPPED), ("sequential", SUCCESS)]

    async def test_unknown_chain_entry_is_unavailable(self, engine):
        result = await engine.execute(make_task(), strategies=["warp", "sequential"])
        assert result.attempts[0].reason == "Not available"


class TestExhaustion:
    async def test_all_failures_reported(self, events, event_log):
        adapter = FakeAdapter("bad", basic_profile(), fail_when=lambda t: True)
        engine = StrategyEngine(adapter, events=events)

        with pytest.raises(AllStrategiesExhaustedError) as excinfo:
            await engine.execute(make_task(files=12), strategies=["batched", "sequential"])

        err = excinfo.value
        assert str(err) == "All execution strategies failed"
        assert len(err.attempts) == 2
        assert all(a.status is FAILED for a in err.attempts)
        assert err.duration_ms >= 0
        [exhausted] = event_log.named(STRATEGY_EXHAUSTED)
        assert exhausted.payload["attempts"] == err.attempts
        assert len(event_log.named(STRATEGY_FAILED)) == 2

    async def test_failure_event_payload(self, events, event_log):
        adapter = FakeAdapter("bad", basic_profile(), fail_when=lambda t: True)
        engine = StrategyEngine(adapter, events=events)
        with pytest.raises(AllStrategiesExhaustedError):
            await engine.execute(make_task(), strategies=["sequential"])
        [failed] = event_log.named(STRATEGY_FAILED)
        assert failed.payload["strategy"] == "sequential"
        assert failed.payload["error"] == "boom: t1"
        assert failed.payload["task_id"] == "t1"


class TestTimeout:
    async def test_timeout_is_a_failed_attempt(self, events):
        adapter = FakeAdapter("slow", basic_profile(), delay=0.2)
        engine = StrategyEngine(adapter, events=events)

        with pytest.raises(AllStrategiesExhaustedError) as excinfo:
            await engine.execute(make_task(), strategies=["sequential"], timeout=0.02)

        [attempt] = excinfo.value.attempts
        assert attempt.status is FAILED
        assert attempt.error == "Strategy timeout"
        await asyncio.gather(*engine.background_tasks)

    async def test_timed_out_call_keeps_running(self, events):
        adapter = FakeAdapter("slow", basic_profile(), delay=0.1)
        engine = StrategyEngine(adapter, events=events)

        with pytest.raises(AllStrategiesExhaustedError):
            await engine.execute(make_task(), strategies=["sequential"], timeout=0.01)

        assert len(engine.background_tasks) == 1
        assert adapter.finished == []

        await asyncio.gather(*engine.background_tasks)
        await asyncio.sleep(0)

        assert adapter.finished == ["t1"]
        assert engine.background_tasks == set()

    async def test_configured_timeouts(self, events):
        adapter = FakeAdapter("slow", basic_profile(), delay=0.2)
        config = StrategyConfig(timeouts={"sequential": 0.01})
        engine = StrategyEngine(adapter, config, events=events)
        with pytest.raises(AllStrategiesExhaustedError):
            await engine.execute(make_task(), strategies=["sequential"])
        assert config.timeout_for("batched") == 90.0
        await asyncio.gather(*engine.background_tasks)


class TestParallel:
    async def test_partial_failure(self, events):
        adapter = FakeAdapter(
            "adv", advanced_profile(), fail_when=lambda t: t.id == "t1-parallel-1"
        )
        engine = StrategyEngine(adapter, events=events)

        result = await engine.execute(make_task(files=3))

        assert result.strategy == "parallel"
        assert result.status == "partial"
        summary = result.parallel_summary
        assert (summary.succeeded, summary.failed) == (2, 1)
        assert summary.failures == (("t1-parallel-1", "boom: t1-parallel-1"),)
        assert result.output == "done t1-parallel-0\n---\ndone t1-parallel-2"

    async def test_concurrency_is_bounded(self, events):
        adapter = FakeAdapter("adv", advanced_profile(), delay=0.01)
        engine = StrategyEngine(adapter, events=events)

        result = await engine.execute(make_task(files=5))

        assert result.status == "completed"
        assert len(adapter.calls) == 5
        # parallel_execution config caps concurrency at 2
        assert adapter.max_in_flight == 2

    async def test_single_file_runs_directly(self, events):
        adapter = FakeAdapter("adv", advanced_profile())
        engine = StrategyEngine(adapter, events=events)
        result = await engine.execute(make_task(files=1), strategy="parallel")
        assert result.strategy == "parallel"
        assert [t.id for t in adapter.calls] == ["t1"]
        assert result.parallel_summary is None


class TestStreaming:
    async def test_simulated_streaming(self, events):
        adapter = FakeAdapter("s", basic_profile(streaming=True))
        engine = StrategyEngine(adapter, events=events)
        chunks = []

        async def on_chunk(chunk):
            chunks.append(chunk)

        result = await engine.execute(
            make_task(task_type="generation", description="write"),
            chunk_size=2,
            on_chunk=on_chunk,
        )

        assert result.strategy == "streaming"
        assert "".join(c.chunk for c in chunks) == "done t1"
        progress = [c.progress for c in chunks]
        assert progress == sorted(progress)
        assert progress[-1] == 1.0

    async def test_default_handler_emits_events(self, events, event_log):
        adapter = FakeAdapter("s", basic_profile(streaming=True))
        engine = StrategyEngine(adapter, events=events)
        await engine.execute(make_task(streaming=True), chunk_size=4)
        chunks = event_log.named(STREAM_CHUNK)
        assert [e.payload["chunk"] for e in chunks] == ["done", " t1"]

    async def test_native_streaming(self, events):
        adapter = StreamingAdapter("s", basic_profile(streaming=True))
        engine = StrategyEngine(adapter, events=events)
        received = []

        result = await engine.execute(
            make_task(description="stream it"), on_chunk=received.append
        )

        assert result.output == "abcd"
        assert [c.chunk for c in received] == ["ab", "cd"]
        assert adapter.calls[0].streaming is True


class TestSubAgents:
    async def test_plan_delegated_to_adapter(self, events):
        adapter = SubAgentAdapter("sa", advanced_profile())
        engine = StrategyEngine(adapter, events=events)

        result = await engine.execute(
            make_task(task_type="generation", complexity="high"),
            orchestration_mode="hierarchical",
        )

        assert result.strategy == "sub_agents"
        [plan] = adapter.plans
        assert plan.orchestration_mode == "hierarchical"
        assert [a.role for a in plan.agents] == ["architect", "implementer", "reviewer"]
        assert [a.id for a in plan.agents] == ["agent-0", "agent-1", "agent-2"]
        assert plan.coordinator["role"] == "orchestrator"

    async def test_missing_entry_point_is_a_failure(self, events):
        adapter = FakeAdapter("adv", advanced_profile())
        engine = StrategyEngine(adapter, events=events)

        result = await engine.execute(make_task(complexity="high"))

        first = result.attempts[0]
        assert (first.strategy, first.status) == ("sub_agents", FAILED)
        assert first.error == "Sub-agent execution not implemented"
        assert result.strategy == "sequential"


class TestStatistics:
    async def test_success_and_failure_counts(self, events, event_log):
        adapter = FakeAdapter("a", basic_profile(), fail_when=lambda t: t.id == "bad")
        engine = StrategyEngine(adapter, events=events)
        await engine.execute(make_task("ok"))
        with pytest.raises(AllStrategiesExhaustedError):
            await engine.execute(make_task("bad"), strategies=["sequential"])

        stats = engine.get_statistics()["sequential"]
        assert stats["attempts"] == 2
        assert stats["successes"] == 1
        assert stats["failures"] == 1
        assert stats["success_rate"] == 0.5
        assert stats["top_failure_reasons"] == [{"reason": "boom: bad", "count": 1}]
        assert len(event_log.named(STRATEGY_SUCCESS)) == 1

    async def test_top_reasons_limited_to_three(self, events):
        adapter = FakeAdapter("a", basic_profile(), fail_when=lambda t: True)
        engine = StrategyEngine(adapter, events=events)
        for task_id in ("a", "a", "b", "c", "d"):
            with pytest.raises(AllStrategiesExhaustedError):
                await engine.execute(make_task(task_id), strategies=["sequential"])
        reasons = engine.get_statistics()["sequential"]["top_failure_reasons"]
        assert len(reasons) == 3
        assert reasons[0] == {"reason": "boom: a", "count": 2}

    async def test_reset(self, engine, event_log):
        await engine.execute(make_task())
        engine.reset_statistics()
        assert engine.get_statistics() == {}
        assert len(event_log.named(STATISTICS_RESET)) == 1
