from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone

import pytest

from invest_loader.contexts.ingestion.adapters.outbound.persistence import InMemoryTaskRegistry
from invest_loader.contexts.ingestion.application.dto import TriggerRun
from invest_loader.contexts.ingestion.application.services import (
    PipelineStage,
    ScheduleCoordinator,
    TriggerDefinition,
    WeekendTradingCalendar,
)
from invest_loader.contexts.ingestion.domain import NonTradingDay, UnknownTrigger
from invest_loader.shared_kernel.primitives import UtcTimestamp


class _FixedClock:
    def __init__(self, value: datetime) -> None:
        self._value = UtcTimestamp(value)

    def now(self) -> UtcTimestamp:
        return self._value


class _Report:
    def __init__(self, text: str) -> None:
        self._text = text

    def describe(self) -> str:
        return self._text


# 2024-05-11T01:10 MSK, a Saturday
_SATURDAY_NIGHT = datetime(2024, 5, 10, 22, 10, tzinfo=timezone.utc)


def _coordinator(
    *triggers: TriggerDefinition,
    registry: InMemoryTaskRegistry | None = None,
    on_run: object = None,
) -> ScheduleCoordinator:
    return ScheduleCoordinator(
        triggers=triggers,
        registry=registry if registry is not None else InMemoryTaskRegistry(),
        clock=_FixedClock(_SATURDAY_NIGHT),
        on_run=on_run,  # type: ignore[arg-type]
    )


def test_run_trigger_runs_stages_in_order_and_records_completion() -> None:
    calls: list[str] = []
    registry = InMemoryTaskRegistry()

    async def _first(day: date) -> _Report:
        calls.append(f"first:{day.isoformat()}")
        await asyncio.sleep(0.01)
        calls.append("first:done")
        return _Report("first ok")

    async def _second(day: date) -> str:
        calls.append(f"second:{day.isoformat()}")
        return "second ok"

    trigger = TriggerDefinition(
        name="candles",
        task_prefix="candles",
        stages=(PipelineStage("first", _first), PipelineStage("second", _second)),
        day_offset=-1,
    )
    run = asyncio.run(_coordinator(trigger, registry=registry).run_trigger("candles"))

    assert calls == ["first:2024-05-10", "first:done", "second:2024-05-10"]
    assert run.status == "COMPLETED"
    assert run.run_date == date(2024, 5, 10)
    assert run.reports == ("first ok", "second ok")
    assert run.task_id.startswith("CANDLES_")

    task = registry.get(run.task_id)
    assert task is not None
    assert task.status == "COMPLETED"
    assert task.stage_name == "candles"
    assert task.message == "first ok; second ok"
    assert task.duration_ms is not None and task.duration_ms >= 0


def test_failing_stage_marks_task_failed_and_stops_pipeline() -> None:
    calls: list[str] = []
    registry = InMemoryTaskRegistry()

    async def _boom(day: date) -> None:
        raise RuntimeError("instrument list unavailable")

    async def _never(day: date) -> None:
        calls.append("never")

    trigger = TriggerDefinition(
        name="candles",
        task_prefix="CANDLES",
        stages=(PipelineStage("boom", _boom), PipelineStage("never", _never)),
    )
    run = asyncio.run(_coordinator(trigger, registry=registry).run_trigger("candles"))

    assert run.status == "FAILED"
    assert "instrument list unavailable" in run.message
    assert calls == []
    task = registry.get(run.task_id)
    assert task is not None and task.status == "FAILED"


def test_failure_of_one_trigger_does_not_affect_another() -> None:
    async def _boom(day: date) -> None:
        raise RuntimeError("boom")

    async def _ok(day: date) -> str:
        return "ok"

    coordinator = _coordinator(
        TriggerDefinition(name="broken", task_prefix="B", stages=(PipelineStage("s", _boom),)),
        TriggerDefinition(name="healthy", task_prefix="H", stages=(PipelineStage("s", _ok),)),
    )

    async def _scenario() -> tuple[TriggerRun, ...]:
        return tuple(
            await asyncio.gather(
                coordinator.run_trigger("broken"),
                coordinator.run_trigger("healthy"),
            )
        )

    broken, healthy = asyncio.run(_scenario())

    assert broken.status == "FAILED"
    assert healthy.status == "COMPLETED"


def test_calendar_trigger_on_weekend_is_completed_no_op() -> None:
    calls: list[date] = []

    async def _derive(day: date) -> str:
        calls.append(day)
        return "derived"

    trigger = TriggerDefinition(
        name="main_session",
        task_prefix="MAIN",
        stages=(PipelineStage("main_close", _derive),),
        calendar=WeekendTradingCalendar(),
    )
    run = asyncio.run(_coordinator(trigger).run_trigger("main_session", date(2024, 5, 11)))

    assert run.status == "COMPLETED"
    assert run.message.startswith("no-op:")
    assert calls == []


def test_non_trading_day_raised_by_stage_is_completed_no_op() -> None:
    async def _derive(day: date) -> str:
        raise NonTradingDay(f"{day.isoformat()} has no evening session")

    trigger = TriggerDefinition(
        name="evening_session",
        task_prefix="EVENING",
        stages=(PipelineStage("evening_close", _derive),),
    )
    run = asyncio.run(_coordinator(trigger).run_trigger("evening_session", date(2024, 5, 12)))

    assert run.status == "COMPLETED"
    assert "has no evening session" in run.message


def test_dependent_trigger_waits_for_upstream_completion() -> None:
    """
    Verify `after` ordering: the dependent trigger starts its first stage only after the
    in-flight upstream run has finished, whatever the upstream duration.
    """
    events: list[str] = []

    async def _load(day: date) -> str:
        events.append("load:start")
        await asyncio.sleep(0.05)
        events.append("load:end")
        return "loaded"

    async def _derive(day: date) -> str:
        events.append("derive:start")
        return "derived"

    coordinator = _coordinator(
        TriggerDefinition(name="candles", task_prefix="C", stages=(PipelineStage("load", _load),)),
        TriggerDefinition(
            name="main_session",
            task_prefix="M",
            stages=(PipelineStage("derive", _derive),),
            after="candles",
        ),
    )

    async def _scenario() -> None:
        upstream = asyncio.create_task(coordinator.run_trigger("candles"))
        await asyncio.sleep(0)
        downstream = await coordinator.run_trigger("main_session")
        await upstream
        assert downstream.status == "COMPLETED"

    asyncio.run(_scenario())

    assert events == ["load:start", "load:end", "derive:start"]


def test_dependent_trigger_runs_even_when_upstream_failed() -> None:
    events: list[str] = []

    async def _load(day: date) -> None:
        await asyncio.sleep(0.01)
        raise RuntimeError("provider down")

    async def _derive(day: date) -> str:
        events.append("derive")
        return "derived"

    coordinator = _coordinator(
        TriggerDefinition(name="candles", task_prefix="C", stages=(PipelineStage("load", _load),)),
        TriggerDefinition(
            name="main_session",
            task_prefix="M",
            stages=(PipelineStage("derive", _derive),),
            after="candles",
        ),
    )

    async def _scenario() -> tuple[TriggerRun, TriggerRun]:
        upstream = asyncio.create_task(coordinator.run_trigger("candles"))
        await asyncio.sleep(0)
        downstream = await coordinator.run_trigger("main_session")
        return await upstream, downstream

    upstream_run, downstream_run = asyncio.run(_scenario())

    assert upstream_run.status == "FAILED"
    assert downstream_run.status == "COMPLETED"
    assert events == ["derive"]


def test_dispatch_returns_started_ack_before_pipeline_finishes() -> None:
    registry = InMemoryTaskRegistry()
    finished: list[TriggerRun] = []
    gate = asyncio.Event()

    async def _slow(day: date) -> str:
        await gate.wait()
        return "done"

    coordinator = _coordinator(
        TriggerDefinition(name="candles", task_prefix="C", stages=(PipelineStage("s", _slow),)),
        registry=registry,
        on_run=finished.append,
    )

    async def _scenario() -> None:
        ack = await coordinator.dispatch("candles", date(2024, 5, 10))
        assert ack.status == "STARTED"
        task = registry.get(ack.task_id)
        assert task is not None and task.status == "STARTED"
        assert finished == []

        gate.set()
        await coordinator.wait_idle()
        done = registry.get(ack.task_id)
        assert done is not None and done.status == "COMPLETED"

    asyncio.run(_scenario())

    assert [run.status for run in finished] == ["COMPLETED"]


def test_failing_on_run_hook_does_not_escape_run_or_dispatch() -> None:
    registry = InMemoryTaskRegistry()

    def _broken_hook(run: TriggerRun) -> None:
        raise RuntimeError("metrics backend down")

    async def _ok(day: date) -> str:
        return "ok"

    coordinator = _coordinator(
        TriggerDefinition(name="candles", task_prefix="C", stages=(PipelineStage("s", _ok),)),
        registry=registry,
        on_run=_broken_hook,
    )

    async def _scenario() -> tuple[TriggerRun, str]:
        run = await coordinator.run_trigger("candles", date(2024, 5, 10))
        ack = await coordinator.dispatch("candles", date(2024, 5, 10))
        await coordinator.wait_idle()
        return run, ack.task_id

    run, dispatched_task_id = asyncio.run(_scenario())

    assert run.status == "COMPLETED"
    dispatched = registry.get(dispatched_task_id)
    assert dispatched is not None and dispatched.status == "COMPLETED"

def test_unknown_trigger_raises_not_found() -> None:
    coordinator = _coordinator()

    with pytest.raises(UnknownTrigger) as error_info:
        asyncio.run(coordinator.run_trigger("nope"))

    assert error_info.value.code == "not_found"


def test_task_ids_are_unique_per_invocation() -> None:
    async def _ok(day: date) -> str:
        return "ok"

    coordinator = _coordinator(
        TriggerDefinition(name="candles", task_prefix="C", stages=(PipelineStage("s", _ok),)),
    )

    async def _scenario() -> set[str]:
        runs = [await coordinator.run_trigger("candles") for _ in range(5)]
        return {run.task_id for run in runs}

    assert len(asyncio.run(_scenario())) == 5


def test_registry_write_failure_does_not_fail_pipeline() -> None:
    class _BrokenRegistry(InMemoryTaskRegistry):
        def record_start(self, task_id: str, stage_name: str, started_at: datetime) -> None:
            raise ConnectionError("registry down")

    async def _ok(day: date) -> str:
        return "ok"

    coordinator = _coordinator(
        TriggerDefinition(name="candles", task_prefix="C", stages=(PipelineStage("s", _ok),)),
        registry=_BrokenRegistry(),
    )
    run = asyncio.run(coordinator.run_trigger("candles"))

    assert run.status == "COMPLETED"


@pytest.mark.parametrize(
    ("triggers", "match"),
    [
        (
            (
                TriggerDefinition(name="a", task_prefix="A", stages=(PipelineStage("s", lambda d: None),)),  # type: ignore[arg-type,return-value]  # noqa: E501
                TriggerDefinition(name="a", task_prefix="A", stages=(PipelineStage("s", lambda d: None),)),  # type: ignore[arg-type,return-value]  # noqa: E501
            ),
            "duplicate trigger name",
        ),
        (
            (
                TriggerDefinition(name="a", task_prefix="A", stages=(PipelineStage("s", lambda d: None),), after="b"),  # type: ignore[arg-type,return-value]  # noqa: E501
            ),
            "unknown trigger",
        ),
    ],
)
def test_coordinator_rejects_invalid_trigger_tables(
    triggers: tuple[TriggerDefinition, ...],
    match: str,
) -> None:
    with pytest.raises(ValueError, match=match):
        ScheduleCoordinator(
            triggers=triggers,
            registry=InMemoryTaskRegistry(),
            clock=_FixedClock(_SATURDAY_NIGHT),
        )
