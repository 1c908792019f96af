from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Mapping, Sequence
from zoneinfo import ZoneInfo

from invest_loader.contexts.ingestion.application.dto import DispatchAck, TriggerRun
from invest_loader.contexts.ingestion.application.ports.clock import Clock
from invest_loader.contexts.ingestion.application.ports.stores import TaskRegistry
from invest_loader.contexts.ingestion.domain import (
    NonTradingDay,
    PipelineFailure,
    TaskStatus,
    UnknownTrigger,
)

from .trading_calendar import TradingCalendar

log = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Moscow"


@dataclass(frozen=True, slots=True)
class PipelineStage:
    """
    One awaitable step of a trigger pipeline.

    Parameters:
    - name: stage label.
    - run: coroutine function taking the business date; its return value is reported via
      `describe()` when available, `str()` otherwise.
    """

    name: str
    run: Callable[[date], Awaitable[Any]]

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("PipelineStage requires non-empty name")
        if self.run is None:  # type: ignore[truthy-bool]
            raise ValueError("PipelineStage requires run")


@dataclass(frozen=True, slots=True)
class TriggerDefinition:
    """
    Named pipeline started by cron or by an external dispatch.

    Parameters:
    - name: unique trigger name.
    - task_prefix: prefix of generated task ids (`CANDLES_1a2b3c4d`).
    - stages: stages executed strictly in order, each awaited to completion.
    - calendar: optional trading calendar checked once per invocation.
    - day_offset: business date relative to "today" in the coordinator timezone.
    - after: optional trigger whose in-flight run must complete before the first stage.
    """

    name: str
    task_prefix: str
    stages: tuple[PipelineStage, ...]
    calendar: TradingCalendar | None = None
    day_offset: int = 0
    after: str | None = None

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("TriggerDefinition requires non-empty name")
        if not self.task_prefix.strip():
            raise ValueError("TriggerDefinition requires non-empty task_prefix")
        if not self.stages:
            raise ValueError(f"TriggerDefinition {self.name} requires at least one stage")
        if self.after == self.name:
            raise ValueError(f"TriggerDefinition {self.name} cannot run after itself")


class ScheduleCoordinator:
    """
    Run named multi-stage pipelines with task lifecycle recording and fault isolation.

    Parameters:
    - triggers: trigger definitions, unique names.
    - registry: append-only task registry.
    - clock: UTC clock used for timestamps and for "today" in `tz_name`.
    - tz_name: IANA timezone of business dates.
    - monotonic: monotonic clock for durations.
    - on_run: optional hook called with every finished `TriggerRun`.
    - logger: injected logger; module logger when omitted.

    Assumptions/Invariants:
    - `run_trigger` never raises for pipeline failures; they are recorded as FAILED.
    - Non-trading days are recorded as COMPLETED no-ops without invoking any stage.
    - Dependent stages start only after the previous stage's coroutine has completed.
    """

    def __init__(
        self,
        *,
        triggers: Sequence[TriggerDefinition],
        registry: TaskRegistry,
        clock: Clock,
        tz_name: str = DEFAULT_TIMEZONE,
        monotonic: Callable[[], float] = time.monotonic,
        on_run: Callable[[TriggerRun], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if registry is None:  # type: ignore[truthy-bool]
            raise ValueError("ScheduleCoordinator requires registry")
        if clock is None:  # type: ignore[truthy-bool]
            raise ValueError("ScheduleCoordinator requires clock")

        by_name: dict[str, TriggerDefinition] = {}
        for trigger in triggers:
            if trigger.name in by_name:
                raise ValueError(f"duplicate trigger name: {trigger.name}")
            by_name[trigger.name] = trigger
        for trigger in by_name.values():
            if trigger.after is not None and trigger.after not in by_name:
                raise ValueError(f"trigger {trigger.name} runs after unknown trigger {trigger.after}")

        self._triggers: Mapping[str, TriggerDefinition] = by_name
        self._registry = registry
        self._clock = clock
        self._tz = ZoneInfo(tz_name)
        self._monotonic = monotonic
        self._on_run = on_run
        self._log = logger if logger is not None else log

        self._inflight: dict[str, asyncio.Future[TriggerRun]] = {}
        self._background: set[asyncio.Task[TriggerRun]] = set()

    def trigger_names(self) -> tuple[str, ...]:
        return tuple(self._triggers)

    def resolve_run_date(self, trigger_name: str, run_date: date | None = None) -> date:
        """
        Return the explicit `run_date` or today's date in the coordinator timezone shifted
        by the trigger `day_offset`.
        """
        trigger = self._get(trigger_name)
        if run_date is not None:
            return run_date
        today = self._clock.now().value.astimezone(self._tz).date()
        return today + timedelta(days=trigger.day_offset)

    async def run_trigger(self, trigger_name: str, run_date: date | None = None) -> TriggerRun:
        """
        Run one trigger to completion with a fresh task id.

        Parameters:
        - trigger_name: configured trigger name.
        - run_date: optional explicit business date.

        Returns:
        - Terminal run outcome, also recorded in the task registry.

        Errors/Exceptions:
        - Raises `UnknownTrigger` for unknown names; pipeline failures never propagate.

        Side effects:
        - Executes stages and writes two task registry events.
        """
        trigger = self._get(trigger_name)
        day = self.resolve_run_date(trigger_name, run_date)
        task_id = self._new_task_id(trigger)
        completion = self._mark_inflight(trigger)
        await self._record_start_or_forget(task_id, trigger, completion)
        return await self._execute(trigger, task_id, day, completion)

    async def dispatch(self, trigger_name: str, run_date: date | None = None) -> DispatchAck:
        """
        Start one trigger in the background and acknowledge immediately.

        Parameters:
        - trigger_name: configured trigger name.
        - run_date: optional explicit business date.

        Returns:
        - `DispatchAck(task_id, "STARTED")`; the outcome is observable via the task registry.

        Errors/Exceptions:
        - Raises `UnknownTrigger` for unknown names.

        Side effects:
        - Records task start before returning and schedules an asyncio task.
        """
        trigger = self._get(trigger_name)
        day = self.resolve_run_date(trigger_name, run_date)
        task_id = self._new_task_id(trigger)
        completion = self._mark_inflight(trigger)
        await self._record_start_or_forget(task_id, trigger, completion)

        background = asyncio.create_task(
            self._execute(trigger, task_id, day, completion),
            name=f"trigger-{trigger.name}-{task_id}",
        )
        self._background.add(background)
        background.add_done_callback(self._background.discard)
        self._log.info(
            "trigger %s dispatched: task_id=%s run_date=%s",
            trigger.name,
            task_id,
            day.isoformat(),
        )
        return DispatchAck(task_id=task_id)

    async def wait_idle(self) -> None:
        """Wait until every dispatched background run has finished."""
        while self._background:
            await asyncio.wait(set(self._background))

    def _mark_inflight(self, trigger: TriggerDefinition) -> asyncio.Future[TriggerRun]:
        # Registered before the first await so dependents started right after see it.
        completion: asyncio.Future[TriggerRun] = asyncio.get_running_loop().create_future()
        self._inflight[trigger.name] = completion
        return completion

    async def _execute(
        self,
        trigger: TriggerDefinition,
        task_id: str,
        day: date,
        completion: asyncio.Future[TriggerRun],
    ) -> TriggerRun:
        started = self._monotonic()
        try:
            status, message, reports = await self._run_pipeline(trigger, task_id, day)
            duration_ms = max(int((self._monotonic() - started) * 1000), 0)
            await self._record_end(task_id, status, message, duration_ms)

            run = TriggerRun(
                task_id=task_id,
                trigger_name=trigger.name,
                run_date=day,
                status=status,
                message=message,
                duration_ms=duration_ms,
                reports=reports,
            )
            self._notify_run(run)
            completion.set_result(run)
            return run
        finally:
            if not completion.done():
                completion.cancel()
            if self._inflight.get(trigger.name) is completion:
                del self._inflight[trigger.name]

    async def _run_pipeline(
        self,
        trigger: TriggerDefinition,
        task_id: str,
        day: date,
    ) -> tuple[TaskStatus, str, tuple[str, ...]]:
        reports: list[str] = []
        try:
            if trigger.calendar is not None and not await trigger.calendar.is_trading_day(day):
                raise NonTradingDay(f"{day.isoformat()} is not a trading day")

            await self._wait_for_upstream(trigger, task_id)

            for stage in trigger.stages:
                self._log.info("task %s: stage %s started for %s", task_id, stage.name, day)
                report = await stage.run(day)
                reports.append(_describe(report))
                self._log.info("task %s: stage %s done: %s", task_id, stage.name, reports[-1])
        except NonTradingDay as skip:
            self._log.info("task %s: trigger %s skipped: %s", task_id, trigger.name, skip.message)
            return "COMPLETED", f"no-op: {skip.message}", tuple(reports)
        except Exception as error:  # noqa: BLE001
            failure = (
                error
                if isinstance(error, PipelineFailure)
                else PipelineFailure(f"{trigger.name} failed: {error!r}")
            )
            self._log.exception("task %s: trigger %s failed", task_id, trigger.name)
            return "FAILED", failure.message, tuple(reports)

        return "COMPLETED", "; ".join(reports), tuple(reports)

    def _notify_run(self, run: TriggerRun) -> None:
        if self._on_run is None:
            return
        try:
            self._on_run(run)
        except Exception:  # noqa: BLE001
            self._log.exception("task %s: on_run hook failed", run.task_id)

    async def _wait_for_upstream(self, trigger: TriggerDefinition, task_id: str) -> None:
        if trigger.after is None:
            return
        upstream = self._inflight.get(trigger.after)
        if upstream is None or upstream.done():
            return
        self._log.info("task %s: waiting for %s to complete", task_id, trigger.after)
        # asyncio.wait does not raise when the upstream run ends in cancellation.
        await asyncio.wait({upstream})

    async def _record_start_or_forget(
        self,
        task_id: str,
        trigger: TriggerDefinition,
        completion: asyncio.Future[TriggerRun],
    ) -> None:
        try:
            await self._record_start(task_id, trigger)
        except BaseException:
            completion.cancel()
            if self._inflight.get(trigger.name) is completion:
                del self._inflight[trigger.name]
            raise

    async def _record_start(self, task_id: str, trigger: TriggerDefinition) -> None:
        started_at = self._clock.now().value
        try:
            await asyncio.to_thread(self._registry.record_start, task_id, trigger.name, started_at)
        except Exception:  # noqa: BLE001
            self._log.exception("task registry start write failed: %s", task_id)

    async def _record_end(
        self,
        task_id: str,
        status: TaskStatus,
        message: str,
        duration_ms: int,
    ) -> None:
        ended_at = self._clock.now().value
        try:
            await asyncio.to_thread(
                self._registry.record_end,
                task_id,
                status,
                message,
                duration_ms,
                ended_at,
            )
        except Exception:  # noqa: BLE001
            self._log.exception("task registry end write failed: %s", task_id)

    def _get(self, trigger_name: str) -> TriggerDefinition:
        trigger = self._triggers.get(trigger_name)
        if trigger is None:
            raise UnknownTrigger(trigger_name)
        return trigger

    def _new_task_id(self, trigger: TriggerDefinition) -> str:
        return f"{trigger.task_prefix.upper()}_{uuid.uuid4().hex[:8]}"


def _describe(report: Any) -> str:
    describe = getattr(report, "describe", None)
    if callable(describe):
        return str(describe())
    return str(report)
