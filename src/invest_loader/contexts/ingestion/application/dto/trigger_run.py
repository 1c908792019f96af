from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Literal

from invest_loader.contexts.ingestion.domain import TaskStatus


@dataclass(frozen=True, slots=True)
class TriggerRun:
    """
    Outcome of one trigger invocation, mirrored into the task registry.

    Parameters:
    - task_id: opaque id returned to callers.
    - trigger_name: configured trigger name.
    - run_date: business date the stages ran for.
    - status: terminal status, `COMPLETED` or `FAILED`.
    - message: human-readable summary of every stage, or the failure text.
    - duration_ms: wall time of the whole pipeline.
    - reports: `describe()` lines of completed stages, in order.
    """

    task_id: str
    trigger_name: str
    run_date: date
    status: TaskStatus
    message: str
    duration_ms: int
    reports: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class DispatchAck:
    """Immediate acknowledgment of a dispatched trigger."""

    task_id: str
    status: Literal["STARTED"] = "STARTED"
