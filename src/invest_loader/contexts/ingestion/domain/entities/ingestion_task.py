from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

TaskStatus = Literal["STARTED", "COMPLETED", "FAILED"]

TERMINAL_TASK_STATUSES: frozenset[str] = frozenset({"COMPLETED", "FAILED"})


@dataclass(frozen=True, slots=True)
class IngestionTask:
    """
    IngestionTask — lifecycle snapshot of one dispatched pipeline run.

    Assumptions/Invariants:
    - Created at dispatch with status `STARTED`.
    - Terminal fields (`ended_at`, `message`, `duration_ms`) are written exactly once.
    """

    task_id: str
    stage_name: str
    status: TaskStatus
    started_at: datetime
    ended_at: datetime | None = None
    message: str | None = None
    duration_ms: int | None = None

    def __post_init__(self) -> None:
        if not self.task_id.strip():
            raise ValueError("IngestionTask requires non-empty task_id")
        if self.status not in ("STARTED", "COMPLETED", "FAILED"):
            raise ValueError(f"IngestionTask.status is unsupported: {self.status!r}")
        if self.status in TERMINAL_TASK_STATUSES and self.ended_at is None:
            raise ValueError("Terminal IngestionTask requires ended_at")
        if self.duration_ms is not None and self.duration_ms < 0:
            raise ValueError("IngestionTask.duration_ms must be >= 0")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TASK_STATUSES
