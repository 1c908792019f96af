from __future__ import annotations

from datetime import datetime
from typing import Protocol

from invest_loader.contexts.ingestion.domain import IngestionTask, TaskStatus


class TaskRegistry(Protocol):
    """
    TaskRegistry — append-only audit of pipeline task lifecycle.

    Contract:
    - record_start(task_id, stage_name, started_at) — exactly once per task id
    - record_end(task_id, status, message, duration_ms, ended_at) — exactly once, after start
    - get(task_id) -> IngestionTask | None

    Assumptions/Invariants:
    - Observability only; orchestration never reads it to decide progress.

    Errors/Exceptions:
    - `TaskRegistryError` when a write-once rule is violated.
    """

    def record_start(self, task_id: str, stage_name: str, started_at: datetime) -> None:
        ...

    def record_end(
        self,
        task_id: str,
        status: TaskStatus,
        message: str,
        duration_ms: int,
        ended_at: datetime,
    ) -> None:
        ...

    def get(self, task_id: str) -> IngestionTask | None:
        ...
