from __future__ import annotations

import threading
from datetime import datetime

from invest_loader.contexts.ingestion.application.ports.stores import TaskRegistry
from invest_loader.contexts.ingestion.domain import IngestionTask, TaskRegistryError, TaskStatus


class InMemoryTaskRegistry(TaskRegistry):
    """
    InMemoryTaskRegistry — write-once task lifecycle records held in process memory.

    Related:
      - src/invest_loader/contexts/ingestion/adapters/outbound/persistence/postgres/task_registry.py
      - apps/api/wiring/modules/ingestion.py
    """

    def __init__(self) -> None:
        """
        Initialize empty task storage.

        Args:
            None.
        Returns:
            None.
        Assumptions:
            Adapter lifetime is process-local and non-persistent.
        Raises:
            None.
        Side Effects:
            Creates mutable in-memory dictionary state.
        """
        self._lock = threading.Lock()
        self._tasks: dict[str, IngestionTask] = {}

    def record_start(self, task_id: str, stage_name: str, started_at: datetime) -> None:
        with self._lock:
            if task_id in self._tasks:
                raise TaskRegistryError(
                    f"task {task_id} already started",
                    details={"task_id": task_id},
                )
            self._tasks[task_id] = IngestionTask(
                task_id=task_id,
                stage_name=stage_name,
                status="STARTED",
                started_at=started_at,
            )

    def record_end(
        self,
        task_id: str,
        status: TaskStatus,
        message: str,
        duration_ms: int,
        ended_at: datetime,
    ) -> None:
        """
        Record the terminal outcome of a started task exactly once.

        Args:
            task_id: Opaque task id.
            status: `COMPLETED` or `FAILED`.
            message: Outcome summary.
            duration_ms: Pipeline wall time.
            ended_at: UTC end timestamp.
        Returns:
            None.
        Assumptions:
            Start and end records are immutable once written.
        Raises:
            TaskRegistryError: For unknown or already terminal tasks.
            ValueError: If `status` is not terminal.
        Side Effects:
            Replaces the in-memory snapshot of the task.
        """
        if status not in ("COMPLETED", "FAILED"):
            raise ValueError(f"record_end requires terminal status, got {status!r}")
        with self._lock:
            started = self._tasks.get(task_id)
            if started is None:
                raise TaskRegistryError(
                    f"task {task_id} was never started",
                    details={"task_id": task_id},
                )
            if started.is_terminal:
                raise TaskRegistryError(
                    f"task {task_id} already ended",
                    details={"task_id": task_id},
                )
            self._tasks[task_id] = IngestionTask(
                task_id=task_id,
                stage_name=started.stage_name,
                status=status,
                started_at=started.started_at,
                ended_at=ended_at,
                message=message,
                duration_ms=duration_ms,
            )

    def get(self, task_id: str) -> IngestionTask | None:
        with self._lock:
            return self._tasks.get(task_id)
