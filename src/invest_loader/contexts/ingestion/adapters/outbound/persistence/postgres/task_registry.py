from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from invest_loader.contexts.ingestion.application.ports.stores import TaskRegistry
from invest_loader.contexts.ingestion.domain import IngestionTask, TaskRegistryError, TaskStatus

from .gateway import IngestionPostgresGateway, is_unique_violation


class PostgresTaskRegistry(TaskRegistry):
    """
    PostgresTaskRegistry — append-only task lifecycle events, one `start` and one `end` row
    per task, guarded by primary key `(task_id, phase)`.

    Related:
      - src/invest_loader/contexts/ingestion/application/ports/stores/task_registry.py
      - src/invest_loader/contexts/ingestion/application/services/schedule_coordinator.py
      - alembic/versions/20261019_0001_ingestion_storage_v1.py
    """

    def __init__(
        self,
        *,
        gateway: IngestionPostgresGateway,
        events_table: str = "invest.ingestion_task_events",
    ) -> None:
        if gateway is None:  # type: ignore[truthy-bool]
            raise ValueError("PostgresTaskRegistry requires gateway")
        normalized_table = events_table.strip()
        if not normalized_table:
            raise ValueError("PostgresTaskRegistry requires non-empty events_table")
        self._gateway = gateway
        self._events_table = normalized_table

    def record_start(self, task_id: str, stage_name: str, started_at: datetime) -> None:
        """
        Append the `start` event of a task.

        Args:
            task_id: Opaque task id.
            stage_name: Trigger or stage name.
            started_at: UTC start timestamp.
        Returns:
            None.
        Raises:
            TaskRegistryError: If the task already has a start event.
        Side Effects:
            Executes one SQL insert statement.
        """
        query = f"""
        INSERT INTO {self._events_table}
        (
            task_id,
            phase,
            stage_name,
            status,
            message,
            duration_ms,
            recorded_at
        )
        VALUES
        (
            %(task_id)s,
            'start',
            %(stage_name)s,
            'STARTED',
            NULL,
            NULL,
            %(recorded_at)s
        )
        """
        try:
            self._gateway.execute(
                query=query,
                parameters={
                    "task_id": task_id,
                    "stage_name": stage_name,
                    "recorded_at": started_at,
                },
            )
        except Exception as error:  # noqa: BLE001
            if is_unique_violation(error):
                raise TaskRegistryError(
                    f"task {task_id} already started",
                    details={"task_id": task_id},
                ) from error
            raise

    def record_end(
        self,
        task_id: str,
        status: TaskStatus,
        message: str,
        duration_ms: int,
        ended_at: datetime,
    ) -> None:
        """
        Append the terminal `end` event of a started task.

        Args:
            task_id: Opaque task id.
            status: `COMPLETED` or `FAILED`.
            message: Outcome summary.
            duration_ms: Pipeline wall time.
            ended_at: UTC end timestamp.
        Returns:
            None.
        Raises:
            TaskRegistryError: If the task was never started or already ended.
            ValueError: If `status` is not terminal.
        Side Effects:
            Executes one SQL insert statement.
        """
        if status not in ("COMPLETED", "FAILED"):
            raise ValueError(f"record_end requires terminal status, got {status!r}")
        query = f"""
        INSERT INTO {self._events_table}
        (
            task_id,
            phase,
            stage_name,
            status,
            message,
            duration_ms,
            recorded_at
        )
        SELECT
            started.task_id,
            'end',
            started.stage_name,
            %(status)s,
            %(message)s,
            %(duration_ms)s,
            %(recorded_at)s
        FROM {self._events_table} AS started
        WHERE started.task_id = %(task_id)s
          AND started.phase = 'start'
        RETURNING task_id
        """
        try:
            row = self._gateway.fetch_one(
                query=query,
                parameters={
                    "task_id": task_id,
                    "status": status,
                    "message": message,
                    "duration_ms": duration_ms,
                    "recorded_at": ended_at,
                },
            )
        except Exception as error:  # noqa: BLE001
            if is_unique_violation(error):
                raise TaskRegistryError(
                    f"task {task_id} already ended",
                    details={"task_id": task_id},
                ) from error
            raise
        if row is None:
            raise TaskRegistryError(f"task {task_id} was never started", details={"task_id": task_id})

    def get(self, task_id: str) -> IngestionTask | None:
        query = f"""
        SELECT
            task_id,
            phase,
            stage_name,
            status,
            message,
            duration_ms,
            recorded_at
        FROM {self._events_table}
        WHERE task_id = %(task_id)s
        ORDER BY recorded_at ASC, phase DESC
        """
        rows = self._gateway.fetch_all(query=query, parameters={"task_id": task_id})
        return _fold_task_events(rows=rows)


def _fold_task_events(*, rows: tuple[Mapping[str, Any], ...]) -> IngestionTask | None:
    start = next((row for row in rows if row["phase"] == "start"), None)
    if start is None:
        return None
    end = next((row for row in rows if row["phase"] == "end"), None)
    if end is None:
        return IngestionTask(
            task_id=str(start["task_id"]),
            stage_name=str(start["stage_name"]),
            status="STARTED",
            started_at=start["recorded_at"],
        )
    return IngestionTask(
        task_id=str(start["task_id"]),
        stage_name=str(start["stage_name"]),
        status=end["status"],
        started_at=start["recorded_at"],
        ended_at=end["recorded_at"],
        message=end["message"],
        duration_ms=end["duration_ms"],
    )
