from __future__ import annotations

from typing import Any, Mapping, Protocol, cast

import psycopg
from psycopg.rows import dict_row


class IngestionPostgresGateway(Protocol):
    """
    IngestionPostgresGateway — minimal SQL gateway for ingestion Postgres adapters.

    Related:
      - src/invest_loader/contexts/ingestion/adapters/outbound/persistence/postgres/candle_store.py
      - src/invest_loader/contexts/ingestion/adapters/outbound/persistence/postgres/task_registry.py
      - alembic/versions/20261019_0001_ingestion_storage_v1.py
    """

    def fetch_one(self, *, query: str, parameters: Mapping[str, Any]) -> Mapping[str, Any] | None:
        """
        Execute SQL statement and return one mapped row.

        Args:
            query: SQL text.
            parameters: Bind parameters mapping.
        Returns:
            Mapping[str, Any] | None: One row or `None`.
        Assumptions:
            Query may contain `RETURNING` clause.
        Raises:
            Exception: Storage/driver errors from implementation.
        Side Effects:
            Executes one SQL statement.
        """
        ...

    def fetch_all(
        self,
        *,
        query: str,
        parameters: Mapping[str, Any],
    ) -> tuple[Mapping[str, Any], ...]:
        """
        Execute SQL statement and return all mapped rows in SQL-defined order.
        """
        ...

    def execute(self, *, query: str, parameters: Mapping[str, Any]) -> None:
        """
        Execute side-effecting SQL statement without returning rows.
        """
        ...


class PsycopgIngestionPostgresGateway(IngestionPostgresGateway):
    """
    PsycopgIngestionPostgresGateway — psycopg3 implementation of the ingestion SQL gateway.

    One short-lived connection per statement; the psycopg connection context manager
    commits on success and rolls back on error.
    """

    def __init__(self, *, dsn: str, autocommit: bool = False) -> None:
        """
        Initialize gateway with non-empty PostgreSQL DSN.

        Args:
            dsn: PostgreSQL DSN.
            autocommit: Run statements outside a transaction block
                (required by `REFRESH MATERIALIZED VIEW CONCURRENTLY`).
        Returns:
            None.
        Raises:
            ValueError: If DSN is blank.
        Side Effects:
            None.
        """
        normalized_dsn = dsn.strip()
        if not normalized_dsn:
            raise ValueError("PsycopgIngestionPostgresGateway requires non-empty dsn")
        self._dsn = normalized_dsn
        self._autocommit = autocommit

    def fetch_one(self, *, query: str, parameters: Mapping[str, Any]) -> Mapping[str, Any] | None:
        with self._connect() as connection:
            with connection.cursor() as cursor:
                cursor.execute(cast(Any, query), parameters)
                row = cursor.fetchone()
        if row is None:
            return None
        return dict(row)

    def fetch_all(
        self,
        *,
        query: str,
        parameters: Mapping[str, Any],
    ) -> tuple[Mapping[str, Any], ...]:
        with self._connect() as connection:
            with connection.cursor() as cursor:
                cursor.execute(cast(Any, query), parameters)
                rows = cursor.fetchall()
        return tuple(dict(row) for row in rows)

    def execute(self, *, query: str, parameters: Mapping[str, Any]) -> None:
        with self._connect() as connection:
            with connection.cursor() as cursor:
                cursor.execute(cast(Any, query), parameters)

    def _connect(self) -> psycopg.Connection[Any]:
        return psycopg.connect(
            self._dsn,
            row_factory=cast(Any, dict_row),
            autocommit=self._autocommit,
        )


def is_unique_violation(error: Exception) -> bool:
    """
    Detect Postgres unique-constraint conflicts.

    Args:
        error: Caught database exception.
    Returns:
        bool: `True` for SQLSTATE `23505`.
    Assumptions:
        psycopg exposes SQLSTATE on `error.sqlstate`.
    Raises:
        None.
    Side Effects:
        None.
    """
    return getattr(error, "sqlstate", None) == "23505"


__all__ = [
    "IngestionPostgresGateway",
    "PsycopgIngestionPostgresGateway",
    "is_unique_violation",
]
