from __future__ import annotations

import logging
from typing import Any, Mapping

from invest_loader.contexts.ingestion.domain import (
    INSERTED,
    SKIPPED_EXISTING,
    PersistenceConflict,
    PutResult,
)

from .gateway import IngestionPostgresGateway, is_unique_violation

log = logging.getLogger(__name__)


def insert_if_absent(
    *,
    gateway: IngestionPostgresGateway,
    query: str,
    parameters: Mapping[str, Any],
    key: str,
) -> PutResult:
    """
    Run one `INSERT ... ON CONFLICT DO NOTHING RETURNING` statement as a conditional insert.

    Args:
        gateway: SQL gateway.
        query: Insert statement returning one row only when a row was written.
        parameters: Bind parameters.
        key: Natural key rendering used in logs.
    Returns:
        PutResult: `inserted` when a row came back, `skipped_existing` otherwise.
    Assumptions:
        The target table declares the natural key as primary key or unique constraint,
        so a concurrent writer surfaces either as no returned row or as SQLSTATE 23505.
    Raises:
        Exception: Any non-conflict storage error.
    Side Effects:
        Executes one SQL insert statement.
    """
    try:
        row = gateway.fetch_one(query=query, parameters=parameters)
    except Exception as error:  # noqa: BLE001
        if not is_unique_violation(error):
            raise
        conflict = PersistenceConflict(f"concurrent insert of {key}", details={"key": key})
        log.debug("resolved as skipped_existing: %s", conflict.message)
        return SKIPPED_EXISTING
    if row is None:
        return SKIPPED_EXISTING
    return INSERTED
