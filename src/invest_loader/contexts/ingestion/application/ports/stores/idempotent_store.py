from __future__ import annotations

from typing import Protocol, TypeVar

from invest_loader.contexts.ingestion.domain import PutResult

R_contra = TypeVar("R_contra", contravariant=True)


class IdempotentStore(Protocol[R_contra]):
    """
    IdempotentStore — conditional insert keyed by the record natural key.

    Contract:
    - put_if_absent(record) -> "inserted" | "skipped_existing"

    Assumptions/Invariants:
    - Storage enforces the natural key as a uniqueness constraint.
    - A conflict raised by a concurrent writer resolves to "skipped_existing".
    """

    def put_if_absent(self, record: R_contra) -> PutResult:
        ...
