from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from invest_loader.shared_kernel.primitives import InstrumentId


@dataclass(frozen=True, slots=True)
class Success:
    """Upstream returned records; `records` holds the rows that passed validation."""

    records: tuple[Any, ...]


@dataclass(frozen=True, slots=True)
class NoData:
    """Upstream returned nothing for the instrument; not an error."""


@dataclass(frozen=True, slots=True)
class Error:
    """Processing of one instrument failed; `cause` is kept for logging and reports."""

    cause: BaseException


FetchOutcome = Union[Success, NoData, Error]


@dataclass(frozen=True, slots=True)
class InstrumentReport:
    """
    Per-instrument result of one batch stage.

    Parameters:
    - instrument_id: processed instrument.
    - outcome: tagged outcome `Success | NoData | Error`.
    - inserted: records newly written.
    - skipped_existing: records whose natural key already existed.
    - invalid_filtered: records dropped by validation.
    """

    instrument_id: InstrumentId
    outcome: FetchOutcome
    inserted: int = 0
    skipped_existing: int = 0
    invalid_filtered: int = 0

    @property
    def outcome_label(self) -> str:
        if isinstance(self.outcome, Success):
            return "success"
        if isinstance(self.outcome, NoData):
            return "no_data"
        return "error"
