from __future__ import annotations

from typing import Any, Mapping

from invest_loader.platform.errors import InvestLoaderError


class UpstreamFetchError(InvestLoaderError):
    """
    One instrument's call to the market-data provider failed (network, timeout, remote error).

    Isolated per instrument: counted and logged, the batch continues.
    """

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(code="upstream_error", message=message, details=details)


class RateLimitExceeded(InvestLoaderError):
    """
    The concurrency gate could not grant a permit within the bounded wait.

    Recoverable: the caller may retry the single instrument.
    """

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(code="rate_limited", message=message, details=details)


class ValidationError(InvestLoaderError):
    """
    A returned record fails a sanity check (non-positive price, incomplete candle, missing id).

    The record is dropped and counted separately from errored instruments.
    """

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(code="validation_error", message=message, details=details)


class NonTradingDay(InvestLoaderError):
    """
    No session exists for the requested date; pipelines record it as a successful no-op.
    """

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(code="non_trading_day", message=message, details=details)


class PersistenceConflict(InvestLoaderError):
    """
    A concurrent writer already inserted the same natural key.

    Stores resolve it as `skipped_existing`; it never reaches callers as a failure.
    """

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(code="conflict", message=message, details=details)


class PipelineFailure(InvestLoaderError):
    """
    Unexpected stage-level failure not attributable to one instrument.
    """

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(code="unexpected_error", message=message, details=details)


class UnknownTrigger(InvestLoaderError):
    def __init__(self, trigger_name: str) -> None:
        super().__init__(
            code="not_found",
            message=f"Unknown trigger: {trigger_name}",
            details={"trigger": trigger_name},
        )


class TaskRegistryError(InvestLoaderError):
    """
    Task lifecycle write-once rule violated (second start/end, end without start).
    """

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(code="conflict", message=message, details=details)


__all__ = [
    "NonTradingDay",
    "PersistenceConflict",
    "PipelineFailure",
    "RateLimitExceeded",
    "TaskRegistryError",
    "UnknownTrigger",
    "UpstreamFetchError",
    "ValidationError",
]
