from .ingestion_errors import (
    NonTradingDay,
    PersistenceConflict,
    PipelineFailure,
    RateLimitExceeded,
    TaskRegistryError,
    UnknownTrigger,
    UpstreamFetchError,
    ValidationError,
)

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
