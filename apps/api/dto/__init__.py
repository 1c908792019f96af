from .ingestion import (
    IngestionTaskResponse,
    RateLimitStatsResponse,
    SessionPriceItemResponse,
    SessionPricePreviewResponse,
    TriggerDispatchResponse,
    TriggersResponse,
    build_ingestion_task_response,
    build_rate_limit_stats_response,
    build_session_price_preview_response,
    build_trigger_dispatch_response,
)

__all__ = [
    "IngestionTaskResponse",
    "RateLimitStatsResponse",
    "SessionPriceItemResponse",
    "SessionPricePreviewResponse",
    "TriggerDispatchResponse",
    "TriggersResponse",
    "build_ingestion_task_response",
    "build_rate_limit_stats_response",
    "build_session_price_preview_response",
    "build_trigger_dispatch_response",
]
