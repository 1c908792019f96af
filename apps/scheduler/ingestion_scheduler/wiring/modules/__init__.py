from .ingestion_runtime import (
    IngestionMetrics,
    IngestionRuntime,
    IngestionStorage,
    build_ingestion_runtime,
    build_ingestion_storage,
    build_trigger_definition,
)
from .ingestion_scheduler import (
    IngestionSchedulerApp,
    build_cron_trigger,
    build_ingestion_scheduler_app,
)

__all__ = [
    "IngestionMetrics",
    "IngestionRuntime",
    "IngestionSchedulerApp",
    "IngestionStorage",
    "build_cron_trigger",
    "build_ingestion_runtime",
    "build_ingestion_scheduler_app",
    "build_ingestion_storage",
    "build_trigger_definition",
]
