from .runtime_config import (
    TRIGGER_STAGES,
    BackoffConfig,
    GateConfig,
    IngestionRuntimeConfig,
    SessionPricesConfig,
    StorageConfig,
    TInvestConfig,
    TriggerConfig,
    load_ingestion_runtime_config,
    resolve_ingestion_config_path,
)

__all__ = [
    "BackoffConfig",
    "GateConfig",
    "IngestionRuntimeConfig",
    "SessionPricesConfig",
    "StorageConfig",
    "TInvestConfig",
    "TRIGGER_STAGES",
    "TriggerConfig",
    "load_ingestion_runtime_config",
    "resolve_ingestion_config_path",
]
