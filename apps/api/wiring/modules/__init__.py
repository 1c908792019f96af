from .ingestion import (
    IngestionApiModule,
    build_ingestion_api_module,
    build_ingestion_router_for_runtime,
)

__all__ = [
    "IngestionApiModule",
    "build_ingestion_api_module",
    "build_ingestion_router_for_runtime",
]
