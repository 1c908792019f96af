from .ingestion import build_ingestion_router

__all__ = ["build_ingestion_router"]
