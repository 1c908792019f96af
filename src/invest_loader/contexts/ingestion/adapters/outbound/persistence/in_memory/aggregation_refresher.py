from __future__ import annotations

import threading

from invest_loader.contexts.ingestion.application.ports.stores import AggregationRefresher


class InMemoryAggregationRefresher(AggregationRefresher):
    """Counts refresh calls; used where no materialized views exist."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.today_refreshes = 0
        self.full_refreshes = 0

    def refresh_today(self) -> None:
        with self._lock:
            self.today_refreshes += 1

    def refresh_full(self) -> None:
        with self._lock:
            self.full_refreshes += 1
