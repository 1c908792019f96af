from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from invest_loader.contexts.ingestion.application.dto import AggregationRefreshReport
from invest_loader.contexts.ingestion.application.ports.stores import AggregationRefresher

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RefreshVolumeAggregationUseCase:
    """
    Delegate volume aggregation refreshes to the SQL-side aggregation engine.

    The aggregation itself is opaque; this use case only sequences and reports the calls.
    """

    refresher: AggregationRefresher

    def __post_init__(self) -> None:
        if self.refresher is None:  # type: ignore[truthy-bool]
            raise ValueError("RefreshVolumeAggregationUseCase requires refresher")

    async def refresh_today(self) -> AggregationRefreshReport:
        await asyncio.to_thread(self.refresher.refresh_today)
        log.info("volume aggregation refreshed: today")
        return AggregationRefreshReport(scope="today")

    async def refresh_full(self) -> AggregationRefreshReport:
        await asyncio.to_thread(self.refresher.refresh_full)
        log.info("volume aggregation refreshed: full")
        return AggregationRefreshReport(scope="full")
