from __future__ import annotations

import logging

from invest_loader.contexts.ingestion.application.ports.stores import AggregationRefresher

from .gateway import IngestionPostgresGateway

log = logging.getLogger(__name__)


class PostgresAggregationRefresher(AggregationRefresher):
    """
    PostgresAggregationRefresher — refreshes volume aggregation materialized views.

    `CONCURRENTLY` keeps readers unblocked but needs a unique index and a populated view;
    when it fails the plain refresh is used.

    Assumptions/Invariants:
    - The gateway runs in autocommit mode (`REFRESH ... CONCURRENTLY` cannot run inside a
      transaction block).
    """

    def __init__(
        self,
        *,
        gateway: IngestionPostgresGateway,
        today_view: str = "invest.today_volume_aggregation",
        full_view: str = "invest.daily_volume_aggregation",
    ) -> None:
        if gateway is None:  # type: ignore[truthy-bool]
            raise ValueError("PostgresAggregationRefresher requires gateway")
        if not today_view.strip() or not full_view.strip():
            raise ValueError("PostgresAggregationRefresher requires non-empty view names")
        self._gateway = gateway
        self._today_view = today_view.strip()
        self._full_view = full_view.strip()

    def refresh_today(self) -> None:
        self._refresh(self._today_view)

    def refresh_full(self) -> None:
        self._refresh(self._full_view)

    def _refresh(self, view: str) -> None:
        try:
            self._gateway.execute(
                query=f"REFRESH MATERIALIZED VIEW CONCURRENTLY {view}",
                parameters={},
            )
        except Exception:  # noqa: BLE001
            log.warning("concurrent refresh of %s failed, running plain refresh", view, exc_info=True)
            self._gateway.execute(query=f"REFRESH MATERIALIZED VIEW {view}", parameters={})
