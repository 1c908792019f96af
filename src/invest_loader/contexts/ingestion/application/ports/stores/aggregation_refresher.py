from __future__ import annotations

from typing import Protocol


class AggregationRefresher(Protocol):
    """
    AggregationRefresher — opaque SQL-side volume aggregation engine.

    Contract:
    - refresh_today(): cheap, run frequently
    - refresh_full(): expensive, run once daily
    """

    def refresh_today(self) -> None:
        ...

    def refresh_full(self) -> None:
        ...
