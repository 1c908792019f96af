from __future__ import annotations

from datetime import datetime, timezone

from invest_loader.contexts.ingestion.application.ports.clock.clock import Clock
from invest_loader.shared_kernel.primitives import UtcTimestamp


class SystemClock(Clock):
    """
    SystemClock — platform Clock backed by the host wall clock.

    Returns UtcTimestamp(datetime.now(timezone.utc)).
    """

    def now(self) -> UtcTimestamp:
        return UtcTimestamp(datetime.now(timezone.utc))
