from __future__ import annotations

from typing import Protocol

from invest_loader.shared_kernel.primitives import UtcTimestamp


class Clock(Protocol):
    """
    Clock — source of "now" for the application layer, always UTC.

    Contract:
    - now() -> UtcTimestamp
    """

    def now(self) -> UtcTimestamp:
        ...
