from __future__ import annotations

import asyncio
import itertools
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from invest_loader.contexts.ingestion.application.dto import GateStats, Permit
from invest_loader.contexts.ingestion.domain import RateLimitExceeded

log = logging.getLogger(__name__)

DEFAULT_MAX_PERMITS = 5
DEFAULT_ACQUIRE_TIMEOUT_S = 30.0
DEFAULT_MIN_INTERVAL_S = 0.1


class ConcurrencyGate:
    """
    Bounded permit pool shared by every outbound call to the market-data provider.

    Parameters:
    - max_permits: maximum simultaneous in-flight upstream calls across all operation classes.
    - acquire_timeout_s: default bounded wait for one permit.
    - min_interval_s: minimum spacing between two grants of the same operation class.
    - monotonic: monotonic clock, injectable for tests.
    - logger: injected logger; module logger when omitted.

    Assumptions/Invariants:
    - Used from one event loop; counters change only between awaits, so
      `used_permits + available_permits == max_permits` holds at every observation.
    - A permit is released exactly once, on every exit path of the protected call.
    """

    def __init__(
        self,
        *,
        max_permits: int = DEFAULT_MAX_PERMITS,
        acquire_timeout_s: float = DEFAULT_ACQUIRE_TIMEOUT_S,
        min_interval_s: float = DEFAULT_MIN_INTERVAL_S,
        monotonic: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Validate limits and initialize empty permit bookkeeping.

        Parameters:
        - max_permits: pool capacity.
        - acquire_timeout_s: default wait bound in seconds.
        - min_interval_s: per-class spacing in seconds, `0` disables spacing.
        - monotonic: clock callable.
        - logger: optional logger.

        Returns:
        - None.

        Errors/Exceptions:
        - Raises `ValueError` on non-positive capacity/timeout or negative interval.

        Side effects:
        - None.
        """
        if max_permits <= 0:
            raise ValueError(f"max_permits must be > 0, got {max_permits}")
        if acquire_timeout_s <= 0:
            raise ValueError(f"acquire_timeout_s must be > 0, got {acquire_timeout_s}")
        if min_interval_s < 0:
            raise ValueError(f"min_interval_s must be >= 0, got {min_interval_s}")

        self._max_permits = max_permits
        self._acquire_timeout_s = acquire_timeout_s
        self._min_interval_s = min_interval_s
        self._monotonic = monotonic
        self._log = logger if logger is not None else log

        self._semaphore = asyncio.Semaphore(max_permits)
        self._ids = itertools.count(1)
        self._active: dict[int, Permit] = {}
        self._next_grant_at: dict[str, float] = {}

    @property
    def max_permits(self) -> int:
        return self._max_permits

    async def acquire(self, operation_class: str, *, timeout_s: float | None = None) -> Permit:
        """
        Wait for a free slot and lease it to one upstream call.

        Parameters:
        - operation_class: logical upstream operation name.
        - timeout_s: optional override of the default bounded wait.

        Returns:
        - Leased permit; caller must pass it to `release` exactly once.

        Assumptions/Invariants:
        - Spacing for the class is applied while the permit is already held.

        Errors/Exceptions:
        - Raises `RateLimitExceeded` when no slot frees up within the wait bound.
        - Raises `ValueError` for blank operation class.

        Side effects:
        - Occupies one pool slot.
        """
        if not operation_class.strip():
            raise ValueError("operation_class must be non-empty")
        wait_s = self._acquire_timeout_s if timeout_s is None else timeout_s

        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=wait_s)
        except TimeoutError as error:
            self._log.warning(
                "concurrency gate timeout: operation=%s wait_s=%s used=%s max=%s",
                operation_class,
                wait_s,
                len(self._active),
                self._max_permits,
            )
            raise RateLimitExceeded(
                f"No permit for {operation_class} within {wait_s}s",
                details={"operation_class": operation_class, "max_permits": self._max_permits},
            ) from error

        permit = Permit(
            permit_id=next(self._ids),
            operation_class=operation_class,
            acquired_at=self._monotonic(),
        )
        self._active[permit.permit_id] = permit

        try:
            await self._respect_min_interval(operation_class)
        except BaseException:
            self.release(permit)
            raise
        return permit

    def release(self, permit: Permit) -> None:
        """
        Return a leased slot to the pool.

        Parameters:
        - permit: permit returned by `acquire`.

        Returns:
        - None.

        Errors/Exceptions:
        - Raises `ValueError` for unknown or already released permits.

        Side effects:
        - Wakes one waiter when present.
        """
        if self._active.pop(permit.permit_id, None) is None:
            raise ValueError(f"permit {permit.permit_id} is not held (double release?)")
        self._semaphore.release()

    @asynccontextmanager
    async def permit(
        self,
        operation_class: str,
        *,
        timeout_s: float | None = None,
    ) -> AsyncIterator[Permit]:
        """Hold one permit for the body of an `async with` block."""
        leased = await self.acquire(operation_class, timeout_s=timeout_s)
        try:
            yield leased
        finally:
            self.release(leased)

    def stats(self) -> GateStats:
        used = len(self._active)
        return GateStats(
            max_permits=self._max_permits,
            used_permits=used,
            available_permits=self._max_permits - used,
            active_operation_classes=tuple(
                sorted({permit.operation_class for permit in self._active.values()})
            ),
        )

    async def _respect_min_interval(self, operation_class: str) -> None:
        if self._min_interval_s == 0:
            return
        now = self._monotonic()
        grant_at = max(now, self._next_grant_at.get(operation_class, now))
        # Reserve the slot before sleeping so concurrent grants of one class queue up.
        self._next_grant_at[operation_class] = grant_at + self._min_interval_s
        delay = grant_at - now
        if delay > 0:
            await asyncio.sleep(delay)
