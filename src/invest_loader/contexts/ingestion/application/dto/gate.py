from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Permit:
    """
    Lease against the concurrency gate capacity.

    Parameters:
    - permit_id: gate-local monotonically increasing id.
    - operation_class: logical upstream operation name (`candles`, `last_trades`, ...).
    - acquired_at: monotonic clock value at grant time.

    Assumptions/Invariants:
    - Held for the duration of one upstream call and released exactly once.
    - Never persisted.
    """

    permit_id: int
    operation_class: str
    acquired_at: float


@dataclass(frozen=True, slots=True)
class GateStats:
    """
    Point-in-time gate snapshot for health/monitoring, never for flow control.

    Assumptions/Invariants:
    - `used_permits + available_permits == max_permits`.
    """

    max_permits: int
    used_permits: int
    available_permits: int
    active_operation_classes: tuple[str, ...]

    def __post_init__(self) -> None:
        if self.used_permits + self.available_permits != self.max_permits:
            raise ValueError(
                "GateStats requires used_permits + available_permits == max_permits, got "
                f"{self.used_permits} + {self.available_permits} != {self.max_permits}"
            )
