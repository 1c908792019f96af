from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from .utc_timestamp import UtcTimestamp


@dataclass(frozen=True, slots=True)
class TimeRange:
    """
    TimeRange — standard time interval.

    Semantics:
    - half-open [start, end): start included, end excluded.

    Invariants:
    - start < end
    """

    start: UtcTimestamp
    end: UtcTimestamp

    def __post_init__(self) -> None:
        if self.start.value >= self.end.value:
            raise ValueError(
                f"TimeRange requires start < end, got start={self.start} end={self.end}"
            )

    @classmethod
    def local_day(cls, day: date, tz_name: str) -> TimeRange:
        """
        Build `[local midnight, next local midnight)` of `day` in an IANA timezone.

        Parameters:
        - day: calendar date interpreted in `tz_name`.
        - tz_name: IANA zone name, e.g. `Europe/Moscow`.

        Returns:
        - Absolute UTC range; DST transition days last 23 or 25 hours.

        Errors/Exceptions:
        - `zoneinfo.ZoneInfoNotFoundError` for unknown zone names.
        """
        tz = ZoneInfo(tz_name)
        start = datetime.combine(day, time.min, tzinfo=tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
        return cls(start=UtcTimestamp(start), end=UtcTimestamp(end))

    def duration(self) -> timedelta:
        """Range length as timedelta (end - start)."""
        return self.end.value - self.start.value

    def contains(self, ts: UtcTimestamp) -> bool:
        """Point membership with [start, end) semantics."""
        return self.start.value <= ts.value < self.end.value

    def overlap(self, other: TimeRange) -> bool:
        """Whether two half-open ranges intersect."""
        return self.start.value < other.end.value and other.start.value < self.end.value
