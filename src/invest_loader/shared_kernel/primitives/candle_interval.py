from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Mapping


@dataclass(frozen=True, slots=True)
class CandleInterval:
    """
    CandleInterval — candle granularity: `minute` or `day`.

    The upstream provider names intervals `CANDLE_INTERVAL_1_MIN` / `CANDLE_INTERVAL_DAY`;
    `wire_name` exposes that mapping so adapters do not duplicate it.
    """

    code: str

    _WIRE_NAMES: ClassVar[Mapping[str, str]] = {
        "minute": "CANDLE_INTERVAL_1_MIN",
        "day": "CANDLE_INTERVAL_DAY",
    }

    def __post_init__(self) -> None:
        if self.code not in self._WIRE_NAMES:
            raise ValueError(
                f"CandleInterval must be one of {sorted(self._WIRE_NAMES)}, got {self.code!r}"
            )

    @property
    def wire_name(self) -> str:
        return self._WIRE_NAMES[self.code]

    @classmethod
    def minute(cls) -> CandleInterval:
        return cls("minute")

    @classmethod
    def day(cls) -> CandleInterval:
        return cls("day")

    def __str__(self) -> str:
        return self.code
