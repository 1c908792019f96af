from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class InstrumentId:
    """
    InstrumentId — provider-assigned unique instrument identity (FIGI-like string).

    Important:
    - the display ticker is NOT the identity; it lives on `Instrument`.
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise ValueError("InstrumentId requires a string value")
        normalized = self.value.strip()
        if not normalized:
            raise ValueError("InstrumentId requires non-empty value")
        object.__setattr__(self, "value", normalized)

    def __str__(self) -> str:
        return self.value
