from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence


@dataclass(frozen=True, slots=True)
class InvestLoaderError(Exception):
    """
    InvestLoaderError — canonical platform-level error contract for API/domain boundaries.

    Related:
      - apps/api/common/errors.py
      - src/invest_loader/contexts/ingestion/domain/errors
    """

    code: str
    message: str
    details: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        """
        Validate canonical error fields and freeze details into deterministic plain payloads.

        Args:
            None.
        Returns:
            None.
        Assumptions:
            `code` is a stable machine-readable token used for HTTP mapping.
        Raises:
            ValueError: If `code` or `message` are blank.
            TypeError: If `details` is not mapping-compatible when provided.
        Side Effects:
            Replaces frozen slots with normalized copies.
        """
        normalized_code = self.code.strip()
        normalized_message = self.message.strip()
        if not normalized_code:
            raise ValueError("InvestLoaderError.code must be non-empty")
        if not normalized_message:
            raise ValueError("InvestLoaderError.message must be non-empty")

        object.__setattr__(self, "code", normalized_code)
        object.__setattr__(self, "message", normalized_message)

        if self.details is None:
            return
        if not isinstance(self.details, Mapping):
            raise TypeError("InvestLoaderError.details must be a mapping when provided")
        normalized_details = _normalize_payload_value(value=dict(self.details))
        object.__setattr__(self, "details", normalized_details)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_payload(self) -> dict[str, Any]:
        """
        Build deterministic API payload representation.

        Args:
            None.
        Returns:
            dict[str, Any]: `{"error": {"code", "message", "details"}}` payload.
        Assumptions:
            `details` payload is already normalized during object initialization.
        Raises:
            None.
        Side Effects:
            None.
        """
        details_payload: Mapping[str, Any] = self.details if self.details is not None else {}
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": dict(details_payload),
            }
        }


def _normalize_payload_value(*, value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            str(raw_key): _normalize_payload_value(value=raw_value)
            for raw_key, raw_value in sorted(value.items(), key=lambda item: str(item[0]))
        }

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_normalize_payload_value(value=item) for item in value]

    if isinstance(value, (str, int, float, bool)) or value is None:
        return value

    return str(value)


__all__ = ["InvestLoaderError"]
