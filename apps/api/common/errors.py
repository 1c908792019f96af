"""
Shared API error handlers: InvestLoaderError payloads and deterministic 422 payloads.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence, cast

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from invest_loader.platform.errors import InvestLoaderError

_STATUS_BY_ERROR_CODE: Mapping[str, int] = {
    "validation_error": 422,
    "not_found": 404,
    "conflict": 409,
    "non_trading_day": 409,
    "rate_limited": 429,
    "upstream_error": 502,
    "unexpected_error": 500,
}


def register_api_error_handlers(*, app: FastAPI) -> None:
    """
    Register global API handlers for InvestLoaderError and FastAPI validation errors.

    Args:
        app: FastAPI application instance.
    Returns:
        None.
    Assumptions:
        Handlers are installed once during application startup.
    Raises:
        ValueError: If `app` dependency is missing.
    Side Effects:
        Mutates FastAPI exception-handler registry.
    """
    if app is None:  # type: ignore[truthy-bool]
        raise ValueError("register_api_error_handlers requires app")

    app.add_exception_handler(InvestLoaderError, invest_loader_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)


def status_code_for_error_code(code: str) -> int:
    """Map a machine-readable error code onto HTTP status; unknown codes are 500."""
    return _STATUS_BY_ERROR_CODE.get(code, 500)


def invest_loader_error_handler(_request: Request, error: Exception) -> JSONResponse:
    """
    Convert InvestLoaderError into `{"error": {"code", "message", "details"}}` response.

    Args:
        _request: Starlette request object (unused).
        error: Raised InvestLoaderError instance.
    Returns:
        JSONResponse: Contract payload with status derived from `error.code`.
    Assumptions:
        Details are already normalized to JSON-compatible values by the error itself.
    Raises:
        None.
    Side Effects:
        None.
    """
    loader_error = cast(InvestLoaderError, error)
    return JSONResponse(
        status_code=status_code_for_error_code(loader_error.code),
        content=loader_error.to_payload(),
    )


def request_validation_error_handler(_request: Request, error: Exception) -> JSONResponse:
    """
    Convert FastAPI RequestValidationError to canonical `validation_error` payload.

    Args:
        _request: Starlette request object (unused).
        error: Raised validation exception from FastAPI/Pydantic.
    Returns:
        JSONResponse: HTTP 422 payload with deterministically sorted `details.errors` list.
    Assumptions:
        Validation errors include `loc`, `type`, and `msg` keys.
    Raises:
        None.
    Side Effects:
        None.
    """
    validation_error = cast(RequestValidationError, error)
    loader_error = InvestLoaderError(
        code="validation_error",
        message="Validation failed",
        details={"errors": _sorted_validation_errors(raw_errors=validation_error.errors())},
    )
    return invest_loader_error_handler(_request, loader_error)


def _sorted_validation_errors(*, raw_errors: Any) -> list[dict[str, str]]:
    if not isinstance(raw_errors, Sequence) or isinstance(raw_errors, (str, bytes, bytearray)):
        return []

    items: list[dict[str, str]] = []
    for raw_error in raw_errors:
        if not isinstance(raw_error, Mapping):
            items.append({"path": "unknown", "code": "validation_error", "message": str(raw_error)})
            continue
        items.append(
            {
                "path": _normalize_error_path(loc=raw_error.get("loc")),
                "code": _normalize_error_code(raw_type=raw_error.get("type")),
                "message": str(raw_error.get("msg", "Validation error")),
            }
        )
    return sorted(items, key=lambda item: (item["path"], item["code"], item["message"]))


def _normalize_error_path(*, loc: Any) -> str:
    # ("query", "date") -> "query.date"
    if isinstance(loc, Sequence) and not isinstance(loc, (str, bytes, bytearray)):
        path_parts = [str(part) for part in loc]
        if path_parts:
            return ".".join(path_parts)
    if loc is None:
        return "unknown"
    return str(loc)


def _normalize_error_code(*, raw_type: Any) -> str:
    normalized = str(raw_type or "").strip().lower()
    if not normalized:
        return "validation_error"
    if normalized == "missing" or normalized.endswith(".missing"):
        return "required"
    return normalized
