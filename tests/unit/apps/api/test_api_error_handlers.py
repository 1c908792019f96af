from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel, ConfigDict

from apps.api.common import register_api_error_handlers
from apps.api.common.errors import status_code_for_error_code
from invest_loader.contexts.ingestion.domain import RateLimitExceeded, UnknownTrigger
from invest_loader.platform.errors import InvestLoaderError


class _ValidationPayload(BaseModel):
    """
    Validation payload model with deliberately non-lexicographic field order for sorting test.
    """

    model_config = ConfigDict(extra="forbid")

    b: int
    a: int


def test_invest_loader_error_handler_maps_error_to_http_status_and_payload() -> None:
    """
    Verify InvestLoaderError is converted into deterministic API payload and status mapping.

    Args:
        None.
    Returns:
        None.
    Assumptions:
        Conflict code must be mapped to HTTP 409 by shared API error handler.
    Raises:
        AssertionError: If payload shape or HTTP status mapping is broken.
    Side Effects:
        None.
    """
    app = FastAPI()
    register_api_error_handlers(app=app)

    @app.get("/boom")
    def boom() -> None:
        raise InvestLoaderError(
            code="conflict",
            message="Task already started",
            details={"task_id": "CANDLES_1a2b3c4d"},
        )

    client = TestClient(app)
    response = client.get("/boom")

    assert response.status_code == 409
    assert response.json() == {
        "error": {
            "code": "conflict",
            "message": "Task already started",
            "details": {"task_id": "CANDLES_1a2b3c4d"},
        }
    }


def test_domain_error_subclasses_use_their_codes() -> None:
    app = FastAPI()
    register_api_error_handlers(app=app)

    @app.get("/unknown")
    def unknown() -> None:
        raise UnknownTrigger("nightly")

    @app.get("/limited")
    def limited() -> None:
        raise RateLimitExceeded("No permit for candles within 30.0s")

    client = TestClient(app)

    assert client.get("/unknown").status_code == 404
    limited_response = client.get("/limited")
    assert limited_response.status_code == 429
    assert limited_response.json()["error"]["code"] == "rate_limited"


@pytest.mark.parametrize(
    ("code", "status"),
    [
        ("validation_error", 422),
        ("non_trading_day", 409),
        ("upstream_error", 502),
        ("unexpected_error", 500),
        ("something_new", 500),
    ],
)
def test_status_code_for_error_code(code: str, status: int) -> None:
    assert status_code_for_error_code(code) == status


def test_request_validation_error_handler_returns_sorted_validation_errors() -> None:
    """
    Verify validation handler returns deterministic `validation_error` payload with sorted errors.

    Args:
        None.
    Returns:
        None.
    Assumptions:
        Errors are sorted lexicographically by path, then code, then message.
    Raises:
        AssertionError: If response payload differs from deterministic contract.
    Side Effects:
        None.
    """
    app = FastAPI()
    register_api_error_handlers(app=app)

    @app.post("/validate")
    def validate(payload: _ValidationPayload) -> dict[str, int]:
        return {"a": payload.a, "b": payload.b}

    client = TestClient(app)
    response = client.post("/validate", json={"z": 1})

    assert response.status_code == 422
    assert response.json() == {
        "error": {
            "code": "validation_error",
            "message": "Validation failed",
            "details": {
                "errors": [
                    {
                        "path": "body.a",
                        "code": "required",
                        "message": "Field required",
                    },
                    {
                        "path": "body.b",
                        "code": "required",
                        "message": "Field required",
                    },
                    {
                        "path": "body.z",
                        "code": "extra_forbidden",
                        "message": "Extra inputs are not permitted",
                    },
                ]
            },
        }
    }
