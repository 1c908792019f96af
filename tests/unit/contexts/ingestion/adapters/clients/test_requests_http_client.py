from __future__ import annotations

from typing import Any, Mapping

import pytest
import requests

from invest_loader.contexts.ingestion.adapters.outbound.clients.common_http import (
    RequestsHttpClient,
)
from invest_loader.contexts.ingestion.domain import UpstreamFetchError


class _FakeResponse:
    def __init__(self, status_code: int, body: Any = None, *, text: str = "") -> None:
        self.status_code = status_code
        self.headers = {"x-ratelimit-remaining": "199"}
        self._body = body
        self.text = text

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("Expecting value")
        return self._body


class _FakeSession:
    def __init__(self, responses: list[_FakeResponse | Exception]) -> None:
        self._responses = list(responses)
        self.calls: list[Mapping[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append({"url": url, **kwargs})
        result = self._responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _post(client: RequestsHttpClient, *, retries: int = 2) -> Any:
    return client.post_json(
        url="https://example.test/GetCandles",
        payload={"instrumentId": "SBER"},
        headers={"Authorization": "Bearer t"},
        timeout_s=5.0,
        retries=retries,
        backoff_base_s=1.0,
        backoff_max_s=16.0,
        backoff_jitter_s=0.0,
    )


def test_retries_rate_limited_and_transport_errors_with_backoff() -> None:
    sleeps: list[float] = []
    session = _FakeSession(
        [
            _FakeResponse(429, text="Too Many Requests"),
            requests.ConnectionError("reset by peer"),
            _FakeResponse(200, {"candles": []}),
        ]
    )
    client = RequestsHttpClient(session=session, sleep=sleeps.append)  # type: ignore[arg-type]

    response = _post(client)

    assert response.body == {"candles": []}
    assert response.headers["x-ratelimit-remaining"] == "199"
    assert sleeps == [1.0, 2.0]
    assert len(session.calls) == 3
    assert session.calls[0]["json"] == {"instrumentId": "SBER"}
    assert session.calls[0]["timeout"] == 5.0


def test_client_errors_fail_without_retry() -> None:
    sleeps: list[float] = []
    session = _FakeSession([_FakeResponse(400, text="instrument not found")])
    client = RequestsHttpClient(session=session, sleep=sleeps.append)  # type: ignore[arg-type]

    with pytest.raises(UpstreamFetchError) as excinfo:
        _post(client)

    assert excinfo.value.details["status_code"] == 400
    assert sleeps == []


def test_exhausted_retries_raise_with_last_error() -> None:
    session = _FakeSession([_FakeResponse(503, text="unavailable")] * 3)
    client = RequestsHttpClient(session=session, sleep=lambda _: None)  # type: ignore[arg-type]

    with pytest.raises(UpstreamFetchError, match="after 3 attempts") as excinfo:
        _post(client)

    assert excinfo.value.details["last_error"] == "HTTP 503: unavailable"


def test_invalid_json_body_is_upstream_error() -> None:
    session = _FakeSession([_FakeResponse(200, None, text="<html>")])
    client = RequestsHttpClient(session=session, sleep=lambda _: None)  # type: ignore[arg-type]

    with pytest.raises(UpstreamFetchError, match="Invalid JSON"):
        _post(client, retries=0)
