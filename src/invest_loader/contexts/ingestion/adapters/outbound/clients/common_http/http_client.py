from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol

import requests

from invest_loader.contexts.ingestion.domain import UpstreamFetchError

log = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = (408, 429)


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status_code: int
    headers: Mapping[str, str]
    body: Any


class HttpClient(Protocol):
    def post_json(
        self,
        *,
        url: str,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
        timeout_s: float,
        retries: int,
        backoff_base_s: float,
        backoff_max_s: float,
        backoff_jitter_s: float,
    ) -> HttpResponse:
        ...


class RequestsHttpClient(HttpClient):
    """
    Minimal JSON-over-POST HTTP client for the provider REST gateway.

    - requests.post(...) with a JSON body
    - retries with exponential backoff plus jitter on 408/429/5xx and transport errors
    - other non-200 answers fail immediately
    - returns the JSON body as a python object
    """

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session = session if session is not None else requests.Session()
        self._sleep = sleep

    def post_json(
        self,
        *,
        url: str,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
        timeout_s: float,
        retries: int,
        backoff_base_s: float,
        backoff_max_s: float,
        backoff_jitter_s: float,
    ) -> HttpResponse:
        attempt = 0
        last_error: str = "no attempt made"

        while attempt <= retries:
            try:
                r = self._session.post(
                    url,
                    json=dict(payload),
                    headers=dict(headers),
                    timeout=timeout_s,
                )
            except requests.RequestException as e:
                last_error = f"{type(e).__name__}: {e}"
                log.warning("POST %s failed (attempt %s/%s): %s", url, attempt + 1, retries + 1, last_error)  # noqa: E501
            else:
                response_headers = {str(k): str(v) for k, v in r.headers.items()}

                if r.status_code in _RETRYABLE_STATUS_CODES or (500 <= r.status_code <= 599):
                    last_error = f"HTTP {r.status_code}: {r.text[:500]}"
                    log.warning("POST %s answered %s (attempt %s/%s)", url, r.status_code, attempt + 1, retries + 1)  # noqa: E501
                elif r.status_code != 200:
                    raise UpstreamFetchError(
                        f"HTTP {r.status_code} for {url}",
                        details={"status_code": r.status_code, "body": r.text[:500]},
                    )
                else:
                    try:
                        body = r.json()
                    except ValueError as e:
                        raise UpstreamFetchError(
                            f"Invalid JSON from {url}",
                            details={"body": r.text[:500]},
                        ) from e
                    return HttpResponse(status_code=200, headers=response_headers, body=body)

            if attempt < retries:
                self._sleep(
                    _backoff_delay(
                        attempt=attempt,
                        base_s=backoff_base_s,
                        max_s=backoff_max_s,
                        jitter_s=backoff_jitter_s,
                    )
                )
            attempt += 1

        raise UpstreamFetchError(
            f"HTTP request failed after {retries + 1} attempts url={url}",
            details={"last_error": last_error},
        )


def _backoff_delay(*, attempt: int, base_s: float, max_s: float, jitter_s: float) -> float:
    exp = min(max_s, base_s * (2**attempt))
    jitter = random.random() * jitter_s
    return exp + jitter
