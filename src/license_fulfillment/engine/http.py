"""HTTP invocation capability used by ``http:invoke`` Tasks.

The engine only depends on :class:`HttpInvoker`; :class:`RequestsHttpInvoker`
is the production adapter built on a shared ``requests.Session``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests

from .errors import CallFailed, CallTimeout

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 425, 429, 500, 502, 503, 504})


@dataclass(frozen=True, slots=True)
class HttpRequest:
    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, Any] = field(default_factory=dict)
    body: Any = None
    timeout_seconds: float = 30.0


class HttpInvoker(Protocol):
    """One atomic external HTTP interaction.

    Returns ``{"StatusCode", "StatusText", "Headers", "ResponseBody"}`` on a
    2xx/3xx response and raises :class:`CallFailed` otherwise.
    """

    def invoke(self, request: HttpRequest) -> dict[str, Any]: ...


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


def parse_body(text: str, content_type: str | None) -> Any:
    """Return parsed JSON for JSON payloads, otherwise the raw text."""

    if not text:
        return ""
    if content_type and "json" in content_type.lower():
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
    return text


class RequestsHttpInvoker:
    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        user_agent: str = "license-fulfillment",
    ) -> None:
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": user_agent})

    def invoke(self, request: HttpRequest) -> dict[str, Any]:
        method = request.method.upper()
        headers = dict(request.headers)
        kwargs: dict[str, Any] = {}
        if request.body is not None:
            if isinstance(request.body, str | bytes):
                kwargs["data"] = request.body
            else:
                kwargs["data"] = json.dumps(request.body)
                headers.setdefault("Content-Type", "application/json")

        logger.debug("HTTP request", extra={"method": method, "url": request.url})
        try:
            resp = self._session.request(
                method,
                request.url,
                headers=headers,
                params=dict(request.query) or None,
                timeout=request.timeout_seconds,
                **kwargs,
            )
        except requests.Timeout as e:
            raise CallTimeout(f"{method} {request.url} timed out: {e}") from e
        except requests.RequestException as e:
            raise CallFailed(f"{method} {request.url} failed: {e}", retryable=True) from e

        logger.debug(
            "HTTP response",
            extra={"method": method, "url": request.url, "status_code": resp.status_code},
        )
        if resp.status_code >= 400:
            raise CallFailed(
                f"{method} {request.url} returned HTTP {resp.status_code}: {resp.text[:200]}",
                retryable=is_retryable_status(resp.status_code),
                status_code=resp.status_code,
            )

        return {
            "StatusCode": resp.status_code,
            "StatusText": resp.reason or "",
            "Headers": dict(resp.headers),
            # A response without Content-Type is read as the media type the request asked for.
            "ResponseBody": parse_body(
                resp.text, resp.headers.get("Content-Type") or headers.get("Accept")
            ),
        }

    def close(self) -> None:
        self._session.close()
