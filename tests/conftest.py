"""Test configuration and fixtures."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

import pytest

from license_fulfillment.config import FulfillmentSettings
from license_fulfillment.engine.connectors import (
    Connector,
    ConnectorRegistry,
    StaticCredentialProvider,
)
from license_fulfillment.engine.errors import CallFailed
from license_fulfillment.engine.executor import StepExecutor
from license_fulfillment.engine.http import HttpRequest
from license_fulfillment.engine.mailer import EmailMessage
from license_fulfillment.engine.runner import WorkflowRunner
from license_fulfillment.purchase.service import FulfillmentService

KEYGEN_URL = "https://keygen.test/v1/accounts/acct"
PADDLE_URL = "https://paddle.test"

Outcome = dict[str, Any] | Exception | Callable[[HttpRequest], Any]


class FakeHttp:
    """Scripted HttpInvoker.

    Each route holds a list of outcomes consumed in order; the last one repeats.
    An outcome is a response body, an exception to raise, or a callable that
    receives the request and returns a body.
    """

    def __init__(self) -> None:
        self.requests: list[HttpRequest] = []
        self._routes: dict[tuple[str, str], list[Outcome]] = {}
        self._lock = threading.Lock()

    def route(self, method: str, url: str, *outcomes: Outcome) -> None:
        self._routes[(method.upper(), url)] = list(outcomes)

    def calls(self, method: str, url: str) -> int:
        with self._lock:
            return sum(1 for r in self.requests if r.method == method and r.url == url)

    def invoke(self, request: HttpRequest) -> dict[str, Any]:
        with self._lock:
            self.requests.append(request)
            queue = self._routes.get((request.method, request.url))
            if not queue:
                raise CallFailed(f"no route for {request.method} {request.url}", retryable=False)
            outcome = queue.pop(0) if len(queue) > 1 else queue[0]

        if isinstance(outcome, Exception):
            raise outcome
        body = outcome(request) if callable(outcome) else outcome
        return {"StatusCode": 200, "StatusText": "OK", "Headers": {}, "ResponseBody": body}


class FakeMailer:
    def __init__(self, *failures: Exception) -> None:
        self.sent: list[EmailMessage] = []
        self._failures = list(failures)

    def send(self, message: EmailMessage) -> str:
        if self._failures:
            raise self._failures.pop(0)
        self.sent.append(message)
        return f"msg-{len(self.sent)}"


@pytest.fixture
def settings() -> FulfillmentSettings:
    """Provide test settings that never read a local `.env`."""
    return FulfillmentSettings(
        _env_file=None,
        from_email="sales@example.com",
        keygen_base_url=KEYGEN_URL,
        paddle_base_url=PADDLE_URL,
        keygen_policy_id="policy-1",
    )


@pytest.fixture
def credentials() -> StaticCredentialProvider:
    return StaticCredentialProvider(
        {"KeygenSecret": "Bearer keygen-token", "PaddleSecret": "Bearer paddle-token"}
    )


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def registry(credentials: StaticCredentialProvider) -> ConnectorRegistry:
    return ConnectorRegistry(
        credentials,
        [
            Connector(name="keygen", base_url=KEYGEN_URL, credential_ref="KeygenSecret"),
            Connector(name="paddle", base_url=PADDLE_URL, credential_ref="PaddleSecret"),
        ],
    )


@pytest.fixture
def executor(
    registry: ConnectorRegistry, http: FakeHttp, mailer: FakeMailer, sleeps: list[float]
) -> StepExecutor:
    return StepExecutor(
        connectors=registry,
        http=http,
        email=mailer,
        default_from_address="sales@example.com",
        sleep=sleeps.append,
    )


@pytest.fixture
def runner(executor: StepExecutor) -> WorkflowRunner:
    return WorkflowRunner(executor=executor, max_branch_workers=4)


@pytest.fixture
def service(
    settings: FulfillmentSettings,
    credentials: StaticCredentialProvider,
    http: FakeHttp,
    mailer: FakeMailer,
    sleeps: list[float],
) -> FulfillmentService:
    return FulfillmentService(
        settings, credentials=credentials, http=http, email=mailer, sleep=sleeps.append
    )
