"""Wires settings, connectors and adapters into a runnable purchase handler."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from license_fulfillment.config import FulfillmentSettings
from license_fulfillment.engine.connectors import (
    ConnectorRegistry,
    CredentialProvider,
    EnvironmentCredentialProvider,
)
from license_fulfillment.engine.errors import UnknownConnector
from license_fulfillment.engine.executor import StepExecutor
from license_fulfillment.engine.http import HttpInvoker, RequestsHttpInvoker
from license_fulfillment.engine.mailer import EmailSender, SmtpEmailSender
from license_fulfillment.engine.runner import ExecutionResult, WorkflowRunner

from .workflow import build_connectors, build_purchase_workflow

logger = logging.getLogger(__name__)


class FulfillmentService:
    """Runs the purchase workflow for incoming transaction events.

    Every collaborator can be injected; by default HTTP goes through
    ``requests``, email through SMTP and credentials come from the environment.
    """

    def __init__(
        self,
        settings: FulfillmentSettings,
        *,
        credentials: CredentialProvider | None = None,
        http: HttpInvoker | None = None,
        email: EmailSender | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.settings = settings
        self.definition = build_purchase_workflow(settings)
        self.registry = ConnectorRegistry(
            credentials or EnvironmentCredentialProvider(settings.secret_prefix),
            build_connectors(settings),
        )

        # Fail at startup rather than mid-run when the graph names an unknown connector.
        for name in sorted(self.definition.connectors):
            if name not in self.registry:
                raise UnknownConnector(name)

        self.http = http or RequestsHttpInvoker()
        self.email = email or SmtpEmailSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout_seconds=settings.http_timeout_seconds,
        )
        executor = StepExecutor(
            connectors=self.registry,
            http=self.http,
            email=self.email,
            default_timeout_seconds=settings.http_timeout_seconds,
            default_from_address=settings.from_email,
            sleep=sleep,
        )
        self.runner = WorkflowRunner(
            executor=executor, max_branch_workers=settings.max_branch_workers
        )
        logger.info(
            "Fulfillment service initialized",
            extra={"workflow": self.definition.name, "connectors": self.registry.names()},
        )

    def fulfill(self, event: Mapping[str, Any]) -> ExecutionResult:
        data = event.get("data")
        transaction_id = data.get("id") if isinstance(data, Mapping) else None
        logger.info("Fulfilling purchase", extra={"transaction_id": transaction_id})
        return self.runner.execute(self.definition, dict(event))

    def close(self) -> None:
        close = getattr(self.http, "close", None)
        if callable(close):
            close()
