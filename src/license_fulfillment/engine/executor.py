"""Runs a single Task: render request, call out, retry, shape the result."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from typing import Any

from .connectors import ConnectorRegistry
from .definition import Task, TaskResource
from .errors import CallFailed, FulfillmentError, MissingField, StepCancelled, StepFailed
from .http import HttpInvoker, HttpRequest
from .mailer import EmailMessage, EmailSender
from .state import ExecutionRecord, StepRecord, StepStatus

logger = logging.getLogger(__name__)


class StepExecutor:
    """Executes Tasks against an execution context.

    Retry state lives in the local variables of :meth:`run`, so concurrent
    runs never share attempt counters.
    """

    def __init__(
        self,
        *,
        connectors: ConnectorRegistry,
        http: HttpInvoker,
        email: EmailSender | None = None,
        default_timeout_seconds: float = 30.0,
        default_from_address: str = "",
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.connectors = connectors
        self.http = http
        self.email = email
        self.default_timeout_seconds = default_timeout_seconds
        self.default_from_address = default_from_address
        self._sleep = sleep

    def run(
        self,
        task: Task,
        context: Any,
        *,
        record: ExecutionRecord | None = None,
        cancel: threading.Event | None = None,
    ) -> Any:
        try:
            request = task.parameters.apply(context)
        except FulfillmentError as e:
            _record(record, task, StepStatus.FAILED, attempts=0, error=e)
            raise

        policy = task.retry
        attempts = 0
        while True:
            if cancel is not None and cancel.is_set():
                _record(record, task, StepStatus.CANCELLED, attempts=attempts)
                raise StepCancelled(task=task.name, attempts=attempts)

            attempts += 1
            try:
                raw = self._invoke(task, request)
                break
            except CallFailed as e:
                retry = e.retryable and policy.matches(e) and attempts < policy.max_attempts
                if not retry:
                    _record(record, task, StepStatus.FAILED, attempts=attempts, error=e)
                    logger.error(
                        "Task failed",
                        extra={"task": task.name, "attempts": attempts, "error_kind": e.kind},
                    )
                    raise StepFailed(task=task.name, cause=e, attempts=attempts) from e

                delay = policy.delay_for(attempts)
                logger.warning(
                    "Task attempt failed, retrying",
                    extra={
                        "task": task.name,
                        "attempt": attempts,
                        "max_attempts": policy.max_attempts,
                        "delay_seconds": delay,
                        "error_kind": e.kind,
                    },
                )
                if self._wait(delay, cancel):
                    _record(record, task, StepStatus.CANCELLED, attempts=attempts, error=e)
                    raise StepCancelled(task=task.name, attempts=attempts) from e
            except FulfillmentError as e:
                _record(record, task, StepStatus.FAILED, attempts=attempts, error=e)
                raise

        try:
            shaped = task.result_selector.apply(raw) if task.result_selector else raw
            output = task.output_path.extract(shaped)
        except FulfillmentError as e:
            _record(record, task, StepStatus.FAILED, attempts=attempts, error=e)
            raise

        _record(record, task, StepStatus.SUCCEEDED, attempts=attempts)
        logger.info("Task succeeded", extra={"task": task.name, "attempts": attempts})
        return output

    def _wait(self, delay: float, cancel: threading.Event | None) -> bool:
        """Sleep for ``delay`` seconds; True if cancelled meanwhile."""

        if self._sleep is not None:
            self._sleep(delay)
            return cancel is not None and cancel.is_set()
        if cancel is not None:
            return cancel.wait(delay)
        time.sleep(delay)
        return False

    def _invoke(self, task: Task, request: Mapping[str, Any]) -> Any:
        if task.resource is TaskResource.HTTP_INVOKE:
            return self._invoke_http(task, request)
        return self._invoke_email(task, request)

    def _invoke_http(self, task: Task, request: Mapping[str, Any]) -> dict[str, Any]:
        assert task.connector is not None
        connector = self.connectors.resolve(task.connector)

        endpoint = request.get("ApiEndpoint", request.get("Path", ""))
        if not isinstance(endpoint, str):
            raise MissingField(f"{task.name}.ApiEndpoint")
        url = connector.url_for(endpoint)
        headers = {**connector.headers, **_str_mapping(request.get("Headers"))}
        headers.update(self.connectors.credential_header(connector))

        return self.http.invoke(
            HttpRequest(
                method=str(request.get("Method", "GET")).upper(),
                url=url,
                headers=headers,
                query=_str_mapping(request.get("QueryParameters")),
                body=request.get("RequestBody"),
                timeout_seconds=task.timeout_seconds or self.default_timeout_seconds,
            )
        )

    def _invoke_email(self, task: Task, request: Mapping[str, Any]) -> dict[str, Any]:
        if self.email is None:
            raise CallFailed(f"Task {task.name!r}: no email sender configured", retryable=False)

        destination = request.get("Destination")
        if not isinstance(destination, Mapping) or "ToAddresses" not in destination:
            raise MissingField(f"{task.name}.Destination.ToAddresses")
        to = destination["ToAddresses"]
        to_addresses = (to,) if isinstance(to, str) else tuple(str(a) for a in to)

        message = EmailMessage(
            to_addresses=to_addresses,
            subject=str(request.get("Subject", "")),
            body=str(request.get("Body", "")),
            from_address=str(request.get("From") or self.default_from_address),
            charset=str(request.get("Charset", "UTF-8")),
        )
        return {"MessageId": self.email.send(message)}


def _str_mapping(value: Any) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): v for k, v in value.items()}


def _record(
    record: ExecutionRecord | None,
    task: Task,
    status: StepStatus,
    *,
    attempts: int,
    error: FulfillmentError | None = None,
) -> None:
    if error is not None and error.node is None:
        error.node = task.name
    if record is None:
        return
    record.add(
        StepRecord(
            node=task.name,
            status=status,
            attempts=attempts,
            error_kind=error.kind if error is not None else None,
            message=str(error) if error is not None else "",
        )
    )
