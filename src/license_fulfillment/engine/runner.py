"""Drives a workflow definition from its trigger input to a terminal result."""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from .definition import Node, Parallel, Task, WorkflowDefinition
from .errors import (
    BranchFailed,
    FulfillmentError,
    StepCancelled,
    StepFailed,
    WorkflowError,
    kind_of,
)
from .executor import StepExecutor
from .parallel import ParallelCoordinator
from .state import ExecutionRecord, ExecutionStatus, StepStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FailureReport:
    """What the trigger caller sees when a run fails.

    ``error_chain`` lists error kinds from the outermost wrapper down to the
    root cause; ``error_kind`` is the root cause.
    """

    node: str
    error_kind: str
    message: str
    attempts: int
    error_chain: tuple[str, ...]
    branch_index: int | None = None

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "node": self.node,
            "error_kind": self.error_kind,
            "message": self.message,
            "attempts": self.attempts,
            "error_chain": list(self.error_chain),
        }
        if self.branch_index is not None:
            out["branch_index"] = self.branch_index
        return out


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    execution_id: str
    status: ExecutionStatus
    record: ExecutionRecord
    output: Any = None
    failure: FailureReport | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCEEDED

    def to_json(self) -> dict[str, Any]:
        out: dict[str, Any] = {"execution_id": self.execution_id, "status": self.status.value}
        if self.failure is not None:
            out["failure"] = self.failure.to_json()
        else:
            out["output"] = self.output
        return out


class WorkflowRunner:
    def __init__(self, *, executor: StepExecutor, max_branch_workers: int = 8) -> None:
        self.executor = executor
        self.parallel = ParallelCoordinator(self._run_chain, max_workers=max_branch_workers)

    def execute(
        self,
        definition: WorkflowDefinition,
        initial_context: Any,
        *,
        execution_id: str | None = None,
    ) -> ExecutionResult:
        """Run ``definition`` once; failures are reported, not raised."""

        record = ExecutionRecord(execution_id)
        record.move_to(ExecutionStatus.RUNNING)
        log_extra = {"workflow": definition.name, "execution_id": record.execution_id}
        logger.info("Workflow started", extra=log_extra)

        try:
            output = self._run_chain(
                definition.nodes, copy.deepcopy(initial_context), record, threading.Event()
            )
        except Exception as e:
            report = build_failure_report(e, record, fallback_node=definition.entry.name)
            record.move_to(ExecutionStatus.FAILED)
            if isinstance(e, FulfillmentError):
                logger.error(
                    "Workflow failed",
                    extra={
                        **log_extra,
                        "node": report.node,
                        "error_kind": report.error_kind,
                        "attempts": report.attempts,
                    },
                )
            else:
                logger.exception("Workflow failed unexpectedly", extra=log_extra)
            return ExecutionResult(
                execution_id=record.execution_id,
                status=record.status,
                record=record,
                failure=report,
            )

        record.move_to(ExecutionStatus.SUCCEEDED)
        logger.info("Workflow succeeded", extra=log_extra)
        return ExecutionResult(
            execution_id=record.execution_id,
            status=record.status,
            record=record,
            output=output,
        )

    def run(self, definition: WorkflowDefinition, initial_context: Any) -> Any:
        """Run ``definition`` and return its output, raising :class:`WorkflowError` on failure."""

        result = self.execute(definition, initial_context)
        if result.failure is not None:
            raise WorkflowError(result.failure)
        return result.output

    def _run_chain(
        self,
        chain: Sequence[Node],
        context: Any,
        record: ExecutionRecord | None,
        cancel: threading.Event,
    ) -> Any:
        for node in chain:
            if isinstance(node, Task):
                context = self.executor.run(node, context, record=record, cancel=cancel)
            elif isinstance(node, Parallel):
                context = self.parallel.run(node, context, record=record, cancel=cancel)
            else:
                raise TypeError(f"Unsupported node type: {type(node).__name__}")
            if node.end:
                break
        return context


def build_failure_report(
    error: BaseException,
    record: ExecutionRecord,
    *,
    fallback_node: str,
) -> FailureReport:
    chain: list[str] = []
    node: str | None = None
    attempts: int | None = None
    branch_index: int | None = None

    current: BaseException | None = error
    root: BaseException = error
    while current is not None:
        chain.append(kind_of(current))
        root = current
        # The innermost error that knows its node wins.
        if isinstance(current, FulfillmentError) and current.node and current.node != node:
            node, attempts = current.node, None
        if isinstance(current, (StepFailed, StepCancelled)):
            attempts = current.attempts

        if isinstance(current, BranchFailed):
            if branch_index is None:
                branch_index = current.index
            current = current.cause
        elif isinstance(current, StepFailed):
            current = current.cause
        else:
            current = None

    if node is not None and attempts is None:
        attempts = _attempts_for(record, node)

    return FailureReport(
        node=node or fallback_node,
        error_kind=kind_of(root),
        message=str(root),
        attempts=attempts or 0,
        error_chain=tuple(chain),
        branch_index=branch_index,
    )


def _attempts_for(record: ExecutionRecord, node: str) -> int:
    for step in reversed(record.steps):
        if step.node == node and step.status is not StepStatus.SUCCEEDED:
            return step.attempts
    return 0
