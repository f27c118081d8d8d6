"""Execution lifecycle and per-run step history.

One :class:`ExecutionRecord` is created per workflow run and threaded through
the call stack; parallel branches append to it concurrently.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ExecutionStatus(str, Enum):
    READY = "ready"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[ExecutionStatus, set[ExecutionStatus]] = {
    ExecutionStatus.READY: {ExecutionStatus.RUNNING},
    ExecutionStatus.RUNNING: {ExecutionStatus.SUCCEEDED, ExecutionStatus.FAILED},
    ExecutionStatus.SUCCEEDED: set(),
    ExecutionStatus.FAILED: set(),
}


class IllegalTransitionError(ValueError):
    pass


def transition(*, current: ExecutionStatus, to: ExecutionStatus) -> ExecutionStatus:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class StepRecord:
    node: str
    status: StepStatus
    attempts: int
    error_kind: str | None = None
    message: str = ""
    finished_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "node": self.node,
            "status": self.status.value,
            "attempts": self.attempts,
            "finished_at": self.finished_at.isoformat(),
        }
        if self.error_kind is not None:
            out["error_kind"] = self.error_kind
            out["message"] = self.message
        return out


class ExecutionRecord:
    """Status and step history of a single workflow run."""

    def __init__(self, execution_id: str | None = None) -> None:
        self.execution_id = execution_id or uuid.uuid4().hex
        self.status = ExecutionStatus.READY
        self.started_at: datetime | None = None
        self.finished_at: datetime | None = None
        self._steps: list[StepRecord] = []
        self._lock = threading.Lock()

    def move_to(self, to: ExecutionStatus) -> None:
        with self._lock:
            self.status = transition(current=self.status, to=to)
            now = datetime.now(UTC)
            if to is ExecutionStatus.RUNNING:
                self.started_at = now
            else:
                self.finished_at = now

    def add(self, step: StepRecord) -> None:
        """Append ``step``; once the run is terminal the history is frozen."""

        with self._lock:
            if self.status in (ExecutionStatus.SUCCEEDED, ExecutionStatus.FAILED):
                logger.debug(
                    "Dropping step recorded after run finished",
                    extra={"execution_id": self.execution_id, "node": step.node},
                )
                return
            self._steps.append(step)

    @property
    def steps(self) -> list[StepRecord]:
        with self._lock:
            return list(self._steps)

    def attempts_for(self, node: str) -> int:
        return sum(s.attempts for s in self.steps if s.node == node)

    def to_json(self) -> dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "steps": [s.to_json() for s in self.steps],
        }
