"""Immutable workflow definitions.

A definition is plain data: a chain of :class:`Task` and :class:`Parallel`
nodes interpreted by :class:`~license_fulfillment.engine.runner.WorkflowRunner`.
All path expressions, templates and selectors are compiled when the nodes are
built, so a malformed definition fails before any execution starts.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import FulfillmentError, InvalidDefinition
from .paths import PathExpression, Selector

ROOT_PATH = PathExpression.parse("$")


class TaskResource(str, Enum):
    HTTP_INVOKE = "http:invoke"
    EMAIL_SEND = "email:send"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Which failures a Task retries, how often and how long it waits.

    ``max_attempts`` counts every call including the first one, so
    ``max_attempts=1`` disables retries.
    """

    error_equals: tuple[str, ...] = ("ALL",)
    interval_seconds: float = 1.0
    max_attempts: int = 3
    backoff_rate: float = 1.0
    max_delay_seconds: float | None = None

    def __post_init__(self) -> None:
        if not self.error_equals:
            raise InvalidDefinition("RetryPolicy.error_equals must not be empty")
        if self.max_attempts < 1:
            raise InvalidDefinition("RetryPolicy.max_attempts must be at least 1")
        if self.interval_seconds < 0:
            raise InvalidDefinition("RetryPolicy.interval_seconds must not be negative")
        if self.backoff_rate < 1.0:
            raise InvalidDefinition("RetryPolicy.backoff_rate must be at least 1.0")
        if self.max_delay_seconds is not None and self.max_delay_seconds < 0:
            raise InvalidDefinition("RetryPolicy.max_delay_seconds must not be negative")

    @classmethod
    def none(cls) -> RetryPolicy:
        return cls(error_equals=("ALL",), interval_seconds=0.0, max_attempts=1)

    def matches(self, error: FulfillmentError) -> bool:
        if "ALL" in self.error_equals:
            return True
        kinds = {cls.__name__ for cls in type(error).__mro__}
        return any(kind in kinds for kind in self.error_equals)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""

        delay = self.interval_seconds * (self.backoff_rate ** (attempt - 1))
        if self.max_delay_seconds is not None:
            delay = min(delay, self.max_delay_seconds)
        return delay


@dataclass(frozen=True, slots=True)
class Task:
    name: str
    resource: TaskResource
    parameters: Selector
    retry: RetryPolicy
    connector: str | None = None
    result_selector: Selector | None = None
    output_path: PathExpression = ROOT_PATH
    timeout_seconds: float | None = None
    end: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise InvalidDefinition("Task name is required")
        if self.resource is TaskResource.HTTP_INVOKE and not self.connector:
            raise InvalidDefinition(f"Task {self.name!r}: http:invoke requires a connector")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise InvalidDefinition(f"Task {self.name!r}: timeout_seconds must be positive")

    @classmethod
    def build(
        cls,
        name: str,
        *,
        resource: TaskResource | str,
        parameters: Mapping[str, Any],
        retry: RetryPolicy,
        connector: str | None = None,
        result_selector: Mapping[str, Any] | None = None,
        output_path: str = "$",
        timeout_seconds: float | None = None,
        end: bool = False,
    ) -> Task:
        """Build a Task from raw mappings and path strings."""

        return cls(
            name=name,
            resource=TaskResource(resource),
            parameters=Selector.compile(parameters),
            retry=retry,
            connector=connector,
            result_selector=Selector.compile(result_selector) if result_selector else None,
            output_path=PathExpression.parse(output_path),
            timeout_seconds=timeout_seconds,
            end=end,
        )


@dataclass(frozen=True, slots=True)
class Parallel:
    name: str
    branches: tuple[tuple[Node, ...], ...]
    result_selector: Selector | None = None
    output_path: PathExpression = ROOT_PATH
    end: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise InvalidDefinition("Parallel name is required")
        if not self.branches:
            raise InvalidDefinition(f"Parallel {self.name!r} needs at least one branch")
        for index, branch in enumerate(self.branches):
            _validate_chain(branch, where=f"Parallel {self.name!r} branch {index}")

    @classmethod
    def build(
        cls,
        name: str,
        *,
        branches: Sequence[Sequence[Node] | Node],
        result_selector: Mapping[str, Any] | None = None,
        output_path: str = "$",
        end: bool = False,
    ) -> Parallel:
        chains = tuple(
            (b,) if isinstance(b, Task | Parallel) else tuple(b) for b in branches
        )
        return cls(
            name=name,
            branches=chains,
            result_selector=Selector.compile(result_selector) if result_selector else None,
            output_path=PathExpression.parse(output_path),
            end=end,
        )


Node = Task | Parallel


def _validate_chain(chain: Sequence[Node], *, where: str) -> None:
    if not chain:
        raise InvalidDefinition(f"{where}: a chain needs at least one node")
    *body, last = chain
    if not last.end:
        raise InvalidDefinition(f"{where}: last node {last.name!r} must be terminal")
    for node in body:
        if node.end:
            raise InvalidDefinition(f"{where}: terminal node {node.name!r} has successors")


def iter_nodes(chain: Sequence[Node]) -> Iterator[Node]:
    """Yield every node of a chain, descending into parallel branches."""

    for node in chain:
        yield node
        if isinstance(node, Parallel):
            for branch in node.branches:
                yield from iter_nodes(branch)


@dataclass(frozen=True, slots=True)
class WorkflowDefinition:
    name: str
    nodes: tuple[Node, ...]
    comment: str = ""
    connectors: frozenset[str] = field(init=False)

    def __post_init__(self) -> None:
        _validate_chain(self.nodes, where=f"Workflow {self.name!r}")

        seen: set[str] = set()
        connectors: set[str] = set()
        for node in iter_nodes(self.nodes):
            if node.name in seen:
                raise InvalidDefinition(f"Duplicate node name {node.name!r}")
            seen.add(node.name)
            if isinstance(node, Task) and node.connector:
                connectors.add(node.connector)
        object.__setattr__(self, "connectors", frozenset(connectors))

    @property
    def entry(self) -> Node:
        return self.nodes[0]

    def describe(self) -> list[dict[str, Any]]:
        """A JSON-friendly outline of the node graph."""

        return [_describe(node) for node in self.nodes]


def _describe(node: Node) -> dict[str, Any]:
    if isinstance(node, Task):
        out: dict[str, Any] = {
            "type": "Task",
            "name": node.name,
            "resource": node.resource.value,
            "retry": {
                "error_equals": list(node.retry.error_equals),
                "interval_seconds": node.retry.interval_seconds,
                "max_attempts": node.retry.max_attempts,
                "backoff_rate": node.retry.backoff_rate,
            },
            "output_path": str(node.output_path),
            "end": node.end,
        }
        if node.connector:
            out["connector"] = node.connector
        return out
    return {
        "type": "Parallel",
        "name": node.name,
        "branches": [[_describe(n) for n in branch] for branch in node.branches],
        "output_path": str(node.output_path),
        "end": node.end,
    }
