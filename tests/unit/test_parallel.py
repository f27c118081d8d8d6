"""Unit tests for parallel branch coordination."""

from __future__ import annotations

import threading
import time
from collections.abc import Sequence
from typing import Any

import pytest

from license_fulfillment.engine.definition import Node, Parallel, RetryPolicy, Task, TaskResource
from license_fulfillment.engine.errors import BranchFailed, CallFailed, MissingField
from license_fulfillment.engine.parallel import ParallelCoordinator
from license_fulfillment.engine.state import ExecutionRecord, StepStatus


def _branch(name: str) -> Task:
    return Task.build(
        name,
        resource=TaskResource.EMAIL_SEND,
        parameters={},
        retry=RetryPolicy.none(),
        end=True,
    )


def _parallel(*names: str, result_selector: dict[str, Any] | None = None) -> Parallel:
    return Parallel.build(
        "Parallel",
        branches=[_branch(n) for n in names],
        result_selector=result_selector,
    )


def test_outputs_are_aggregated_by_branch_index() -> None:
    delays = {"Slow": 0.05, "Fast": 0.0}

    def run_chain(chain: Sequence[Node], context: Any, record: Any, cancel: threading.Event) -> Any:
        time.sleep(delays[chain[0].name])
        return {"from": chain[0].name}

    coordinator = ParallelCoordinator(run_chain)
    node = _parallel("Slow", "Fast", result_selector={"license.$": "$[0]", "customer.$": "$[1]"})

    assert coordinator.run(node, {}) == {
        "license": {"from": "Slow"},
        "customer": {"from": "Fast"},
    }


def test_without_selector_returns_positional_list() -> None:
    coordinator = ParallelCoordinator(lambda chain, ctx, record, cancel: chain[0].name)
    assert coordinator.run(_parallel("A", "B", "C"), {}) == ["A", "B", "C"]


def test_each_branch_gets_an_independent_copy_of_the_input() -> None:
    seen: dict[str, Any] = {}
    lock = threading.Lock()

    def run_chain(chain: Sequence[Node], context: Any, record: Any, cancel: threading.Event) -> Any:
        name = chain[0].name
        context["data"]["touched_by"] = name
        with lock:
            seen[name] = context
        return name

    original = {"data": {"id": "t1"}}
    ParallelCoordinator(run_chain).run(_parallel("A", "B"), original)

    assert original == {"data": {"id": "t1"}}
    assert seen["A"]["data"]["touched_by"] == "A"
    assert seen["B"]["data"]["touched_by"] == "B"
    assert seen["A"] is not seen["B"]


def test_branch_failure_fails_the_node_and_cancels_siblings() -> None:
    cancelled = threading.Event()

    def run_chain(chain: Sequence[Node], context: Any, record: Any, cancel: threading.Event) -> Any:
        if chain[0].name == "Broken":
            raise CallFailed("HTTP 500", retryable=True)
        if cancel.wait(5):
            cancelled.set()
            raise RuntimeError("cancelled")
        return "finished"

    record = ExecutionRecord()
    started = time.monotonic()
    with pytest.raises(BranchFailed) as exc:
        ParallelCoordinator(run_chain).run(_parallel("Waiting", "Broken"), {}, record=record)

    assert time.monotonic() - started < 5
    assert exc.value.index == 1
    assert isinstance(exc.value.cause, CallFailed)
    assert cancelled.wait(1)
    (step,) = record.steps
    assert step.node == "Parallel"
    assert step.status is StepStatus.FAILED
    assert step.error_kind == "BranchFailed"


def test_one_failure_is_reported_when_several_branches_fail() -> None:
    barrier = threading.Barrier(2)

    def run_chain(chain: Sequence[Node], context: Any, record: Any, cancel: threading.Event) -> Any:
        barrier.wait(timeout=5)
        raise MissingField(f"$.{chain[0].name}")

    with pytest.raises(BranchFailed) as exc:
        ParallelCoordinator(run_chain, max_workers=2).run(_parallel("A", "B"), {})

    # Both may have failed by the time the wait returns; only one is reported.
    assert exc.value.index in (0, 1)
    assert isinstance(exc.value.cause, MissingField)


def test_aggregation_missing_field_is_recorded() -> None:
    coordinator = ParallelCoordinator(lambda chain, ctx, record, cancel: chain[0].name)
    node = _parallel("A", result_selector={"x.$": "$[3]"})
    record = ExecutionRecord()

    with pytest.raises(MissingField):
        coordinator.run(node, {}, record=record)
    assert record.steps[-1].error_kind == "MissingField"


def test_rejects_non_positive_worker_count() -> None:
    with pytest.raises(ValueError):
        ParallelCoordinator(lambda *a: None, max_workers=0)
