"""Concurrent branch execution with fail-fast and positional aggregation."""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Any

from .definition import Node, Parallel
from .errors import BranchFailed, FulfillmentError
from .state import ExecutionRecord, StepRecord, StepStatus

logger = logging.getLogger(__name__)

ChainRunner = Callable[[Sequence[Node], Any, ExecutionRecord | None, threading.Event], Any]


class ParallelCoordinator:
    """Runs every branch of a Parallel node against its own copy of the context.

    Branch outputs are collected by branch index, never by completion order,
    and handed to the node's aggregation selector as a list.
    """

    def __init__(self, run_chain: ChainRunner, *, max_workers: int = 8) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._run_chain = run_chain
        self.max_workers = max_workers

    def run(
        self,
        node: Parallel,
        context: Any,
        *,
        record: ExecutionRecord | None = None,
        cancel: threading.Event | None = None,
    ) -> Any:
        cancel = cancel if cancel is not None else threading.Event()
        pool = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(node.branches)),
            thread_name_prefix=f"parallel-{node.name}",
        )
        futures: list[Future[Any]] = []
        try:
            for branch in node.branches:
                futures.append(
                    pool.submit(self._run_chain, branch, copy.deepcopy(context), record, cancel)
                )

            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            failed = [i for i, f in enumerate(futures) if f in done and f.exception() is not None]
            if failed:
                cancel.set()
                for f in pending:
                    f.cancel()
                index = failed[0]
                cause = futures[index].exception()
                assert isinstance(cause, Exception)
                error = BranchFailed(node=node.name, index=index, cause=cause)
                _record(record, node, StepStatus.FAILED, error=error)
                logger.error(
                    "Parallel branch failed",
                    extra={"node": node.name, "branch": index, "error_kind": error.kind},
                )
                raise error from cause
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        outputs = [f.result() for f in futures]
        try:
            merged = node.result_selector.apply(outputs) if node.result_selector else outputs
            result = node.output_path.extract(merged)
        except FulfillmentError as e:
            _record(record, node, StepStatus.FAILED, error=e)
            raise

        _record(record, node, StepStatus.SUCCEEDED)
        logger.info("Parallel succeeded", extra={"node": node.name, "branches": len(futures)})
        return result


def _record(
    record: ExecutionRecord | None,
    node: Parallel,
    status: StepStatus,
    *,
    error: FulfillmentError | None = None,
) -> None:
    if error is not None and error.node is None:
        error.node = node.name
    if record is None:
        return
    record.add(
        StepRecord(
            node=node.name,
            status=status,
            attempts=1,
            error_kind=error.kind if error is not None else None,
            message=str(error) if error is not None else "",
        )
    )
