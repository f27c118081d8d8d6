#!/usr/bin/env python3
"""Programmatic fulfillment example.

This demonstrates using the service directly:

* load settings from `.env`
* run the purchase workflow for one transaction
* print the execution history

Provider keys are read from the environment on every call, e.g.
`FULFILLMENT_SECRET_KEYGENSECRET` and `FULFILLMENT_SECRET_PADDLESECRET`.
"""

from __future__ import annotations

import argparse
import json
from typing import Sequence

from license_fulfillment.config import FulfillmentSettings
from license_fulfillment.logging import configure_logging
from license_fulfillment.purchase import FulfillmentService


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fulfill one purchase (programmatic example).")
    parser.add_argument("--transaction", required=True, help='Paddle transaction id, e.g. "txn_01h..."')
    parser.add_argument("--customer", required=True, help='Paddle customer id, e.g. "ctm_01h..."')
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = FulfillmentSettings()
    configure_logging(settings.log_level)

    event = {
        "event_type": "transaction.completed",
        "data": {"id": args.transaction, "customer_id": args.customer},
    }

    service = FulfillmentService(settings)
    try:
        result = service.fulfill(event)
    finally:
        service.close()

    for step in result.record.steps:
        print(f"{step.node:<14} {step.status.value:<10} attempts={step.attempts}")

    if result.failure is not None:
        print(f"Failed at {result.failure.node}: {result.failure.error_kind}: {result.failure.message}")
        return 1

    print(json.dumps(result.output))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
