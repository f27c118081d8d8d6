"""CLI entrypoint: run the purchase workflow for a single event."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from license_fulfillment import __version__
from license_fulfillment.config import FulfillmentSettings
from license_fulfillment.logging import configure_logging
from license_fulfillment.purchase.service import FulfillmentService
from license_fulfillment.purchase.workflow import build_purchase_workflow

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="license-fulfillment",
        description="Create a license for a purchase and email the key to the customer",
    )
    parser.add_argument(
        "--version", action="version", version=f"license-fulfillment {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run the purchase workflow for one event")
    run.add_argument(
        "--event",
        required=True,
        help="Path to a purchase event JSON file, or '-' to read it from stdin",
    )
    run.add_argument(
        "--pretty",
        action="store_true",
        help="Indent the JSON result",
    )

    subparsers.add_parser("describe", help="Print the workflow graph as JSON")
    return parser


def _load_event(source: str) -> dict[str, Any]:
    text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    event = json.loads(text)
    if not isinstance(event, dict):
        raise ValueError("A purchase event must be a JSON object")
    return event


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = FulfillmentSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    if args.command == "describe":
        definition = build_purchase_workflow(settings)
        print(json.dumps({"name": definition.name, "nodes": definition.describe()}, indent=2))
        return 0

    if args.command == "run":
        try:
            event = _load_event(args.event)
        except (OSError, ValueError) as e:
            print(f"Could not read event: {e}", file=sys.stderr)
            return 2

        service = FulfillmentService(settings)
        try:
            result = service.fulfill(event)
        finally:
            service.close()

        print(json.dumps(result.to_json(), indent=2 if args.pretty else None, default=str))
        return 0 if result.succeeded else 1

    logger.error("Unknown command", extra={"command": args.command})
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
