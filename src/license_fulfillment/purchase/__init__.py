"""The license purchase workflow and its service wiring."""

from license_fulfillment.purchase.service import FulfillmentService
from license_fulfillment.purchase.workflow import build_connectors, build_purchase_workflow

__all__ = ["FulfillmentService", "build_connectors", "build_purchase_workflow"]
