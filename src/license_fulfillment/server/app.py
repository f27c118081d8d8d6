"""FastAPI app factory.

Endpoints are thin wrappers over :class:`FulfillmentService`.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from license_fulfillment import __version__
from license_fulfillment.config import FulfillmentSettings
from license_fulfillment.purchase.service import FulfillmentService
from license_fulfillment.server.models import ApiExecution, PurchaseEvent

logger = logging.getLogger(__name__)


def create_app(service: FulfillmentService | None = None) -> FastAPI:
    service = service or FulfillmentService(FulfillmentSettings())

    @asynccontextmanager
    async def _lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        service.close()

    app = FastAPI(
        title="License Fulfillment",
        version=__version__,
        description="Webhook endpoint that turns purchase events into emailed license keys.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=_lifespan,
    )
    app.state.service = service

    @app.get("/api/v1/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.get("/api/v1/workflow")
    def describe_workflow() -> dict[str, Any]:
        definition = service.definition
        return {"name": definition.name, "nodes": definition.describe()}

    @app.post("/api/v1/purchases", response_model=ApiExecution)
    def fulfill_purchase(event: PurchaseEvent) -> JSONResponse:
        result = service.fulfill(event.model_dump(mode="json", exclude_unset=True))
        body = ApiExecution.from_result(result)
        if not result.succeeded:
            logger.warning(
                "Purchase fulfillment failed",
                extra={"execution_id": result.execution_id, "event_id": event.event_id},
            )
            return JSONResponse(status_code=502, content=body.model_dump(mode="json"))
        return JSONResponse(status_code=200, content=body.model_dump(mode="json"))

    return app
