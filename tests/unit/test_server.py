"""Unit tests for the webhook API."""

from __future__ import annotations

from conftest import KEYGEN_URL, PADDLE_URL, FakeHttp, FakeMailer
from fastapi.testclient import TestClient

from license_fulfillment import __version__
from license_fulfillment.engine.errors import CallFailed
from license_fulfillment.purchase.service import FulfillmentService
from license_fulfillment.server import create_app

LICENSE_URL = f"{KEYGEN_URL}/licenses"
CUSTOMER_URL = f"{PADDLE_URL}/customers/abc"
EVENT = {"event_id": "evt_1", "event_type": "transaction.completed", "data": {"id": "t1", "customer_id": "abc"}}


def test_health(service: FulfillmentService) -> None:
    client = TestClient(create_app(service))

    resp = client.get("/api/v1/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": __version__}


def test_describe_workflow(service: FulfillmentService) -> None:
    client = TestClient(create_app(service))

    body = client.get("/api/v1/workflow").json()

    assert body["name"] == "PurchaseHandler"
    assert [n["name"] for n in body["nodes"]] == ["Parallel", "SendEmail"]


def test_purchase_success(service: FulfillmentService, http: FakeHttp, mailer: FakeMailer) -> None:
    http.route("POST", LICENSE_URL, {"data": {"attributes": {"key": "LIC-123"}}})
    http.route("GET", CUSTOMER_URL, {"data": {"name": "Ana", "email": "ana@example.com"}})
    client = TestClient(create_app(service))

    resp = client.post("/api/v1/purchases", json=EVENT)

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "succeeded"
    assert body["output"] == {"MessageId": "msg-1"}
    assert body["failure"] is None
    assert {s["node"] for s in body["steps"]} == {
        "CreateLicense",
        "GetCustomer",
        "Parallel",
        "SendEmail",
    }
    assert mailer.sent[0].to_addresses == ("ana@example.com",)


def test_purchase_failure_returns_502(service: FulfillmentService, http: FakeHttp) -> None:
    http.route("POST", LICENSE_URL, CallFailed("HTTP 401", retryable=False, status_code=401))
    http.route("GET", CUSTOMER_URL, {"data": {"name": "Ana", "email": "ana@example.com"}})
    client = TestClient(create_app(service))

    resp = client.post("/api/v1/purchases", json=EVENT)

    assert resp.status_code == 502
    body = resp.json()
    assert body["status"] == "failed"
    assert body["failure"]["node"] == "CreateLicense"
    assert body["failure"]["error_kind"] == "CallFailed"
    assert body["failure"]["branch_index"] == 0


def test_purchase_missing_data_is_reported(service: FulfillmentService, http: FakeHttp) -> None:
    client = TestClient(create_app(service))

    resp = client.post("/api/v1/purchases", json={"event_id": "evt_2"})

    assert resp.status_code == 502
    assert resp.json()["failure"]["error_kind"] == "MissingField"
    assert http.requests == []


def test_purchase_rejects_non_object_body(service: FulfillmentService) -> None:
    client = TestClient(create_app(service))

    resp = client.post("/api/v1/purchases", json=["not", "an", "event"])

    assert resp.status_code == 422
