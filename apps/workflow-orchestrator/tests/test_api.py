"""HTTP API tests against an in-process app."""

import json
import time

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from orchestrator.core.dependencies import get_orchestrator, get_trigger_manager
from orchestrator.main import create_app
from orchestrator.triggers.webhook_auth import compute_signature

from conftest import TENANT, approval_graph

SECRET = "whsec_api"


@pytest_asyncio.fixture
async def client(orchestrator, trigger_manager):
    app = create_app()
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_trigger_manager] = lambda: trigger_manager
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def _headers(user_id=None):
    headers = {"X-Tenant-Id": TENANT}
    if user_id:
        headers["X-User-Id"] = user_id
    return headers


async def _published_template(client, graph=None):
    response = await client.post(
        "/api/templates",
        json={"name": "Purchase", **(graph or approval_graph())},
        headers=_headers(),
    )
    assert response.status_code == 201
    template_id = response.json()["id"]
    response = await client.post(f"/api/templates/{template_id}/publish", headers=_headers())
    assert response.status_code == 200
    return template_id


async def test_root(client):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "running"


async def test_tenant_header_is_required(client):
    response = await client.get("/api/templates")

    assert response.status_code == 400


async def test_template_lifecycle(client):
    response = await client.post("/api/templates", json={"name": "Draft", **approval_graph()}, headers=_headers())
    body = response.json()
    assert response.status_code == 201
    assert body["is_active"] is False
    assert body["node_count"] == 4

    response = await client.post(f"/api/templates/{body['id']}/validate", headers=_headers())
    assert response.json() == {"valid": True, "errors": []}

    response = await client.post(f"/api/templates/{body['id']}/publish", headers=_headers())
    assert response.json()["is_active"] is True

    response = await client.get("/api/templates", params={"active_only": True}, headers=_headers())
    assert [t["id"] for t in response.json()] == [body["id"]]

    response = await client.delete(f"/api/templates/{body['id']}", headers=_headers())
    assert response.status_code == 200
    response = await client.get(f"/api/templates/{body['id']}", headers=_headers())
    assert response.status_code == 404


async def test_publish_invalid_graph_is_422(client):
    graph = approval_graph()
    graph["nodes"].append({"id": "stray", "kind": "action"})
    response = await client.post("/api/templates", json={"name": "Broken", **graph}, headers=_headers())

    response = await client.post(f"/api/templates/{response.json()['id']}/publish", headers=_headers())

    assert response.status_code == 422
    assert any("stray" in e for e in response.json()["detail"]["errors"])


async def test_instance_approval_flow(client, directory):
    template_id = await _published_template(client)
    await directory(lambda d: d.grant_permission("carol", "workflow.create_instance"))

    response = await client.post("/api/instances", json={"template_id": template_id}, headers=_headers())
    assert response.status_code == 401

    response = await client.post(
        "/api/instances",
        json={"template_id": template_id, "payload": {"amount": 250}, "reference_id": "PO-7"},
        headers=_headers("dave"),
    )
    assert response.status_code == 403

    response = await client.post(
        "/api/instances",
        json={"template_id": template_id, "payload": {"amount": 250}, "reference_id": "PO-7"},
        headers=_headers("carol"),
    )
    assert response.status_code == 201
    instance = response.json()
    assert instance["status"] == "waiting_approval"
    assert instance["current_assignee_id"] == "mgr"

    url = f"/api/instances/{instance['id']}/decisions"
    response = await client.post(url, json={"decision": "approve"}, headers=_headers("stranger"))
    assert response.status_code == 403

    response = await client.post(url, json={"decision": "delegate"}, headers=_headers("mgr"))
    assert response.status_code == 422

    response = await client.post(url, json={"decision": "approve", "comments": "ok"}, headers=_headers("mgr"))
    assert response.status_code == 200
    assert response.json()["status"] == "completed"

    response = await client.post(url, json={"decision": "reject"}, headers=_headers("mgr"))
    assert response.status_code == 409

    response = await client.get(f"/api/instances/{instance['id']}", headers=_headers())
    detail = response.json()
    assert detail["request_data"] == {"amount": 250}
    assert detail["progress"] == {"completed_steps": 4, "total_steps": 4}
    assert any(e["executor_id"] == "approval-decision" for e in detail["executions"])


async def test_unknown_instance_is_404(client):
    response = await client.get("/api/instances/inst_missing", headers=_headers())

    assert response.status_code == 404


async def test_webhook_route(client):
    graph = approval_graph()
    graph["nodes"][0]["data"]["config"] = {
        "triggerType": "webhook",
        "path": "/orders",
        "security": {"signingSecret": SECRET},
    }
    template_id = await _published_template(client, graph)
    body = json.dumps({"orderId": "o-9"}).encode()
    ts = str(int(time.time()))
    headers = {
        "X-Tenant-Id": TENANT,
        "Content-Type": "application/json",
        "X-Webhook-Timestamp": ts,
        "X-Webhook-Event": "order.created",
        "Idempotency-Key": "delivery-1",
        "X-Webhook-Signature": compute_signature(SECRET, ts, "POST", "/orders", body),
    }

    response = await client.post("/webhooks/orders", content=body, headers=headers)
    assert response.status_code == 200
    accepted = response.json()
    assert accepted["duplicate"] is False
    assert accepted["status"] == "waiting_approval"

    response = await client.post("/webhooks/orders", content=body, headers=headers)
    assert response.json()["duplicate"] is True
    assert response.json()["instance_id"] == accepted["instance_id"]

    response = await client.post(
        "/webhooks/orders", content=body, headers={**headers, "X-Webhook-Signature": "0" * 64}
    )
    assert response.status_code == 401

    response = await client.post("/webhooks/nowhere", content=body, headers=headers)
    assert response.status_code == 404

    response = await client.get("/api/triggers", params={"template_id": template_id}, headers=_headers())
    trigger = response.json()[0]
    assert trigger["type"] == "webhook"
    assert trigger["config"]["security"]["signingSecret"] == "***"
    assert trigger["webhook_url"].endswith("/webhooks/orders")


async def test_trigger_update_and_scheduler_callback_guard(client):
    template_id = await _published_template(client)
    response = await client.get("/api/triggers", params={"template_id": template_id}, headers=_headers())
    trigger_id = response.json()[0]["id"]

    response = await client.patch(f"/api/triggers/{trigger_id}", json={"active": False}, headers=_headers())
    assert response.status_code == 200
    assert response.json()["active"] is False

    response = await client.patch("/api/triggers/trg_missing", json={"active": False}, headers=_headers())
    assert response.status_code == 404

    response = await client.post(f"/api/triggers/{trigger_id}/fire", headers=_headers())
    assert response.status_code == 403
