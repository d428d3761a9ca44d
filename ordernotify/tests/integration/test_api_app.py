from __future__ import annotations

import logging

from fastapi import Depends
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
import pytest

from ordernotify.apps.api.context import AppContext, build_context
from ordernotify.apps.api.deps import get_notifier
from ordernotify.apps.api.main import create_app
from ordernotify.domain.models import TransportKind
from ordernotify.providers.email.fake import FakeEmailTransport
from ordernotify.services.notifications import Notifier, notify_order_event


async def _client_with_context(make_settings) -> tuple[AsyncClient, AppContext, FakeEmailTransport]:  # noqa: ANN001
    # ASGITransport skips the lifespan, so the context is attached the way the lifespan would.
    transport = FakeEmailTransport(kind=TransportKind.API)
    context = await build_context(make_settings(email_from="shop@example.com"), transports=[transport])
    app = create_app(context)
    app.state.context = context
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test"), context, transport


@pytest.mark.asyncio
async def test_root_reports_running(make_settings) -> None:  # noqa: ANN001
    client, context, _ = await _client_with_context(make_settings)
    async with client:
        response = await client.get("/")
    await context.aclose()

    assert response.status_code == 200
    assert response.text == "Order notification API is running"


@pytest.mark.asyncio
async def test_health_is_bare_unversioned_and_enveloped_under_v1(make_settings) -> None:  # noqa: ANN001
    client, context, _ = await _client_with_context(make_settings)
    async with client:
        bare = await client.get("/health")
        versioned = await client.get("/v1/health", headers={"X-Request-Id": "req-123"})
    await context.aclose()

    assert bare.json() == {"status": "ok", "email_transports": ["api"]}
    body = versioned.json()
    assert body["data"] == {"status": "ok", "email_transports": ["api"]}
    assert body["meta"] == {"request_id": "req-123", "api_version": "v1"}
    assert versioned.headers["X-Request-Id"] == "req-123"


@pytest.mark.asyncio
async def test_unknown_route_returns_json_not_found(make_settings) -> None:  # noqa: ANN001
    client, context, _ = await _client_with_context(make_settings)
    async with client:
        response = await client.get("/v1/orders/does-not-exist")
    await context.aclose()

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Route not found."}


@pytest.mark.asyncio
async def test_ops_view_reports_chain_and_deliveries(make_settings) -> None:  # noqa: ANN001
    client, context, transport = await _client_with_context(make_settings)
    context.notifier.notify("buyer@example.com", "Order Confirmation — 77", "<p>thanks</p>", correlation_id="77")
    await context.notifier.drain(timeout_s=1.0)

    async with client:
        response = await client.get("/v1/ops/notifications")
    await context.aclose()

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["transports"] == ["api"]
    assert data["sender"] == "shop@example.com"
    assert data["pending_dispatches"] == 0
    assert data["supervisor"] == {"drained": False, "tasks": []}
    assert len(transport.sent) == 1


@pytest.mark.asyncio
async def test_ops_view_is_unavailable_without_context(make_settings) -> None:  # noqa: ANN001
    app = create_app(settings=make_settings())
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/v1/ops/notifications")

    assert response.status_code == 503
    assert response.json() == {"success": False, "message": "Service is starting up"}


def test_lifespan_builds_and_closes_context(make_settings) -> None:  # noqa: ANN001
    app = create_app(settings=make_settings(email_transport="fake"))

    with TestClient(app) as client:
        context = app.state.context
        response = client.get("/v1/ops/notifications")
        assert response.json()["data"]["transports"] == ["fake"]

    assert context.closed is True
    assert context.supervisor.drained is True
    assert app.state.context is None


@pytest.mark.asyncio
async def test_order_route_succeeds_when_every_transport_fails(make_settings, caplog) -> None:  # noqa: ANN001
    api = FakeEmailTransport(kind=TransportKind.API, priority=0, fail_with="resend 500")
    smtp = FakeEmailTransport(kind=TransportKind.SMTP, priority=1, fail_with="smtp refused")
    context = await build_context(make_settings(), transports=[api, smtp])
    app = create_app(context)
    app.state.context = context

    @app.post("/v1/orders", status_code=201)
    async def create_order(payload: dict, notifier: Notifier = Depends(get_notifier)) -> dict:
        order_id = str(payload["id"])
        notify_order_event(
            notifier,
            event="created",
            order_id=order_id,
            recipient=payload.get("email"),
            html="<p>Thanks for your order</p>",
        )
        return {"success": True, "id": order_id}

    with caplog.at_level(logging.WARNING):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/v1/orders", json={"id": 501, "email": "buyer@example.com"})
        await context.notifier.drain(timeout_s=1.0)
    await context.aclose()

    assert response.status_code == 201
    assert response.json() == {"success": True, "id": "501"}
    assert api.attempts == 1 and smtp.attempts == 1
    assert "notification_not_sent recipient=buyer@example.com" in caplog.text
    assert "attempted=api,smtp" in caplog.text
    assert "error=smtp refused" in caplog.text


@pytest.mark.asyncio
async def test_health_reports_ok_before_context_exists(make_settings) -> None:  # noqa: ANN001
    app = create_app(settings=make_settings())
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "email_transports": []}
