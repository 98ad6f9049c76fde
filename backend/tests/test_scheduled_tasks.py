"""
Tests for the Celery beat tasks, called in-process
"""
import asyncio

from integrations_hub.models import Integration, SyncLog, WebhookDelivery
from integrations_hub.services.connection_manager import ConnectionManager
from integrations_hub.services.webhook_dispatcher import WebhookDispatcher
from integrations_hub.services.webhook_service import WebhookService
from integrations_hub.tasks import scheduled_tasks
from integrations_hub.tasks.scheduled_tasks import retry_due_webhook_deliveries, sync_due_integrations


def test_sync_due_integrations(db):
    manager = ConnectionManager(db)
    due, _ = asyncio.run(manager.connect("loc-1", "provider-square", {"access_token": "tok"}))
    asyncio.run(manager.connect("loc-1", "provider-toast", {"api_key": "k"}, auto_sync_enabled=False))

    summary = sync_due_integrations()

    assert summary == {"success": True, "checked": 1, "succeeded": 1, "failed": 0}
    db.expire_all()
    logs = db.query(SyncLog).all()
    assert [(log.integration_id, log.sync_type) for log in logs] == [(due.id, "scheduled")]

    # Just synced: nothing due on the next sweep
    assert sync_due_integrations()["checked"] == 0


def test_sync_due_skips_inactive(db):
    manager = ConnectionManager(db)
    integration, _ = asyncio.run(manager.connect("loc-1", "provider-square", {"access_token": "tok"}))
    manager.set_status(integration.id, "disabled")

    assert sync_due_integrations()["checked"] == 0
    db.expire_all()
    assert db.query(Integration).filter(Integration.id == integration.id).first().last_sync_at is None


def test_retry_due_webhook_deliveries(db, endpoints, monkeypatch):
    monkeypatch.setattr(
        scheduled_tasks, "WebhookDispatcher",
        lambda: WebhookDispatcher(client_factory=endpoints.client_factory),
    )
    WebhookService(db).create(
        name="Orders",
        url="https://hooks.example.com/orders",
        event_types=["order.completed"],
        retry_delay_seconds=0,
    )
    endpoints.respond("https://hooks.example.com/orders", status_code=502)
    failed = asyncio.run(WebhookDispatcher(client_factory=endpoints.client_factory).trigger("order.completed", {}))[0]

    endpoints.respond("https://hooks.example.com/orders", status_code=200)
    summary = retry_due_webhook_deliveries()

    assert summary == {"success": True, "retried": 1, "delivered": 1, "failed": 0}
    db.expire_all()
    delivery = db.query(WebhookDelivery).filter(WebhookDelivery.id == failed.delivery_id).first()
    assert delivery.status == "delivered"
    assert delivery.attempts == 2
