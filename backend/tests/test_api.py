"""
Tests for the HTTP API
"""
import pytest
from fastapi.testclient import TestClient

from integrations_hub.api.webhooks import get_webhook_dispatcher
from integrations_hub.main import app

client = TestClient(app)


@pytest.fixture
def fake_dispatch(dispatcher):
    app.dependency_overrides[get_webhook_dispatcher] = lambda: dispatcher
    yield dispatcher
    app.dependency_overrides.pop(get_webhook_dispatcher, None)


def connect_square(location_id="loc-1"):
    response = client.post("/api/integrations/connect", json={
        "location_id": location_id,
        "provider_id": "provider-square",
        "credentials": {"access_token": "sq0atp-secret"},
        "enabled_features": ["sales_import"],
    })
    assert response.status_code == 201
    return response.json()["data"]["integration"]


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_list_providers():
    response = client.get("/api/integrations/providers")

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert len(body["data"]) == 10

    pos = client.get("/api/integrations/providers", params={"category": "pos"}).json()["data"]
    assert [p["name"] for p in pos] == ["Clover POS", "Square POS", "Toast POS"]


def test_provider_not_found_envelope():
    response = client.get("/api/integrations/providers/provider-nope")

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Provider not found: provider-nope"}


def test_connect_and_read_back():
    integration = connect_square()

    assert integration["status"] == "active"
    assert integration["provider_name"] == "Square POS"
    assert "credentials_encrypted" not in integration
    assert "sq0atp-secret" not in str(integration)

    fetched = client.get(f"/api/integrations/{integration['id']}").json()["data"]
    assert fetched["id"] == integration["id"]

    listed = client.get("/api/integrations/location/loc-1").json()["data"]
    assert [i["id"] for i in listed] == [integration["id"]]
    assert listed[0]["supported_features"] == ["sales_import", "inventory_sync", "payment_processing"]


def test_connect_validation_errors():
    missing_location = client.post("/api/integrations/connect", json={"provider_id": "provider-square"})
    assert missing_location.status_code == 422
    assert missing_location.json()["success"] is False

    bad_feature = client.post("/api/integrations/connect", json={
        "location_id": "loc-1",
        "provider_id": "provider-square",
        "enabled_features": ["teleportation"],
    })
    assert bad_feature.status_code == 400
    assert "teleportation" in bad_feature.json()["error"]


def test_status_update_and_illegal_transition():
    integration = connect_square()

    disabled = client.put(f"/api/integrations/{integration['id']}/status", json={"status": "disabled"})
    assert disabled.status_code == 200
    assert disabled.json()["data"]["status"] == "disabled"

    illegal = client.put(f"/api/integrations/{integration['id']}/status", json={"status": "pending"})
    assert illegal.status_code == 409
    assert illegal.json()["success"] is False


def test_rotate_credentials_endpoint():
    integration = connect_square()

    response = client.put(f"/api/integrations/{integration['id']}/credentials",
                          json={"credentials": {"access_token": "sq0atp-rotated"}})

    assert response.status_code == 200
    assert response.json()["data"]["connection_test"]["success"] is True


def test_sync_and_logs():
    integration = connect_square()

    response = client.post(f"/api/integrations/{integration['id']}/sync", json={"sync_type": "manual"})

    data = response.json()["data"]
    assert response.status_code == 200
    assert data["success"] is True
    assert (data["processed"], data["succeeded"], data["failed"]) == (100, 95, 5)

    logs = client.get(f"/api/integrations/{integration['id']}/sync-logs", params={"limit": 10}).json()["data"]
    assert len(logs) == 1
    assert logs[0]["id"] == data["sync_log_id"]
    assert logs[0]["status"] == "completed"

    refreshed = client.get(f"/api/integrations/{integration['id']}").json()["data"]
    assert refreshed["last_sync_status"] == "success"


def test_sync_unknown_integration_is_404():
    response = client.post("/api/integrations/integration-missing/sync", json={})
    assert response.status_code == 404


def test_disconnect_keeps_logs():
    integration = connect_square()
    client.post(f"/api/integrations/{integration['id']}/sync")

    response = client.delete(f"/api/integrations/{integration['id']}")

    assert response.status_code == 200
    assert response.json()["data"]["id"] == integration["id"]
    assert client.get(f"/api/integrations/{integration['id']}").status_code == 404
    assert len(client.get(f"/api/integrations/{integration['id']}/sync-logs").json()["data"]) == 1


def test_webhook_crud_and_trigger(fake_dispatch, endpoints):
    created = client.post("/api/integrations/webhooks", json={
        "name": "Kitchen display",
        "url": "https://kitchen.example.com/events",
        "event_types": ["order.completed"],
        "location_id": "loc-1",
        "auth_type": "bearer_token",
        "auth_credentials": {"token": "kds-token-123"},
    })
    assert created.status_code == 201
    webhook = created.json()["data"]
    assert webhook["auth_credentials"]["token"] == "********-123"

    listed = client.get("/api/integrations/webhooks", params={"location_id": "loc-1"}).json()["data"]
    assert [w["id"] for w in listed] == [webhook["id"]]

    updated = client.put(f"/api/integrations/webhooks/{webhook['id']}", json={"max_retries": 5})
    assert updated.json()["data"]["max_retries"] == 5

    triggered = client.post("/api/integrations/webhooks/trigger", json={
        "event_type": "order.completed",
        "payload": {"order_id": "o-1"},
    })
    assert triggered.status_code == 200
    outcomes = triggered.json()["data"]
    assert len(outcomes) == 1
    assert outcomes[0]["status"] == "delivered"
    assert endpoints.requests[0].headers["Authorization"] == "Bearer kds-token-123"

    deliveries = client.get(f"/api/integrations/webhooks/{webhook['id']}/deliveries").json()["data"]
    assert len(deliveries) == 1
    assert deliveries[0]["attempts"] == 1

    deleted = client.delete(f"/api/integrations/webhooks/{webhook['id']}")
    assert deleted.status_code == 200
    assert client.get(f"/api/integrations/webhooks/{webhook['id']}").status_code == 404


def test_trigger_failure_and_manual_retry(fake_dispatch, endpoints):
    endpoints.respond("https://broken.example.com/hook", status_code=500)
    client.post("/api/integrations/webhooks", json={
        "name": "Broken",
        "url": "https://broken.example.com/hook",
        "event_types": ["order.completed"],
    })

    outcome = client.post("/api/integrations/webhooks/trigger", json={
        "event_type": "order.completed",
        "payload": {},
    }).json()["data"][0]
    assert outcome["status"] == "failed"
    assert outcome["attempts"] == 1
    assert outcome["next_retry_at"] is not None

    endpoints.respond("https://broken.example.com/hook", status_code=200)
    retried = client.post(f"/api/integrations/webhooks/deliveries/{outcome['delivery_id']}/retry")

    assert retried.status_code == 200
    assert retried.json()["data"]["status"] == "delivered"
    assert retried.json()["data"]["attempts"] == 2


def test_webhook_validation_error():
    response = client.post("/api/integrations/webhooks", json={
        "name": "Bad",
        "url": "ftp://files.example.com/",
        "event_types": ["order.completed"],
    })
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_api_key_lifecycle():
    created = client.post("/api/integrations/api-keys", json={"name": "POS bridge", "permissions": ["*"]})
    assert created.status_code == 201
    issued = created.json()["data"]
    plaintext = issued["key"]

    whoami = client.get("/api/integrations/api-keys/whoami", headers={"X-API-Key": plaintext})
    assert whoami.status_code == 200
    assert whoami.json()["data"]["id"] == issued["id"]
    assert whoami.json()["data"]["usage_count"] == 1

    listed = client.get("/api/integrations/api-keys").json()["data"]
    assert plaintext not in str(listed)
    assert listed[0]["prefix"] == plaintext[:12]

    revoked = client.post(f"/api/integrations/api-keys/{issued['id']}/revoke")
    assert revoked.json()["data"]["is_active"] is False

    rejected = client.get("/api/integrations/api-keys/whoami", headers={"X-API-Key": plaintext})
    assert rejected.status_code == 401
    assert rejected.json() == {"success": False, "error": "Invalid API key"}


def test_api_key_required():
    response = client.get("/api/integrations/api-keys/whoami")
    assert response.status_code == 401


def test_api_key_hourly_rate_limit():
    plaintext = client.post("/api/integrations/api-keys", json={
        "name": "Tight",
        "rate_limit_per_hour": 2,
    }).json()["data"]["key"]

    statuses = [
        client.get("/api/integrations/api-keys/whoami", headers={"X-API-Key": plaintext}).status_code
        for _ in range(3)
    ]

    assert statuses == [200, 200, 429]


def test_providers_report_sync_support():
    providers = {p["id"]: p for p in client.get("/api/integrations/providers").json()["data"]}

    assert providers["provider-square"]["sync_supported"] is True
    assert providers["provider-clover"]["sync_supported"] is False
