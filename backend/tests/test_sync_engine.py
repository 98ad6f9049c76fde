"""
Tests for provider syncs and their logs
"""
import asyncio
from datetime import timedelta

import pytest
from cryptography.fernet import Fernet

from integrations_hub.core.exceptions import InputValidationError
from integrations_hub.core.security import CredentialVault
from integrations_hub.models import Integration, SyncLog
from integrations_hub.services.connection_manager import ConnectionManager
from integrations_hub.services.provider_registry import CapabilityRegistry, SyncResult
from integrations_hub.services.sync_engine import SYNC_NOT_IMPLEMENTED, SyncEngine, find_due_integrations
from integrations_hub.utils.helpers import utcnow


def connect(db, provider_id="provider-square", **kwargs):
    integration, _ = asyncio.run(ConnectionManager(db).connect(
        location_id=kwargs.pop("location_id", "loc-1"),
        provider_id=provider_id,
        credentials={"access_token": "tok"},
        **kwargs,
    ))
    return integration


def logs_for(db, integration_id):
    db.expire_all()
    return db.query(SyncLog).filter(SyncLog.integration_id == integration_id).all()


def test_square_manual_sync(db):
    integration = connect(db)

    result = asyncio.run(SyncEngine(db).run_sync(integration.id, "manual"))

    assert result.success is True
    assert (result.processed, result.succeeded, result.failed) == (100, 95, 5)

    logs = logs_for(db, integration.id)
    assert len(logs) == 1
    assert logs[0].id == result.sync_log_id
    assert logs[0].status == "completed"
    assert logs[0].sync_type == "manual"
    assert logs[0].completed_at is not None
    assert (logs[0].records_processed, logs[0].records_succeeded, logs[0].records_failed) == (100, 95, 5)

    stored = db.query(Integration).filter(Integration.id == integration.id).first()
    assert stored.last_sync_status == "success"
    assert stored.last_sync_at is not None
    assert stored.error_count == 0


def test_each_run_appends_a_new_log(db):
    integration = connect(db, provider_id="provider-toast")
    engine = SyncEngine(db)

    first = asyncio.run(engine.run_sync(integration.id, "manual"))
    second = asyncio.run(engine.run_sync(integration.id, "manual"))

    assert first.sync_log_id != second.sync_log_id
    assert len(logs_for(db, integration.id)) == 2


def test_provider_without_strategy(db):
    integration = connect(db, provider_id="provider-clover")

    result = asyncio.run(SyncEngine(db).run_sync(integration.id))

    assert result.success is False
    assert result.error == SYNC_NOT_IMPLEMENTED

    logs = logs_for(db, integration.id)
    assert [log.status for log in logs] == ["failed"]
    assert logs[0].error_message == SYNC_NOT_IMPLEMENTED

    stored = db.query(Integration).filter(Integration.id == integration.id).first()
    assert stored.last_sync_status == "failure"
    assert stored.error_count == 1


def test_error_count_resets_on_success(db):
    integration = connect(db)
    failing = CapabilityRegistry("sync")

    @failing.register("provider-square")
    def refuse(credentials, config):
        return SyncResult(success=False, error="token expired")

    asyncio.run(SyncEngine(db, strategies=failing).run_sync(integration.id))
    asyncio.run(SyncEngine(db, strategies=failing).run_sync(integration.id))
    db.expire_all()
    assert db.query(Integration).filter(Integration.id == integration.id).first().error_count == 2

    asyncio.run(SyncEngine(db).run_sync(integration.id))
    db.expire_all()
    stored = db.query(Integration).filter(Integration.id == integration.id).first()
    assert stored.error_count == 0
    assert stored.last_sync_status == "success"


def test_strategy_exception_is_a_failed_result(db):
    integration = connect(db)
    registry = CapabilityRegistry("sync")

    @registry.register("provider-square")
    async def explode(credentials, config):
        raise ConnectionError("square api unreachable")

    result = asyncio.run(SyncEngine(db, strategies=registry).run_sync(integration.id))

    assert result.success is False
    assert "square api unreachable" in result.error
    assert [log.status for log in logs_for(db, integration.id)] == ["failed"]


def test_strategy_reads_credential_snapshot(db):
    integration = connect(db)
    registry = CapabilityRegistry("sync")
    seen = []

    @registry.register("provider-square")
    def record(credentials, config):
        seen.append(dict(credentials))
        return SyncResult(success=True, processed=1, succeeded=1)

    asyncio.run(SyncEngine(db, strategies=registry).run_sync(integration.id))

    assert seen == [{"access_token": "tok"}]


def test_unknown_integration_returns_error_without_log(db):
    result = asyncio.run(SyncEngine(db).run_sync("integration-missing"))

    assert result.success is False
    assert "Integration not found" in result.error
    assert result.sync_log_id is None
    assert db.query(SyncLog).count() == 0


def test_infrastructure_failure_rolls_back_and_records_failed_attempt(db):
    """Undecryptable credentials abort the run; exactly one terminal log remains"""
    integration = connect(db)
    other_vault = CredentialVault([Fernet.generate_key()])

    result = asyncio.run(SyncEngine(db, vault=other_vault).run_sync(integration.id, "scheduled"))

    assert result.success is False
    assert "could not be decrypted" in result.error

    logs = logs_for(db, integration.id)
    assert len(logs) == 1
    assert logs[0].status == "failed"
    assert logs[0].id == result.sync_log_id
    assert logs[0].sync_type == "scheduled"
    assert not any(log.status == "in_progress" for log in db.query(SyncLog).all())

    stored = db.query(Integration).filter(Integration.id == integration.id).first()
    assert stored.error_count == 1
    assert stored.last_sync_status == "failure"


def test_invalid_sync_type(db):
    integration = connect(db)
    with pytest.raises(InputValidationError):
        asyncio.run(SyncEngine(db).run_sync(integration.id, "hourly"))


def test_sync_logs_newest_first_and_limited(db):
    integration = connect(db)
    engine = SyncEngine(db)
    for _ in range(3):
        asyncio.run(engine.run_sync(integration.id))

    logs = engine.get_sync_logs(integration.id, limit=2)

    assert len(logs) == 2
    assert logs[0].started_at >= logs[1].started_at

    with pytest.raises(InputValidationError):
        engine.get_sync_logs(integration.id, limit=0)


def test_find_due_integrations(db):
    never_synced = connect(db)
    recently_synced = connect(db, provider_id="provider-toast", sync_frequency_minutes=60)
    overdue = connect(db, provider_id="provider-quickbooks", sync_frequency_minutes=15)
    manual_only = connect(db, provider_id="provider-xero", auto_sync_enabled=False)

    now = utcnow()
    recently_synced.last_sync_at = now - timedelta(minutes=10)
    overdue.last_sync_at = now - timedelta(minutes=20)
    db.merge(recently_synced)
    db.merge(overdue)
    db.commit()

    due_ids = {i.id for i in find_due_integrations(db, now)}

    assert never_synced.id in due_ids
    assert overdue.id in due_ids
    assert recently_synced.id not in due_ids
    assert manual_only.id not in due_ids
