"""
Sync Engine: runs one provider sync for an integration and logs it.

Each run opens an in_progress SyncLog, reads the credentials once, calls the
provider strategy, then finalizes the log and the integration's last-sync
fields in the same transaction. Strategy failures are results; anything else
rolls the run back and is recorded as a failed attempt in its own session.
"""
import inspect
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from integrations_hub.core.database import get_session_factory
from integrations_hub.core.exceptions import IntegrationNotFound, InputValidationError
from integrations_hub.core.logging import log_api_call
from integrations_hub.core.security import CredentialVault, get_vault
from integrations_hub.models import (
    Integration,
    IntegrationProvider,
    IntegrationStatus,
    LastSyncStatus,
    SyncDirection,
    SyncLog,
    SyncLogStatus,
    SyncType,
)
from integrations_hub.services import provider_strategies  # noqa: F401  registers built-in strategies
from integrations_hub.services.integration_logger import record_failed_sync
from integrations_hub.services.provider_registry import CapabilityRegistry, SyncResult, sync_strategies
from integrations_hub.utils.helpers import new_id, utcnow

logger = logging.getLogger(__name__)

SYNC_NOT_IMPLEMENTED = "Provider sync not implemented"
MAX_SYNC_LOGS = 500


class SyncEngine:

    def __init__(
        self,
        db: Session,
        vault: Optional[CredentialVault] = None,
        strategies: Optional[CapabilityRegistry] = None,
        session_factory: Optional[Callable[[], Session]] = None,
    ):
        self.db = db
        self.vault = vault or get_vault()
        self.strategies = strategies if strategies is not None else sync_strategies
        self.session_factory = session_factory or get_session_factory()

    async def run_sync(
        self,
        integration_id: str,
        sync_type: str = SyncType.MANUAL.value,
        direction: str = SyncDirection.BIDIRECTIONAL.value,
    ) -> SyncResult:
        """
        Run one sync and return its outcome; never raises for provider or
        infrastructure failures of the run itself.
        """
        if sync_type not in {t.value for t in SyncType}:
            raise InputValidationError(f"Invalid sync type: {sync_type}")
        if direction not in {d.value for d in SyncDirection}:
            raise InputValidationError(f"Invalid sync direction: {direction}")

        started_at = utcnow()

        try:
            sync_log = SyncLog(
                id=new_id("sync"),
                integration_id=integration_id,
                sync_type=sync_type,
                direction=direction,
                status=SyncLogStatus.IN_PROGRESS.value,
                started_at=started_at,
            )
            self.db.add(sync_log)
            self.db.flush()

            row = (
                self.db.query(Integration, IntegrationProvider)
                .join(IntegrationProvider, Integration.provider_id == IntegrationProvider.id)
                .filter(Integration.id == integration_id)
                .first()
            )
            if row is None:
                raise IntegrationNotFound(integration_id)
            integration, provider = row

            # Credential snapshot; a concurrent rotation does not affect this run
            credentials = self.vault.decrypt(integration.credentials_encrypted)
            config = dict(integration.config or {})

            result = await self._dispatch(provider.id, credentials, config)

            completed_at = utcnow()
            sync_log.status = SyncLogStatus.COMPLETED.value if result.success else SyncLogStatus.FAILED.value
            sync_log.completed_at = completed_at
            sync_log.records_processed = result.processed
            sync_log.records_succeeded = result.succeeded
            sync_log.records_failed = result.failed
            sync_log.error_message = result.error
            sync_log.sync_metadata = {
                "provider_id": provider.id,
                "duration_ms": int((completed_at - started_at).total_seconds() * 1000),
            }

            integration.last_sync_at = completed_at
            if result.success:
                integration.last_sync_status = LastSyncStatus.SUCCESS.value
                integration.error_count = 0
            else:
                integration.last_sync_status = LastSyncStatus.FAILURE.value
                integration.error_count = (integration.error_count or 0) + 1
                integration.last_error = result.error

            self.db.commit()

        except IntegrationNotFound as e:
            self.db.rollback()
            logger.warning(f"Sync requested for unknown integration {integration_id}")
            return SyncResult(success=False, error=e.message)

        except Exception as e:
            self.db.rollback()
            logger.exception(f"Sync of integration {integration_id} rolled back")
            error_message = str(e) or e.__class__.__name__
            failed_log_id = record_failed_sync(
                integration_id,
                sync_type,
                error_message,
                started_at=started_at,
                session_factory=self.session_factory,
            )
            return SyncResult(success=False, error=error_message, sync_log_id=failed_log_id)

        result.sync_log_id = sync_log.id
        logger.info(
            f"Sync {sync_log.id} for integration {integration_id}: {sync_log.status} "
            f"({result.succeeded}/{result.processed} records)"
        )
        return result

    async def _dispatch(self, provider_id: str, credentials: Dict[str, Any], config: Dict[str, Any]) -> SyncResult:
        strategy = self.strategies.get(provider_id)
        if strategy is None:
            return SyncResult(success=False, error=SYNC_NOT_IMPLEMENTED)

        start_time = time.perf_counter()
        try:
            result = strategy(credentials, config)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.exception(f"Sync strategy for {provider_id} raised")
            result = SyncResult(success=False, error=str(e) or e.__class__.__name__)

        log_api_call(
            logger,
            service=provider_id,
            endpoint="sync",
            duration_ms=int((time.perf_counter() - start_time) * 1000),
            error=result.error if not result.success else None,
        )
        return result

    def get_sync_logs(self, integration_id: str, limit: int = 50) -> List[SyncLog]:
        """Newest first; logs of disconnected integrations remain readable"""
        if limit < 1 or limit > MAX_SYNC_LOGS:
            raise InputValidationError(f"limit must be between 1 and {MAX_SYNC_LOGS}")

        return (
            self.db.query(SyncLog)
            .filter(SyncLog.integration_id == integration_id)
            .order_by(SyncLog.started_at.desc())
            .limit(limit)
            .all()
        )


def find_due_integrations(db: Session, now: Optional[datetime] = None) -> List[Integration]:
    """Active auto-sync integrations whose cadence has elapsed since their last sync"""
    now = now or utcnow()
    candidates = (
        db.query(Integration)
        .filter(
            Integration.status == IntegrationStatus.ACTIVE.value,
            Integration.auto_sync_enabled == True,
        )
        .order_by(Integration.last_sync_at)
        .all()
    )

    due = []
    for integration in candidates:
        if integration.last_sync_at is None:
            due.append(integration)
            continue
        cadence = timedelta(minutes=integration.sync_frequency_minutes or 60)
        if integration.last_sync_at + cadence <= now:
            due.append(integration)
    return due


def serialize_sync_log(sync_log: SyncLog) -> Dict[str, Any]:
    return {
        "id": sync_log.id,
        "integration_id": sync_log.integration_id,
        "sync_type": sync_log.sync_type,
        "direction": sync_log.direction,
        "status": sync_log.status,
        "started_at": sync_log.started_at.isoformat() if sync_log.started_at else None,
        "completed_at": sync_log.completed_at.isoformat() if sync_log.completed_at else None,
        "records_processed": sync_log.records_processed,
        "records_succeeded": sync_log.records_succeeded,
        "records_failed": sync_log.records_failed,
        "error_message": sync_log.error_message,
        "sync_metadata": sync_log.sync_metadata or {},
    }
