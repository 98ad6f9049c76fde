"""Records sync attempts that could not be finalized in their own transaction

Uses an independent database session so the record survives the rollback of
the run that failed.
"""
from datetime import datetime
from typing import Callable, Optional
import logging

from sqlalchemy.orm import Session

from integrations_hub.core.database import SessionLocal
from integrations_hub.models import Integration, SyncLog, SyncLogStatus, LastSyncStatus
from integrations_hub.utils.helpers import new_id, utcnow

logger = logging.getLogger(__name__)


def record_failed_sync(
    integration_id: str,
    sync_type: str,
    error_message: str,
    started_at: Optional[datetime] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> Optional[str]:
    """
    Write a terminal 'failed' sync log and bump the integration's error counter.

    Returns the log id, or None when the integration no longer exists or the
    write itself failed.
    """
    log_db = session_factory()
    try:
        integration = log_db.query(Integration).filter(Integration.id == integration_id).first()
        if integration is None:
            return None

        now = utcnow()
        sync_log = SyncLog(
            id=new_id("sync"),
            integration_id=integration_id,
            sync_type=sync_type,
            status=SyncLogStatus.FAILED.value,
            started_at=started_at or now,
            completed_at=now,
            records_processed=0,
            records_succeeded=0,
            records_failed=0,
            error_message=error_message,
            sync_metadata={"rolled_back": True},
        )
        log_db.add(sync_log)

        integration.last_sync_at = now
        integration.last_sync_status = LastSyncStatus.FAILURE.value
        integration.error_count = (integration.error_count or 0) + 1
        integration.last_error = error_message

        log_db.commit()
        logger.info(f"Logged failed sync {sync_log.id} for integration {integration_id}")
        return sync_log.id

    except Exception as e:
        logger.error(f"Error logging failed sync for integration {integration_id}: {e}")
        log_db.rollback()
        return None
    finally:
        log_db.close()
