"""
Scheduled tasks (Celery Beat)
- Provider syncs for integrations whose cadence has elapsed, every 5 minutes
- Re-attempt of failed webhook deliveries whose next_retry_at is due, every minute
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from integrations_hub.tasks.celery_app import celery_app
from integrations_hub.core.database import SessionLocal
from integrations_hub.models import SyncType
from integrations_hub.services.sync_engine import SyncEngine, find_due_integrations
from integrations_hub.services.webhook_dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)


@celery_app.task(name="sync_due_integrations")
def sync_due_integrations():
    """Run a 'scheduled' sync for every active auto-sync integration that is due"""
    db = SessionLocal()
    try:
        integration_ids = [i.id for i in find_due_integrations(db)]
        if not integration_ids:
            return {"success": True, "checked": 0, "succeeded": 0, "failed": 0}

        logger.info(f"Scheduled sync for {len(integration_ids)} integrations")
        engine = SyncEngine(db)

        async def run_all():
            # Sequential: the runs share one session
            return [
                await engine.run_sync(integration_id, SyncType.SCHEDULED.value)
                for integration_id in integration_ids
            ]

        results = asyncio.run(run_all())
        succeeded = sum(1 for r in results if r.success)

        return {
            "success": True,
            "checked": len(results),
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
        }

    except Exception as e:
        logger.error(f"Error running scheduled syncs: {str(e)}")
        db.rollback()
        return {"success": False, "error": str(e)}
    finally:
        db.close()


@celery_app.task(name="retry_due_webhook_deliveries")
def retry_due_webhook_deliveries(limit: Optional[int] = None):
    """Re-attempt failed deliveries whose next_retry_at has passed"""
    try:
        outcomes = asyncio.run(WebhookDispatcher().retry_due(limit=limit))
    except Exception as e:
        logger.error(f"Error retrying webhook deliveries: {str(e)}")
        return {"success": False, "error": str(e)}

    delivered = sum(1 for o in outcomes if o.delivered)
    return {
        "success": True,
        "retried": len(outcomes),
        "delivered": delivered,
        "failed": len(outcomes) - delivered,
    }


@celery_app.task(name="dispatch_webhook_event")
def dispatch_webhook_event(event_type: str, payload: Dict[str, Any], location_id: Optional[str] = None):
    """
    Deliver an operational event off the request path.
    Producers call dispatch_webhook_event.delay(event_type, payload).
    """
    outcomes = asyncio.run(WebhookDispatcher().trigger(event_type, payload, location_id=location_id))
    return [o.to_dict() for o in outcomes]
