"""
API for outbound webhooks: subscriptions, event trigger and delivery history
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from integrations_hub.api.schemas import SuccessEnvelope, ok
from integrations_hub.core.database import get_db
from integrations_hub.models import WebhookAuthType
from integrations_hub.services.webhook_dispatcher import WebhookDispatcher
from integrations_hub.services.webhook_service import WebhookService, serialize_delivery

router = APIRouter(prefix="/api/integrations/webhooks", tags=["webhooks"])


# =====================================================
# SCHEMAS
# =====================================================

class WebhookCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., max_length=500)
    event_types: List[str] = Field(..., min_length=1)
    location_id: Optional[str] = Field(None, max_length=64)
    method: str = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    auth_type: WebhookAuthType = WebhookAuthType.NONE
    auth_credentials: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    retry_on_failure: bool = True
    max_retries: int = Field(default=3, ge=0, le=20)
    retry_delay_seconds: int = Field(default=60, ge=0)


class WebhookUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    url: Optional[str] = Field(None, max_length=500)
    event_types: Optional[List[str]] = None
    method: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    auth_type: Optional[WebhookAuthType] = None
    auth_credentials: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None
    retry_on_failure: Optional[bool] = None
    max_retries: Optional[int] = Field(None, ge=0, le=20)
    retry_delay_seconds: Optional[int] = Field(None, ge=0)


class TriggerRequest(BaseModel):
    event_type: str = Field(..., min_length=1, max_length=100)
    payload: Any = Field(default_factory=dict)
    location_id: Optional[str] = None


def get_webhook_dispatcher() -> WebhookDispatcher:
    return WebhookDispatcher()


# =====================================================
# SUBSCRIPTIONS
# =====================================================

@router.post("", response_model=SuccessEnvelope, status_code=201)
def create_webhook(data: WebhookCreate, db: Session = Depends(get_db)):
    service = WebhookService(db)
    webhook = service.create(
        name=data.name,
        url=data.url,
        event_types=data.event_types,
        location_id=data.location_id,
        method=data.method,
        headers=data.headers,
        auth_type=data.auth_type.value,
        auth_credentials=data.auth_credentials,
        is_active=data.is_active,
        retry_on_failure=data.retry_on_failure,
        max_retries=data.max_retries,
        retry_delay_seconds=data.retry_delay_seconds,
    )
    return ok(service.serialize(webhook), message="Webhook created")


@router.get("", response_model=SuccessEnvelope)
def list_webhooks(
    location_id: Optional[str] = None,
    include_global: bool = True,
    db: Session = Depends(get_db),
):
    service = WebhookService(db)
    return ok([service.serialize(w) for w in service.list(location_id, include_global=include_global)])


@router.post("/trigger", response_model=SuccessEnvelope)
async def trigger_event(
    data: TriggerRequest,
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
):
    """Deliver an event to every subscribed webhook; one settled outcome per webhook"""
    outcomes = await dispatcher.trigger(data.event_type, data.payload, location_id=data.location_id)
    delivered = sum(1 for o in outcomes if o.delivered)
    return ok(
        [o.to_dict() for o in outcomes],
        message=f"Delivered to {delivered} of {len(outcomes)} webhooks",
    )


@router.post("/deliveries/{delivery_id}/retry", response_model=SuccessEnvelope)
async def retry_delivery(
    delivery_id: str,
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
):
    outcome = await dispatcher.retry_delivery(delivery_id)
    return ok(outcome.to_dict())


@router.get("/{webhook_id}", response_model=SuccessEnvelope)
def get_webhook(webhook_id: str, db: Session = Depends(get_db)):
    service = WebhookService(db)
    return ok(service.serialize(service.get(webhook_id)))


@router.put("/{webhook_id}", response_model=SuccessEnvelope)
def update_webhook(webhook_id: str, data: WebhookUpdate, db: Session = Depends(get_db)):
    changes = data.model_dump(exclude_unset=True)
    if changes.get("auth_type") is not None:
        changes["auth_type"] = changes["auth_type"].value

    service = WebhookService(db)
    webhook = service.update(webhook_id, changes)
    return ok(service.serialize(webhook), message="Webhook updated")


@router.delete("/{webhook_id}", response_model=SuccessEnvelope)
def delete_webhook(webhook_id: str, db: Session = Depends(get_db)):
    WebhookService(db).delete(webhook_id)
    return ok({"id": webhook_id}, message="Webhook deleted")


@router.get("/{webhook_id}/deliveries", response_model=SuccessEnvelope)
def list_webhook_deliveries(
    webhook_id: str,
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    deliveries = WebhookService(db).list_deliveries(webhook_id, status=status, limit=limit)
    return ok([serialize_delivery(d) for d in deliveries])
