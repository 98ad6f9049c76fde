"""
API for provider catalog, location integrations and syncs
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from integrations_hub.api.schemas import SuccessEnvelope, ok
from integrations_hub.core.database import get_db
from integrations_hub.models import Integration, IntegrationProvider, SyncDirection, SyncType
from integrations_hub.services.connection_manager import ConnectionManager
from integrations_hub.services.provider_registry import get_provider, get_providers, sync_strategies
from integrations_hub.services.sync_engine import SyncEngine, serialize_sync_log

router = APIRouter(prefix="/api/integrations", tags=["integrations"])


# =====================================================
# SCHEMAS
# =====================================================

class ConnectRequest(BaseModel):
    location_id: str = Field(..., min_length=1, max_length=64)
    provider_id: str = Field(..., min_length=1, max_length=64)
    credentials: Dict[str, Any] = Field(default_factory=dict)
    config: Dict[str, Any] = Field(default_factory=dict)
    sync_frequency_minutes: int = Field(default=60, ge=1)
    auto_sync_enabled: bool = True
    enabled_features: List[str] = Field(default_factory=list)


class StatusUpdateRequest(BaseModel):
    status: str


class CredentialsUpdateRequest(BaseModel):
    credentials: Dict[str, Any]


class SyncRequest(BaseModel):
    sync_type: SyncType = SyncType.MANUAL
    direction: SyncDirection = SyncDirection.BIDIRECTIONAL


# =====================================================
# HELPERS
# =====================================================

def integration_to_dict(integration: Integration, provider: Optional[IntegrationProvider] = None) -> Dict[str, Any]:
    """Integration with its provider metadata; credentials are never returned"""
    provider = provider or integration.provider
    return {
        "id": integration.id,
        "location_id": integration.location_id,
        "provider_id": integration.provider_id,
        "provider_name": provider.name if provider else None,
        "provider_category": provider.category if provider else None,
        "supported_features": (provider.supported_features or []) if provider else [],
        "status": integration.status,
        "config": integration.config or {},
        "sync_frequency_minutes": integration.sync_frequency_minutes,
        "auto_sync_enabled": integration.auto_sync_enabled,
        "enabled_features": integration.enabled_features or [],
        "last_sync_at": integration.last_sync_at.isoformat() if integration.last_sync_at else None,
        "last_sync_status": integration.last_sync_status,
        "error_count": integration.error_count,
        "last_error": integration.last_error,
        "created_at": integration.created_at.isoformat() if integration.created_at else None,
        "updated_at": integration.updated_at.isoformat() if integration.updated_at else None,
    }


# =====================================================
# PROVIDERS
# =====================================================

@router.get("/providers", response_model=SuccessEnvelope)
def list_providers(category: Optional[str] = None, db: Session = Depends(get_db)):
    """Active providers, optionally of one category"""
    providers = get_providers(db, category)
    return ok([dict(p, sync_supported=p["id"] in sync_strategies) for p in providers])


@router.get("/providers/{provider_id}", response_model=SuccessEnvelope)
def get_provider_details(provider_id: str, db: Session = Depends(get_db)):
    return ok(get_provider(db, provider_id).to_dict())


# =====================================================
# INTEGRATIONS
# =====================================================

@router.post("/connect", response_model=SuccessEnvelope, status_code=201)
async def connect_integration(data: ConnectRequest, db: Session = Depends(get_db)):
    """Create the integration and test the connection; a failed test still returns the integration"""
    integration, test_result = await ConnectionManager(db).connect(
        location_id=data.location_id,
        provider_id=data.provider_id,
        credentials=data.credentials,
        config=data.config,
        sync_frequency_minutes=data.sync_frequency_minutes,
        auto_sync_enabled=data.auto_sync_enabled,
        enabled_features=data.enabled_features,
    )
    message = "Integration connected" if test_result.success else "Integration created but connection test failed"
    return ok(
        {"integration": integration_to_dict(integration), "connection_test": test_result.to_dict()},
        message=message,
    )


@router.get("/location/{location_id}", response_model=SuccessEnvelope)
def list_location_integrations(location_id: str, db: Session = Depends(get_db)):
    rows = ConnectionManager(db).list_for_location(location_id)
    return ok([integration_to_dict(integration, provider) for integration, provider in rows])


@router.get("/{integration_id}", response_model=SuccessEnvelope)
def get_integration(integration_id: str, db: Session = Depends(get_db)):
    return ok(integration_to_dict(ConnectionManager(db).get(integration_id)))


@router.put("/{integration_id}/status", response_model=SuccessEnvelope)
def update_integration_status(integration_id: str, data: StatusUpdateRequest, db: Session = Depends(get_db)):
    integration = ConnectionManager(db).set_status(integration_id, data.status)
    return ok(integration_to_dict(integration), message=f"Status set to {integration.status}")


@router.put("/{integration_id}/credentials", response_model=SuccessEnvelope)
async def rotate_integration_credentials(
    integration_id: str,
    data: CredentialsUpdateRequest,
    db: Session = Depends(get_db),
):
    """Replace credentials and re-test the connection"""
    integration, test_result = await ConnectionManager(db).rotate_credentials(integration_id, data.credentials)
    return ok({"integration": integration_to_dict(integration), "connection_test": test_result.to_dict()})


@router.delete("/{integration_id}", response_model=SuccessEnvelope)
def disconnect_integration(integration_id: str, db: Session = Depends(get_db)):
    manager = ConnectionManager(db)
    provider = manager.get(integration_id).provider
    integration = manager.disconnect(integration_id)
    return ok(integration_to_dict(integration, provider), message="Integration disconnected")


# =====================================================
# SYNC
# =====================================================

@router.post("/{integration_id}/sync", response_model=SuccessEnvelope)
async def run_integration_sync(
    integration_id: str,
    data: Optional[SyncRequest] = None,
    db: Session = Depends(get_db),
):
    """Run a sync now; provider failures come back in data, not as an HTTP error"""
    data = data or SyncRequest()
    ConnectionManager(db).get(integration_id)

    result = await SyncEngine(db).run_sync(integration_id, data.sync_type.value, data.direction.value)
    return ok(result.to_dict(), message="Sync completed" if result.success else "Sync failed")


@router.get("/{integration_id}/sync-logs", response_model=SuccessEnvelope)
def list_sync_logs(
    integration_id: str,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    logs = SyncEngine(db).get_sync_logs(integration_id, limit=limit)
    return ok([serialize_sync_log(log) for log in logs])
