"""
API for issuing and revoking keys used by external callers
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from integrations_hub.api.schemas import SuccessEnvelope, ok
from integrations_hub.core.auth import require_api_key
from integrations_hub.core.database import get_db
from integrations_hub.models import ApiKey
from integrations_hub.services.api_key_manager import ApiKeyManager, serialize_api_key

router = APIRouter(prefix="/api/integrations/api-keys", tags=["api-keys"])


class ApiKeyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    location_id: Optional[str] = Field(None, max_length=64)
    user_id: Optional[str] = Field(None, max_length=64)
    permissions: List[str] = Field(default_factory=list)
    rate_limit_per_hour: int = Field(default=1000, ge=1)
    expires_at: Optional[datetime] = None
    ip_allowlist: List[str] = Field(default_factory=list)


@router.post("", response_model=SuccessEnvelope, status_code=201)
def create_api_key(data: ApiKeyCreate, db: Session = Depends(get_db)):
    """The plaintext key is in this response only"""
    issued = ApiKeyManager(db).issue(
        name=data.name,
        location_id=data.location_id,
        user_id=data.user_id,
        permissions=data.permissions,
        rate_limit_per_hour=data.rate_limit_per_hour,
        expires_at=data.expires_at,
        ip_allowlist=data.ip_allowlist,
    )
    return ok(issued.to_dict(), message="Store this key now; it cannot be shown again")


@router.get("", response_model=SuccessEnvelope)
def list_api_keys(location_id: Optional[str] = None, db: Session = Depends(get_db)):
    return ok([serialize_api_key(k) for k in ApiKeyManager(db).list_keys(location_id)])


@router.get("/whoami", response_model=SuccessEnvelope)
def whoami(api_key: ApiKey = Depends(require_api_key())):
    """Key presented in X-API-Key"""
    return ok(serialize_api_key(api_key))


@router.post("/{key_id}/revoke", response_model=SuccessEnvelope)
def revoke_api_key(key_id: str, db: Session = Depends(get_db)):
    return ok(serialize_api_key(ApiKeyManager(db).revoke(key_id)), message="API key revoked")
