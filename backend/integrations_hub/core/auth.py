"""
API key authentication for external callers
"""
import logging
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from integrations_hub.core.database import get_db
from integrations_hub.core.exceptions import AuthenticationError, PermissionDenied, RateLimitExceeded
from integrations_hub.core.logging import log_security_event
from integrations_hub.models import ApiKey
from integrations_hub.services.api_key_manager import ApiKeyManager
from integrations_hub.utils.cache import count_hourly_hit

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


def require_api_key(permission: Optional[str] = None):
    """
    Dependency factory: resolves the calling ApiKey from the X-API-Key header.

    Rejects missing/invalid keys (401), keys without `permission` (403) and
    keys over their hourly request budget (429).
    """
    def dependency(
        request: Request,
        x_api_key: Optional[str] = Header(None, alias=API_KEY_HEADER),
        db: Session = Depends(get_db),
    ) -> ApiKey:
        if not x_api_key:
            raise AuthenticationError("API key required")

        client_ip = request.client.host if request.client else None
        result = ApiKeyManager(db).validate(x_api_key, client_ip=client_ip)
        if not result.valid:
            raise AuthenticationError("Invalid API key")

        api_key = result.key
        if permission and not api_key.has_permission(permission):
            log_security_event(logger, "permission_denied", api_key_id=api_key.id, ip_address=client_ip,
                               details={"permission": permission}, severity="WARNING")
            raise PermissionDenied(f"API key lacks permission: {permission}")

        hits = count_hourly_hit(api_key.id)
        if hits > (api_key.rate_limit_per_hour or 0):
            log_security_event(logger, "rate_limited", api_key_id=api_key.id, ip_address=client_ip,
                               details={"limit": api_key.rate_limit_per_hour}, severity="WARNING")
            raise RateLimitExceeded(f"Rate limit of {api_key.rate_limit_per_hour} requests per hour exceeded")

        return api_key

    return dependency
