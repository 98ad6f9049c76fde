"""
API Key Manager: issue, validate and revoke keys for external callers.

Only the SHA-256 of a key is persisted. The plaintext is returned once by
issue() and cannot be read back through any other path.
"""
import hmac
import ipaddress
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from integrations_hub.core.exceptions import ApiKeyNotFound, InputValidationError
from integrations_hub.core.logging import log_security_event
from integrations_hub.core.security import display_prefix, generate_api_key, hash_api_key
from integrations_hub.models import ApiKey
from integrations_hub.utils.helpers import new_id, to_naive_utc, utcnow

logger = logging.getLogger(__name__)

# Compared against when no row matches, so every validation does the same work
_UNMATCHED_HASH = "0" * 64


@dataclass
class IssuedApiKey:
    id: str
    name: str
    prefix: str
    key: str
    permissions: List[str]
    rate_limit_per_hour: int
    expires_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "prefix": self.prefix,
            "key": self.key,
            "permissions": self.permissions,
            "rate_limit_per_hour": self.rate_limit_per_hour,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass
class ApiKeyValidation:
    valid: bool
    key: Optional[ApiKey] = None
    # For logs only; callers answer with a generic message
    reason: Optional[str] = None


def parse_allowlist(entries: Optional[List[str]]) -> List[str]:
    networks = []
    for entry in entries or []:
        try:
            networks.append(str(ipaddress.ip_network(str(entry).strip(), strict=False)))
        except ValueError as e:
            raise InputValidationError(f"Invalid IP allowlist entry: {entry}") from e
    return networks


def ip_allowed(allowlist: Optional[List[str]], client_ip: Optional[str]) -> bool:
    if not allowlist:
        return True
    if not client_ip:
        return False
    try:
        address = ipaddress.ip_address(client_ip)
    except ValueError:
        return False
    return any(address in ipaddress.ip_network(network, strict=False) for network in allowlist)


class ApiKeyManager:

    def __init__(self, db: Session):
        self.db = db

    def issue(
        self,
        name: str,
        location_id: Optional[str] = None,
        user_id: Optional[str] = None,
        permissions: Optional[List[str]] = None,
        rate_limit_per_hour: int = 1000,
        expires_at: Optional[datetime] = None,
        ip_allowlist: Optional[List[str]] = None,
    ) -> IssuedApiKey:
        if not name or not name.strip():
            raise InputValidationError("name is required")
        if rate_limit_per_hour is None or rate_limit_per_hour < 1:
            raise InputValidationError("rate_limit_per_hour must be at least 1")

        expires_at = to_naive_utc(expires_at)
        if expires_at is not None and expires_at <= utcnow():
            raise InputValidationError("expires_at must be in the future")

        plaintext = generate_api_key()
        api_key = ApiKey(
            id=new_id("apikey"),
            name=name.strip(),
            key_hash=hash_api_key(plaintext),
            key_prefix=display_prefix(plaintext),
            location_id=location_id,
            user_id=user_id,
            permissions=sorted(set(permissions or [])),
            rate_limit_per_hour=rate_limit_per_hour,
            is_active=True,
            usage_count=0,
            expires_at=expires_at,
            ip_allowlist=parse_allowlist(ip_allowlist),
        )
        self.db.add(api_key)
        self.db.commit()

        log_security_event(logger, "api_key_issued", api_key_id=api_key.id,
                           details={"name": api_key.name, "location_id": location_id})

        return IssuedApiKey(
            id=api_key.id,
            name=api_key.name,
            prefix=api_key.key_prefix,
            key=plaintext,
            permissions=list(api_key.permissions),
            rate_limit_per_hour=api_key.rate_limit_per_hour,
            expires_at=api_key.expires_at,
        )

    def validate(self, presented_key: Optional[str], client_ip: Optional[str] = None) -> ApiKeyValidation:
        """
        Check a presented key. Every check is evaluated whatever the outcome of
        the others, so rejections for unknown, inactive and expired keys take
        the same path. Accepted keys get usage_count and last_used_at updated.
        """
        now = utcnow()
        presented_hash = hash_api_key(presented_key or "")
        api_key = self.db.query(ApiKey).filter(ApiKey.key_hash == presented_hash).first()

        stored_hash = api_key.key_hash if api_key is not None else _UNMATCHED_HASH
        hash_matches = hmac.compare_digest(stored_hash, presented_hash)
        is_active = bool(api_key is not None and api_key.is_active)
        not_expired = bool(api_key is not None and (api_key.expires_at is None or api_key.expires_at > now))
        address_allowed = bool(api_key is not None and ip_allowed(api_key.ip_allowlist, client_ip))

        valid = hash_matches & is_active & not_expired & address_allowed

        if not valid:
            reason = (
                "unknown" if not hash_matches
                else "revoked" if not is_active
                else "expired" if not not_expired
                else "ip_not_allowed"
            )
            log_security_event(
                logger, "api_key_rejected",
                api_key_id=api_key.id if api_key is not None else None,
                ip_address=client_ip,
                details={"reason": reason},
                severity="WARNING",
            )
            return ApiKeyValidation(valid=False, reason=reason)

        api_key.usage_count = (api_key.usage_count or 0) + 1
        api_key.last_used_at = now
        self.db.commit()

        return ApiKeyValidation(valid=True, key=api_key)

    def revoke(self, key_id: str) -> ApiKey:
        """Deactivate; the row and its usage history are kept"""
        api_key = self.get(key_id)
        if api_key.is_active:
            api_key.is_active = False
            self.db.commit()
            log_security_event(logger, "api_key_revoked", api_key_id=key_id)
        return api_key

    def get(self, key_id: str) -> ApiKey:
        api_key = self.db.query(ApiKey).filter(ApiKey.id == key_id).first()
        if not api_key:
            raise ApiKeyNotFound(key_id)
        return api_key

    def list_keys(self, location_id: Optional[str] = None) -> List[ApiKey]:
        query = self.db.query(ApiKey)
        if location_id:
            query = query.filter(ApiKey.location_id == location_id)
        return query.order_by(ApiKey.created_at.desc()).all()


def serialize_api_key(api_key: ApiKey) -> Dict[str, Any]:
    """Public view of a key; never includes the hash"""
    return {
        "id": api_key.id,
        "name": api_key.name,
        "prefix": api_key.key_prefix,
        "location_id": api_key.location_id,
        "user_id": api_key.user_id,
        "permissions": api_key.permissions or [],
        "rate_limit_per_hour": api_key.rate_limit_per_hour,
        "is_active": api_key.is_active,
        "usage_count": api_key.usage_count,
        "last_used_at": api_key.last_used_at.isoformat() if api_key.last_used_at else None,
        "expires_at": api_key.expires_at.isoformat() if api_key.expires_at else None,
        "ip_allowlist": api_key.ip_allowlist or [],
        "created_at": api_key.created_at.isoformat() if api_key.created_at else None,
    }
