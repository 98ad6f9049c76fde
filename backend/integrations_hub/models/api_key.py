from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON
from integrations_hub.core.database import Base
from integrations_hub.utils.helpers import utcnow


class ApiKey(Base):
    """
    Bearer credential for external callers. Only the SHA-256 of the key is
    stored; key_prefix is the non-secret head shown to operators.
    """
    __tablename__ = "api_keys"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    key_hash = Column(String(64), nullable=False, unique=True, index=True)
    key_prefix = Column(String(20), nullable=False)

    location_id = Column(String(64), nullable=True, index=True)
    user_id = Column(String(64), nullable=True)

    permissions = Column(JSON, default=list)
    rate_limit_per_hour = Column(Integer, default=1000)

    is_active = Column(Boolean, default=True, index=True)
    last_used_at = Column(DateTime, nullable=True)
    usage_count = Column(Integer, default=0, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    ip_allowlist = Column(JSON, default=list)

    created_at = Column(DateTime, default=utcnow)

    def has_permission(self, permission: str) -> bool:
        granted = self.permissions or []
        return "*" in granted or permission in granted
