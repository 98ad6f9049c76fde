from sqlalchemy import Column, String, Text, Boolean, Integer, DateTime, JSON
from sqlalchemy.orm import relationship
import enum
from integrations_hub.core.database import Base
from integrations_hub.utils.helpers import utcnow


class ProviderCategory(str, enum.Enum):
    POS = "pos"
    PAYROLL = "payroll"
    ACCOUNTING = "accounting"
    INVENTORY = "inventory"
    ANALYTICS = "analytics"
    COMMUNICATION = "communication"
    OTHER = "other"


class ProviderAuthType(str, enum.Enum):
    OAUTH2 = "oauth2"
    API_KEY = "api_key"
    BASIC_AUTH = "basic_auth"
    BEARER_TOKEN = "bearer_token"
    CUSTOM = "custom"


class IntegrationProvider(Base):
    """Catalog entry for a supported third-party provider (reference data)"""
    __tablename__ = "integration_providers"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, unique=True)
    category = Column(String(50), nullable=False, index=True)
    description = Column(Text, nullable=True)
    api_version = Column(String(50), nullable=True)
    base_url = Column(String(500), nullable=True)
    auth_type = Column(String(50), nullable=True)

    # Credential fields a connection must supply, e.g. ["access_token"]
    required_credentials = Column(JSON, default=list)
    supported_features = Column(JSON, default=list)
    rate_limit_per_hour = Column(Integer, nullable=True)

    is_active = Column(Boolean, default=True, index=True)
    documentation_url = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    integrations = relationship("Integration", back_populates="provider")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "api_version": self.api_version,
            "base_url": self.base_url,
            "auth_type": self.auth_type,
            "required_credentials": list(self.required_credentials or []),
            "supported_features": list(self.supported_features or []),
            "rate_limit_per_hour": self.rate_limit_per_hour,
            "is_active": self.is_active,
            "documentation_url": self.documentation_url,
        }
