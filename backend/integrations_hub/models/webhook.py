from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean, JSON
from sqlalchemy.orm import relationship
import enum
from integrations_hub.core.database import Base
from integrations_hub.utils.helpers import utcnow


class WebhookAuthType(str, enum.Enum):
    NONE = "none"
    API_KEY = "api_key"
    BEARER_TOKEN = "bearer_token"
    BASIC_AUTH = "basic_auth"
    CUSTOM = "custom"


class DeliveryStatus(str, enum.Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


WEBHOOK_METHODS = ("GET", "POST", "PUT", "PATCH")


class Webhook(Base):
    """Outbound subscription, location-scoped or global (location_id NULL)"""
    __tablename__ = "webhooks"

    id = Column(String(64), primary_key=True)
    location_id = Column(String(64), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    url = Column(String(500), nullable=False)
    event_types = Column(JSON, nullable=False, default=list)
    method = Column(String(10), nullable=False, default="POST")
    headers = Column(JSON, default=dict)

    auth_type = Column(String(30), nullable=False, default=WebhookAuthType.NONE.value)
    auth_credentials_encrypted = Column(Text, nullable=True)

    is_active = Column(Boolean, default=True, index=True)
    retry_on_failure = Column(Boolean, default=True)
    max_retries = Column(Integer, default=3)
    retry_delay_seconds = Column(Integer, default=60)

    last_triggered_at = Column(DateTime, nullable=True)
    last_status = Column(String(20), nullable=True)
    success_count = Column(Integer, default=0, nullable=False)
    failure_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    deliveries = relationship("WebhookDelivery", back_populates="webhook", cascade="all, delete-orphan")

    def subscribes_to(self, event_type: str) -> bool:
        return event_type in (self.event_types or [])


class WebhookDelivery(Base):
    """One event delivered to one webhook; re-attempts update the same row"""
    __tablename__ = "webhook_deliveries"

    id = Column(String(64), primary_key=True)
    webhook_id = Column(String(64), ForeignKey("webhooks.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String(100), nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default=DeliveryStatus.PENDING.value, index=True)

    http_status_code = Column(Integer, nullable=True)
    response_body = Column(Text, nullable=True)
    response_time_ms = Column(Integer, nullable=True)

    attempts = Column(Integer, default=0, nullable=False)
    last_attempt_at = Column(DateTime, nullable=True)
    next_retry_at = Column(DateTime, nullable=True, index=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    webhook = relationship("Webhook", back_populates="deliveries")
