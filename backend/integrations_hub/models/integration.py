"""
Location integrations and their sync history
"""
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, Boolean, JSON
)
from sqlalchemy.orm import relationship
import enum
from integrations_hub.core.database import Base
from integrations_hub.utils.helpers import utcnow


class IntegrationStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    ERROR = "error"
    DISABLED = "disabled"


class LastSyncStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class SyncType(str, enum.Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    MANUAL = "manual"
    SCHEDULED = "scheduled"


class SyncDirection(str, enum.Enum):
    IMPORT = "import"
    EXPORT = "export"
    BIDIRECTIONAL = "bidirectional"


class SyncLogStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class Integration(Base):
    """
    Binding of one location to one provider.
    Credentials are stored only as a vault blob.
    """
    __tablename__ = "location_integrations"

    id = Column(String(64), primary_key=True)
    # locations live in the operations schema; referenced by id only
    location_id = Column(String(64), nullable=False, index=True)
    provider_id = Column(String(64), ForeignKey("integration_providers.id"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=IntegrationStatus.PENDING.value, index=True)
    credentials_encrypted = Column(Text, nullable=True)
    config = Column(JSON, default=dict)

    sync_frequency_minutes = Column(Integer, default=60)
    auto_sync_enabled = Column(Boolean, default=True)
    enabled_features = Column(JSON, default=list)

    last_sync_at = Column(DateTime, nullable=True)
    last_sync_status = Column(String(20), nullable=True)
    error_count = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    provider = relationship("IntegrationProvider", back_populates="integrations")


class SyncLog(Base):
    """
    One sync attempt. Append-only; kept after the integration is disconnected,
    so integration_id carries no foreign key.
    """
    __tablename__ = "integration_sync_logs"

    id = Column(String(64), primary_key=True)
    integration_id = Column(String(64), nullable=False, index=True)
    sync_type = Column(String(20), nullable=False)
    direction = Column(String(20), nullable=False, default=SyncDirection.BIDIRECTIONAL.value)
    status = Column(String(20), nullable=False, default=SyncLogStatus.IN_PROGRESS.value, index=True)

    started_at = Column(DateTime, default=utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)

    records_processed = Column(Integer, default=0)
    records_succeeded = Column(Integer, default=0)
    records_failed = Column(Integer, default=0)

    error_message = Column(Text, nullable=True)
    sync_metadata = Column(JSON, default=dict)
