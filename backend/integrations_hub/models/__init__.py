from .provider import IntegrationProvider, ProviderCategory, ProviderAuthType
from .integration import (
    Integration,
    IntegrationStatus,
    LastSyncStatus,
    SyncLog,
    SyncType,
    SyncDirection,
    SyncLogStatus,
)
from .webhook import (
    Webhook,
    WebhookDelivery,
    WebhookAuthType,
    DeliveryStatus,
    WEBHOOK_METHODS,
)
from .api_key import ApiKey

__all__ = [
    "IntegrationProvider",
    "ProviderCategory",
    "ProviderAuthType",
    "Integration",
    "IntegrationStatus",
    "LastSyncStatus",
    "SyncLog",
    "SyncType",
    "SyncDirection",
    "SyncLogStatus",
    "Webhook",
    "WebhookDelivery",
    "WebhookAuthType",
    "DeliveryStatus",
    "WEBHOOK_METHODS",
    "ApiKey",
]
