"""
Provider catalog and per-provider capabilities.

The catalog is reference data stored in integration_providers. Provider
behaviour (connection tests, sync strategies) is looked up in a
CapabilityRegistry keyed by provider id: supporting a new provider means
registering a function, never touching the dispatch code.
"""
import logging
from dataclasses import dataclass, asdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from integrations_hub.core.exceptions import ProviderNotFound
from integrations_hub.models import IntegrationProvider, ProviderAuthType, ProviderCategory
from integrations_hub.utils.cache import provider_cache, cached_function, invalidate_cache

logger = logging.getLogger(__name__)


PROVIDER_CATALOG: List[Dict[str, Any]] = [
    {
        "id": "provider-square",
        "name": "Square POS",
        "category": "pos",
        "description": "Square Point of Sale integration",
        "auth_type": "oauth2",
        "supported_features": ["sales_import", "inventory_sync", "payment_processing"],
    },
    {
        "id": "provider-toast",
        "name": "Toast POS",
        "category": "pos",
        "description": "Toast restaurant POS system",
        "auth_type": "api_key",
        "supported_features": ["sales_import", "menu_sync", "employee_hours"],
    },
    {
        "id": "provider-clover",
        "name": "Clover POS",
        "category": "pos",
        "description": "Clover Point of Sale system",
        "auth_type": "oauth2",
        "supported_features": ["sales_import", "inventory_sync", "employee_management"],
    },
    {
        "id": "provider-adp",
        "name": "ADP Workforce",
        "category": "payroll",
        "description": "ADP payroll and workforce management",
        "auth_type": "oauth2",
        "supported_features": ["time_export", "employee_sync", "payroll_export"],
    },
    {
        "id": "provider-gusto",
        "name": "Gusto",
        "category": "payroll",
        "description": "Gusto payroll platform",
        "auth_type": "oauth2",
        "supported_features": ["time_export", "employee_sync", "payroll_processing"],
    },
    {
        "id": "provider-quickbooks",
        "name": "QuickBooks Online",
        "category": "accounting",
        "description": "QuickBooks accounting integration",
        "auth_type": "oauth2",
        "supported_features": ["invoice_sync", "expense_export", "vendor_sync", "reports"],
    },
    {
        "id": "provider-xero",
        "name": "Xero",
        "category": "accounting",
        "description": "Xero accounting software",
        "auth_type": "oauth2",
        "supported_features": ["invoice_sync", "expense_export", "bank_reconciliation"],
    },
    {
        "id": "provider-mailchimp",
        "name": "Mailchimp",
        "category": "communication",
        "description": "Email marketing platform",
        "auth_type": "api_key",
        "supported_features": ["customer_sync", "campaign_management"],
    },
    {
        "id": "provider-twilio",
        "name": "Twilio",
        "category": "communication",
        "description": "SMS and communication platform",
        "auth_type": "api_key",
        "supported_features": ["sms_notifications", "voice_calls"],
    },
    {
        "id": "provider-slack",
        "name": "Slack",
        "category": "communication",
        "description": "Team communication platform",
        "auth_type": "oauth2",
        "supported_features": ["notifications", "alerts", "team_messaging"],
    },
]


# =====================================================
# CAPABILITIES
# =====================================================

@dataclass
class SyncResult:
    """Outcome of one provider sync; also the shape returned by run_sync"""
    success: bool
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    error: Optional[str] = None
    sync_log_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ConnectionTestResult:
    success: bool
    message: str
    error: Optional[str] = None
    response_time_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# (credentials, config) -> SyncResult, plain or async
SyncStrategy = Callable[[Dict[str, Any], Dict[str, Any]], Union[SyncResult, Awaitable[SyncResult]]]

# (provider, credentials, config) -> ConnectionTestResult, plain or async
ConnectionTester = Callable[
    [IntegrationProvider, Dict[str, Any], Dict[str, Any]],
    Union[ConnectionTestResult, Awaitable[ConnectionTestResult]],
]


class CapabilityRegistry:
    """Map of provider id -> implementation of one capability"""

    def __init__(self, capability: str):
        self.capability = capability
        self._handlers: Dict[str, Callable] = {}

    def register(self, provider_id: str):
        def decorator(func: Callable) -> Callable:
            if provider_id in self._handlers:
                logger.warning(f"Replacing {self.capability} handler for {provider_id}")
            self._handlers[provider_id] = func
            return func
        return decorator

    def get(self, provider_id: str) -> Optional[Callable]:
        return self._handlers.get(provider_id)

    def __contains__(self, provider_id: str) -> bool:
        return provider_id in self._handlers


sync_strategies = CapabilityRegistry("sync")
connection_testers = CapabilityRegistry("connection_test")


# =====================================================
# CATALOG
# =====================================================

@cached_function(provider_cache, key_func=lambda db, category=None: f"providers:{category or 'all'}")
def get_providers(db: Session, category: Optional[str] = None) -> List[Dict[str, Any]]:
    """Active providers, ordered by category then name"""
    query = db.query(IntegrationProvider).filter(IntegrationProvider.is_active == True)

    if category:
        query = query.filter(IntegrationProvider.category == category)

    providers = query.order_by(IntegrationProvider.category, IntegrationProvider.name).all()
    return [p.to_dict() for p in providers]


def get_provider(db: Session, provider_id: str) -> IntegrationProvider:
    provider = db.query(IntegrationProvider).filter(IntegrationProvider.id == provider_id).first()
    if not provider:
        raise ProviderNotFound(provider_id)
    return provider


def seed_providers(db: Session, catalog: Optional[List[Dict[str, Any]]] = None) -> int:
    """Insert or refresh catalog entries; returns the number of new providers"""
    created = 0

    for entry in catalog or PROVIDER_CATALOG:
        provider = db.query(IntegrationProvider).filter(IntegrationProvider.id == entry["id"]).first()
        if provider is None:
            provider = IntegrationProvider(id=entry["id"])
            db.add(provider)
            created += 1

        provider.name = entry["name"]
        provider.category = ProviderCategory(entry["category"]).value
        provider.description = entry.get("description")
        provider.auth_type = ProviderAuthType(entry["auth_type"]).value if entry.get("auth_type") else None
        provider.required_credentials = list(entry.get("required_credentials", []))
        provider.supported_features = list(entry.get("supported_features", []))
        provider.is_active = entry.get("is_active", True)

    db.commit()
    invalidate_cache(provider_cache)

    if created:
        logger.info(f"Seeded {created} integration providers")
    return created
