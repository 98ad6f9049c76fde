"""
Connection Manager: lifecycle of a location's binding to a provider.

connect() always returns the integration together with the connection test
outcome. A failed test leaves the row in 'error' with last_error populated;
only store failures propagate.
"""
import asyncio
import inspect
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from integrations_hub.core.config import settings
from integrations_hub.core.exceptions import (
    IntegrationNotFound,
    InputValidationError,
    InvalidStatusTransition,
    ProviderInactive,
)
from integrations_hub.core.logging import log_api_call
from integrations_hub.core.security import CredentialVault, get_vault
from integrations_hub.models import Integration, IntegrationProvider, IntegrationStatus
from integrations_hub.services import provider_strategies
from integrations_hub.services.provider_registry import (
    ConnectionTestResult,
    connection_testers,
    get_provider,
)
from integrations_hub.utils.helpers import new_id

logger = logging.getLogger(__name__)

# Same-status requests are accepted as no-ops
ALLOWED_TRANSITIONS = {
    IntegrationStatus.PENDING.value: {IntegrationStatus.ACTIVE.value, IntegrationStatus.ERROR.value},
    IntegrationStatus.ACTIVE.value: {IntegrationStatus.DISABLED.value, IntegrationStatus.ERROR.value},
    IntegrationStatus.DISABLED.value: {IntegrationStatus.ACTIVE.value, IntegrationStatus.ERROR.value},
    IntegrationStatus.ERROR.value: {IntegrationStatus.ERROR.value},
}

VALID_STATUSES = {s.value for s in IntegrationStatus}


def can_transition(current: str, requested: str) -> bool:
    if current == requested:
        return True
    return requested in ALLOWED_TRANSITIONS.get(current, set())


class ConnectionManager:
    """Creates, tests, updates and removes location integrations"""

    def __init__(self, db: Session, vault: Optional[CredentialVault] = None):
        self.db = db
        self.vault = vault or get_vault()

    # =====================================================
    # CONNECT / DISCONNECT
    # =====================================================

    async def connect(
        self,
        location_id: str,
        provider_id: str,
        credentials: Optional[Dict[str, Any]] = None,
        config: Optional[Dict[str, Any]] = None,
        sync_frequency_minutes: int = 60,
        auto_sync_enabled: bool = True,
        enabled_features: Optional[List[str]] = None,
    ) -> Tuple[Integration, ConnectionTestResult]:
        if not location_id or not str(location_id).strip():
            raise InputValidationError("location_id is required")
        if credentials is not None and not isinstance(credentials, dict):
            raise InputValidationError("credentials must be an object")
        if sync_frequency_minutes is None or sync_frequency_minutes < 1:
            raise InputValidationError("sync_frequency_minutes must be at least 1")

        provider = get_provider(self.db, provider_id)
        if not provider.is_active:
            raise ProviderInactive(provider_id)

        features = list(enabled_features or [])
        unsupported = sorted(set(features) - set(provider.supported_features or []))
        if unsupported:
            raise InputValidationError(
                f"Features not supported by {provider.name}: {', '.join(unsupported)}"
            )

        credentials = dict(credentials or {})
        config = dict(config or {})

        integration = Integration(
            id=new_id("integration"),
            location_id=location_id,
            provider_id=provider.id,
            status=IntegrationStatus.PENDING.value,
            credentials_encrypted=self.vault.encrypt(credentials),
            config=config,
            sync_frequency_minutes=sync_frequency_minutes,
            auto_sync_enabled=auto_sync_enabled,
            enabled_features=features,
            error_count=0,
        )
        self.db.add(integration)
        self.db.commit()

        test_result = await self.test_connection(provider, credentials, config)
        self._apply_test_result(integration, test_result)
        self.db.commit()

        logger.info(
            f"Integration {integration.id} connected for location {location_id} "
            f"to {provider.id}: {integration.status}"
        )
        return integration, test_result

    def disconnect(self, integration_id: str) -> Integration:
        """Hard delete; the integration's sync logs are kept"""
        integration = self.get(integration_id)
        self.db.delete(integration)
        self.db.commit()

        logger.info(f"Integration {integration_id} disconnected")
        return integration

    # =====================================================
    # QUERIES
    # =====================================================

    def get(self, integration_id: str) -> Integration:
        integration = self.db.query(Integration).filter(Integration.id == integration_id).first()
        if not integration:
            raise IntegrationNotFound(integration_id)
        return integration

    def list_for_location(self, location_id: str) -> List[Tuple[Integration, IntegrationProvider]]:
        """Integrations joined with their provider, ordered by provider category then name"""
        return (
            self.db.query(Integration, IntegrationProvider)
            .join(IntegrationProvider, Integration.provider_id == IntegrationProvider.id)
            .filter(Integration.location_id == location_id)
            .order_by(IntegrationProvider.category, IntegrationProvider.name, Integration.created_at)
            .all()
        )

    def read_credentials(self, integration: Integration) -> Dict[str, Any]:
        return self.vault.decrypt(integration.credentials_encrypted)

    # =====================================================
    # MUTATIONS
    # =====================================================

    def set_status(self, integration_id: str, status: str) -> Integration:
        if status not in VALID_STATUSES:
            raise InputValidationError(
                f"Invalid status '{status}'. Expected one of: {', '.join(sorted(VALID_STATUSES))}"
            )

        integration = self.get(integration_id)
        if not can_transition(integration.status, status):
            raise InvalidStatusTransition(integration.status, status)

        if integration.status != status:
            logger.info(f"Integration {integration_id} status {integration.status} -> {status}")
            integration.status = status
            self.db.commit()

        return integration

    async def rotate_credentials(
        self,
        integration_id: str,
        credentials: Dict[str, Any],
    ) -> Tuple[Integration, ConnectionTestResult]:
        """
        Replace the stored credentials and re-test the connection.

        A passing test moves an 'error' or 'pending' integration to 'active';
        a disabled integration stays disabled either way. Syncs already running
        keep the credentials they read at start.
        """
        if not isinstance(credentials, dict) or not credentials:
            raise InputValidationError("credentials must be a non-empty object")

        integration = self.get(integration_id)
        provider = get_provider(self.db, integration.provider_id)

        integration.credentials_encrypted = self.vault.encrypt(credentials)
        self.db.commit()

        test_result = await self.test_connection(provider, credentials, dict(integration.config or {}))
        if integration.status == IntegrationStatus.DISABLED.value:
            integration.last_error = None if test_result.success else (test_result.error or test_result.message)
        else:
            self._apply_test_result(integration, test_result)
        self.db.commit()

        logger.info(f"Credentials rotated for integration {integration_id}: test success={test_result.success}")
        return integration, test_result

    # =====================================================
    # CONNECTION TEST
    # =====================================================

    async def test_connection(
        self,
        provider: IntegrationProvider,
        credentials: Dict[str, Any],
        config: Dict[str, Any],
    ) -> ConnectionTestResult:
        """Run the provider's connection test; failures are returned, never raised"""
        tester = connection_testers.get(provider.id) or provider_strategies.check_required_credentials
        timeout = settings.CONNECTION_TEST_TIMEOUT_SECONDS
        start_time = time.perf_counter()

        try:
            if inspect.iscoroutinefunction(tester):
                call = tester(provider, credentials, config)
            else:
                # Blocking testers run in a worker thread so the timeout still applies
                call = asyncio.to_thread(tester, provider, credentials, config)
            outcome = await asyncio.wait_for(call, timeout=timeout)
            if inspect.isawaitable(outcome):
                outcome = await asyncio.wait_for(outcome, timeout=timeout)
        except asyncio.TimeoutError:
            outcome = ConnectionTestResult(
                success=False,
                message="Connection test timed out",
                error=f"No answer from {provider.name} after {timeout} seconds",
            )
        except Exception as e:
            logger.exception(f"Connection test for {provider.id} raised")
            outcome = ConnectionTestResult(
                success=False,
                message="Connection test failed",
                error=str(e) or e.__class__.__name__,
            )

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        if outcome.response_time_ms is None:
            outcome.response_time_ms = duration_ms

        log_api_call(
            logger,
            service=provider.id,
            endpoint="connection_test",
            duration_ms=duration_ms,
            error=None if outcome.success else (outcome.error or outcome.message),
        )
        return outcome

    @staticmethod
    def _apply_test_result(integration: Integration, test_result: ConnectionTestResult) -> None:
        if test_result.success:
            integration.status = IntegrationStatus.ACTIVE.value
            integration.last_error = None
        else:
            integration.status = IntegrationStatus.ERROR.value
            integration.last_error = test_result.error or test_result.message
