"""
Error taxonomy for the integrations service.

Every error carries the HTTP status the API layer answers with; the
handlers in main.py render them as {"success": false, "error": message}.
Upstream failures (provider syncs, webhook deliveries, connection tests)
are not represented here: they are captured into result records.
"""


class IntegrationsError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputValidationError(IntegrationsError):
    """Missing or malformed input, raised before anything is persisted"""
    status_code = 400


class NotFoundError(IntegrationsError):
    status_code = 404


class IntegrationNotFound(NotFoundError):
    def __init__(self, integration_id: str):
        super().__init__(f"Integration not found: {integration_id}")
        self.integration_id = integration_id


class ProviderNotFound(NotFoundError):
    def __init__(self, provider_id: str):
        super().__init__(f"Provider not found: {provider_id}")
        self.provider_id = provider_id


class WebhookNotFound(NotFoundError):
    def __init__(self, webhook_id: str):
        super().__init__(f"Webhook not found: {webhook_id}")
        self.webhook_id = webhook_id


class DeliveryNotFound(NotFoundError):
    def __init__(self, delivery_id: str):
        super().__init__(f"Webhook delivery not found: {delivery_id}")
        self.delivery_id = delivery_id


class ApiKeyNotFound(NotFoundError):
    def __init__(self, key_id: str):
        super().__init__(f"API key not found: {key_id}")
        self.key_id = key_id


class BusinessRuleError(IntegrationsError):
    status_code = 409


class InvalidStatusTransition(BusinessRuleError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot change integration status from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class ProviderInactive(BusinessRuleError):
    def __init__(self, provider_id: str):
        super().__init__(f"Provider is not accepting new connections: {provider_id}")
        self.provider_id = provider_id


class AuthenticationError(IntegrationsError):
    status_code = 401


class PermissionDenied(IntegrationsError):
    status_code = 403


class RateLimitExceeded(IntegrationsError):
    status_code = 429


class VaultError(IntegrationsError):
    """Stored credentials could not be decrypted with any configured key"""
    status_code = 500
