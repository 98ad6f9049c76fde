"""
Webhook subscriptions: create, list, update, delete, delivery history
"""
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

import httpx
from sqlalchemy import or_
from sqlalchemy.orm import Session

from integrations_hub.core.exceptions import InputValidationError, WebhookNotFound
from integrations_hub.core.security import CredentialVault, get_vault, mask_secret
from integrations_hub.models import (
    DeliveryStatus,
    Webhook,
    WebhookAuthType,
    WebhookDelivery,
    WEBHOOK_METHODS,
)
from integrations_hub.utils.helpers import new_id

logger = logging.getLogger(__name__)

# Credential fields each auth type needs; signing_secret is accepted with any type
REQUIRED_AUTH_FIELDS = {
    WebhookAuthType.NONE.value: (),
    WebhookAuthType.BEARER_TOKEN.value: ("token",),
    WebhookAuthType.BASIC_AUTH.value: ("username", "password"),
    WebhookAuthType.API_KEY.value: ("header_name", "value"),
    WebhookAuthType.CUSTOM.value: ("headers",),
}

# Shown in clear when a webhook is serialized
PUBLIC_AUTH_FIELDS = {"username", "header_name"}

MAX_DELIVERIES = 500

# RFC 7230 token for header names; values are visible ASCII, spaces and tabs
HEADER_NAME_PATTERN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
HEADER_VALUE_PATTERN = re.compile(r"^[\t\x20-\x7e]*$")


def validate_url(url: str) -> str:
    if not url or not url.strip():
        raise InputValidationError("url is required")
    try:
        parsed = httpx.URL(url.strip())
    except (httpx.InvalidURL, TypeError) as e:
        raise InputValidationError(f"Invalid webhook url: {url}") from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise InputValidationError("Webhook url must be an absolute http(s) URL")
    return str(parsed)


def validate_event_types(event_types: Optional[Iterable[str]]) -> List[str]:
    cleaned = []
    for event_type in event_types or []:
        if not isinstance(event_type, str) or not event_type.strip():
            raise InputValidationError("event_types must be non-empty strings")
        if event_type.strip() not in cleaned:
            cleaned.append(event_type.strip())
    if not cleaned:
        raise InputValidationError("At least one event type is required")
    return cleaned


def validate_method(method: str) -> str:
    method = (method or "").upper()
    if method not in WEBHOOK_METHODS:
        raise InputValidationError(f"Unsupported method '{method}'. Expected one of: {', '.join(WEBHOOK_METHODS)}")
    return method


def validate_headers(headers: Optional[Dict[str, Any]], field: str = "headers") -> Dict[str, str]:
    if headers is None:
        return {}
    if not isinstance(headers, dict):
        raise InputValidationError(f"{field} must be an object")

    cleaned = {}
    for name, value in headers.items():
        validate_header(name, value, field)
        cleaned[name] = str(value)
    return cleaned


def validate_header(name: Any, value: Any, field: str = "headers") -> None:
    if not isinstance(name, str) or not HEADER_NAME_PATTERN.match(name):
        raise InputValidationError(f"{field}: invalid header name {name!r}")
    if not isinstance(value, (str, int, float)) or not HEADER_VALUE_PATTERN.match(str(value)):
        raise InputValidationError(f"{field}: header {name} must be printable ASCII")


def validate_auth(auth_type: str, credentials: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if auth_type not in REQUIRED_AUTH_FIELDS:
        raise InputValidationError(f"Unsupported auth_type: {auth_type}")

    credentials = dict(credentials or {})
    missing = [field for field in REQUIRED_AUTH_FIELDS[auth_type] if not credentials.get(field)]
    if missing:
        raise InputValidationError(f"auth_credentials missing for {auth_type}: {', '.join(missing)}")
    if auth_type == WebhookAuthType.CUSTOM.value:
        credentials["headers"] = validate_headers(credentials["headers"], "auth_credentials.headers")
    elif auth_type == WebhookAuthType.API_KEY.value:
        validate_header(credentials["header_name"], credentials["value"], "auth_credentials")
    elif auth_type == WebhookAuthType.BEARER_TOKEN.value:
        validate_header("Authorization", credentials["token"], "auth_credentials.token")
    return credentials


def validate_retry_policy(max_retries: int, retry_delay_seconds: int) -> None:
    if max_retries is not None and max_retries < 0:
        raise InputValidationError("max_retries cannot be negative")
    if retry_delay_seconds is not None and retry_delay_seconds < 0:
        raise InputValidationError("retry_delay_seconds cannot be negative")


class WebhookService:

    def __init__(self, db: Session, vault: Optional[CredentialVault] = None):
        self.db = db
        self.vault = vault or get_vault()

    def create(
        self,
        name: str,
        url: str,
        event_types: List[str],
        location_id: Optional[str] = None,
        method: str = "POST",
        headers: Optional[Dict[str, str]] = None,
        auth_type: str = WebhookAuthType.NONE.value,
        auth_credentials: Optional[Dict[str, Any]] = None,
        is_active: bool = True,
        retry_on_failure: bool = True,
        max_retries: int = 3,
        retry_delay_seconds: int = 60,
    ) -> Webhook:
        if not name or not name.strip():
            raise InputValidationError("name is required")
        validate_retry_policy(max_retries, retry_delay_seconds)
        credentials = validate_auth(auth_type, auth_credentials)

        webhook = Webhook(
            id=new_id("webhook"),
            location_id=location_id,
            name=name.strip(),
            url=validate_url(url),
            event_types=validate_event_types(event_types),
            method=validate_method(method),
            headers=validate_headers(headers),
            auth_type=auth_type,
            auth_credentials_encrypted=self.vault.encrypt(credentials) if credentials else None,
            is_active=is_active,
            retry_on_failure=retry_on_failure,
            max_retries=max_retries,
            retry_delay_seconds=retry_delay_seconds,
        )
        self.db.add(webhook)
        self.db.commit()

        logger.info(f"Webhook {webhook.id} created for events {webhook.event_types}")
        return webhook

    def get(self, webhook_id: str) -> Webhook:
        webhook = self.db.query(Webhook).filter(Webhook.id == webhook_id).first()
        if not webhook:
            raise WebhookNotFound(webhook_id)
        return webhook

    def list(self, location_id: Optional[str] = None, include_global: bool = True) -> List[Webhook]:
        """All webhooks, or those of one location (plus global ones unless include_global is False)"""
        query = self.db.query(Webhook)
        if location_id:
            if include_global:
                query = query.filter(or_(Webhook.location_id == location_id, Webhook.location_id.is_(None)))
            else:
                query = query.filter(Webhook.location_id == location_id)
        return query.order_by(Webhook.created_at.desc()).all()

    def update(self, webhook_id: str, changes: Dict[str, Any]) -> Webhook:
        """Apply only the fields present in changes"""
        webhook = self.get(webhook_id)
        changes = dict(changes)

        if "name" in changes:
            if not changes["name"] or not changes["name"].strip():
                raise InputValidationError("name cannot be empty")
            changes["name"] = changes["name"].strip()
        if "url" in changes:
            changes["url"] = validate_url(changes["url"])
        if "event_types" in changes:
            changes["event_types"] = validate_event_types(changes["event_types"])
        if "method" in changes:
            changes["method"] = validate_method(changes["method"])
        if "headers" in changes:
            changes["headers"] = validate_headers(changes["headers"])
        validate_retry_policy(changes.get("max_retries"), changes.get("retry_delay_seconds"))

        if "auth_type" in changes or "auth_credentials" in changes:
            auth_type = changes.pop("auth_type", webhook.auth_type)
            if "auth_credentials" in changes:
                credentials = changes.pop("auth_credentials")
            else:
                credentials = self.vault.decrypt(webhook.auth_credentials_encrypted)
            credentials = validate_auth(auth_type, credentials)
            webhook.auth_type = auth_type
            webhook.auth_credentials_encrypted = self.vault.encrypt(credentials) if credentials else None

        for field, value in changes.items():
            if value is None and field in ("max_retries", "retry_delay_seconds", "is_active", "retry_on_failure"):
                continue
            setattr(webhook, field, value)

        self.db.commit()
        logger.info(f"Webhook {webhook_id} updated: {sorted(changes)}")
        return webhook

    def delete(self, webhook_id: str) -> Webhook:
        """Removes the webhook and its delivery history"""
        webhook = self.get(webhook_id)
        self.db.delete(webhook)
        self.db.commit()

        logger.info(f"Webhook {webhook_id} deleted")
        return webhook

    def list_deliveries(
        self,
        webhook_id: str,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> List[WebhookDelivery]:
        self.get(webhook_id)
        if limit < 1 or limit > MAX_DELIVERIES:
            raise InputValidationError(f"limit must be between 1 and {MAX_DELIVERIES}")

        query = self.db.query(WebhookDelivery).filter(WebhookDelivery.webhook_id == webhook_id)
        if status:
            if status not in {s.value for s in DeliveryStatus}:
                raise InputValidationError(f"Invalid delivery status: {status}")
            query = query.filter(WebhookDelivery.status == status)

        return query.order_by(WebhookDelivery.created_at.desc()).limit(limit).all()

    def serialize(self, webhook: Webhook) -> Dict[str, Any]:
        """Webhook as returned by the API; credential values are masked"""
        credentials = self.vault.decrypt(webhook.auth_credentials_encrypted)
        masked = {}
        for key, value in credentials.items():
            if key in PUBLIC_AUTH_FIELDS:
                masked[key] = value
            elif isinstance(value, dict):
                masked[key] = {k: mask_secret(str(v)) for k, v in value.items()}
            else:
                masked[key] = mask_secret(str(value))

        return {
            "id": webhook.id,
            "location_id": webhook.location_id,
            "name": webhook.name,
            "url": webhook.url,
            "event_types": webhook.event_types or [],
            "method": webhook.method,
            "headers": webhook.headers or {},
            "auth_type": webhook.auth_type,
            "auth_credentials": masked,
            "is_active": webhook.is_active,
            "retry_on_failure": webhook.retry_on_failure,
            "max_retries": webhook.max_retries,
            "retry_delay_seconds": webhook.retry_delay_seconds,
            "last_triggered_at": webhook.last_triggered_at.isoformat() if webhook.last_triggered_at else None,
            "last_status": webhook.last_status,
            "success_count": webhook.success_count,
            "failure_count": webhook.failure_count,
            "created_at": webhook.created_at.isoformat() if webhook.created_at else None,
            "updated_at": webhook.updated_at.isoformat() if webhook.updated_at else None,
        }


def serialize_delivery(delivery: WebhookDelivery) -> Dict[str, Any]:
    return {
        "id": delivery.id,
        "webhook_id": delivery.webhook_id,
        "event_type": delivery.event_type,
        "payload": delivery.payload,
        "status": delivery.status,
        "http_status_code": delivery.http_status_code,
        "response_body": delivery.response_body,
        "response_time_ms": delivery.response_time_ms,
        "attempts": delivery.attempts,
        "last_attempt_at": delivery.last_attempt_at.isoformat() if delivery.last_attempt_at else None,
        "next_retry_at": delivery.next_retry_at.isoformat() if delivery.next_retry_at else None,
        "error_message": delivery.error_message,
        "created_at": delivery.created_at.isoformat() if delivery.created_at else None,
    }
