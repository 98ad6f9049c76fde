"""
Webhook Dispatcher: fan-out of one event to every subscribed webhook.

Deliveries run concurrently, each with its own database session and a hard
timeout, and are joined with gather(return_exceptions=True): every matched
webhook gets an outcome and no delivery can fail a sibling. Failed deliveries
are given a next_retry_at while the webhook's retry policy allows; the retry
sweep (tasks.scheduled_tasks) re-attempts them on the same row.
"""
import asyncio
import base64
import json
import logging
import time
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import httpx
from sqlalchemy import or_
from sqlalchemy.orm import Session

from integrations_hub.core.config import settings
from integrations_hub.core.database import get_session_factory
from integrations_hub.core.exceptions import BusinessRuleError, DeliveryNotFound, InputValidationError
from integrations_hub.core.logging import log_api_call
from integrations_hub.core.security import CredentialVault, get_vault, sign_payload
from integrations_hub.models import DeliveryStatus, Webhook, WebhookAuthType, WebhookDelivery
from integrations_hub.utils.helpers import new_id, utcnow

logger = logging.getLogger(__name__)

WEBHOOK_STATUS_SUCCESS = "success"
WEBHOOK_STATUS_FAILED = "failed"

# Outcome status for a delivery that raised outside the HTTP exchange
OUTCOME_REJECTED = "rejected"


@dataclass
class DeliveryOutcome:
    webhook_id: str
    status: str
    delivery_id: Optional[str] = None
    attempts: int = 0
    http_status_code: Optional[int] = None
    response_time_ms: Optional[int] = None
    next_retry_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status == DeliveryStatus.DELIVERED.value

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["next_retry_at"] = self.next_retry_at.isoformat() if self.next_retry_at else None
        return data


def compute_next_retry(webhook: Webhook, attempts: int, now: datetime) -> Optional[datetime]:
    """Next attempt time after `attempts` failed attempts, or None once retries are exhausted"""
    if webhook.retry_on_failure and attempts < (webhook.max_retries or 0):
        return now + timedelta(seconds=webhook.retry_delay_seconds or 0)
    return None


def default_client_factory(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout)


class WebhookDispatcher:

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        vault: Optional[CredentialVault] = None,
        client_factory: Optional[Callable[[float], httpx.AsyncClient]] = None,
        timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.vault = vault or get_vault()
        self.client_factory = client_factory or default_client_factory
        self.timeout = timeout if timeout is not None else settings.WEBHOOK_TIMEOUT_SECONDS
        self.body_limit = settings.WEBHOOK_RESPONSE_BODY_LIMIT

    # =====================================================
    # FAN-OUT
    # =====================================================

    @staticmethod
    def matching_webhooks(db: Session, event_type: str, location_id: Optional[str] = None) -> List[Webhook]:
        """Active webhooks subscribed to event_type (location-scoped plus global when location_id is given)"""
        query = db.query(Webhook).filter(Webhook.is_active == True)
        if location_id:
            query = query.filter(or_(Webhook.location_id == location_id, Webhook.location_id.is_(None)))

        # event_types is a JSON list; matched here to stay portable across backends
        return [w for w in query.order_by(Webhook.created_at).all() if w.subscribes_to(event_type)]

    async def trigger(
        self,
        event_type: str,
        payload: Any,
        location_id: Optional[str] = None,
    ) -> List[DeliveryOutcome]:
        """Deliver one event to every subscribed webhook; one outcome per webhook"""
        if not event_type or not event_type.strip():
            raise InputValidationError("event_type is required")

        db = self.session_factory()
        try:
            webhook_ids = [w.id for w in self.matching_webhooks(db, event_type, location_id)]
        finally:
            db.close()

        if not webhook_ids:
            logger.info(f"No webhooks subscribed to {event_type}")
            return []

        async with self.client_factory(self.timeout) as client:
            results = await asyncio.gather(
                *(self.deliver(webhook_id, event_type, payload, client) for webhook_id in webhook_ids),
                return_exceptions=True,
            )

        outcomes = []
        for webhook_id, result in zip(webhook_ids, results):
            if isinstance(result, Exception):
                logger.error(f"Delivery of {event_type} to webhook {webhook_id} rejected: {result!r}")
                outcomes.append(DeliveryOutcome(
                    webhook_id=webhook_id,
                    status=OUTCOME_REJECTED,
                    error=str(result) or result.__class__.__name__,
                ))
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(result)

        delivered = sum(1 for o in outcomes if o.delivered)
        logger.info(f"Event {event_type} delivered to {delivered}/{len(outcomes)} webhooks")
        return outcomes

    async def deliver(
        self,
        webhook_id: str,
        event_type: str,
        payload: Any,
        client: httpx.AsyncClient,
    ) -> DeliveryOutcome:
        """Create the pending delivery row and make the first attempt"""
        db = self.session_factory()
        try:
            webhook = db.query(Webhook).filter(Webhook.id == webhook_id).first()
            if webhook is None:
                raise BusinessRuleError(f"Webhook {webhook_id} was removed before delivery")

            delivery = WebhookDelivery(
                id=new_id("delivery"),
                webhook_id=webhook.id,
                event_type=event_type,
                payload=payload,
                status=DeliveryStatus.PENDING.value,
                attempts=0,
            )
            db.add(delivery)
            db.commit()

            return await self._attempt(db, webhook, delivery, client)
        finally:
            db.close()

    # =====================================================
    # RETRIES
    # =====================================================

    async def retry_delivery(self, delivery_id: str, client: Optional[httpx.AsyncClient] = None) -> DeliveryOutcome:
        """Re-attempt a failed delivery on the same row"""
        if client is None:
            async with self.client_factory(self.timeout) as own_client:
                return await self.retry_delivery(delivery_id, own_client)

        db = self.session_factory()
        try:
            delivery = db.query(WebhookDelivery).filter(WebhookDelivery.id == delivery_id).first()
            if delivery is None:
                raise DeliveryNotFound(delivery_id)
            if delivery.status == DeliveryStatus.DELIVERED.value:
                raise BusinessRuleError(f"Delivery {delivery_id} was already delivered")

            webhook = delivery.webhook
            if not webhook.is_active:
                raise BusinessRuleError(f"Webhook {webhook.id} is inactive")

            return await self._attempt(db, webhook, delivery, client)
        finally:
            db.close()

    def due_delivery_ids(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[str]:
        now = now or utcnow()
        limit = limit or settings.WEBHOOK_RETRY_BATCH_SIZE

        db = self.session_factory()
        try:
            rows = (
                db.query(WebhookDelivery.id)
                .join(Webhook, WebhookDelivery.webhook_id == Webhook.id)
                .filter(
                    WebhookDelivery.status == DeliveryStatus.FAILED.value,
                    WebhookDelivery.next_retry_at.isnot(None),
                    WebhookDelivery.next_retry_at <= now,
                    Webhook.is_active == True,
                )
                .order_by(WebhookDelivery.next_retry_at)
                .limit(limit)
                .all()
            )
            return [row[0] for row in rows]
        finally:
            db.close()

    async def retry_due(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[DeliveryOutcome]:
        """Re-attempt every failed delivery whose next_retry_at has passed"""
        delivery_ids = self.due_delivery_ids(now, limit)
        if not delivery_ids:
            return []

        async with self.client_factory(self.timeout) as client:
            results = await asyncio.gather(
                *(self.retry_delivery(delivery_id, client) for delivery_id in delivery_ids),
                return_exceptions=True,
            )

        outcomes = []
        for delivery_id, result in zip(delivery_ids, results):
            if isinstance(result, Exception):
                logger.error(f"Retry of delivery {delivery_id} rejected: {result!r}")
                continue
            if isinstance(result, BaseException):
                raise result
            outcomes.append(result)

        logger.info(f"Retried {len(outcomes)} webhook deliveries")
        return outcomes

    # =====================================================
    # SINGLE ATTEMPT
    # =====================================================

    def build_request(self, webhook: Webhook, delivery: WebhookDelivery) -> Dict[str, Any]:
        credentials = self.vault.decrypt(webhook.auth_credentials_encrypted)
        method = (webhook.method or "POST").upper()

        body = b""
        if method != "GET":
            body = json.dumps(delivery.payload, separators=(",", ":"), default=str).encode()

        return {
            "method": method,
            "url": webhook.url,
            "headers": self.build_headers(webhook, credentials, delivery, body),
            "content": body if method != "GET" else None,
        }

    @staticmethod
    def build_headers(
        webhook: Webhook,
        credentials: Dict[str, Any],
        delivery: WebhookDelivery,
        body: bytes,
    ) -> Dict[str, str]:
        headers = {str(k): str(v) for k, v in (webhook.headers or {}).items()}
        headers["Content-Type"] = "application/json"
        headers["X-Webhook-Event"] = delivery.event_type
        headers["X-Webhook-Delivery"] = delivery.id

        if webhook.auth_type == WebhookAuthType.BEARER_TOKEN.value:
            headers["Authorization"] = f"Bearer {credentials.get('token', '')}"

        elif webhook.auth_type == WebhookAuthType.BASIC_AUTH.value:
            pair = f"{credentials.get('username', '')}:{credentials.get('password', '')}"
            headers["Authorization"] = f"Basic {base64.b64encode(pair.encode()).decode()}"

        elif webhook.auth_type == WebhookAuthType.API_KEY.value:
            headers[credentials["header_name"]] = str(credentials.get("value", ""))

        elif webhook.auth_type == WebhookAuthType.CUSTOM.value:
            headers.update({str(k): str(v) for k, v in (credentials.get("headers") or {}).items()})

        if credentials.get("signing_secret"):
            headers["X-Webhook-Signature"] = f"sha256={sign_payload(body, credentials['signing_secret'])}"

        return headers

    async def _attempt(
        self,
        db: Session,
        webhook: Webhook,
        delivery: WebhookDelivery,
        client: httpx.AsyncClient,
    ) -> DeliveryOutcome:
        start_time = time.perf_counter()
        try:
            request = self.build_request(webhook, delivery)

            # Claimed: the retry sweep skips this row while the attempt runs
            delivery.last_attempt_at = utcnow()
            delivery.next_retry_at = None
            db.commit()

            start_time = time.perf_counter()
            response = await asyncio.wait_for(client.request(**request), timeout=self.timeout)
            response.raise_for_status()

        except httpx.HTTPStatusError as e:
            return self._record_failure(
                db, webhook, delivery,
                error=f"HTTP {e.response.status_code} {e.response.reason_phrase}".strip(),
                elapsed_ms=self._elapsed_ms(start_time),
                status_code=e.response.status_code,
                response_body=e.response.text,
            )

        except asyncio.TimeoutError:
            return self._record_failure(
                db, webhook, delivery,
                error=f"Timed out after {self.timeout} seconds",
                elapsed_ms=self._elapsed_ms(start_time),
            )

        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return self._record_failure(
                db, webhook, delivery,
                error=str(e) or e.__class__.__name__,
                elapsed_ms=self._elapsed_ms(start_time),
            )

        except Exception as e:
            # Request could not be built or sent; the row still ends as failed
            db.rollback()
            logger.error(f"Delivery {delivery.id} to webhook {webhook.id} raised: {e!r}")
            return self._record_failure(
                db, webhook, delivery,
                error=f"{e.__class__.__name__}: {e}",
                elapsed_ms=self._elapsed_ms(start_time),
            )

        return self._record_success(db, webhook, delivery, response, self._elapsed_ms(start_time))

    def _record_success(
        self,
        db: Session,
        webhook: Webhook,
        delivery: WebhookDelivery,
        response: httpx.Response,
        elapsed_ms: int,
    ) -> DeliveryOutcome:
        now = utcnow()
        delivery.status = DeliveryStatus.DELIVERED.value
        delivery.http_status_code = response.status_code
        delivery.response_body = response.text[: self.body_limit]
        delivery.response_time_ms = elapsed_ms
        delivery.attempts = (delivery.attempts or 0) + 1
        delivery.error_message = None
        delivery.next_retry_at = None

        db.query(Webhook).filter(Webhook.id == webhook.id).update(
            {
                Webhook.success_count: Webhook.success_count + 1,
                Webhook.last_status: WEBHOOK_STATUS_SUCCESS,
                Webhook.last_triggered_at: now,
            },
            synchronize_session=False,
        )
        db.commit()

        log_api_call(logger, service=webhook.id, endpoint=webhook.url,
                     status_code=response.status_code, duration_ms=elapsed_ms)

        return DeliveryOutcome(
            webhook_id=webhook.id,
            delivery_id=delivery.id,
            status=delivery.status,
            attempts=delivery.attempts,
            http_status_code=delivery.http_status_code,
            response_time_ms=elapsed_ms,
        )

    def _record_failure(
        self,
        db: Session,
        webhook: Webhook,
        delivery: WebhookDelivery,
        error: str,
        elapsed_ms: int,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ) -> DeliveryOutcome:
        now = utcnow()
        delivery.status = DeliveryStatus.FAILED.value
        delivery.http_status_code = status_code
        delivery.response_body = response_body[: self.body_limit] if response_body is not None else None
        delivery.response_time_ms = elapsed_ms
        delivery.attempts = (delivery.attempts or 0) + 1
        delivery.error_message = error
        delivery.next_retry_at = compute_next_retry(webhook, delivery.attempts, now)

        db.query(Webhook).filter(Webhook.id == webhook.id).update(
            {
                Webhook.failure_count: Webhook.failure_count + 1,
                Webhook.last_status: WEBHOOK_STATUS_FAILED,
                Webhook.last_triggered_at: now,
            },
            synchronize_session=False,
        )
        db.commit()

        log_api_call(logger, service=webhook.id, endpoint=webhook.url,
                     status_code=status_code, duration_ms=elapsed_ms, error=error)

        return DeliveryOutcome(
            webhook_id=webhook.id,
            delivery_id=delivery.id,
            status=delivery.status,
            attempts=delivery.attempts,
            http_status_code=status_code,
            response_time_ms=elapsed_ms,
            next_retry_at=delivery.next_retry_at,
            error=error,
        )

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.perf_counter() - start_time) * 1000)
