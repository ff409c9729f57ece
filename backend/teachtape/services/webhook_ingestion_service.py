"""
Inbound webhook processing for the payment processor (Stripe) and the video
provider (Zoom).

Every delivery is authenticated, recorded in the webhook ledger under its
dedup key, and applied at most once. After the ledger write the call always
acknowledges: handler errors are stored on the ledger row instead of being
returned to the sender, so the sender stops retrying and operators can
replay from the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import hashlib
import hmac
import json
import logging
import time
from typing import Any, Callable, Mapping, Optional

from sqlalchemy.orm import Session
import stripe

from ..core.config import settings
from ..core.exceptions import UnauthorizedException, ValidationException
from ..integrations.payment_processor import (
    PaymentProcessor,
    ProcessorAccount,
    utc_from_timestamp,
)
from ..models.booking import Booking, PaymentStatus
from ..models.webhook_event import WebhookEvent, WebhookSource
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .booking_service import BookingService
from .payment_identity_service import PaymentIdentityService
from .refund_service import RefundService
from .webhook_ledger_service import WebhookLedgerService

logger = logging.getLogger(__name__)

ZOOM_URL_VALIDATION = "endpoint.url_validation"
ZOOM_SIGNATURE_HEADER = "x-zm-signature"
ZOOM_TIMESTAMP_HEADER = "x-zm-request-timestamp"


@dataclass(frozen=True)
class WebhookAck:
    received: bool = True
    duplicate: bool = False
    event_id: Optional[str] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class _Outcome:
    processed: bool
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    reason: Optional[str] = None


def _ignored(reason: str) -> _Outcome:
    return _Outcome(processed=False, reason=reason)


def _booking(booking_id: str) -> _Outcome:
    return _Outcome(processed=True, entity_type="booking", entity_id=booking_id)


def _get(obj: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(obj, Mapping):
            return None
        obj = obj.get(key)
    return obj


def _parse_iso(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _decode_json(raw: bytes) -> dict[str, Any]:
    try:
        body = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationException("Webhook body is not valid JSON", code="INVALID_PAYLOAD") from exc
    if not isinstance(body, dict):
        raise ValidationException("Webhook body must be a JSON object", code="INVALID_PAYLOAD")
    return body


def _reject_unsigned(source: str) -> None:
    """Signing secret missing: fail closed unless explicitly allowed."""
    if not settings.webhook_allow_unsigned:
        prometheus_metrics.record_webhook(source, "rejected")
        raise UnauthorizedException(
            "Webhook signing secret is not configured", code="WEBHOOK_NOT_CONFIGURED"
        )
    logger.warning("Accepting unsigned %s webhook (WEBHOOK_ALLOW_UNSIGNED is set)", source)


class WebhookIngestionService(BaseService):
    def __init__(
        self,
        db: Session,
        processor: PaymentProcessor,
        booking_service: Optional[BookingService] = None,
        ledger: Optional[WebhookLedgerService] = None,
    ) -> None:
        super().__init__(db)
        self.processor = processor
        self.booking_service = booking_service or BookingService(db)
        self.identity_service = PaymentIdentityService(db, processor)
        self.refund_service = RefundService(db, processor)
        self.ledger = ledger or WebhookLedgerService(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self._stripe_handlers: dict[str, Callable[[dict[str, Any]], _Outcome]] = {
            "checkout.session.completed": self._handle_checkout_completed,
            "checkout.session.async_payment_succeeded": self._handle_checkout_completed,
            "checkout.session.expired": self._handle_checkout_expired,
            "account.updated": self._handle_account_updated,
            "charge.refunded": self._handle_charge_refunded,
        }

    # ------------------------------------------------------------------ shared
    def _apply(
        self,
        source: str,
        event: WebhookEvent,
        handler: Optional[Callable[[dict[str, Any]], _Outcome]],
        data: dict[str, Any],
    ) -> str:
        """Run the handler for a freshly recorded event and settle its ledger row."""
        if handler is None:
            self.ledger.mark_ignored(event, reason="unhandled event type")
            prometheus_metrics.record_webhook(source, "ignored")
            return "ignored"
        try:
            outcome = handler(data)
        except Exception as exc:
            # The sender only needs to know we have the event; replay is from the ledger
            self.db.rollback()
            self.logger.exception("%s webhook %s (%s) failed", source, event.source_id, event.event_type)
            self.ledger.mark_failed(event, error=f"{type(exc).__name__}: {exc}")
            prometheus_metrics.record_webhook(source, "failed")
            return "failed"

        if outcome.processed:
            self.ledger.mark_processed(
                event,
                related_entity_type=outcome.entity_type,
                related_entity_id=outcome.entity_id,
            )
            prometheus_metrics.record_webhook(source, "processed")
            return "processed"
        self.ledger.mark_ignored(event, reason=outcome.reason)
        prometheus_metrics.record_webhook(source, "ignored")
        return "ignored"

    # ------------------------------------------------------------------ stripe
    def _verify_stripe(self, payload: bytes, signature: Optional[str]) -> dict[str, Any]:
        secret = settings.stripe_webhook_secret.get_secret_value()
        if not secret:
            _reject_unsigned(WebhookSource.STRIPE.value)
            return _decode_json(payload)
        if not signature:
            prometheus_metrics.record_webhook(WebhookSource.STRIPE.value, "rejected")
            raise UnauthorizedException("Missing webhook signature", code="INVALID_SIGNATURE")
        try:
            return self.processor.construct_event(payload, signature, secret)
        except stripe.SignatureVerificationError as exc:
            prometheus_metrics.record_webhook(WebhookSource.STRIPE.value, "rejected")
            raise UnauthorizedException("Invalid webhook signature", code="INVALID_SIGNATURE") from exc
        except ValueError as exc:
            raise ValidationException("Webhook body is not valid JSON", code="INVALID_PAYLOAD") from exc

    @BaseService.measure_operation("ingest_stripe_webhook")
    def ingest_stripe(self, payload: bytes, signature: Optional[str]) -> WebhookAck:
        """
        Authenticate, deduplicate and apply one Stripe event.

        Raises:
            UnauthorizedException: bad or missing signature (or no secret, fail-closed)
            ValidationException: undecodable body, or no event id/type/created time
        """
        event = self._verify_stripe(payload, signature)
        event_id = event.get("id")
        event_type = event.get("type")
        if not event_id or not event_type:
            raise ValidationException("Webhook event is missing id or type", code="INVALID_PAYLOAD")
        occurred_at = utc_from_timestamp(event.get("created"))
        if occurred_at is None:
            raise ValidationException("Webhook event is missing its created time", code="INVALID_PAYLOAD")

        row, created = self.ledger.record(
            source=WebhookSource.STRIPE.value,
            source_id=str(event_id),
            event_type=str(event_type),
            occurred_at=occurred_at,
            payload=event,
        )
        if not created:
            self.logger.info("Duplicate Stripe event %s (%s) acknowledged", event_id, event_type)
            prometheus_metrics.record_webhook(WebhookSource.STRIPE.value, "duplicate")
            return WebhookAck(duplicate=True, event_id=str(event_id), status=row.status)

        data = _get(event, "data", "object") or {}
        status = self._apply(
            WebhookSource.STRIPE.value, row, self._stripe_handlers.get(event_type), data
        )
        return WebhookAck(event_id=str(event_id), status=status)

    def _booking_for_session(self, session: dict[str, Any]):
        booking_id = session.get("client_reference_id") or _get(session, "metadata", "booking_id")
        if booking_id:
            booking = self.booking_repository.get_by_id(booking_id)
            if booking is not None:
                return booking
        session_id = session.get("id")
        return self.booking_repository.get_by_processor_session_id(session_id) if session_id else None

    def _handle_checkout_completed(self, session: dict[str, Any]) -> _Outcome:
        if session.get("payment_status") != "paid":
            return _ignored(f"payment_status={session.get('payment_status')}")
        booking = self._booking_for_session(session)
        if booking is None:
            self.logger.warning("Paid checkout session %s has no booking", session.get("id"))
            return _ignored("booking not found")

        payment_intent = session.get("payment_intent")
        if isinstance(payment_intent, Mapping):
            payment_intent = payment_intent.get("id")
        if booking.payment_status == PaymentStatus.CANCELLED.value:
            return self._refund_late_payment(booking, payment_intent)
        amount = session.get("amount_total")
        marked = self.booking_service.mark_paid(
            booking.id,
            payment_intent_id=payment_intent,
            amount_paid_cents=int(amount) if amount is not None else None,
        )
        if not marked:
            self.db.refresh(booking)
            if booking.payment_status == PaymentStatus.CANCELLED.value:
                # cancelled between our read and the conditional update
                return self._refund_late_payment(booking, payment_intent)
        return _booking(booking.id)

    def _refund_late_payment(self, booking: Booking, payment_intent: Optional[str]) -> _Outcome:
        """The buyer paid a session whose booking was already cancelled; give the money back."""
        self.logger.warning("Payment arrived for cancelled booking %s; refunding", booking.id)
        if payment_intent:
            with self.transaction():
                self.booking_repository.set_payment_intent_if_absent(booking.id, payment_intent)
        result = self.refund_service.refund(booking.id)
        if not result.issued:
            self.logger.error("Late payment for booking %s was not refunded (%s)", booking.id, result.status)
        return _booking(booking.id)

    def _handle_checkout_expired(self, session: dict[str, Any]) -> _Outcome:
        booking = self._booking_for_session(session)
        if booking is None:
            return _ignored("booking not found")
        self.booking_service.cancel_pending(booking.id)
        return _booking(booking.id)

    def _handle_account_updated(self, account: dict[str, Any]) -> _Outcome:
        account_id = account.get("id")
        if not account_id:
            return _ignored("account id missing")
        with self.transaction():
            rows = self.identity_service.refresh_from_webhook(
                ProcessorAccount(
                    id=account_id,
                    charges_enabled=bool(account.get("charges_enabled")),
                    details_submitted=bool(account.get("details_submitted")),
                    payouts_enabled=bool(account.get("payouts_enabled")),
                )
            )
        if not rows:
            return _ignored("no coach owns this account")
        return _Outcome(processed=True, entity_type="payment_account", entity_id=account_id)

    def _handle_charge_refunded(self, charge: dict[str, Any]) -> _Outcome:
        payment_intent = charge.get("payment_intent")
        if isinstance(payment_intent, Mapping):
            payment_intent = payment_intent.get("id")
        if not payment_intent:
            return _ignored("charge has no payment intent")
        if not charge.get("refunded"):
            return _ignored("partial refund")
        booking = self.booking_repository.get_by_payment_intent_id(payment_intent)
        if booking is None:
            return _ignored("booking not found")

        refunds = _get(charge, "refunds", "data") or []
        refund_id = refunds[0].get("id") if refunds and isinstance(refunds[0], Mapping) else None
        with self.transaction():
            self.booking_repository.mark_refund_succeeded_from_processor(
                payment_intent, refund_id or booking.refund_id, datetime.now(timezone.utc)
            )
        return _booking(booking.id)

    # -------------------------------------------------------------------- zoom
    @staticmethod
    def _zoom_hmac(secret: str, message: str) -> str:
        return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()

    def _verify_zoom(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        secret = settings.zoom_webhook_secret_token.get_secret_value()
        if not secret:
            _reject_unsigned(WebhookSource.ZOOM.value)
            return

        signature = headers.get(ZOOM_SIGNATURE_HEADER)
        timestamp = headers.get(ZOOM_TIMESTAMP_HEADER)
        if not signature or not timestamp:
            prometheus_metrics.record_webhook(WebhookSource.ZOOM.value, "rejected")
            raise UnauthorizedException("Missing signature", code="INVALID_SIGNATURE")
        try:
            sent_at = int(timestamp)
        except ValueError as exc:
            raise UnauthorizedException("Invalid signature timestamp", code="INVALID_SIGNATURE") from exc
        if abs(int(time.time()) - sent_at) > settings.webhook_timestamp_tolerance_seconds:
            prometheus_metrics.record_webhook(WebhookSource.ZOOM.value, "rejected")
            raise UnauthorizedException("Signature timestamp expired", code="SIGNATURE_EXPIRED")

        body = raw_body.decode("utf-8", errors="replace")
        expected = "v0=" + self._zoom_hmac(secret, f"v0:{timestamp}:{body}")
        if not hmac.compare_digest(expected, signature):
            prometheus_metrics.record_webhook(WebhookSource.ZOOM.value, "rejected")
            raise UnauthorizedException("Invalid signature", code="INVALID_SIGNATURE")

    def _url_validation_response(self, body: dict[str, Any]) -> dict[str, Any]:
        plain_token = _get(body, "payload", "plainToken")
        if not plain_token:
            raise ValidationException("Missing plainToken", code="INVALID_PAYLOAD")
        secret = settings.zoom_webhook_secret_token.get_secret_value()
        if not secret:
            prometheus_metrics.record_webhook(WebhookSource.ZOOM.value, "rejected")
            raise UnauthorizedException(
                "Webhook signing secret is not configured", code="WEBHOOK_NOT_CONFIGURED"
            )
        return {"plainToken": plain_token, "encryptedToken": self._zoom_hmac(secret, plain_token)}

    @staticmethod
    def _zoom_occurred_at(event_type: str, body: dict[str, Any]) -> Optional[datetime]:
        meeting = _get(body, "payload", "object") or {}
        participant = meeting.get("participant") or {}
        candidates: list[Any] = []
        if event_type == "meeting.ended":
            candidates = [meeting.get("end_time"), meeting.get("start_time")]
        elif event_type == "meeting.participant_joined":
            candidates = [participant.get("join_time")]
        elif event_type == "meeting.participant_left":
            candidates = [participant.get("leave_time")]
        candidates.append(meeting.get("start_time"))
        for value in candidates:
            parsed = _parse_iso(value)
            if parsed is not None:
                return parsed
        event_ts = body.get("event_ts")
        if isinstance(event_ts, (int, float)):
            return datetime.fromtimestamp(event_ts / 1000, tz=timezone.utc)
        return None

    def _handle_meeting_ended(self, body: dict[str, Any]) -> _Outcome:
        meeting_id = str(_get(body, "payload", "object", "id"))
        booking = self.booking_repository.get_by_meeting_id(meeting_id)
        if booking is None:
            return _ignored("no booking for meeting")
        if not self.booking_service.mark_completed(booking.id):
            return _ignored("booking already completed")
        return _booking(booking.id)

    @BaseService.measure_operation("ingest_zoom_webhook")
    def ingest_zoom(self, raw_body: bytes, headers: Mapping[str, str]) -> dict[str, Any]:
        """
        Authenticate and apply one Zoom event.

        The URL validation handshake is answered without touching the ledger.
        """
        lowered = {key.lower(): value for key, value in headers.items()}
        body = _decode_json(raw_body)
        event_type = body.get("event")
        if event_type == ZOOM_URL_VALIDATION:
            return self._url_validation_response(body)

        self._verify_zoom(raw_body, lowered)
        if not event_type:
            raise ValidationException("Webhook event is missing its type", code="INVALID_PAYLOAD")

        meeting_id = _get(body, "payload", "object", "id")
        if meeting_id is None or meeting_id == "":
            self.logger.warning("Zoom %s event without a meeting id", event_type)
            prometheus_metrics.record_webhook(WebhookSource.ZOOM.value, "ignored")
            return {"ok": True}
        occurred_at = self._zoom_occurred_at(event_type, body)
        if occurred_at is None:
            raise ValidationException("Webhook event has no timestamp", code="INVALID_PAYLOAD")

        row, created = self.ledger.record(
            source=WebhookSource.ZOOM.value,
            source_id=str(meeting_id),
            event_type=event_type,
            occurred_at=occurred_at,
            payload=body,
        )
        if not created:
            prometheus_metrics.record_webhook(WebhookSource.ZOOM.value, "duplicate")
            return {"ok": True, "duplicate": True}

        if event_type == "meeting.ended":
            handler: Optional[Callable[[dict[str, Any]], _Outcome]] = self._handle_meeting_ended
        elif event_type in ("meeting.started", "meeting.participant_joined", "meeting.participant_left"):
            # Attendance trail only
            handler = lambda _body: _Outcome(processed=True)  # noqa: E731
        else:
            handler = None
        status = self._apply(WebhookSource.ZOOM.value, row, handler, body)
        return {"ok": True, "status": status}
