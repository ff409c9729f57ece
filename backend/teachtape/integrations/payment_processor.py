# backend/teachtape/integrations/payment_processor.py
"""
Payment processor client.

Services talk to ``PaymentProcessor``; production wires the Stripe Connect
implementation, local development and tests use ``FakePaymentProcessor``.
Every processor failure surfaces as ``ProcessorException`` with a
``retryable`` flag so callers can tell transient outages from bad requests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
import json
import logging
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

import stripe

from ..core.config import Settings, settings
from ..core.exceptions import ProcessorException, ServiceException

logger = logging.getLogger(__name__)

ALREADY_REFUNDED_CODE = "charge_already_refunded"


@dataclass
class ProcessorAccount:
    id: str
    charges_enabled: bool = False
    details_submitted: bool = False
    payouts_enabled: bool = False
    requirements: List[str] = field(default_factory=list)


@dataclass
class CheckoutLineItem:
    name: str
    amount_cents: int
    quantity: int = 1


@dataclass
class CheckoutSessionRequest:
    booking_id: str
    destination_account_id: str
    line_items: List[CheckoutLineItem]
    application_fee_cents: int
    success_url: str
    cancel_url: str
    expires_at: datetime
    customer_email: Optional[str] = None
    currency: str = "usd"
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class ProcessorCheckoutSession:
    id: str
    url: Optional[str]
    status: Optional[str] = None
    payment_status: Optional[str] = None
    payment_intent_id: Optional[str] = None
    client_reference_id: Optional[str] = None
    amount_total: Optional[int] = None


@dataclass
class ProcessorRefund:
    id: str
    status: str
    amount: Optional[int] = None


class PaymentProcessor(ABC):
    """Operations the booking core needs from a payment processor."""

    @abstractmethod
    def create_account(self, *, email: str, metadata: Dict[str, str]) -> ProcessorAccount:
        ...

    @abstractmethod
    def delete_account(self, account_id: str) -> None:
        ...

    @abstractmethod
    def create_account_link(self, account_id: str, *, refresh_url: str, return_url: str) -> str:
        ...

    @abstractmethod
    def retrieve_account(self, account_id: str) -> ProcessorAccount:
        ...

    @abstractmethod
    def create_checkout_session(self, request: CheckoutSessionRequest) -> ProcessorCheckoutSession:
        ...

    @abstractmethod
    def retrieve_checkout_session(self, session_id: str) -> ProcessorCheckoutSession:
        ...

    @abstractmethod
    def expire_checkout_session(self, session_id: str) -> ProcessorCheckoutSession:
        """Close an open session so it can no longer be paid."""

    @abstractmethod
    def create_refund(
        self, payment_intent_id: str, *, reason: str, idempotency_key: str, reverse_transfer: bool = True
    ) -> ProcessorRefund:
        ...

    @abstractmethod
    def construct_event(self, payload: bytes, signature: str, secret: str) -> Dict[str, Any]:
        """Verify a webhook signature and return the decoded event."""


def _field(obj: Any, name: str, default: Any = None) -> Any:
    value = getattr(obj, name, None)
    if value is None and isinstance(obj, dict):
        value = obj.get(name)
    return default if value is None else value


def translate_stripe_error(exc: stripe.StripeError, operation: str) -> ProcessorException:
    """Map a Stripe SDK error onto ProcessorException."""
    retryable = isinstance(exc, (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError))
    http_status = getattr(exc, "http_status", None)
    if http_status is not None and http_status >= 500:
        retryable = True
    code = getattr(exc, "code", None)
    message = getattr(exc, "user_message", None) or str(exc) or "Payment processor error"
    return ProcessorException(
        f"{operation} failed: {message}",
        retryable=retryable,
        processor_code=code,
        details={"operation": operation, "http_status": http_status},
    )


class StripePaymentProcessor(PaymentProcessor):
    """Stripe Connect (Express accounts, destination charges)."""

    def __init__(self, config: Settings = settings):
        secret = config.stripe_secret_key.get_secret_value()
        if not secret:
            raise ServiceException("Stripe secret key not configured")
        stripe.api_key = secret
        # Bounded timeout and a single retry so a slow processor can't pin request workers
        stripe.default_http_client = stripe.RequestsClient(timeout=config.stripe_timeout_seconds)
        stripe.max_network_retries = config.stripe_max_network_retries
        self.currency = config.stripe_currency
        self.logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def _to_account(account: Any) -> ProcessorAccount:
        requirements = _field(account, "requirements") or {}
        currently_due = _field(requirements, "currently_due") or []
        return ProcessorAccount(
            id=_field(account, "id"),
            charges_enabled=bool(_field(account, "charges_enabled", False)),
            details_submitted=bool(_field(account, "details_submitted", False)),
            payouts_enabled=bool(_field(account, "payouts_enabled", False)),
            requirements=list(currently_due),
        )

    @staticmethod
    def _to_session(session: Any) -> ProcessorCheckoutSession:
        payment_intent = _field(session, "payment_intent")
        if payment_intent is not None and not isinstance(payment_intent, str):
            payment_intent = _field(payment_intent, "id")
        return ProcessorCheckoutSession(
            id=_field(session, "id"),
            url=_field(session, "url"),
            status=_field(session, "status"),
            payment_status=_field(session, "payment_status"),
            payment_intent_id=payment_intent,
            client_reference_id=_field(session, "client_reference_id"),
            amount_total=_field(session, "amount_total"),
        )

    def create_account(self, *, email: str, metadata: Dict[str, str]) -> ProcessorAccount:
        try:
            account = stripe.Account.create(
                type="express",
                email=email,
                capabilities={
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True},
                },
                metadata=metadata,
            )
        except stripe.StripeError as exc:
            self.logger.error("Stripe error creating connected account: %s", exc)
            raise translate_stripe_error(exc, "create_account") from exc
        return self._to_account(account)

    def delete_account(self, account_id: str) -> None:
        try:
            stripe.Account.delete(account_id)
        except stripe.StripeError as exc:
            raise translate_stripe_error(exc, "delete_account") from exc

    def create_account_link(self, account_id: str, *, refresh_url: str, return_url: str) -> str:
        try:
            link = stripe.AccountLink.create(
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            )
        except stripe.StripeError as exc:
            raise translate_stripe_error(exc, "create_account_link") from exc
        return str(_field(link, "url"))

    def retrieve_account(self, account_id: str) -> ProcessorAccount:
        try:
            account = stripe.Account.retrieve(account_id)
        except stripe.StripeError as exc:
            raise translate_stripe_error(exc, "retrieve_account") from exc
        return self._to_account(account)

    def create_checkout_session(self, request: CheckoutSessionRequest) -> ProcessorCheckoutSession:
        metadata = {"booking_id": request.booking_id, **request.metadata}
        line_items = [
            {
                "price_data": {
                    "currency": request.currency,
                    "unit_amount": item.amount_cents,
                    "product_data": {"name": item.name},
                },
                "quantity": item.quantity,
            }
            for item in request.line_items
        ]
        params: Dict[str, Any] = {
            "mode": "payment",
            "line_items": line_items,
            "payment_intent_data": {
                "application_fee_amount": request.application_fee_cents,
                "transfer_data": {"destination": request.destination_account_id},
                "metadata": metadata,
            },
            "client_reference_id": request.booking_id,
            "metadata": metadata,
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "expires_at": int(request.expires_at.timestamp()),
        }
        if request.customer_email:
            params["customer_email"] = request.customer_email
        try:
            session = stripe.checkout.Session.create(
                **params, idempotency_key=f"checkout-{request.booking_id}"
            )
        except stripe.StripeError as exc:
            self.logger.error("Stripe error creating checkout session for %s: %s", request.booking_id, exc)
            raise translate_stripe_error(exc, "create_checkout_session") from exc
        return self._to_session(session)

    def retrieve_checkout_session(self, session_id: str) -> ProcessorCheckoutSession:
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as exc:
            raise translate_stripe_error(exc, "retrieve_checkout_session") from exc
        return self._to_session(session)

    def expire_checkout_session(self, session_id: str) -> ProcessorCheckoutSession:
        try:
            session = stripe.checkout.Session.expire(session_id)
        except stripe.StripeError as exc:
            raise translate_stripe_error(exc, "expire_checkout_session") from exc
        return self._to_session(session)

    def create_refund(
        self, payment_intent_id: str, *, reason: str, idempotency_key: str, reverse_transfer: bool = True
    ) -> ProcessorRefund:
        try:
            refund = stripe.Refund.create(
                payment_intent=payment_intent_id,
                reason=reason,
                reverse_transfer=reverse_transfer,
                refund_application_fee=reverse_transfer,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            raise translate_stripe_error(exc, "create_refund") from exc
        return ProcessorRefund(
            id=_field(refund, "id"),
            status=_field(refund, "status", "pending"),
            amount=_field(refund, "amount"),
        )

    def construct_event(self, payload: bytes, signature: str, secret: str) -> Dict[str, Any]:
        # Raises stripe.SignatureVerificationError / ValueError on bad input
        stripe.Webhook.construct_event(payload, signature, secret)
        return json.loads(payload)


class FakePaymentProcessor(PaymentProcessor):
    """
    In-memory processor for local development and tests.

    ``fail_next(operation, exc)`` makes the next call to ``operation`` raise;
    ``before(operation, hook)`` runs ``hook`` ahead of an operation, which is
    how tests interleave a competing request at a precise point.
    """

    def __init__(self) -> None:
        self.accounts: Dict[str, ProcessorAccount] = {}
        self.sessions: Dict[str, ProcessorCheckoutSession] = {}
        self.session_requests: Dict[str, CheckoutSessionRequest] = {}
        self.refunds: Dict[str, ProcessorRefund] = {}
        self.deleted_accounts: List[str] = []
        self.calls: List[str] = []
        self._failures: Dict[str, Exception] = {}
        self._hooks: Dict[str, Callable[[], None]] = {}
        self._logger = logging.getLogger(self.__class__.__name__)

    def fail_next(self, operation: str, exc: Exception) -> None:
        self._failures[operation] = exc

    def before(self, operation: str, hook: Callable[[], None]) -> None:
        self._hooks[operation] = hook

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        hook = self._hooks.pop(operation, None)
        if hook is not None:
            hook()
        exc = self._failures.pop(operation, None)
        if exc is not None:
            raise exc

    def call_count(self, operation: str) -> int:
        return self.calls.count(operation)

    def create_account(self, *, email: str, metadata: Dict[str, str]) -> ProcessorAccount:
        self._enter("create_account")
        account = ProcessorAccount(id=f"acct_fake_{uuid4().hex[:16]}", requirements=["external_account"])
        self.accounts[account.id] = account
        self._logger.debug("Fake account created", extra={"account_id": account.id})
        return account

    def delete_account(self, account_id: str) -> None:
        self._enter("delete_account")
        self.accounts.pop(account_id, None)
        self.deleted_accounts.append(account_id)

    def create_account_link(self, account_id: str, *, refresh_url: str, return_url: str) -> str:
        self._enter("create_account_link")
        return f"https://connect.example.test/setup/{account_id}"

    def retrieve_account(self, account_id: str) -> ProcessorAccount:
        self._enter("retrieve_account")
        account = self.accounts.get(account_id)
        if account is None:
            raise ProcessorException(
                "retrieve_account failed: No such account",
                retryable=False,
                processor_code="resource_missing",
            )
        return account

    def enable_charges(self, account_id: str) -> ProcessorAccount:
        account = self.accounts.setdefault(account_id, ProcessorAccount(id=account_id))
        account.charges_enabled = True
        account.details_submitted = True
        account.payouts_enabled = True
        account.requirements = []
        return account

    def create_checkout_session(self, request: CheckoutSessionRequest) -> ProcessorCheckoutSession:
        self._enter("create_checkout_session")
        session_id = f"cs_fake_{uuid4().hex[:16]}"
        session = ProcessorCheckoutSession(
            id=session_id,
            url=f"https://checkout.example.test/pay/{session_id}",
            status="open",
            payment_status="unpaid",
            client_reference_id=request.booking_id,
            amount_total=sum(item.amount_cents * item.quantity for item in request.line_items),
        )
        self.sessions[session_id] = session
        self.session_requests[session_id] = request
        return session

    def complete_session(self, session_id: str) -> ProcessorCheckoutSession:
        session = self.sessions[session_id]
        session.status = "complete"
        session.payment_status = "paid"
        session.payment_intent_id = session.payment_intent_id or f"pi_fake_{uuid4().hex[:16]}"
        return session

    def retrieve_checkout_session(self, session_id: str) -> ProcessorCheckoutSession:
        self._enter("retrieve_checkout_session")
        session = self.sessions.get(session_id)
        if session is None:
            raise ProcessorException(
                "retrieve_checkout_session failed: No such session",
                retryable=False,
                processor_code="resource_missing",
            )
        return session

    def expire_checkout_session(self, session_id: str) -> ProcessorCheckoutSession:
        self._enter("expire_checkout_session")
        session = self.sessions.get(session_id)
        if session is None:
            raise ProcessorException(
                "expire_checkout_session failed: No such session",
                retryable=False,
                processor_code="resource_missing",
            )
        if session.status != "open":
            raise ProcessorException(
                f"expire_checkout_session failed: session is {session.status}",
                retryable=False,
            )
        session.status = "expired"
        return session

    def create_refund(
        self, payment_intent_id: str, *, reason: str, idempotency_key: str, reverse_transfer: bool = True
    ) -> ProcessorRefund:
        self._enter("create_refund")
        existing = self.refunds.get(idempotency_key)
        if existing is not None:
            return existing
        refund = ProcessorRefund(id=f"re_fake_{uuid4().hex[:16]}", status="succeeded")
        self.refunds[idempotency_key] = refund
        return refund

    def construct_event(self, payload: bytes, signature: str, secret: str) -> Dict[str, Any]:
        self._enter("construct_event")
        if signature != f"valid:{secret}":
            raise stripe.SignatureVerificationError("Invalid signature", signature)
        return json.loads(payload)


@lru_cache(maxsize=1)
def _stripe_processor() -> StripePaymentProcessor:
    return StripePaymentProcessor(settings)


@lru_cache(maxsize=1)
def _fake_processor() -> FakePaymentProcessor:
    return FakePaymentProcessor()


def get_payment_processor() -> PaymentProcessor:
    """FastAPI dependency returning the configured processor client."""
    if settings.stripe_configured:
        return _stripe_processor()
    if settings.environment == "production":
        raise ServiceException("Payment processor is not configured")
    logger.warning("Stripe secret key not configured - using in-memory payment processor")
    return _fake_processor()


def utc_from_timestamp(value: Any) -> Optional[datetime]:
    """Convert processor epoch seconds to an aware UTC datetime; None when unusable."""
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
