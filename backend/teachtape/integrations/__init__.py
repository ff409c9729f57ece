"""External service integrations for the TeachTape platform."""

from .payment_processor import (
    CheckoutLineItem,
    CheckoutSessionRequest,
    FakePaymentProcessor,
    PaymentProcessor,
    ProcessorAccount,
    ProcessorCheckoutSession,
    ProcessorRefund,
    StripePaymentProcessor,
    get_payment_processor,
)

__all__ = [
    "CheckoutLineItem",
    "CheckoutSessionRequest",
    "FakePaymentProcessor",
    "PaymentProcessor",
    "ProcessorAccount",
    "ProcessorCheckoutSession",
    "ProcessorRefund",
    "StripePaymentProcessor",
    "get_payment_processor",
]
