# backend/teachtape/domain/booking_state.py
"""
Transition tables for the two booking axes.

Every status change goes through ``ensure_*_transition`` before the
repository issues its conditional update. Anything not listed here
(self-transitions, backwards moves, leaving a terminal state) is a conflict.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Optional

from ..core.exceptions import ConflictException
from ..models.booking import PaymentStatus, ReviewStatus

PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.CANCELLED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.COMPLETED}),
    PaymentStatus.COMPLETED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
}

REVIEW_TRANSITIONS: Dict[ReviewStatus, FrozenSet[ReviewStatus]] = {
    ReviewStatus.PENDING_ACCEPTANCE: frozenset({ReviewStatus.ACCEPTED, ReviewStatus.DECLINED}),
    ReviewStatus.ACCEPTED: frozenset({ReviewStatus.COMPLETED, ReviewStatus.EXPIRED}),
    ReviewStatus.DECLINED: frozenset(),
    ReviewStatus.COMPLETED: frozenset(),
    ReviewStatus.EXPIRED: frozenset(),
}


def _coerce_payment(value: str | PaymentStatus) -> PaymentStatus:
    return value if isinstance(value, PaymentStatus) else PaymentStatus(value)


def _coerce_review(value: str | ReviewStatus) -> ReviewStatus:
    return value if isinstance(value, ReviewStatus) else ReviewStatus(value)


def can_transition_payment(current: str | PaymentStatus, target: str | PaymentStatus) -> bool:
    return _coerce_payment(target) in PAYMENT_TRANSITIONS[_coerce_payment(current)]


def can_transition_review(
    current: Optional[str | ReviewStatus], target: str | ReviewStatus
) -> bool:
    if current is None:
        return False
    return _coerce_review(target) in REVIEW_TRANSITIONS[_coerce_review(current)]


def ensure_payment_transition(
    current: str | PaymentStatus, target: str | PaymentStatus, *, booking_id: str | None = None
) -> None:
    if not can_transition_payment(current, target):
        raise ConflictException(
            f"Cannot move payment from {_coerce_payment(current).value} to {_coerce_payment(target).value}",
            code="INVALID_PAYMENT_TRANSITION",
            details={
                "booking_id": booking_id,
                "current": _coerce_payment(current).value,
                "target": _coerce_payment(target).value,
            },
        )


def ensure_review_transition(
    current: Optional[str | ReviewStatus],
    target: str | ReviewStatus,
    *,
    booking_id: str | None = None,
) -> None:
    if not can_transition_review(current, target):
        current_value = _coerce_review(current).value if current is not None else None
        raise ConflictException(
            f"Cannot move review from {current_value} to {_coerce_review(target).value}",
            code="INVALID_REVIEW_TRANSITION",
            details={
                "booking_id": booking_id,
                "current": current_value,
                "target": _coerce_review(target).value,
            },
        )


def is_terminal_payment(status: str | PaymentStatus) -> bool:
    return not PAYMENT_TRANSITIONS[_coerce_payment(status)]


def is_terminal_review(status: str | ReviewStatus) -> bool:
    return not REVIEW_TRANSITIONS[_coerce_review(status)]
