# backend/teachtape/services/payment_identity_service.py
"""
Coach payment identity (connected merchant account) management.

A coach owns at most one live processor account. Concurrent onboarding
requests may each create an external account; only the first conditional
write wins and the losers schedule their orphan for deletion.
"""

from dataclasses import dataclass, field
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import NotFoundException
from ..integrations.payment_processor import PaymentProcessor, ProcessorAccount
from ..models.profile import Coach
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .side_effects import ACCOUNT_DISCARD, publish_side_effect

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountEnsureResult:
    account_id: str
    onboarding_required: bool
    created: bool = False


@dataclass(frozen=True)
class AccountStatus:
    account_id: str
    charges_enabled: bool
    details_submitted: bool
    payouts_enabled: bool = False
    requirements: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class OnboardingResult:
    account_id: str
    onboarding_url: Optional[str]
    already_onboarded: bool


class PaymentIdentityService(BaseService):
    def __init__(self, db: Session, processor: PaymentProcessor):
        super().__init__(db)
        self.processor = processor
        self.coach_repository = RepositoryFactory.create_coach_repository(db)
        self.profile_repository = RepositoryFactory.create_profile_repository(db)

    def _get_coach(self, coach_id: str) -> Coach:
        coach = self.coach_repository.get_by_id(coach_id)
        if coach is None:
            raise NotFoundException("Coach not found", code="COACH_NOT_FOUND")
        return coach

    def _refresh_cache(self, account: ProcessorAccount) -> None:
        with self.transaction():
            self.coach_repository.update_readiness(
                account.id,
                charges_enabled=account.charges_enabled,
                details_submitted=account.details_submitted,
            )

    @BaseService.measure_operation("ensure_account")
    def ensure_account(self, coach_id: str) -> AccountEnsureResult:
        """
        Return the coach's processor account, creating one if absent.

        Raises:
            NotFoundException: unknown coach
            ProcessorException: the processor call failed
        """
        coach = self._get_coach(coach_id)

        if coach.payment_account_id:
            account = self.processor.retrieve_account(coach.payment_account_id)
            self._refresh_cache(account)
            return AccountEnsureResult(
                account_id=account.id,
                onboarding_required=not account.charges_enabled,
            )

        profile = self.profile_repository.get_by_id(coach.profile_id)
        account = self.processor.create_account(
            email=profile.email if profile else "",
            metadata={"coach_id": coach.id, "profile_id": coach.profile_id},
        )

        with self.transaction():
            won = self.coach_repository.set_payment_account_if_absent(coach.id, account.id)

        if won:
            self.logger.info("Created payment account %s for coach %s", account.id, coach.id)
            return AccountEnsureResult(
                account_id=account.id,
                onboarding_required=not account.charges_enabled,
                created=True,
            )

        # Lost the race: another request stored an account first
        coach = self._get_coach(coach_id)
        winner_id = coach.payment_account_id
        self.logger.warning(
            "Concurrent account creation for coach %s; discarding %s in favour of %s",
            coach_id,
            account.id,
            winner_id,
        )
        publish_side_effect(
            self.db,
            ACCOUNT_DISCARD,
            coach_id,
            payload={"account_id": account.id, "coach_id": coach_id},
            idempotency_key=f"{ACCOUNT_DISCARD}:{account.id}",
        )
        return AccountEnsureResult(
            account_id=winner_id,
            onboarding_required=not coach.charges_enabled,
        )

    @BaseService.measure_operation("create_onboarding_link")
    def create_onboarding_link(self, account_id: str, refresh_url: str, return_url: str) -> str:
        return self.processor.create_account_link(
            account_id, refresh_url=refresh_url, return_url=return_url
        )

    @BaseService.measure_operation("get_account_status")
    def get_status(self, account_id: str) -> AccountStatus:
        """Read readiness from the processor and refresh the coach's cached flags."""
        account = self.processor.retrieve_account(account_id)
        self._refresh_cache(account)
        return AccountStatus(
            account_id=account.id,
            charges_enabled=account.charges_enabled,
            details_submitted=account.details_submitted,
            payouts_enabled=account.payouts_enabled,
            requirements=list(account.requirements),
        )

    def get_status_for_coach_profile(self, profile_id: str) -> AccountStatus:
        coach = self.coach_repository.get_by_profile_id(profile_id)
        if coach is None:
            raise NotFoundException("Coach not found", code="COACH_NOT_FOUND")
        if not coach.payment_account_id:
            return AccountStatus(account_id="", charges_enabled=False, details_submitted=False)
        return self.get_status(coach.payment_account_id)

    @BaseService.measure_operation("start_onboarding")
    def start_onboarding(self, coach_profile_id: str, return_path: str = "/dashboard/payments") -> OnboardingResult:
        coach = self.coach_repository.get_by_profile_id(coach_profile_id)
        if coach is None:
            raise NotFoundException("Coach not found", code="COACH_NOT_FOUND")

        ensured = self.ensure_account(coach.id)
        if not ensured.onboarding_required:
            return OnboardingResult(
                account_id=ensured.account_id, onboarding_url=None, already_onboarded=True
            )

        base = settings.frontend_url.rstrip("/")
        path = return_path if return_path.startswith("/") else f"/{return_path}"
        url = self.create_onboarding_link(
            ensured.account_id,
            refresh_url=f"{base}{path}?onboarding=refresh",
            return_url=f"{base}{path}?onboarding=complete",
        )
        return OnboardingResult(account_id=ensured.account_id, onboarding_url=url, already_onboarded=False)

    def refresh_from_webhook(self, account: ProcessorAccount) -> int:
        """account.updated handler: caller owns the transaction."""
        return self.coach_repository.update_readiness(
            account.id,
            charges_enabled=account.charges_enabled,
            details_submitted=account.details_submitted,
        )
