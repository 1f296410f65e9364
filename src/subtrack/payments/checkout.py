"""Stripe Checkout session creation for plan signup."""

import asyncio
import logging
from typing import Any

from subtrack.config.settings import AppConfig
from subtrack.db.models import PlanName, SubscriptionStatus
from subtrack.errors import DuplicateKeyError, InvalidRequestError, StoreUnavailableError
from subtrack.payments.provider import PaymentProvider
from subtrack.subscriptions.models import SubscriptionRecord
from subtrack.subscriptions.store import SubscriptionStore

logger = logging.getLogger(__name__)


def validate_checkout_request(email: Any, plan: Any) -> PlanName:
    """Check the signup form fields and return the chosen plan.

    Raises:
        InvalidRequestError: If email or plan is missing, or plan is unknown
    """
    if not email or not plan or not isinstance(email, str) or not isinstance(plan, str):
        raise InvalidRequestError("Email and plan are required")

    try:
        return PlanName(plan)
    except ValueError:
        raise InvalidRequestError("Invalid plan selected") from None


class CheckoutInitiator:
    """Creates the local subscription record and the hosted checkout."""

    def __init__(self, store: SubscriptionStore, provider: PaymentProvider, config: AppConfig):
        self._store = store
        self._provider = provider
        self._config = config

    async def create_checkout_url(self, email: Any, plan: Any) -> str:
        """Start checkout for an email and plan.

        A missing local record is created with status 'incomplete'. That
        step never blocks payment: if the store is down the checkout still
        goes ahead and the record can be created on a later attempt.

        Args:
            email: Subscriber email
            plan: Plan name ('Basic', 'Pro' or 'Enterprise')

        Returns:
            Stripe-hosted checkout URL

        Raises:
            InvalidRequestError: On missing fields or an unknown plan
            ProviderError: If Stripe fails to create the session
        """
        plan_name = validate_checkout_request(email, plan)

        await self._ensure_record(email, plan_name)

        return await asyncio.to_thread(
            self._provider.create_checkout_session,
            price_id=self._config.price_id_for(plan_name),
            customer_email=email,
            metadata={"email": email, "plan": plan_name.value},
            success_url=self._config.checkout_success_url,
            cancel_url=self._config.checkout_cancel_url,
        )

    async def _ensure_record(self, email: str, plan_name: PlanName) -> None:
        try:
            if await self._store.get_by_email(email) is not None:
                return
            await self._store.create(
                SubscriptionRecord(
                    email=email,
                    plan_name=plan_name,
                    status=SubscriptionStatus.INCOMPLETE,
                )
            )
        except DuplicateKeyError:
            # Created by a concurrent checkout for the same email
            logger.debug(f"Subscription record for {email} already exists")
        except StoreUnavailableError as e:
            logger.warning(f"Skipping local subscription record for {email}: {e}")
