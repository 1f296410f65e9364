"""Stripe webhook verification, event parsing and reconciliation.

Verified events are parsed into one of a closed set of variants and then
applied to the subscription store:

    checkout.session.completed     -> CheckoutCompleted    -> active (+ Stripe IDs)
    invoice.paid                   -> InvoicePaid          -> active
    invoice.payment_failed         -> InvoicePaymentFailed -> past_due
    customer.subscription.updated  -> SubscriptionUpdated  -> Stripe's status
    customer.subscription.deleted  -> SubscriptionDeleted  -> canceled
    anything else                  -> IgnoredEvent         -> acknowledged only

Events are not deduplicated by ID. Every transition is an assignment, so a
redelivered event leaves the record as the first delivery did.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union, assert_never

from aiohttp import web

from subtrack.db.models import PlanName, SubscriptionStatus
from subtrack.errors import (
    DuplicateKeyError,
    InvalidSignatureError,
    ProcessingError,
    StoreUnavailableError,
)
from subtrack.payments.provider import PaymentProvider
from subtrack.subscriptions.models import SubscriptionRecord, SubscriptionUpdate
from subtrack.subscriptions.store import SubscriptionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutCompleted:
    email: str
    plan: PlanName
    customer_id: Optional[str]
    subscription_id: Optional[str]


@dataclass(frozen=True)
class InvoicePaid:
    customer_id: str


@dataclass(frozen=True)
class InvoicePaymentFailed:
    customer_id: str


@dataclass(frozen=True)
class SubscriptionUpdated:
    customer_id: str
    status: SubscriptionStatus


@dataclass(frozen=True)
class SubscriptionDeleted:
    customer_id: str


@dataclass(frozen=True)
class IgnoredEvent:
    event_type: str
    reason: str = "unhandled event type"


WebhookEvent = Union[
    CheckoutCompleted,
    InvoicePaid,
    InvoicePaymentFailed,
    SubscriptionUpdated,
    SubscriptionDeleted,
    IgnoredEvent,
]


def _invoice_subscription_id(invoice: Mapping[str, Any]) -> Optional[str]:
    """Subscription ID of an invoice, for old and new Stripe API versions."""
    subscription_id = invoice.get("subscription")
    if subscription_id:
        return subscription_id

    # API versions from 2025-03-31 nest it under parent.subscription_details
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return details.get("subscription")


def _parse_checkout_completed(event_type: str, session: Mapping[str, Any]) -> WebhookEvent:
    if session.get("mode") != "subscription":
        return IgnoredEvent(event_type, "checkout session is not in subscription mode")

    metadata = session.get("metadata") or {}
    email = metadata.get("email") or session.get("customer_email")
    plan = metadata.get("plan")
    if not email or not plan:
        return IgnoredEvent(event_type, "checkout session metadata lacks email or plan")

    try:
        plan_name = PlanName(plan)
    except ValueError:
        return IgnoredEvent(event_type, f"unknown plan {plan!r} in metadata")

    return CheckoutCompleted(
        email=email,
        plan=plan_name,
        customer_id=session.get("customer") or None,
        subscription_id=session.get("subscription") or None,
    )


def parse_event(event: Mapping[str, Any]) -> WebhookEvent:
    """Turn a verified Stripe event into a webhook variant.

    Events whose preconditions fail parse to IgnoredEvent with a reason.
    """
    event_type = event["type"]
    obj = event["data"]["object"]

    if event_type == "checkout.session.completed":
        return _parse_checkout_completed(event_type, obj)

    customer_id = obj.get("customer")
    if event_type in (
        "invoice.paid",
        "invoice.payment_failed",
        "customer.subscription.updated",
        "customer.subscription.deleted",
    ) and not customer_id:
        return IgnoredEvent(event_type, "event has no customer")

    if event_type == "invoice.paid":
        if not _invoice_subscription_id(obj):
            return IgnoredEvent(event_type, "invoice is not for a subscription")
        return InvoicePaid(customer_id)

    if event_type == "invoice.payment_failed":
        if not _invoice_subscription_id(obj):
            return IgnoredEvent(event_type, "invoice is not for a subscription")
        return InvoicePaymentFailed(customer_id)

    if event_type == "customer.subscription.updated":
        stripe_status = obj.get("status")
        try:
            status = SubscriptionStatus(stripe_status)
        except ValueError:
            return IgnoredEvent(event_type, f"unsupported subscription status {stripe_status!r}")
        return SubscriptionUpdated(customer_id, status)

    if event_type == "customer.subscription.deleted":
        return SubscriptionDeleted(customer_id)

    return IgnoredEvent(event_type)


async def _apply_checkout_completed(event: CheckoutCompleted, store: SubscriptionStore) -> None:
    update = SubscriptionUpdate(
        stripe_customer_id=event.customer_id,
        subscription_id=event.subscription_id,
        status=SubscriptionStatus.ACTIVE,
    )
    if await store.update_by_email(event.email, update):
        return

    # No record yet: it was skipped at checkout time (store outage) or the
    # session was created outside this service.
    logger.info(f"No subscription record for {event.email}; creating it from checkout")
    try:
        await store.create(
            SubscriptionRecord(
                email=event.email,
                plan_name=event.plan,
                status=SubscriptionStatus.ACTIVE,
                stripe_customer_id=event.customer_id,
                subscription_id=event.subscription_id,
            )
        )
    except DuplicateKeyError:
        await store.update_by_email(event.email, update)


async def _set_status_by_customer(
    customer_id: str,
    status: SubscriptionStatus,
    store: SubscriptionStore,
) -> None:
    record = await store.get_by_customer_id(customer_id)
    if record is None:
        logger.warning(f"No subscription record for customer {customer_id} - skipping")
        return

    await store.update_by_email(record.email, SubscriptionUpdate(status=status))


async def reconcile(event: WebhookEvent, store: SubscriptionStore) -> None:
    """Apply a parsed webhook event to the subscription store.

    Raises:
        ProcessingError: If the store cannot be read or written
    """
    try:
        if isinstance(event, CheckoutCompleted):
            await _apply_checkout_completed(event, store)
        elif isinstance(event, InvoicePaid):
            await _set_status_by_customer(event.customer_id, SubscriptionStatus.ACTIVE, store)
        elif isinstance(event, InvoicePaymentFailed):
            await _set_status_by_customer(event.customer_id, SubscriptionStatus.PAST_DUE, store)
        elif isinstance(event, SubscriptionUpdated):
            await _set_status_by_customer(event.customer_id, event.status, store)
        elif isinstance(event, SubscriptionDeleted):
            await _set_status_by_customer(event.customer_id, SubscriptionStatus.CANCELED, store)
        elif isinstance(event, IgnoredEvent):
            logger.info(f"Ignoring {event.event_type}: {event.reason}")
        else:
            assert_never(event)
    except (StoreUnavailableError, DuplicateKeyError) as e:
        raise ProcessingError(f"Failed to apply {type(event).__name__}: {e}") from e


async def handle_webhook(
    payload: bytes,
    sig_header: Optional[str],
    provider: PaymentProvider,
    store: SubscriptionStore,
) -> web.Response:
    """Verify, parse and apply one Stripe webhook delivery.

    Args:
        payload: Raw request body, exactly as received
        sig_header: Stripe-Signature header value (None if absent)
        provider: Payment provider used for signature verification
        store: Subscription store

    Returns:
        200 JSON {"received": true} once applied or ignored,
        400 text "Webhook Error: ..." if verification fails (nothing is written),
        500 JSON {"error": ...} if applying failed, so Stripe redelivers
    """
    try:
        if not sig_header:
            raise InvalidSignatureError("Missing Stripe-Signature header")
        stripe_event = provider.construct_event(payload, sig_header)
    except InvalidSignatureError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        return web.Response(status=400, text=f"Webhook Error: {e}")

    event_type = "unknown"
    try:
        event_type = stripe_event["type"]
        logger.info(f"Received webhook {stripe_event.get('id')}: {event_type}")
        await reconcile(parse_event(stripe_event), store)
    except ProcessingError as e:
        logger.error(f"Error processing webhook {event_type}: {e}")
        return web.json_response({"error": "Webhook processing failed"}, status=500)
    except Exception as e:
        logger.exception(f"Unexpected error processing webhook {event_type}: {e}")
        return web.json_response({"error": "Webhook processing failed"}, status=500)

    return web.json_response({"received": True})
