"""Stripe checkout, webhook reconciliation, and the HTTP API around them."""

from subtrack.payments.checkout import CheckoutInitiator
from subtrack.payments.provider import PaymentProvider, StripeProvider
from subtrack.payments.server import create_app
from subtrack.payments.webhooks import handle_webhook, parse_event, reconcile

__all__ = [
    "CheckoutInitiator",
    "PaymentProvider",
    "StripeProvider",
    "create_app",
    "handle_webhook",
    "parse_event",
    "reconcile",
]
