"""Stripe client wrapper injected into checkout and webhook handling."""

import logging
from typing import Any, Mapping, Protocol

import stripe

from subtrack.config.settings import AppConfig
from subtrack.errors import InvalidSignatureError, ProviderError

logger = logging.getLogger(__name__)


class PaymentProvider(Protocol):
    """Operations the service needs from the payment provider."""

    def create_checkout_session(
        self,
        *,
        price_id: str,
        customer_email: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> str:
        """Create a hosted subscription checkout and return its URL."""
        ...

    def construct_event(self, payload: bytes, sig_header: str) -> Mapping[str, Any]:
        """Verify a webhook payload's signature and return the parsed event."""
        ...


class StripeProvider:
    """PaymentProvider backed by the Stripe API.

    The API key is passed per request rather than set on the stripe module,
    so several providers (or tests) can coexist in one process.
    """

    def __init__(self, secret_key: str, webhook_secret: str):
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret

    @classmethod
    def from_config(cls, config: AppConfig) -> "StripeProvider":
        return cls(
            secret_key=config.stripe_secret_key.get_secret_value(),
            webhook_secret=config.stripe_webhook_secret.get_secret_value(),
        )

    def create_checkout_session(
        self,
        *,
        price_id: str,
        customer_email: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> str:
        """
        Create a Stripe Checkout Session in subscription mode.

        Returns:
            Hosted checkout URL

        Raises:
            ProviderError: If the key is missing, Stripe rejects the request,
                or the session comes back without a URL
        """
        if not self._secret_key:
            raise ProviderError("stripe_secret_key not configured")

        try:
            session = stripe.checkout.Session.create(
                api_key=self._secret_key,
                mode="subscription",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price": price_id,
                        "quantity": 1,
                    }
                ],
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=customer_email,
                metadata=metadata,
            )
        except stripe.StripeError as e:
            raise ProviderError(f"Stripe checkout session creation failed: {e}") from e

        if not session.url:
            raise ProviderError(f"Checkout session {session.id} has no URL")

        logger.info(f"Created checkout session {session.id} for {customer_email}")
        return session.url

    def construct_event(self, payload: bytes, sig_header: str) -> Mapping[str, Any]:
        """
        Verify the Stripe-Signature header and parse the event.

        Returns:
            The event as plain nested dicts. stripe.Event is a StripeObject,
            which no longer supports dict access such as .get().

        Raises:
            InvalidSignatureError: On a bad signature, malformed payload or
                missing signing secret
        """
        if not self._webhook_secret:
            raise InvalidSignatureError("stripe_webhook_secret not configured")

        try:
            event = stripe.Webhook.construct_event(payload, sig_header, self._webhook_secret)
        except ValueError as e:
            raise InvalidSignatureError(f"Invalid payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise InvalidSignatureError(f"Invalid signature: {e}") from e

        return event.to_dict()
