"""Error types shared by the store, payment flows and HTTP handlers.

Each error carries the HTTP status code its handler answers with.
"""


class SubscriptionError(Exception):
    """Base error for subscription operations."""

    status_code = 500


class InvalidRequestError(SubscriptionError):
    """Missing or malformed caller input."""

    status_code = 400


class NotFoundError(SubscriptionError):
    """No subscription record matches the lookup."""

    status_code = 404


class InvalidSignatureError(SubscriptionError):
    """Webhook payload failed Stripe signature verification."""

    status_code = 400


class ProviderError(SubscriptionError):
    """A Stripe API call failed."""

    status_code = 500


class ProcessingError(SubscriptionError):
    """A verified webhook event could not be applied to the store.

    Answered with a 500 so Stripe redelivers the event later.
    """

    status_code = 500


class StoreUnavailableError(SubscriptionError):
    """The subscription store could not be reached or failed a query."""

    status_code = 500


class DuplicateKeyError(SubscriptionError):
    """A record with the same email already exists."""

    status_code = 409
