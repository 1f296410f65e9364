"""Read-only subscription status lookup."""

from datetime import datetime
from typing import Any, Optional

from subtrack.errors import InvalidRequestError, NotFoundError
from subtrack.subscriptions.store import SubscriptionStore


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


async def get_subscription_status(email: str, store: SubscriptionStore) -> dict[str, Any]:
    """Return the stored status of an email's subscription.

    Args:
        email: Subscriber email
        store: Subscription store

    Returns:
        Dict with email, status, plan, created_at and updated_at
        (timestamps as ISO-8601 strings)

    Raises:
        InvalidRequestError: If email is empty
        NotFoundError: If no record exists for the email
        StoreUnavailableError: If the store cannot be read
    """
    if not email:
        raise InvalidRequestError("Email is required")

    record = await store.get_by_email(email)
    if record is None:
        raise NotFoundError("Subscription not found")

    return {
        "email": record.email,
        "status": record.status.value,
        "plan": record.plan_name.value,
        "created_at": _isoformat(record.created_at),
        "updated_at": _isoformat(record.updated_at),
    }
