"""Subscription records: storage and status lookup."""

from subtrack.subscriptions.models import SubscriptionRecord, SubscriptionUpdate
from subtrack.subscriptions.status import get_subscription_status
from subtrack.subscriptions.store import SubscriptionStore

__all__ = [
    "SubscriptionRecord",
    "SubscriptionStore",
    "SubscriptionUpdate",
    "get_subscription_status",
]
