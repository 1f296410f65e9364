"""Lightweight table-name constants and column-name enums."""

from enum import Enum


class Table:
    """Database table names."""

    SUBSCRIPTIONS = "subscriptions"
    SCHEMA_MIGRATIONS = "schema_migrations"


class PlanName(str, Enum):
    """Subscription plan tier."""

    BASIC = "Basic"
    PRO = "Pro"
    ENTERPRISE = "Enterprise"


class SubscriptionStatus(str, Enum):
    """Subscription status (mirrors Stripe's subscription statuses)."""

    ACTIVE = "active"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAST_DUE = "past_due"
    TRIALING = "trialing"
    UNPAID = "unpaid"
