"""Subscription checkout, Stripe webhook reconciliation, and status lookup."""

__version__ = "0.1.0"
