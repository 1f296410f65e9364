"""Subscription record and typed partial update."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from subtrack.db.models import PlanName, SubscriptionStatus


@dataclass
class SubscriptionRecord:
    """One row of the subscriptions table."""

    email: str
    plan_name: PlanName
    status: SubscriptionStatus = SubscriptionStatus.INCOMPLETE
    stripe_customer_id: str | None = None
    subscription_id: str | None = None
    created_at: datetime | None = None  # set by the database
    updated_at: datetime | None = None
    id: int | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "SubscriptionRecord":
        return cls(
            id=row["id"],
            email=row["email"],
            plan_name=PlanName(row["plan_name"]),
            status=SubscriptionStatus(row["subscription_status"]),
            stripe_customer_id=row["stripe_customer_id"],
            subscription_id=row["subscription_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class SubscriptionUpdate(BaseModel):
    """Partial update of the fields webhook reconciliation may change.

    Unknown fields are rejected. Fields left as None are not written, so a
    stored Stripe ID can be replaced but never cleared.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    stripe_customer_id: Optional[str] = Field(default=None, min_length=1)
    subscription_id: Optional[str] = Field(default=None, min_length=1)
    status: Optional[SubscriptionStatus] = None

    def columns(self) -> dict[str, Any]:
        """Map set fields to their column names and values."""
        values = self.model_dump(exclude_none=True, mode="json")
        return {UPDATE_COLUMNS[field]: value for field, value in values.items()}

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


# Field -> column. The only column names an UPDATE statement may contain.
UPDATE_COLUMNS = {
    "stripe_customer_id": "stripe_customer_id",
    "subscription_id": "subscription_id",
    "status": "subscription_status",
}
