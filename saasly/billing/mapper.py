from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Literal

from saasly.utils.helpers import ensure_utc
from .constants import (
    ACTIVE_STATUSES,
    ANNUAL_SUFFIX,
    TRIAL_MAX_SEATS,
    TRIAL_MONTHLY_RATE_PER_USER,
    TRIAL_TIER_NAME,
)
from .errors import BillingDataError
from .helpers import parse_max_seats, tier_name_from_lookup_key

SubscriptionStatus = Literal["active", "inactive", "paused"]


@dataclass(frozen=True)
class BillingPageData:
    billing_email: str
    cancel_at_period_end: bool
    current_monthly_rate_per_user: float
    current_period_end: datetime
    current_seats: int
    current_tier_name: str
    is_enterprise_plan: bool
    is_on_free_trial: bool
    max_seats: int
    organization_slug: str
    projected_total: float
    subscription_status: SubscriptionStatus

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["current_period_end"] = self.current_period_end.isoformat()
        return data


def monthly_rate_in_cents(unit_amount: int, lookup_key: str | None) -> int:
    """Annual prices are spread over 12 months, rounded half-up to whole cents."""
    cents = int(unit_amount or 0)
    if (lookup_key or "").endswith(ANNUAL_SUFFIX):
        cents = int((Decimal(cents) / 12).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return cents


def classify_subscription_status(
    *, status: str, cancel_at_period_end: bool, current_period_end: datetime, now: datetime
) -> SubscriptionStatus:
    if cancel_at_period_end and ensure_utc(now) < ensure_utc(current_period_end):
        return "paused"
    if status in ACTIVE_STATUSES:
        return "active"
    return "inactive"


def map_subscription_to_billing_page(*, organization, member_count: int, subscription, now: datetime) -> BillingPageData:
    """
    Derive the billing page values for an organization.

    `subscription` is the organization's latest StripeSubscription (items and
    their prices loaded) or None. Without one the organization is on the free
    Business trial.
    """
    if subscription is None:
        return BillingPageData(
            billing_email=organization.billing_email,
            cancel_at_period_end=False,
            current_monthly_rate_per_user=TRIAL_MONTHLY_RATE_PER_USER,
            current_period_end=ensure_utc(organization.trial_end),
            current_seats=member_count,
            current_tier_name=TRIAL_TIER_NAME,
            is_enterprise_plan=False,
            is_on_free_trial=True,
            max_seats=TRIAL_MAX_SEATS,
            organization_slug=organization.slug,
            projected_total=TRIAL_MONTHLY_RATE_PER_USER * member_count,
            subscription_status="active",
        )

    items = list(subscription.items)
    if not items:
        raise BillingDataError(f"Subscription {subscription.stripe_id} has no items")

    # Items can be out of phase during plan changes; the latest end wins.
    current_period_end = max(ensure_utc(item.current_period_end) for item in items)

    # The first item carries the price, tier and seat limit.
    price = items[0].price
    max_seats = parse_max_seats(price.metadata_json)
    rate = monthly_rate_in_cents(price.unit_amount, price.lookup_key) / 100

    return BillingPageData(
        billing_email=organization.billing_email,
        cancel_at_period_end=subscription.cancel_at_period_end,
        current_monthly_rate_per_user=rate,
        current_period_end=current_period_end,
        current_seats=member_count,
        current_tier_name=tier_name_from_lookup_key(price.lookup_key),
        # Enterprise deals go through sales, never through Stripe prices.
        is_enterprise_plan=False,
        is_on_free_trial=False,
        max_seats=max_seats,
        organization_slug=organization.slug,
        projected_total=rate * member_count,
        subscription_status=classify_subscription_status(
            status=subscription.status,
            cancel_at_period_end=subscription.cancel_at_period_end,
            current_period_end=current_period_end,
            now=now,
        ),
    )
