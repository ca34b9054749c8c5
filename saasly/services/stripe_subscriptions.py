from typing import Any, Dict, List

from sqlalchemy.orm import Session, selectinload

from saasly.billing.errors import RecordNotFound
from saasly.models import (
    Organization,
    StripePrice,
    StripeSubscription,
    StripeSubscriptionItem,
    StripeSubscriptionSchedule,
    StripeSubscriptionSchedulePhase,
    User,
)
from saasly.utils.helpers import from_unix
from .stripe_catalog import upsert_price_from_stripe


def _resolve_price(session: Session, price) -> StripePrice:
    # Subscription payloads embed the full price object; keep the catalog in step.
    if isinstance(price, dict):
        return upsert_price_from_stripe(session, price)
    record = session.get(StripePrice, price)
    if record is None:
        raise RecordNotFound(f"Unknown Stripe price: {price}")
    return record


def _build_items(session: Session, stripe_subscription: Dict[str, Any]) -> List[StripeSubscriptionItem]:
    items = []
    for item in (stripe_subscription.get("items") or {}).get("data") or []:
        price = _resolve_price(session, item["price"])
        # Newer API versions carry the period on the item, older ones on the subscription.
        start = item.get("current_period_start") or stripe_subscription.get("current_period_start")
        end = item.get("current_period_end") or stripe_subscription.get("current_period_end")
        items.append(StripeSubscriptionItem(
            stripe_id=item["id"],
            price_id=price.stripe_id,
            current_period_start=from_unix(start),
            current_period_end=from_unix(end),
        ))
    return items


def create_subscription_from_stripe(
    session: Session,
    stripe_subscription: Dict[str, Any],
    *,
    organization_id: int,
    purchased_by_id: int,
) -> StripeSubscription:
    """Insert a Stripe subscription and its items for an organization."""
    if session.get(Organization, organization_id) is None:
        raise RecordNotFound(f"Unknown organization: {organization_id}")
    if session.get(User, purchased_by_id) is None:
        raise RecordNotFound(f"Unknown purchaser: {purchased_by_id}")

    subscription = StripeSubscription(
        stripe_id=stripe_subscription["id"],
        organization_id=organization_id,
        purchased_by_id=purchased_by_id,
        created=from_unix(stripe_subscription["created"]),
        cancel_at_period_end=bool(stripe_subscription.get("cancel_at_period_end")),
        status=stripe_subscription["status"],
    )
    subscription.items = _build_items(session, stripe_subscription)
    session.add(subscription)
    session.flush()
    return subscription


def update_subscription_from_stripe(
    session: Session,
    stripe_subscription: Dict[str, Any],
    *,
    purchased_by_id: int | None = None,
) -> StripeSubscription:
    """
    Overwrite a stored subscription with Stripe's current view of it.

    Item ids are not stable across updates, so all items are dropped and
    recreated instead of diffed.
    """
    subscription = session.get(StripeSubscription, stripe_subscription["id"])
    if subscription is None:
        raise RecordNotFound(f"Unknown Stripe subscription: {stripe_subscription['id']}")

    if purchased_by_id is not None and session.get(User, purchased_by_id) is not None:
        subscription.purchased_by_id = purchased_by_id
    subscription.created = from_unix(stripe_subscription["created"])
    subscription.cancel_at_period_end = bool(stripe_subscription.get("cancel_at_period_end"))
    subscription.status = stripe_subscription["status"]

    subscription.items.clear()
    session.flush()
    subscription.items.extend(_build_items(session, stripe_subscription))
    session.flush()
    return subscription


def retrieve_subscription_by_stripe_id(session: Session, stripe_id: str) -> StripeSubscription | None:
    return session.get(StripeSubscription, stripe_id)


def retrieve_latest_subscription_by_organization_id(session: Session, organization_id: int) -> StripeSubscription | None:
    """Most recently created subscription for the organization, whatever its status."""
    return (
        session.query(StripeSubscription)
        .filter(StripeSubscription.organization_id == organization_id)
        .options(
            selectinload(StripeSubscription.items).selectinload(StripeSubscriptionItem.price),
            selectinload(StripeSubscription.schedules)
            .selectinload(StripeSubscriptionSchedule.phases)
            .selectinload(StripeSubscriptionSchedulePhase.price),
        )
        .order_by(StripeSubscription.created.desc())
        .first()
    )
