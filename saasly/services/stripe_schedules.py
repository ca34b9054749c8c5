from typing import Any, Dict

from sqlalchemy.orm import Session

from saasly.billing.errors import RecordNotFound
from saasly.models import (
    StripePrice,
    StripeSubscription,
    StripeSubscriptionSchedule,
    StripeSubscriptionSchedulePhase,
)
from saasly.utils.helpers import from_unix, stripe_id_of


def _build_phases(session: Session, stripe_schedule: Dict[str, Any]):
    phases = []
    for phase in stripe_schedule.get("phases") or []:
        items = phase.get("items") or []
        price_id = stripe_id_of(items[0].get("price")) if items else None
        if not price_id:
            raise ValueError("Each phase must have at least one item with a price ID")
        if session.get(StripePrice, price_id) is None:
            raise RecordNotFound(f"Unknown Stripe price: {price_id}")
        phases.append(StripeSubscriptionSchedulePhase(
            start_date=from_unix(phase["start_date"]),
            end_date=from_unix(phase["end_date"]),
            price_id=price_id,
            quantity=items[0].get("quantity") or 1,
        ))
    return phases


def upsert_schedule_from_stripe(session: Session, stripe_schedule: Dict[str, Any]) -> StripeSubscriptionSchedule | None:
    """
    Create or refresh a subscription schedule and its phases.

    Released schedules have no current phase and are left alone. Phases carry
    no Stripe ids, so an update replaces every phase.
    """
    current_phase = stripe_schedule.get("current_phase")
    if not current_phase:
        return None

    phases = _build_phases(session, stripe_schedule)

    schedule = session.get(StripeSubscriptionSchedule, stripe_schedule["id"])
    if schedule is None:
        subscription_id = stripe_id_of(stripe_schedule.get("subscription"))
        if not subscription_id or session.get(StripeSubscription, subscription_id) is None:
            raise RecordNotFound(f"Unknown Stripe subscription: {subscription_id}")
        schedule = StripeSubscriptionSchedule(stripe_id=stripe_schedule["id"], subscription_id=subscription_id)
    else:
        schedule.phases.clear()
        session.flush()

    schedule.created = from_unix(stripe_schedule["created"])
    schedule.current_phase_start = from_unix(current_phase["start_date"])
    schedule.current_phase_end = from_unix(current_phase["end_date"])
    schedule.phases.extend(phases)
    session.add(schedule)
    session.flush()
    return schedule


def retrieve_schedule_by_stripe_id(session: Session, stripe_id: str) -> StripeSubscriptionSchedule | None:
    return session.get(StripeSubscriptionSchedule, stripe_id)


def delete_schedule_by_stripe_id(session: Session, stripe_id: str) -> bool:
    schedule = session.get(StripeSubscriptionSchedule, stripe_id)
    if schedule is None:
        return False
    session.delete(schedule)
    session.flush()
    return True
