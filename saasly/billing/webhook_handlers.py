"""
Stripe webhook synchronizer.

Every supported event type maps to one handler that mirrors Stripe's state
into our tables. Handlers never raise: failures are rolled back, logged and
acknowledged, because Stripe's retry schedule does not fix application bugs.
Operators recover by replaying the event from the Stripe dashboard.
"""
import json
import logging
from functools import wraps
from typing import Any, Callable, Dict

from flask import current_app, has_app_context
from sqlalchemy.orm import Session

from saasly.services import billing as billing_service
from saasly.services import stripe_catalog, stripe_schedules, stripe_subscriptions
from saasly.services.organizations import (
    retrieve_organization_by_stripe_customer_id,
    update_organization_by_id,
)
from saasly.utils.helpers import utc_now
from .constants import METADATA_ORGANIZATION_ID, METADATA_PURCHASED_BY_ID
from .errors import get_error_message

logger = logging.getLogger(__name__)

HANDLED = "handled"
SKIPPED = "skipped"
FAILED = "failed"
IGNORED = "ignored"

Event = Dict[str, Any]
Handler = Callable[[Session, Event], str]

_HANDLERS: Dict[str, Handler] = {}


def _is_production() -> bool:
    if not has_app_context():
        return False
    return (current_app.config.get("APP_ENV") or "development").lower() in ("staging", "production")


def _describe_event(event: Event) -> str:
    if _is_production():
        return "event not logged in production mode - look it up in the Stripe Dashboard"
    return json.dumps(event, indent=2, default=str)


def _log_unhandled(event: Event) -> None:
    if _is_production():
        return
    logger.info("unhandled Stripe event: %s\n%s", event.get("type"), _describe_event(event))


def acknowledged(description: str) -> Callable[[Handler], Handler]:
    """
    Run a handler in its own unit of work.

    Commits on success. On any error the session is rolled back and the
    error logged under `description`; the webhook is still acknowledged.
    """
    def decorator(fn: Handler) -> Handler:
        @wraps(fn)
        def wrapper(session: Session, event: Event) -> str:
            try:
                outcome = fn(session, event) or HANDLED
                session.commit()
                return outcome
            except Exception as exc:
                session.rollback()
                logger.error(
                    "%s: %s",
                    description,
                    get_error_message(exc),
                    extra={"stripe_event_id": event.get("id"), "stripe_event_type": event.get("type")},
                )
                logger.error("stripe event: %s", _describe_event(event))
                return FAILED
        return wrapper
    return decorator


def handles(*event_types: str) -> Callable[[Handler], Handler]:
    def decorator(fn: Handler) -> Handler:
        for event_type in event_types:
            _HANDLERS[event_type] = fn
        return fn
    return decorator


def supported_event_types():
    return sorted(_HANDLERS)


def dispatch_stripe_event(session: Session, event: Event) -> str:
    """Route an event to its handler by `type`; unknown types are dropped."""
    handler = _HANDLERS.get(event.get("type"))
    if handler is None:
        _log_unhandled(event)
        return IGNORED
    return handler(session, event)


def _object(event: Event) -> Dict[str, Any]:
    return (event.get("data") or {}).get("object") or {}


def _metadata_int(obj: Dict[str, Any], key: str) -> int | None:
    raw = (obj.get("metadata") or {}).get(key)
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


# ----- checkout / customers -----

@handles("checkout.session.completed")
@acknowledged("Error handling Stripe checkout session completed event")
def handle_checkout_session_completed(session: Session, event: Event) -> str:
    checkout = _object(event)
    organization_id = _metadata_int(checkout, METADATA_ORGANIZATION_ID)
    if organization_id is None:
        logger.error("No organization ID found in checkout session metadata")
        logger.error("stripe event: %s", _describe_event(event))
        return SKIPPED

    customer = checkout.get("customer")
    fields = {"trial_end": utc_now()}  # a paid plan ends the free trial now
    email = (checkout.get("customer_details") or {}).get("email")
    if email:
        fields["billing_email"] = email
    if isinstance(customer, str):
        fields["stripe_customer_id"] = customer

    organization = update_organization_by_id(session, organization_id, **fields)
    session.commit()

    if isinstance(customer, str):
        billing_service.update_stripe_customer(
            customer_id=customer,
            customer_name=organization.name,
            organization_id=organization.id,
        )
    return HANDLED


@handles("customer.deleted")
@acknowledged("Error handling Stripe customer deleted event")
def handle_customer_deleted(session: Session, event: Event) -> str:
    customer = _object(event)
    organization_id = _metadata_int(customer, METADATA_ORGANIZATION_ID)
    if organization_id is not None:
        update_organization_by_id(session, organization_id, stripe_customer_id=None)
        return HANDLED

    organization = retrieve_organization_by_stripe_customer_id(session, customer.get("id"))
    if organization is None:
        _log_unhandled(event)
        return SKIPPED
    organization.stripe_customer_id = None
    return HANDLED


# ----- subscriptions -----

def _create_subscription(session: Session, event: Event) -> str:
    subscription = _object(event)
    organization_id = _metadata_int(subscription, METADATA_ORGANIZATION_ID)
    purchased_by_id = _metadata_int(subscription, METADATA_PURCHASED_BY_ID)
    if organization_id is None or purchased_by_id is None:
        logger.warning(
            "Stripe subscription %s is missing %s/%s metadata",
            subscription.get("id"),
            METADATA_ORGANIZATION_ID,
            METADATA_PURCHASED_BY_ID,
        )
        _log_unhandled(event)
        return SKIPPED
    stripe_subscriptions.create_subscription_from_stripe(
        session,
        subscription,
        organization_id=organization_id,
        purchased_by_id=purchased_by_id,
    )
    return HANDLED


def _upsert_subscription(session: Session, event: Event) -> str:
    subscription = _object(event)
    if stripe_subscriptions.retrieve_subscription_by_stripe_id(session, subscription["id"]) is None:
        return _create_subscription(session, event)
    stripe_subscriptions.update_subscription_from_stripe(
        session,
        subscription,
        purchased_by_id=_metadata_int(subscription, METADATA_PURCHASED_BY_ID),
    )
    return HANDLED


@handles("customer.subscription.created")
@acknowledged("Error creating Stripe subscription")
def handle_subscription_created(session: Session, event: Event) -> str:
    return _upsert_subscription(session, event)


@handles("customer.subscription.updated")
@acknowledged("Error updating Stripe subscription")
def handle_subscription_updated(session: Session, event: Event) -> str:
    return _upsert_subscription(session, event)


# Subscriptions are never hard-deleted; the canceled status is kept.
@handles("customer.subscription.deleted")
@acknowledged("Error updating deleted Stripe subscription")
def handle_subscription_deleted(session: Session, event: Event) -> str:
    return _upsert_subscription(session, event)


# ----- catalog -----

@handles("price.created", "price.updated")
@acknowledged("Error saving Stripe price")
def handle_price_upserted(session: Session, event: Event) -> str:
    stripe_catalog.upsert_price_from_stripe(session, _object(event))
    return HANDLED


@handles("price.deleted")
@acknowledged("Error deleting Stripe price")
def handle_price_deleted(session: Session, event: Event) -> str:
    stripe_catalog.delete_price_by_stripe_id(session, _object(event)["id"])
    return HANDLED


@handles("product.created", "product.updated")
@acknowledged("Error saving Stripe product")
def handle_product_upserted(session: Session, event: Event) -> str:
    stripe_catalog.upsert_product_from_stripe(session, _object(event))
    return HANDLED


@handles("product.deleted")
@acknowledged("Error deleting Stripe product")
def handle_product_deleted(session: Session, event: Event) -> str:
    stripe_catalog.delete_product_by_stripe_id(session, _object(event)["id"])
    return HANDLED


# ----- subscription schedules -----

@handles(
    "subscription_schedule.created",
    "subscription_schedule.updated",
    "subscription_schedule.expiring",
)
@acknowledged("Error saving Stripe subscription schedule")
def handle_schedule_upserted(session: Session, event: Event) -> str:
    schedule = stripe_schedules.upsert_schedule_from_stripe(session, _object(event))
    return HANDLED if schedule is not None else SKIPPED


@handles(
    "subscription_schedule.released",
    "subscription_schedule.canceled",
    "subscription_schedule.completed",
    "subscription_schedule.aborted",
)
@acknowledged("Error removing Stripe subscription schedule")
def handle_schedule_ended(session: Session, event: Event) -> str:
    removed = stripe_schedules.delete_schedule_by_stripe_id(session, _object(event)["id"])
    return HANDLED if removed else SKIPPED
