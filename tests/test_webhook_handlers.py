import logging
from datetime import timedelta

import pytest
from saasly.billing import webhook_handlers
from saasly.billing.webhook_handlers import (
    FAILED,
    HANDLED,
    IGNORED,
    SKIPPED,
    dispatch_stripe_event,
    supported_event_types,
)
from saasly.models import (
    Organization,
    StripePrice,
    StripeProduct,
    StripeSubscription,
    StripeSubscriptionItem,
    StripeSubscriptionSchedule,
    StripeSubscriptionSchedulePhase,
)
from saasly.services import stripe_catalog, stripe_schedules
from saasly.utils.helpers import ensure_utc, utc_now

from factories import (
    NOW,
    event,
    make_organization,
    make_user,
    schedule_phase,
    stripe_price,
    stripe_product,
    stripe_schedule,
    stripe_subscription,
    stripe_subscription_item,
)


@pytest.fixture()
def tenant(session):
    org = make_organization(session, name="Acme")
    user = make_user(session, email="owner@acme.test")
    return org.id, user.id


@pytest.fixture()
def customer_updates(monkeypatch):
    calls = []
    monkeypatch.setattr(
        webhook_handlers.billing_service,
        "update_stripe_customer",
        lambda **kwargs: calls.append(kwargs),
    )
    return calls


def _item_ids(session, sub_id="sub_1"):
    return sorted(
        i.stripe_id for i in session.query(StripeSubscriptionItem).filter_by(stripe_subscription_id=sub_id)
    )


# ----- subscriptions -----

def test_subscription_created_stores_subscription_items_and_price(session, tenant):
    org_id, user_id = tenant
    payload = stripe_subscription(organization_id=org_id, purchased_by_id=user_id)

    assert dispatch_stripe_event(session, event("customer.subscription.created", payload)) == HANDLED

    sub = session.get(StripeSubscription, "sub_1")
    assert sub.organization_id == org_id
    assert sub.purchased_by_id == user_id
    assert sub.status == "active"
    assert [i.stripe_id for i in sub.items] == ["si_1"]
    assert sub.items[0].price.lookup_key == "startup_monthly"
    assert ensure_utc(sub.items[0].current_period_end) == (NOW + timedelta(days=27)).replace(microsecond=0)
    assert session.get(StripePrice, "price_startup_monthly").unit_amount == 2000


def test_subscription_metadata_uses_camel_case_keys(session, tenant):
    org_id, user_id = tenant
    payload = stripe_subscription()
    payload["metadata"] = {"organizationId": str(org_id), "purchasedById": str(user_id)}

    assert dispatch_stripe_event(session, event("customer.subscription.created", payload)) == HANDLED
    assert session.get(StripeSubscription, "sub_1").organization_id == org_id


def test_snake_case_subscription_metadata_is_not_recognised(session, tenant):
    org_id, user_id = tenant
    payload = stripe_subscription()
    payload["metadata"] = {"organization_id": str(org_id), "purchased_by_id": str(user_id)}

    assert dispatch_stripe_event(session, event("customer.subscription.created", payload)) == SKIPPED


@pytest.mark.parametrize("metadata", [
    {"organization_id": None, "purchased_by_id": 1},
    {"organization_id": 1, "purchased_by_id": None},
    {"organization_id": None, "purchased_by_id": None},
])
def test_subscription_created_without_metadata_is_skipped(session, tenant, metadata):
    payload = stripe_subscription(**metadata)

    assert dispatch_stripe_event(session, event("customer.subscription.created", payload)) == SKIPPED
    assert session.query(StripeSubscription).count() == 0


def test_subscription_created_for_unknown_organization_is_acknowledged(session, tenant):
    _, user_id = tenant
    payload = stripe_subscription(organization_id=9999, purchased_by_id=user_id)

    assert dispatch_stripe_event(session, event("customer.subscription.created", payload)) == FAILED
    assert session.query(StripeSubscription).count() == 0
    assert session.query(StripePrice).count() == 0


def test_subscription_updated_twice_yields_same_items(session, tenant):
    org_id, user_id = tenant
    dispatch_stripe_event(session, event(
        "customer.subscription.created",
        stripe_subscription(organization_id=org_id, purchased_by_id=user_id),
    ))
    update = stripe_subscription(
        organization_id=org_id,
        purchased_by_id=user_id,
        items=[stripe_subscription_item(id="si_2"), stripe_subscription_item(id="si_3")],
    )

    assert dispatch_stripe_event(session, event("customer.subscription.updated", update)) == HANDLED
    first = _item_ids(session)
    assert dispatch_stripe_event(session, event("customer.subscription.updated", update)) == HANDLED

    assert first == ["si_2", "si_3"]
    assert _item_ids(session) == first
    assert session.query(StripeSubscriptionItem).count() == 2


def test_subscription_updated_reflects_cancellation_flag_and_status(session, tenant):
    org_id, user_id = tenant
    dispatch_stripe_event(session, event(
        "customer.subscription.created",
        stripe_subscription(organization_id=org_id, purchased_by_id=user_id),
    ))
    update = stripe_subscription(
        organization_id=org_id, purchased_by_id=user_id, status="past_due", cancel_at_period_end=True,
    )

    dispatch_stripe_event(session, event("customer.subscription.updated", update))

    sub = session.get(StripeSubscription, "sub_1")
    assert sub.status == "past_due"
    assert sub.cancel_at_period_end is True


def test_subscription_updated_for_unknown_subscription_creates_it(session, tenant):
    org_id, user_id = tenant
    payload = stripe_subscription(id="sub_late", organization_id=org_id, purchased_by_id=user_id)

    assert dispatch_stripe_event(session, event("customer.subscription.updated", payload)) == HANDLED
    assert session.get(StripeSubscription, "sub_late") is not None


def test_subscription_deleted_keeps_record_as_canceled(session, tenant):
    org_id, user_id = tenant
    dispatch_stripe_event(session, event(
        "customer.subscription.created",
        stripe_subscription(organization_id=org_id, purchased_by_id=user_id),
    ))
    payload = stripe_subscription(organization_id=org_id, purchased_by_id=user_id, status="canceled")

    assert dispatch_stripe_event(session, event("customer.subscription.deleted", payload)) == HANDLED

    sub = session.get(StripeSubscription, "sub_1")
    assert sub is not None
    assert sub.status == "canceled"


def test_subscription_item_with_unknown_price_id_fails_without_side_effects(session, tenant):
    org_id, user_id = tenant
    item = stripe_subscription_item()
    item["price"] = "price_missing"
    payload = stripe_subscription(organization_id=org_id, purchased_by_id=user_id, items=[item])

    assert dispatch_stripe_event(session, event("customer.subscription.created", payload)) == FAILED
    assert session.query(StripeSubscription).count() == 0


# ----- checkout / customers -----

def test_checkout_completed_ends_trial_and_links_customer(session, tenant, customer_updates):
    org_id, _ = tenant
    before = utc_now()
    checkout = {
        "id": "cs_1",
        "object": "checkout.session",
        "customer": "cus_123",
        "customer_details": {"email": "payer@acme.test"},
        "metadata": {"organizationId": str(org_id)},
    }

    assert dispatch_stripe_event(session, event("checkout.session.completed", checkout)) == HANDLED

    org = session.get(Organization, org_id)
    assert org.stripe_customer_id == "cus_123"
    assert org.billing_email == "payer@acme.test"
    assert ensure_utc(org.trial_end) >= before.replace(microsecond=0)
    assert customer_updates == [{"customer_id": "cus_123", "customer_name": "Acme", "organization_id": org_id}]


def test_checkout_completed_without_organization_is_skipped(session, tenant, customer_updates):
    checkout = {"id": "cs_1", "customer": "cus_123", "metadata": {}}

    assert dispatch_stripe_event(session, event("checkout.session.completed", checkout)) == SKIPPED
    assert customer_updates == []


def test_checkout_completed_keeps_local_update_when_stripe_call_fails(session, tenant, monkeypatch):
    org_id, _ = tenant

    def _boom(**kwargs):
        raise RuntimeError("stripe is down")
    monkeypatch.setattr(webhook_handlers.billing_service, "update_stripe_customer", _boom)
    checkout = {"id": "cs_1", "customer": "cus_123", "metadata": {"organizationId": str(org_id)}}

    assert dispatch_stripe_event(session, event("checkout.session.completed", checkout)) == FAILED
    assert session.get(Organization, org_id).stripe_customer_id == "cus_123"


def test_customer_deleted_clears_customer_id(session, customer_updates):
    org = make_organization(session, stripe_customer_id="cus_gone")
    customer = {"id": "cus_gone", "object": "customer", "metadata": {"organizationId": str(org.id)}}

    assert dispatch_stripe_event(session, event("customer.deleted", customer)) == HANDLED
    assert session.get(Organization, org.id).stripe_customer_id is None


def test_customer_deleted_without_metadata_matches_on_customer_id(session):
    org = make_organization(session, stripe_customer_id="cus_gone")
    customer = {"id": "cus_gone", "object": "customer", "metadata": {}}

    assert dispatch_stripe_event(session, event("customer.deleted", customer)) == HANDLED
    assert session.get(Organization, org.id).stripe_customer_id is None


# ----- catalog -----

def test_price_created_updated_deleted(session):
    assert dispatch_stripe_event(session, event("price.created", stripe_price())) == HANDLED
    assert stripe_catalog.retrieve_price_by_lookup_key(session, "startup_monthly").metadata_json == {"max_seats": "10"}

    dispatch_stripe_event(session, event("price.updated", stripe_price(unit_amount=2500, metadata={"max_seats": 12})))
    price = session.get(StripePrice, "price_startup_monthly")
    assert price.unit_amount == 2500
    assert price.metadata_json == {"max_seats": 12}

    assert dispatch_stripe_event(session, event("price.deleted", stripe_price())) == HANDLED
    assert stripe_catalog.retrieve_price_by_stripe_id(session, "price_startup_monthly") is None


def test_price_links_to_known_product(session):
    dispatch_stripe_event(session, event("product.created", stripe_product()))
    dispatch_stripe_event(session, event("price.created", stripe_price()))

    assert session.get(StripePrice, "price_startup_monthly").product_id == "prod_startup"


def test_product_lifecycle(session):
    assert dispatch_stripe_event(session, event("product.created", stripe_product(metadata={"max_seats": "5"}))) == HANDLED
    assert session.get(StripeProduct, "prod_startup").max_seats == 5

    dispatch_stripe_event(session, event("product.updated", stripe_product(name="Startup Plus")))
    assert session.get(StripeProduct, "prod_startup").name == "Startup Plus"

    dispatch_stripe_event(session, event("product.deleted", stripe_product()))
    assert session.get(StripeProduct, "prod_startup") is None


def test_new_price_is_stored_with_every_column(session):
    dispatch_stripe_event(session, event("product.created", stripe_product()))

    assert dispatch_stripe_event(
        session, event("price.created", stripe_price(id="price_startup_annual", lookup_key="startup_annual", unit_amount=19990))
    ) == HANDLED

    price = session.get(StripePrice, "price_startup_annual")
    assert (price.currency, price.unit_amount, price.product_id) == ("usd", 19990, "prod_startup")


def test_lookup_key_moves_to_the_newer_price(session):
    dispatch_stripe_event(session, event("price.created", stripe_price(id="price_old")))

    assert dispatch_stripe_event(session, event("price.created", stripe_price(id="price_new", unit_amount=2400))) == HANDLED

    assert session.get(StripePrice, "price_old").lookup_key is None
    assert stripe_catalog.retrieve_price_by_lookup_key(session, "startup_monthly").stripe_id == "price_new"

    # The old price's own update, arriving late, keeps its cleared key
    dispatch_stripe_event(session, event("price.updated", stripe_price(id="price_old", lookup_key=None)))
    assert stripe_catalog.retrieve_price_by_lookup_key(session, "startup_monthly").stripe_id == "price_new"


def test_deleting_unknown_price_is_harmless(session):
    assert dispatch_stripe_event(session, event("price.deleted", stripe_price(id="price_nope"))) == HANDLED


# ----- schedules -----

@pytest.fixture()
def subscribed(session, tenant):
    org_id, user_id = tenant
    stripe_catalog.upsert_price_from_stripe(session, stripe_price(id="price_startup_annual", lookup_key="startup_annual"))
    session.commit()
    dispatch_stripe_event(session, event(
        "customer.subscription.created",
        stripe_subscription(organization_id=org_id, purchased_by_id=user_id),
    ))
    return org_id


def test_schedule_created_stores_phases(session, subscribed):
    assert dispatch_stripe_event(session, event("subscription_schedule.created", stripe_schedule())) == HANDLED

    schedule = session.get(StripeSubscriptionSchedule, "sub_sched_1")
    assert schedule.subscription_id == "sub_1"
    assert [p.price_id for p in schedule.phases] == ["price_startup_monthly", "price_startup_annual"]
    assert [p.quantity for p in schedule.phases] == [4, 6]


def test_schedule_updated_replaces_phases(session, subscribed):
    dispatch_stripe_event(session, event("subscription_schedule.created", stripe_schedule()))
    phases = [schedule_phase(NOW, NOW + timedelta(days=30), "price_startup_annual", 8)]

    for _ in range(2):
        assert dispatch_stripe_event(
            session, event("subscription_schedule.updated", stripe_schedule(phases=phases))
        ) == HANDLED

    schedule = session.get(StripeSubscriptionSchedule, "sub_sched_1")
    assert [(p.price_id, p.quantity) for p in schedule.phases] == [("price_startup_annual", 8)]
    assert session.query(StripeSubscriptionSchedulePhase).count() == 1


def test_released_schedule_without_current_phase_is_skipped(session, subscribed):
    payload = stripe_schedule(current_phase=False)

    assert dispatch_stripe_event(session, event("subscription_schedule.updated", payload)) == SKIPPED
    assert session.query(StripeSubscriptionSchedule).count() == 0


def test_schedule_phase_without_price_fails(session, subscribed):
    phase = schedule_phase(NOW, NOW + timedelta(days=30), "price_startup_monthly")
    phase["items"] = []

    assert dispatch_stripe_event(
        session, event("subscription_schedule.created", stripe_schedule(phases=[phase]))
    ) == FAILED
    assert session.query(StripeSubscriptionSchedule).count() == 0


def test_schedule_canceled_removes_schedule(session, subscribed):
    dispatch_stripe_event(session, event("subscription_schedule.created", stripe_schedule()))

    assert dispatch_stripe_event(session, event("subscription_schedule.canceled", stripe_schedule())) == HANDLED
    assert stripe_schedules.retrieve_schedule_by_stripe_id(session, "sub_sched_1") is None
    assert session.query(StripeSubscriptionSchedulePhase).count() == 0


# ----- dispatch -----

def test_unsupported_event_is_ignored(session):
    assert dispatch_stripe_event(session, event("invoice.created", {"id": "in_1"})) == IGNORED


def test_supported_event_types():
    types = supported_event_types()
    for expected in (
        "checkout.session.completed",
        "customer.deleted",
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
        "price.created",
        "price.updated",
        "price.deleted",
        "product.created",
        "product.updated",
        "product.deleted",
        "subscription_schedule.created",
        "subscription_schedule.updated",
        "subscription_schedule.expiring",
    ):
        assert expected in types


# ----- logging -----

def _failing_subscription_event():
    # Unknown organization: the handler fails before touching the database
    return event(
        "customer.subscription.created",
        stripe_subscription(id="sub_confidential", organization_id=9999, purchased_by_id=1),
    )


def test_failure_logs_the_payload_outside_production(session, caplog):
    caplog.set_level(logging.INFO, logger=webhook_handlers.logger.name)

    assert dispatch_stripe_event(session, _failing_subscription_event()) == FAILED

    assert "Error creating Stripe subscription: Unknown organization: 9999" in caplog.text
    assert "sub_confidential" in caplog.text


def test_failure_omits_the_payload_in_production(app, session, caplog, monkeypatch):
    monkeypatch.setitem(app.config, "APP_ENV", "production")
    caplog.set_level(logging.INFO, logger=webhook_handlers.logger.name)

    assert dispatch_stripe_event(session, _failing_subscription_event()) == FAILED

    assert "Error creating Stripe subscription: Unknown organization: 9999" in caplog.text
    assert "look it up in the Stripe Dashboard" in caplog.text
    assert "sub_confidential" not in caplog.text


def test_unsupported_event_is_logged_outside_production(session, caplog):
    caplog.set_level(logging.INFO, logger=webhook_handlers.logger.name)

    dispatch_stripe_event(session, event("invoice.created", {"id": "in_confidential"}))

    assert "unhandled Stripe event: invoice.created" in caplog.text
    assert "in_confidential" in caplog.text


def test_unsupported_event_is_silent_in_production(app, session, caplog, monkeypatch):
    monkeypatch.setitem(app.config, "APP_ENV", "production")
    caplog.set_level(logging.INFO, logger=webhook_handlers.logger.name)

    assert dispatch_stripe_event(session, event("invoice.created", {"id": "in_confidential"})) == IGNORED

    assert [r for r in caplog.records if r.name == webhook_handlers.logger.name] == []
