from flask import request, redirect, current_app, abort, jsonify, g
from flask_login import login_required, current_user
from . import bp
from saasly.extensions import db, limiter
from saasly.billing.constants import ACTIVE_STATUSES
from saasly.billing.errors import InvalidPriceLookup
from saasly.billing.helpers import get_price_id_for_tier_and_interval
from saasly.models import ROLE_ADMIN, ROLE_OWNER
from saasly.security.policy import require_membership
from saasly.services import billing as billing_service
from saasly.services.billing_page import get_billing_page_data
from saasly.services.organizations import count_memberships
from saasly.services.stripe_subscriptions import retrieve_latest_subscription_by_organization_id


def _settings_path(slug: str) -> str:
    return f"organizations/{slug}/settings/billing"


@bp.get("/<slug>/settings/billing")
@login_required
@require_membership()
def billing_page(slug):
    data = get_billing_page_data(db.session, slug)
    if data is None:
        abort(404)
    return jsonify(data.to_dict())


@bp.post("/<slug>/settings/billing/checkout")
@limiter.limit("10/minute")
@login_required
@require_membership(ROLE_OWNER, ROLE_ADMIN)
def checkout(slug):
    organization = g.organization

    # Block duplicate purchases if already active/trialing
    sub = retrieve_latest_subscription_by_organization_id(db.session, organization.id)
    if sub and sub.status in ACTIVE_STATUSES:
        abort(409, description="Subscription already active")

    tier = (request.form.get("tier") or "").strip()
    interval = (request.form.get("interval") or "").strip()
    try:
        price_id = get_price_id_for_tier_and_interval(tier, interval)
    except InvalidPriceLookup as e:
        abort(400, description=str(e))

    try:
        payload = billing_service.create_checkout_session(
            price_id=price_id,
            organization=organization,
            purchaser=current_user,
            seats=count_memberships(db.session, organization.id),
        )
    except Exception:
        current_app.logger.exception(
            "billing.checkout.session_create_failed",
            extra={"organization_id": organization.id, "price_id": price_id, "user_id": current_user.id},
        )
        abort(502, description="Could not create checkout session")

    url = payload.get("url")
    if not url:
        abort(502, description="Could not create checkout session")
    # 303 to allow re-POST safely and follow to Stripe-hosted page
    return redirect(url, code=303)


@bp.post("/<slug>/settings/billing/portal")
@limiter.limit("10/minute")
@login_required
@require_membership(ROLE_OWNER, ROLE_ADMIN)
def portal(slug):
    organization = g.organization
    if not organization.stripe_customer_id:
        abort(404, description="No billing profile for this organization")

    payload = billing_service.create_portal_session(
        stripe_customer_id=organization.stripe_customer_id,
        return_path=_settings_path(slug),
    )
    url = payload.get("url")
    if not url:
        abort(502, description="Could not create portal session")
    return redirect(url, code=303)
