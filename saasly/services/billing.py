import hashlib
import json
from typing import Any, Dict, Iterator
from urllib.parse import urljoin

from flask import current_app
from stripe import StripeClient

from saasly.billing.constants import METADATA_ORGANIZATION_ID, METADATA_PURCHASED_BY_ID


def _client() -> StripeClient:
    key = current_app.config.get("STRIPE_SECRET_KEY")
    if not key:
        raise RuntimeError("STRIPE_SECRET_KEY is not configured")
    return StripeClient(key)


def _absolute_url(path: str) -> str:
    base = (current_app.config.get("APP_BASE_URL") or "").rstrip("/") + "/"
    return urljoin(base, path.lstrip("/"))


def _as_dict(obj) -> Dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def make_idempotency_key(*parts: Any) -> str:
    """Deterministic Stripe idempotency key; the first part names the operation."""
    scope, *rest = [str(p) for p in parts]
    digest = hashlib.sha256("|".join(rest).encode("utf-8")).hexdigest()[:32]
    return f"{scope}:{digest}"


def _params_hash(params: Dict[str, Any]) -> str:
    canonical = json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def create_checkout_session(*, price_id: str, organization, purchaser, seats: int) -> Dict[str, Any]:
    """
    Create a Stripe Checkout Session for a per-seat subscription.

    The organization and purchaser ids ride along in the subscription
    metadata; the webhook handlers refuse to store a subscription without them.
    Returns: {"id": <session_id>, "url": <redirect_url or None>}
    """
    client = _client()
    settings_path = f"organizations/{organization.slug}/settings/billing"
    metadata = {METADATA_ORGANIZATION_ID: str(organization.id), METADATA_PURCHASED_BY_ID: str(purchaser.id)}
    params: Dict[str, Any] = {
        "mode": "subscription",
        "line_items": [{"price": price_id, "quantity": max(int(seats), 1)}],
        "success_url": _absolute_url(f"{settings_path}?session_id={{CHECKOUT_SESSION_ID}}"),
        "cancel_url": _absolute_url(settings_path),
        "automatic_tax": {"enabled": bool(current_app.config.get("ENABLE_STRIPE_TAX", False))},
        "billing_address_collection": "auto",
        "metadata": metadata,
        "subscription_data": {"metadata": metadata},
    }
    if organization.stripe_customer_id:
        params["customer"] = organization.stripe_customer_id
    else:
        params["customer_email"] = organization.billing_email or purchaser.email

    idem = make_idempotency_key(
        "checkout", "v1",
        organization.id, purchaser.id, price_id,
        _params_hash(params),
    )
    session = client.checkout.sessions.create(params=params, options={"idempotency_key": idem})
    return {"id": session.id, "url": getattr(session, "url", None)}


def create_portal_session(*, stripe_customer_id: str, return_path: str) -> Dict[str, Any]:
    """Create a Stripe Customer Portal session for an existing Customer."""
    client = _client()
    params = {
        "customer": stripe_customer_id,
        "return_url": _absolute_url(return_path),
    }
    session = client.billing_portal.sessions.create(params)
    return {"url": session.url}


def update_stripe_customer(*, customer_id: str, customer_name: str, organization_id: int) -> None:
    """Label the Stripe customer with the organization it pays for."""
    client = _client()
    client.customers.update(
        customer_id,
        params={"name": customer_name, "metadata": {METADATA_ORGANIZATION_ID: str(organization_id)}},
    )


def list_active_prices() -> Iterator[Dict[str, Any]]:
    """Active Stripe prices with their product expanded, as plain dicts."""
    client = _client()
    page = client.prices.list(params={"active": True, "expand": ["data.product"], "limit": 100})
    for price in page.auto_paging_iter():
        yield _as_dict(price)
