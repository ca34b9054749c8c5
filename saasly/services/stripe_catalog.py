"""Local mirror of the Stripe product catalog (products and prices)."""
from typing import Any, Dict

from sqlalchemy.orm import Session

from saasly.billing.helpers import parse_max_seats
from saasly.models import StripePrice, StripeProduct
from saasly.utils.helpers import stripe_id_of


# ----- products -----

def upsert_product_from_stripe(session: Session, product: Dict[str, Any]) -> StripeProduct:
    record = session.get(StripeProduct, product["id"]) or StripeProduct(stripe_id=product["id"])
    record.name = product.get("name") or ""
    record.description = product.get("description")
    record.active = bool(product.get("active", True))
    record.max_seats = parse_max_seats(product.get("metadata"))
    session.add(record)
    session.flush()
    return record


def delete_product_by_stripe_id(session: Session, stripe_id: str) -> bool:
    record = session.get(StripeProduct, stripe_id)
    if record is None:
        return False
    session.delete(record)
    session.flush()
    return True


# ----- prices -----

def _release_lookup_key(session: Session, lookup_key: str, *, keep: str) -> None:
    # Stripe moves a lookup key to a new price (transfer_lookup_key); the
    # old price's update may arrive after the new price is created.
    others = (
        session.query(StripePrice)
        .filter(StripePrice.lookup_key == lookup_key, StripePrice.stripe_id != keep)
        .all()
    )
    for other in others:
        other.lookup_key = None
    if others:
        session.flush()


def upsert_price_from_stripe(session: Session, price: Dict[str, Any]) -> StripePrice:
    product = price.get("product")
    product_id = stripe_id_of(product)
    if isinstance(product, dict) and product.get("object") == "product":
        upsert_product_from_stripe(session, product)
    # Prices can arrive before their product; link only what we already mirror.
    if product_id and session.get(StripeProduct, product_id) is None:
        product_id = None

    lookup_key = price.get("lookup_key")
    if lookup_key:
        _release_lookup_key(session, lookup_key, keep=price["id"])

    # Fully populate the row before it joins the session; queries above autoflush.
    record = session.get(StripePrice, price["id"]) or StripePrice(stripe_id=price["id"])
    record.product_id = product_id
    record.lookup_key = lookup_key
    record.currency = price.get("currency") or "usd"
    record.unit_amount = price.get("unit_amount") or 0
    record.metadata_json = dict(price.get("metadata") or {})
    record.active = bool(price.get("active", True))
    session.add(record)
    session.flush()
    return record


def retrieve_price_by_stripe_id(session: Session, stripe_id: str) -> StripePrice | None:
    return session.get(StripePrice, stripe_id)


def retrieve_price_by_lookup_key(session: Session, lookup_key: str) -> StripePrice | None:
    return session.query(StripePrice).filter_by(lookup_key=lookup_key).one_or_none()


def delete_price_by_stripe_id(session: Session, stripe_id: str) -> bool:
    record = session.get(StripePrice, stripe_id)
    if record is None:
        return False
    session.delete(record)
    session.flush()
    return True
