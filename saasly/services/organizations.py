from typing import NamedTuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from saasly.billing.errors import RecordNotFound
from saasly.models import Organization, OrganizationMembership, StripeSubscription
from .stripe_subscriptions import retrieve_latest_subscription_by_organization_id

_UPDATABLE = {"name", "billing_email", "stripe_customer_id", "trial_end"}


class OrganizationBilling(NamedTuple):
    organization: Organization
    member_count: int
    subscription: StripeSubscription | None


def retrieve_organization_by_slug(session: Session, slug: str) -> Organization | None:
    return session.query(Organization).filter_by(slug=slug).one_or_none()


def retrieve_organization_by_stripe_customer_id(session: Session, customer_id: str) -> Organization | None:
    return session.query(Organization).filter_by(stripe_customer_id=customer_id).one_or_none()


def count_memberships(session: Session, organization_id: int) -> int:
    return (
        session.query(func.count(OrganizationMembership.id))
        .filter(OrganizationMembership.organization_id == organization_id)
        .scalar()
    ) or 0


def retrieve_organization_with_billing_by_slug(session: Session, slug: str) -> OrganizationBilling | None:
    """Everything the billing page reads: org, member count and latest subscription."""
    organization = retrieve_organization_by_slug(session, slug)
    if organization is None:
        return None
    return OrganizationBilling(
        organization=organization,
        member_count=count_memberships(session, organization.id),
        subscription=retrieve_latest_subscription_by_organization_id(session, organization.id),
    )


def update_organization_by_id(session: Session, organization_id: int, **fields) -> Organization:
    unknown = set(fields) - _UPDATABLE
    if unknown:
        raise ValueError(f"Cannot update organization fields: {', '.join(sorted(unknown))}")
    organization = session.get(Organization, organization_id)
    if organization is None:
        raise RecordNotFound(f"Unknown organization: {organization_id}")
    for key, value in fields.items():
        setattr(organization, key, value)
    session.flush()
    return organization
