from datetime import datetime

from sqlalchemy.orm import Session

from saasly.billing.mapper import BillingPageData, map_subscription_to_billing_page
from saasly.utils.helpers import utc_now
from .organizations import retrieve_organization_with_billing_by_slug


def get_billing_page_data(session: Session, slug: str, now: datetime | None = None) -> BillingPageData | None:
    """None when no organization carries the slug."""
    snapshot = retrieve_organization_with_billing_by_slug(session, slug)
    if snapshot is None:
        return None
    return map_subscription_to_billing_page(
        organization=snapshot.organization,
        member_count=snapshot.member_count,
        subscription=snapshot.subscription,
        now=now or utc_now(),
    )
