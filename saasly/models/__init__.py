from .user import User
from .organization import Organization
from .organization_membership import (
    OrganizationMembership,
    ROLE_OWNER,
    ROLE_ADMIN,
    ROLE_MEMBER,
    ROLE_CHOICES,
)
from .stripe_product import StripeProduct
from .stripe_price import StripePrice
from .stripe_subscription import StripeSubscription, StripeSubscriptionItem
from .stripe_subscription_schedule import (
    StripeSubscriptionSchedule,
    StripeSubscriptionSchedulePhase,
)
from .billing_event import BillingEventLog

__all__ = [
    "User",
    "Organization",
    "OrganizationMembership",
    "ROLE_OWNER",
    "ROLE_ADMIN",
    "ROLE_MEMBER",
    "ROLE_CHOICES",
    "StripeProduct",
    "StripePrice",
    "StripeSubscription",
    "StripeSubscriptionItem",
    "StripeSubscriptionSchedule",
    "StripeSubscriptionSchedulePhase",
    "BillingEventLog",
]
