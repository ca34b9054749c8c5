from typing import Dict, Literal, Tuple

Tier = Literal["low", "mid", "high"]
Interval = Literal["monthly", "annual"]

TIERS: Tuple[str, ...] = ("low", "mid", "high")
INTERVALS: Tuple[str, ...] = ("monthly", "annual")

# Lookup keys are "<display tier>_<interval>"; the prefix becomes the tier name.
ANNUAL_SUFFIX = "_annual"
LOOKUP_KEY_SEPARATOR = "_"

# Canonical price table. Ids are the live-mode prices created by `flask billing sync-catalog`.
PRICES_BY_TIER_AND_INTERVAL: Dict[str, Dict[str, str]] = {
    "low_monthly": {"lookup_key": "hobby_monthly", "id": "price_1RDyP5ATkOvZ4mVhhobbymo"},
    "low_annual": {"lookup_key": "hobby_annual", "id": "price_1RDyP5ATkOvZ4mVhhobbyan"},
    "mid_monthly": {"lookup_key": "startup_monthly", "id": "price_1RDyQ2ATkOvZ4mVhstartmo"},
    "mid_annual": {"lookup_key": "startup_annual", "id": "price_1RDyQ2ATkOvZ4mVhstartan"},
    "high_monthly": {"lookup_key": "business_monthly", "id": "price_1RDyQtATkOvZ4mVhbusinmo"},
    "high_annual": {"lookup_key": "business_annual", "id": "price_1RDyQtATkOvZ4mVhbusinan"},
}

LOOKUP_KEYS: Tuple[str, ...] = tuple(p["lookup_key"] for p in PRICES_BY_TIER_AND_INTERVAL.values())

# Organizations without a subscription are on a free Business trial.
TRIAL_MONTHLY_RATE_PER_USER = 85
TRIAL_TIER_NAME = "Business (Trial)"
TRIAL_MAX_SEATS = 25

DEFAULT_MAX_SEATS = 1

# Stripe statuses that keep the organization's access open
ACTIVE_STATUSES = frozenset({"active", "trialing"})

# Metadata keys carried on checkout sessions, subscriptions and customers
METADATA_ORGANIZATION_ID = "organizationId"
METADATA_PURCHASED_BY_ID = "purchasedById"
