"""
Pure helpers for price lookups and price metadata.

Nothing in here touches the database or Stripe, so both the webhook
handlers and the billing page can lean on it freely.
"""
import re
from dataclasses import dataclass
from typing import Any, Mapping, Tuple, Union

from .constants import (
    DEFAULT_MAX_SEATS,
    LOOKUP_KEY_SEPARATOR,
    PRICES_BY_TIER_AND_INTERVAL,
)
from .errors import InvalidPriceLookup

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def get_price_id_for_tier_and_interval(tier: str, interval: str) -> str:
    """
    Return the Stripe price id for a tier/interval pair.

    Raises InvalidPriceLookup if the combination is not in the price table.
    """
    entry = PRICES_BY_TIER_AND_INTERVAL.get(f"{tier}{LOOKUP_KEY_SEPARATOR}{interval}")
    if not entry:
        raise InvalidPriceLookup(f"Invalid tier/interval combination: {tier}/{interval}")
    return entry["id"]


def get_tier_and_interval_for_price_id(price_id: str) -> Tuple[str, str]:
    """
    Reverse of get_price_id_for_tier_and_interval.

    Raises InvalidPriceLookup if no table entry carries the given id.
    """
    for key, entry in PRICES_BY_TIER_AND_INTERVAL.items():
        if entry["id"] == price_id:
            tier, interval = key.split(LOOKUP_KEY_SEPARATOR, 1)
            return tier, interval
    raise InvalidPriceLookup(f"Invalid price ID: {price_id}")


# --- max_seats metadata -------------------------------------------------------

@dataclass(frozen=True)
class MaxSeatsAbsent:
    pass


@dataclass(frozen=True)
class MaxSeatsInteger:
    value: int


@dataclass(frozen=True)
class MaxSeatsNumericString:
    raw: str

    @property
    def value(self) -> int:
        return int(_LEADING_INT_RE.match(self.raw).group(1), 10)


MaxSeats = Union[MaxSeatsAbsent, MaxSeatsInteger, MaxSeatsNumericString]


def classify_max_seats(metadata: Mapping[str, Any] | None) -> MaxSeats:
    """Sort a price/product metadata `max_seats` entry into one of the MaxSeats variants."""
    raw = (metadata or {}).get("max_seats")
    # bool is an int subclass, but "true" seats means nothing
    if isinstance(raw, bool):
        return MaxSeatsAbsent()
    if isinstance(raw, int):
        return MaxSeatsInteger(raw)
    if isinstance(raw, float) and raw.is_integer():
        return MaxSeatsInteger(int(raw))
    if isinstance(raw, str) and _LEADING_INT_RE.match(raw):
        return MaxSeatsNumericString(raw)
    return MaxSeatsAbsent()


def resolve_max_seats(max_seats: MaxSeats, default: int = DEFAULT_MAX_SEATS) -> int:
    if isinstance(max_seats, (MaxSeatsInteger, MaxSeatsNumericString)):
        return max_seats.value
    return default


def parse_max_seats(metadata: Mapping[str, Any] | None, default: int = DEFAULT_MAX_SEATS) -> int:
    return resolve_max_seats(classify_max_seats(metadata), default=default)


# --- lookup keys --------------------------------------------------------------

def tier_name_from_lookup_key(lookup_key: str | None) -> str:
    """'startup_monthly' -> 'Startup'. Only the first letter is touched."""
    prefix = (lookup_key or "").split(LOOKUP_KEY_SEPARATOR)[0]
    return prefix[:1].upper() + prefix[1:]
