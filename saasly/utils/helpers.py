import re
from datetime import datetime, timezone

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def from_unix(ts: int | None) -> datetime | None:
    """Stripe timestamps are unix seconds."""
    if ts is None:
        return None
    return datetime.fromtimestamp(int(ts), tz=timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def slugify(value: str) -> str:
    return _SLUG_STRIP_RE.sub("-", (value or "").lower()).strip("-")


def stripe_id_of(value) -> str | None:
    """Expandable Stripe fields arrive either as an id string or an object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.get("id")
