"""Wall-clock helpers shared by the calendar adapter and the decision engine."""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def to_zulu(moment: datetime) -> str:
    """Format *moment* as an RFC3339 UTC timestamp without fractional seconds.

    Naive datetimes are taken to be UTC already.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC3339 timestamp (``Z`` or numeric offset) into an aware datetime.

    All-day events only carry a date; those start at midnight UTC.  Raises
    ``ValueError`` for anything else.
    """
    raw = value.strip()
    if not raw:
        msg = "Empty timestamp"
        raise ValueError(msg)
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
