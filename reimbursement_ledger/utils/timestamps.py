"""
ISO-8601 timestamp helpers.

``occurred_at`` values come from external collaborators as text, so the
ledger parses them leniently (``None`` on failure) and lets the caller
decide what an unparseable value means.
"""

from datetime import datetime, timezone


def parse_iso_datetime(value: str | datetime | None) -> datetime | None:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts a trailing ``Z``. Naive values are taken as UTC. Returns
    ``None`` when the value is missing or unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_iso_millis(value: datetime) -> str:
    """Render as UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def normalize_iso_text(value: str) -> str:
    """
    Canonical stored form of an ``occurred_at`` value.

    Parseable timestamps (date-only, offset, with or without fractions)
    become UTC millisecond ``Z`` text, so stored values order and compare
    as instants.  Unparseable text is kept as supplied.
    """
    parsed = parse_iso_datetime(value)
    return value if parsed is None else format_iso_millis(parsed)
