from datetime import datetime, timezone
from typing import Optional


def as_int(value) -> Optional[int]:
    """Ids arrive as JSON numbers or strings; anything else is None."""
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_iso(dt_str) -> Optional[datetime]:
    # Expect ISO format like "2026-01-20" or "2026-01-20T18:00:00"
    if not isinstance(dt_str, str) or not dt_str.strip():
        return None
    try:
        parsed = datetime.fromisoformat(dt_str.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    # stored as naive UTC
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_bool(value) -> Optional[bool]:
    if value in ("true", "false"):
        return value == "true"
    return None


def as_text(value) -> str:
    """Stripped string for JSON text fields; any other type reads as blank."""
    return value.strip() if isinstance(value, str) else ""
