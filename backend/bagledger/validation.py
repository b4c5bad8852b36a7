from __future__ import annotations

from typing import Any

from .errors import InvalidArgumentError


def coerce_int(value: Any, field: str) -> int:
    """
    Strictly coerce a payload value to int.

    Rejects booleans, floats, decimal strings and scientific notation so that
    "12.5" or 1e3 never silently become a bag count.
    """
    if value is None:
        raise InvalidArgumentError(f"{field} is required")
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise InvalidArgumentError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise InvalidArgumentError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise InvalidArgumentError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise InvalidArgumentError(f"{field} must be an integer")
    if isinstance(value, float):
        raise InvalidArgumentError(f"{field} must be an integer, not a decimal")
    raise InvalidArgumentError(f"{field} must be an integer")


def require_positive_count(value: Any, field: str = "number_of_bags") -> int:
    count = coerce_int(value, field)
    if count <= 0:
        raise InvalidArgumentError(f"{field} must be a positive integer")
    return count


def require_text(value: Any, field: str) -> str:
    """Require a non-empty string; surrounding whitespace is stripped."""
    if value is None or not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"{field} is required")
    return value.strip()


def optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def require_payload(data: Any) -> dict:
    if not isinstance(data, dict):
        raise InvalidArgumentError("Request body must be a JSON object")
    return data


def like_pattern(term: str) -> str:
    """Case-insensitive substring pattern for ILIKE with '\\' as escape."""
    escaped = term.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
