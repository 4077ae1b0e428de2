import math
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from .errors import InvalidArgument

# Largest value an INTEGER column holds (signed 64-bit)
MAX_STORED_INT = 2**63 - 1


def positive_int(value: Any, field: str, maximum: Optional[int] = MAX_STORED_INT) -> int:
    """Coerce to a positive int; `maximum=None` leaves the range check to the caller."""
    if isinstance(value, bool) or value is None:
        raise InvalidArgument(f"{field} must be a positive integer", field=field)
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidArgument(f"{field} must be a positive integer", field=field)
        value = int(value)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{field} must be a positive integer", field=field) from None
    if number <= 0:
        raise InvalidArgument(f"{field} must be a positive integer", field=field)
    if maximum is not None and number > maximum:
        raise InvalidArgument(f"{field} must not exceed {maximum}", field=field)
    return number


def positive_number(value: Any, field: str) -> float:
    if isinstance(value, bool) or value is None:
        raise InvalidArgument(f"{field} must be a positive number", field=field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{field} must be a positive number", field=field) from None
    if not math.isfinite(number) or number <= 0:
        raise InvalidArgument(f"{field} must be a positive number", field=field)
    return number


def non_negative_number(value: Any, field: str, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise InvalidArgument(f"{field} must be a number", field=field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{field} must be a number", field=field) from None
    if not math.isfinite(number):
        raise InvalidArgument(f"{field} must be a number", field=field)
    if number < 0:
        raise InvalidArgument(f"{field} must not be negative", field=field)
    return number


def parse_datetime(value: Any, field: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"{field} must be an ISO-8601 datetime", field=field)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise InvalidArgument(f"{field} must be an ISO-8601 datetime", field=field) from None
    # stored naive, as UTC wall time
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
    return parsed


def require(data: Dict[str, Any], fields: Iterable[str]) -> None:
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise InvalidArgument(f"Missing required fields: {', '.join(missing)}", missing=missing)


def required_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"{field} must be a non-empty string", field=field)
    return value


def optional_text(value: Any, field: str = "value") -> Optional[str]:
    if value is None:
        return None
    # numbers are accepted and stored as their text form
    if isinstance(value, (dict, list, bool)):
        raise InvalidArgument(f"{field} must be text", field=field)
    return str(value)
