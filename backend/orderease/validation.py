# Overview: Input coercion helpers for request payloads and query strings.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import InvalidInput
from .time_utils import parse_iso_datetime


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10

_CENT = Decimal("0.01")


def parse_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Strict integer coercion.

    Accepts ints (not bools) and plain digit strings with an optional sign.
    Rejects floats, decimals, and scientific notation.
    """
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise InvalidInput(f"{field} must be an integer")
        if "e" in stripped.lower() or "." in stripped:
            raise InvalidInput(f"{field} must be a plain integer")
        try:
            result = int(stripped)
        except ValueError:
            raise InvalidInput(f"{field} must be an integer")
    else:
        raise InvalidInput(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise InvalidInput(f"{field} must be >= {minimum}")
    if maximum is not None and result > maximum:
        raise InvalidInput(f"{field} must be <= {maximum}")
    return result


def parse_id(value: Any, field: str) -> int:
    """Snowflake ids arrive as JSON strings or integers; 0 is never valid."""
    if value is None or value == "":
        raise InvalidInput(f"{field} is required")
    return parse_int(value, field, minimum=1)


def parse_optional_id(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return parse_id(value, field)


def require_str(payload: dict, field: str, *, max_length: int | None = None) -> str:
    value = payload.get(field)
    if value is None:
        raise InvalidInput(f"{field} is required")
    if not isinstance(value, str):
        raise InvalidInput(f"{field} must be a string")
    value = value.strip()
    if not value:
        raise InvalidInput(f"{field} cannot be blank")
    if max_length and len(value) > max_length:
        raise InvalidInput(f"{field} exceeds max length {max_length}")
    return value


def optional_str(payload: dict, field: str, *, max_length: int | None = None, default: str | None = None) -> str | None:
    if field not in payload or payload[field] is None:
        return default
    value = payload[field]
    if not isinstance(value, str):
        raise InvalidInput(f"{field} must be a string")
    value = value.strip()
    if max_length and len(value) > max_length:
        raise InvalidInput(f"{field} exceeds max length {max_length}")
    return value


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false", "1", "0"):
        return value.lower() in ("true", "1")
    raise InvalidInput(f"{field} must be a boolean")


def parse_amount(value: Any, field: str, *, allow_negative: bool = False) -> int:
    """
    Parse a two-decimal money amount into integer cents.

    Accepts numbers and numeric strings; more than two fractional digits
    are rounded half-up.
    """
    if value is None or isinstance(value, bool):
        raise InvalidInput(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidInput(f"{field} must be a number")
    if not amount.is_finite():
        raise InvalidInput(f"{field} must be a number")

    cents = int((amount.quantize(_CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())
    if cents < 0 and not allow_negative:
        raise InvalidInput(f"{field} must be >= 0")
    if abs(cents) > MAX_PRICE_CENTS:
        raise InvalidInput(f"{field} is out of range")
    return cents


def format_amount(cents: int | None) -> float | None:
    """Render integer cents as a two-decimal JSON number."""
    if cents is None:
        return None
    return float((Decimal(cents) / 100).quantize(_CENT))


def parse_datetime(value: Any, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidInput(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise InvalidInput(f"{field} must be an ISO-8601 datetime")


def parse_pagination(page: Any, size: Any) -> tuple[int, int]:
    """page >= 1 and 1 <= size <= 100; anything else is InvalidInput."""
    page = parse_int(page, "page")
    size = parse_int(size, "pageSize")
    if page < 1:
        raise InvalidInput("page must be >= 1")
    if size < 1 or size > MAX_PAGE_SIZE:
        raise InvalidInput(f"pageSize must be between 1 and {MAX_PAGE_SIZE}")
    return page, size


def pagination_from_args(args) -> tuple[int, int]:
    """Read page/pageSize from a query-string mapping with defaults."""
    page = args.get("page", "1")
    size = args.get("pageSize", args.get("page_size", str(DEFAULT_PAGE_SIZE)))
    return parse_pagination(page, size)


def page_payload(items: list[dict], total: int, page: int, size: int) -> dict:
    total_pages = (total + size - 1) // size if total else 0
    return {
        "items": items,
        "total": total,
        "page": page,
        "page_size": size,
        "pagination": {
            "page": page,
            "per_page": size,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
