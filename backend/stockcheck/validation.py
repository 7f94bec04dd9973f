"""
Input coercion helpers shared by services and routes.

Every helper raises services.errors.ValidationError with the offending field
name, so failures surface as 400s before any write happens.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

from .services.errors import ValidationError
from .time_utils import parse_iso_datetime
from .variance import MAX_AMOUNT, quantize_amount

E = TypeVar("E", bound=Enum)


def normalize_code(value: Any) -> str:
    """Trim and upper-case a product code; non-strings are stringified first."""
    if value is None:
        return ""
    return str(value).strip().upper()


def require_list(values: Any, field: str) -> list:
    """Accept a list or tuple; strings and scalars are rejected."""
    if not isinstance(values, (list, tuple)):
        raise ValidationError(f"{field} must be a list", field=field)
    return list(values)


def normalize_codes(values) -> list[str]:
    """
    Normalize and de-duplicate product codes, keeping first-seen order.

    Blank entries are dropped.
    """
    if values is None:
        return []
    values = require_list(values, "codes")
    seen: set[str] = set()
    result: list[str] = []
    for raw in values:
        code = normalize_code(raw)
        if code and code not in seen:
            seen.add(code)
            result.append(code)
    return result


def require_text(value: Any, field: str, *, max_length: int | None = None) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    text = str(value).strip()
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} cannot exceed {max_length} characters", field=field)
    return text


def optional_text(value: Any, field: str, *, max_length: int) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} cannot exceed {max_length} characters", field=field)
    return text


def parse_enum(enum_cls: type[E], value: Any, field: str) -> E:
    if isinstance(value, enum_cls):
        return value
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}", field=field)


def parse_optional_enum(enum_cls: type[E], value: Any, field: str) -> E | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_enum(enum_cls, value, field)


def parse_int(value: Any, field: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer", field=field)


def parse_quantity(value: Any, field: str = "quantity") -> Decimal:
    """Non-negative decimal quantity, rounded to four decimal places."""
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    try:
        quantity = quantize_amount(value)
    except ValueError:
        raise ValidationError(f"{field} must be a number", field=field)
    if quantity < 0:
        raise ValidationError(f"{field} must be greater than or equal to 0", field=field)
    if quantity >= MAX_AMOUNT:
        raise ValidationError(f"{field} must be less than {MAX_AMOUNT:f}", field=field)
    return quantity


def parse_optional_datetime(value: Any, field: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime", field=field)


def parse_optional_bool(value: Any) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("", "any"):
        return None
    return text in ("1", "true", "yes", "y")


def parse_page(page: Any, page_size: Any, *, default_size: int, max_size: int) -> tuple[int, int]:
    page_number = parse_int(page, "page") if page not in (None, "") else 1
    size = parse_int(page_size, "page_size") if page_size not in (None, "") else default_size
    if page_number < 1:
        raise ValidationError("page must be >= 1", field="page")
    if size < 1:
        raise ValidationError("page_size must be >= 1", field="page_size")
    return page_number, min(size, max_size)
