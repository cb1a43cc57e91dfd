"""Parsing of caller-supplied dates, numbers and money amounts."""

import math
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from dateutil import parser as dateutil_parser

from src.core.config import constants
from src.core.errors import ValidationError


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def to_date(value: object) -> date | None:
    """Parse a date, datetime or ISO string into a calendar day, or None if unparseable."""
    if _is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return dateutil_parser.isoparse(value.strip()).date()
    except (ValueError, OverflowError):
        return None


def require_date(value: object, field_name: str) -> date:
    parsed = to_date(value)
    if parsed is None:
        raise ValidationError(f"{field_name} must be a valid date")
    return parsed


def optional_date(value: object, field_name: str) -> date | None:
    if _is_blank(value):
        return None
    return require_date(value, field_name)


def _to_number(value: object, field_name: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a valid number")
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a valid number") from None
    if not math.isfinite(parsed):
        raise ValidationError(f"{field_name} must be a valid number")
    return parsed


def _check_bounds(parsed: float, field_name: str, min_value: float | None, max_value: float | None) -> None:
    if min_value is not None and parsed < min_value:
        raise ValidationError(f"{field_name} must be greater than or equal to {min_value}")
    if max_value is not None and parsed > max_value:
        raise ValidationError(f"{field_name} must be less than or equal to {max_value}")


def require_number(
    value: object,
    field_name: str,
    *,
    min_value: float | None = None,
    max_value: float | None = None,
) -> float:
    if _is_blank(value):
        raise ValidationError(f"{field_name} is required")
    parsed = _to_number(value, field_name)
    _check_bounds(parsed, field_name, min_value, max_value)
    return parsed


def parse_optional_number(value: object, field_name: str, *, min_value: float | None = None) -> float | None:
    if _is_blank(value):
        return None
    parsed = _to_number(value, field_name)
    _check_bounds(parsed, field_name, min_value, None)
    return parsed


def parse_optional_integer(value: object, field_name: str, *, min_value: int | None = None) -> int | None:
    if _is_blank(value):
        return None
    parsed = _to_number(value, field_name)
    if not parsed.is_integer():
        raise ValidationError(f"{field_name} must be an integer")
    _check_bounds(parsed, field_name, min_value, None)
    return int(parsed)


def _as_decimal(value: float) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {value}") from None


def amounts_equal(a: float, b: float) -> bool:
    """Money equality within MONEY_EPSILON (inclusive of the boundary)."""
    return abs(_as_decimal(a) - _as_decimal(b)) <= _as_decimal(constants.MONEY_EPSILON)


def exceeds(amount: float, limit: float) -> bool:
    """Whether amount is greater than limit by more than MONEY_EPSILON."""
    return _as_decimal(amount) - _as_decimal(limit) > _as_decimal(constants.MONEY_EPSILON)


def round_money(value: float) -> float:
    return round(value, constants.COST_DECIMALS)
