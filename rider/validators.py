"""
Request validation for the HTTP boundary.

Each helper raises ``ValidationError`` with a message meant for API
consumers, and returns the normalised value.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .errors import InvalidAmountError, ValidationError
from .models import round_money

MIN_SEARCH_LENGTH = 2
MAX_PAGE_LIMIT = 100


def validate_identifier(value: Optional[str], label: str = "ID") -> str:
    if value is None:
        raise ValidationError(f"{label} is required")
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} must be a non-empty string")
    return value


def validate_search_query(query: Optional[str], min_length: int = MIN_SEARCH_LENGTH) -> str:
    if query is None:
        raise ValidationError("Search query parameter is required")
    if not query.strip():
        raise ValidationError("Search query must be a non-empty string")
    if len(query.strip()) < min_length:
        raise ValidationError(f"Search query must be at least {min_length} characters long")
    return query.strip()


def validate_pagination(page: Optional[int] = None, limit: Optional[int] = None) -> tuple[int, int]:
    page = 1 if page is None else page
    limit = 10 if limit is None else limit
    if page < 1:
        raise ValidationError("Page must be a positive integer")
    if limit < 1 or limit > MAX_PAGE_LIMIT:
        raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_LIMIT}")
    return page, limit


def parse_iso_datetime(value: str, label: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        raise ValidationError(f"{label} must be a valid ISO date string")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validate_date_range(start_date: Optional[str], end_date: Optional[str]) -> tuple[datetime, datetime]:
    if not start_date or not end_date:
        raise ValidationError("Both startDate and endDate are required")
    start = parse_iso_datetime(start_date, "Start date")
    end = parse_iso_datetime(end_date, "End date")
    if start > end:
        raise ValidationError("Start date must be before end date")
    return start, end


def validate_withdrawal_amount(
    amount: Any,
    min_amount: Decimal = Decimal("10"),
    max_amount: Decimal = Decimal("10000"),
) -> Decimal:
    if amount is None:
        raise InvalidAmountError("Withdrawal amount is required")
    if isinstance(amount, bool):
        raise InvalidAmountError("Amount must be a valid number")

    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except InvalidOperation:
        raise InvalidAmountError("Amount must be a valid number")
    if not value.is_finite():
        raise InvalidAmountError("Amount must be a valid number")

    if value <= 0:
        raise InvalidAmountError("Amount must be greater than 0")
    if value.normalize().as_tuple().exponent < -2:
        raise InvalidAmountError("Amount must have at most 2 decimal places")
    if value < min_amount:
        raise InvalidAmountError(f"Minimum withdrawal amount is ${min_amount}")
    if value > max_amount:
        raise InvalidAmountError(f"Maximum withdrawal amount is ${max_amount}")

    return round_money(value)


def validate_account_info(account_info: Any) -> str:
    if account_info is None:
        return ""
    if not isinstance(account_info, str):
        raise ValidationError("Account info must be a string")
    return account_info
