"""Validation utilities for the expense tracker application."""

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional
from decimal import Decimal, InvalidOperation

from .dates import VALID_PERIODS
from .exceptions import ValidationError, InvalidIdentifierError


class ExpenseCategory(str, Enum):
    """Expense categories."""

    GROCERIES = "Groceries"
    LEISURE = "Leisure"
    ELECTRONICS = "Electronics"
    UTILITIES = "Utilities"
    CLOTHING = "Clothing"
    HEALTH = "Health"
    OTHERS = "Others"


VALID_CATEGORIES = [category.value for category in ExpenseCategory]

MAX_AMOUNT = Decimal('999999.99')
MAX_PAGE_SIZE = 100


def is_valid_id(value: Any) -> bool:
    """Check that a user or expense ID is a well-formed UUID string."""
    if not isinstance(value, str) or not value:
        return False
    try:
        uuid.UUID(value)
        return True
    except ValueError:
        return False


def validate_id(value: Any, name: str = "ID") -> str:
    """
    Validate a user or expense ID.

    Raises:
        InvalidIdentifierError: If the ID is malformed
    """
    if not is_valid_id(value):
        raise InvalidIdentifierError(f"Invalid {name} format")
    return value


def validate_amount(amount: Any) -> Decimal:
    """
    Validate monetary amount.

    Args:
        amount: Amount to validate

    Returns:
        Validated amount as Decimal

    Raises:
        ValidationError: If amount is invalid
    """
    if amount is None:
        raise ValidationError("Amount is required")

    if isinstance(amount, bool):
        raise ValidationError("Invalid amount format")

    try:
        decimal_amount = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError("Invalid amount format")

    if not decimal_amount.is_finite():
        raise ValidationError("Invalid amount format")

    if decimal_amount <= 0:
        raise ValidationError("Amount must be a positive number")

    if decimal_amount > MAX_AMOUNT:
        raise ValidationError("Amount cannot exceed 999,999.99")

    # Ensure at most 2 decimal places
    if decimal_amount.as_tuple().exponent < -2:
        raise ValidationError("Amount can have at most 2 decimal places")

    return decimal_amount


def validate_category(category: Any) -> str:
    """
    Validate expense category.

    Args:
        category: Category to validate

    Returns:
        Validated category

    Raises:
        ValidationError: If category is invalid
    """
    if isinstance(category, ExpenseCategory):
        return category.value

    if not category:
        raise ValidationError("Category is required")

    if category not in VALID_CATEGORIES:
        raise ValidationError(
            f"Category must be one of: {', '.join(VALID_CATEGORIES)}"
        )

    return category


def validate_period(period: Optional[str]) -> Optional[str]:
    """
    Validate a listing/summary period token.

    Raises:
        ValidationError: If period is not recognized
    """
    if period is None or period == '':
        return None

    if period not in VALID_PERIODS:
        raise ValidationError(
            f"Period must be one of: {', '.join(VALID_PERIODS)}"
        )

    return period


def validate_page(page: Any) -> int:
    """Validate a 1-based page number (default: 1)."""
    if page is None or page == '':
        return 1

    try:
        page = int(page)
    except (ValueError, TypeError):
        raise ValidationError("Page must be an integer")

    if page < 1:
        raise ValidationError("Page must be at least 1")

    return page


def validate_limit(limit: Any, default: int = 20) -> int:
    """Validate a page size between 1 and MAX_PAGE_SIZE."""
    if limit is None or limit == '':
        return default

    try:
        limit = int(limit)
    except (ValueError, TypeError):
        raise ValidationError("Limit must be an integer")

    if limit < 1:
        raise ValidationError("Limit must be at least 1")

    if limit > MAX_PAGE_SIZE:
        raise ValidationError(f"Limit cannot exceed {MAX_PAGE_SIZE}")

    return limit


def validate_required_fields(data: Dict[str, Any], required_fields: List[str]) -> None:
    """
    Validate that required fields are present in data.

    Args:
        data: Data dictionary to validate
        required_fields: List of required field names

    Raises:
        ValidationError: If any required field is missing
    """
    missing_fields = [field for field in required_fields if field not in data or data[field] is None]

    if missing_fields:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing_fields)}"
        )


def sanitize_string(
    value: str,
    max_length: Optional[int] = None,
    min_length: Optional[int] = None,
    field_name: str = "Value"
) -> str:
    """
    Sanitize string input by trimming whitespace and checking length.

    Args:
        value: String to sanitize
        max_length: Optional maximum length
        min_length: Optional minimum length
        field_name: Field name used in error messages

    Returns:
        Sanitized string

    Raises:
        ValidationError: If string is invalid
    """
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")

    # Remove leading/trailing whitespace
    value = value.strip()

    if min_length and len(value) < min_length:
        raise ValidationError(f"{field_name} must be at least {min_length} characters long")

    if max_length and len(value) > max_length:
        raise ValidationError(f"{field_name} cannot exceed {max_length} characters")

    return value
