"""Expense data models."""

from typing import Optional, List, Dict, Any, Type, TypeVar
from datetime import datetime
from decimal import Decimal

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)

from shared.exceptions import ValidationError
from shared.validators import (
    ExpenseCategory,
    sanitize_string,
    validate_amount,
    validate_category,
    validate_limit,
    validate_page,
)

ModelT = TypeVar('ModelT', bound=BaseModel)

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
CLEARABLE_FIELDS = ('description',)


def parse_payload(model_cls: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    """
    Build a model from untrusted input.

    Raises:
        ValidationError: If the payload does not fit the model
    """
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        messages = []
        for error in e.errors():
            field = '.'.join(str(part) for part in error.get('loc', ()))
            messages.append(f"{field}: {error.get('msg')}" if field else error.get('msg'))
        raise ValidationError('; '.join(messages))


def _clean_title(value: Any) -> str:
    return sanitize_string(
        value,
        max_length=TITLE_MAX_LENGTH,
        min_length=TITLE_MIN_LENGTH,
        field_name="Title"
    )


def _clean_description(value: Any) -> Optional[str]:
    if value is None:
        return None
    return sanitize_string(value, max_length=DESCRIPTION_MAX_LENGTH, field_name="Description")


class ExpenseCreate(BaseModel):
    """Expense creation request model."""

    title: str = Field(..., description="Short expense title")
    description: Optional[str] = Field(None, description="Optional notes")
    amount: Decimal = Field(..., description="Expense amount")
    category: ExpenseCategory = Field(..., description="Expense category")

    class Config:
        """Pydantic config."""
        extra = 'forbid'

    @field_validator('title', mode='before')
    @classmethod
    def check_title(cls, value):
        return _clean_title(value)

    @field_validator('description', mode='before')
    @classmethod
    def check_description(cls, value):
        return _clean_description(value)

    @field_validator('amount', mode='before')
    @classmethod
    def check_amount(cls, value):
        return validate_amount(value)

    @field_validator('category', mode='before')
    @classmethod
    def check_category(cls, value):
        return validate_category(value)


class ExpenseUpdate(BaseModel):
    """Expense update request model. Only supplied fields are replaced."""

    title: Optional[str] = Field(None, description="Short expense title")
    description: Optional[str] = Field(None, description="Optional notes")
    amount: Optional[Decimal] = Field(None, description="Expense amount")
    category: Optional[ExpenseCategory] = Field(None, description="Expense category")

    class Config:
        """Pydantic config."""
        extra = 'forbid'

    @field_validator('title', mode='before')
    @classmethod
    def check_title(cls, value):
        return None if value is None else _clean_title(value)

    @field_validator('description', mode='before')
    @classmethod
    def check_description(cls, value):
        return _clean_description(value)

    @field_validator('amount', mode='before')
    @classmethod
    def check_amount(cls, value):
        return None if value is None else validate_amount(value)

    @field_validator('category', mode='before')
    @classmethod
    def check_category(cls, value):
        return None if value is None else validate_category(value)

    @model_validator(mode='after')
    def check_not_empty(self):
        if not self.changes() and not self.removals():
            raise ValidationError("At least one field must be provided for update")
        return self

    def changes(self) -> Dict[str, Any]:
        """Fields explicitly set on this update, with storable values."""
        values = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if value is None:
                continue
            values[name] = value.value if isinstance(value, ExpenseCategory) else value
        return values

    def removals(self) -> List[str]:
        """Clearable fields explicitly set to null."""
        return [
            name for name in CLEARABLE_FIELDS
            if name in self.model_fields_set and getattr(self, name) is None
        ]


class Expense(BaseModel):
    """Persisted expense."""

    user_id: str
    expense_id: str
    title: str
    description: Optional[str] = None
    amount: Decimal
    category: ExpenseCategory
    created_at: str
    updated_at: str

    @field_validator('amount', mode='before')
    @classmethod
    def to_decimal(cls, value):
        # DynamoDB numbers come back as int/float
        return Decimal(str(value)).quantize(Decimal('0.01'))

    def to_response(self) -> Dict[str, Any]:
        """Public, JSON-native response shape."""
        return {
            'id': self.expense_id,
            'user_id': self.user_id,
            'title': self.title,
            'description': self.description,
            'amount': float(self.amount),
            'category': self.category.value,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }


class ExpenseFilter(BaseModel):
    """Typed listing filter, built once at the service entry point."""

    user_id: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    category: Optional[ExpenseCategory] = None
    limit: int = Field(20, ge=1)
    offset: int = Field(0, ge=0)


class ExpenseQuery(BaseModel):
    """Listing and summary query string parameters."""

    period: Optional[str] = None
    start_date: Optional[str] = Field(
        None, validation_alias=AliasChoices('start_date', 'startDate')
    )
    end_date: Optional[str] = Field(
        None, validation_alias=AliasChoices('end_date', 'endDate')
    )
    category: Optional[ExpenseCategory] = None
    page: int = 1
    limit: int = 20

    @field_validator('category', mode='before')
    @classmethod
    def check_category(cls, value):
        if value is None or value == '':
            return None
        return validate_category(value)

    @field_validator('page', mode='before')
    @classmethod
    def check_page(cls, value):
        return validate_page(value)

    @field_validator('limit', mode='before')
    @classmethod
    def check_limit(cls, value):
        return validate_limit(value)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class CategoryBreakdown(BaseModel):
    """Totals for one category."""

    category: ExpenseCategory
    amount: float
    count: int


class ExpenseSummary(BaseModel):
    """Expense summary model."""

    total_amount: float = 0.0
    total_count: int = 0
    category_breakdown: List[CategoryBreakdown] = []

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode='json')
