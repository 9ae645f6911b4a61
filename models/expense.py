"""Pydantic models for Expense data"""
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional, get_args

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from utils.errors import FieldValidationError

Category = Literal[
    'Food', 'Transportation', 'Entertainment', 'Utilities', 'Healthcare',
    'Shopping', 'Education', 'Travel', 'Other',
]
CATEGORIES = list(get_args(Category))
MAX_DESCRIPTION_LENGTH = 200
NUMERIC_AMOUNT = re.compile(r"[+-]?(\d*\.)?\d+", re.ASCII)


def to_storage_datetime(value: datetime) -> datetime:
    """Converts a datetime to naive UTC truncated to milliseconds, the way BSON stores it."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def utc_now() -> datetime:
    return to_storage_datetime(datetime.now(timezone.utc))


def parse_iso_datetime(value: str) -> datetime:
    """Parses an ISO 8601 date or date-time string. Raises ValueError otherwise."""
    text = value.strip()
    if not text or text[0] in '+-':
        raise ValueError(f"Not an ISO 8601 date: {value!r}")
    if text[-1] in 'Zz':
        text = text[:-1] + '+00:00'
    try:
        return to_storage_datetime(datetime.fromisoformat(text))
    except OverflowError as e:
        # UTC conversion of an offset date at the edge of the calendar
        raise ValueError(f"Date out of range: {value!r}") from e


# --- Incoming payload (validation layer) ---

class ExpenseIn(BaseModel):
    """
    Body of a create or update request.

    Every field is validated even when absent so that one request reports
    all of its field errors at once.
    """
    model_config = ConfigDict(validate_default=True, extra='ignore')

    date: Optional[datetime] = None
    description: str = ''
    category: str = ''
    amount: float = Field(default=None)

    @field_validator('date', mode='before')
    @classmethod
    def check_date(cls, value: Any) -> Optional[datetime]:
        if value is None:
            return None
        try:
            if isinstance(value, datetime):
                return to_storage_datetime(value)
            if isinstance(value, str):
                return parse_iso_datetime(value)
        except (ValueError, OverflowError):
            pass
        raise PydanticCustomError('date_format', 'Date must be in valid ISO 8601 format')

    @field_validator('description', mode='before')
    @classmethod
    def check_description(cls, value: Any) -> str:
        # Numbers are taken as their text, as a JSON client would expect
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        elif value is not None and not isinstance(value, str):
            raise PydanticCustomError('description_type', 'Description must be text')
        text = (value or '').strip()
        if not text:
            raise PydanticCustomError('description_required', 'Description is required')
        if len(text) > MAX_DESCRIPTION_LENGTH:
            raise PydanticCustomError(
                'description_too_long',
                f'Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters',
            )
        return text

    @field_validator('category', mode='before')
    @classmethod
    def check_category(cls, value: Any) -> str:
        text = value.strip() if isinstance(value, str) else ''
        if not text:
            raise PydanticCustomError('category_required', 'Category is required')
        if text not in CATEGORIES:
            raise PydanticCustomError('category_invalid', 'Invalid category')
        return text

    @field_validator('amount', mode='before')
    @classmethod
    def check_amount(cls, value: Any) -> float:
        # Strings must be plain decimals: no exponent, underscores or padding
        if isinstance(value, str):
            value = float(value) if NUMERIC_AMOUNT.fullmatch(value) else None
        # bool is an int subclass but never a valid amount
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise PydanticCustomError('amount_type', 'Amount must be a number')
        try:
            value = float(value)
        except OverflowError:
            value = math.inf
        if not math.isfinite(value):
            raise PydanticCustomError('amount_type', 'Amount must be a number')
        if value < 0:
            raise PydanticCustomError('amount_negative', 'Amount must be a positive number')
        return float(value)


def validate_expense_payload(payload: Dict[str, Any]) -> ExpenseIn:
    """Validates a request body, collecting every field error into one FieldValidationError."""
    try:
        return ExpenseIn.model_validate(payload)
    except ValidationError as e:
        raise FieldValidationError.from_pydantic(e) from e


# --- Stored record ---

class Expense(BaseModel):
    """
    Represents a single stored expense record.

    Mirrors the document schema enforced at the store boundary; documents
    are keyed by ``_id`` in MongoDB and exposed as ``id``.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    date: datetime
    description: str = Field(min_length=1, max_length=MAX_DESCRIPTION_LENGTH)
    category: Category
    amount: float = Field(ge=0, allow_inf_nan=False)
    created_at: Optional[datetime] = Field(default=None, alias='createdAt')
    updated_at: Optional[datetime] = Field(default=None, alias='updatedAt')

    @field_validator('id', mode='before')
    @classmethod
    def stringify_object_id(cls, value: Any) -> Any:
        if isinstance(value, ObjectId):
            return str(value)
        return value

    @field_validator('date', 'created_at', 'updated_at')
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # MongoDB hands back naive datetimes that are already UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> 'Expense':
        doc = dict(document)
        if '_id' in doc:
            doc['id'] = doc.pop('_id')
        return cls.model_validate(doc)

    def to_document(self) -> Dict[str, Any]:
        """Dumps the record as a MongoDB document, without ``_id``."""
        doc = self.model_dump(by_alias=True, exclude={'id'}, exclude_none=True)
        for key in ('date', 'createdAt', 'updatedAt'):
            if key in doc:
                doc[key] = to_storage_datetime(doc[key])
        return doc

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode='json', by_alias=True)
