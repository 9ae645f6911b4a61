from __future__ import annotations

from datetime import datetime, timezone

import pytest

from models.expense import CATEGORIES, Expense, validate_expense_payload
from utils.errors import FieldValidationError


def _fields(excinfo):
    return {e["field"]: e["message"] for e in excinfo.value.errors}


def test_valid_payload_is_trimmed():
    expense_in = validate_expense_payload(
        {"description": "  Groceries ", "category": " Food ", "amount": "23.40", "date": "2024-06-01"}
    )
    assert expense_in.description == "Groceries"
    assert expense_in.category == "Food"
    assert expense_in.amount == 23.4
    assert expense_in.date == datetime(2024, 6, 1)


def test_date_is_optional():
    expense_in = validate_expense_payload({"description": "Book", "category": "Education", "amount": 0, "date": None})
    assert expense_in.date is None
    assert expense_in.amount == 0


@pytest.mark.parametrize(
    "amount",
    ["abc", "", None, True, float("nan"), {"value": 3}, "1_000", "1e5", " 12 ", "12.", 10**400, "1" + "0" * 400],
)
def test_non_numeric_amount(amount):
    with pytest.raises(FieldValidationError) as excinfo:
        validate_expense_payload({"description": "Book", "category": "Education", "amount": amount})
    assert _fields(excinfo) == {"amount": "Amount must be a number"}


@pytest.mark.parametrize("description", ["", "   ", None])
def test_missing_description(description):
    with pytest.raises(FieldValidationError) as excinfo:
        validate_expense_payload({"description": description, "category": "Other", "amount": 1})
    assert _fields(excinfo) == {"description": "Description is required"}


def test_description_length_counts_after_trim():
    expense_in = validate_expense_payload({"description": " " + "a" * 200 + " ", "category": "Other", "amount": 1})
    assert len(expense_in.description) == 200

    with pytest.raises(FieldValidationError) as excinfo:
        validate_expense_payload({"description": "a" * 201, "category": "Other", "amount": 1})
    assert _fields(excinfo) == {"description": "Description cannot exceed 200 characters"}


def test_category_is_case_sensitive():
    with pytest.raises(FieldValidationError) as excinfo:
        validate_expense_payload({"description": "Snacks", "category": "food", "amount": 1})
    assert _fields(excinfo) == {"category": "Invalid category"}


def test_every_listed_category_is_accepted():
    for category in CATEGORIES:
        assert validate_expense_payload({"description": "x", "category": category, "amount": 1}).category == category


@pytest.mark.parametrize(
    "date",
    ["01/02/2024", "not a date", "-2024-01-01", 1717200000, "0001-01-01T00:00:00+01:00", "9999-12-31T23:59:59-01:00"],
)
def test_invalid_date(date):
    with pytest.raises(FieldValidationError) as excinfo:
        validate_expense_payload({"description": "x", "category": "Other", "amount": 1, "date": date})
    assert _fields(excinfo) == {"date": "Date must be in valid ISO 8601 format"}


def test_errors_are_accumulated():
    with pytest.raises(FieldValidationError) as excinfo:
        validate_expense_payload({"description": "", "category": "Pets", "amount": -5})
    assert _fields(excinfo) == {
        "description": "Description is required",
        "category": "Invalid category",
        "amount": "Amount must be a positive number",
    }


def test_record_round_trips_through_document():
    record = Expense(
        date=datetime(2024, 6, 1, 12, 30, 15, 123456),
        description="Dinner",
        category="Food",
        amount=30,
    )
    document = record.to_document()
    assert "_id" not in document
    assert document["date"] == datetime(2024, 6, 1, 12, 30, 15, 123000)

    document["_id"] = "665b2d0f6f1c2a3b4c5d6e7f"
    restored = Expense.from_document(document)
    assert restored.id == "665b2d0f6f1c2a3b4c5d6e7f"
    assert restored.date == datetime(2024, 6, 1, 12, 30, 15, 123000, tzinfo=timezone.utc)


@pytest.mark.parametrize("amount, expected", [("12", 12.0), ("+3.5", 3.5), (".75", 0.75), ("-0", 0.0)])
def test_plain_decimal_strings_are_amounts(amount, expected):
    expense_in = validate_expense_payload({"description": "x", "category": "Other", "amount": amount})
    assert expense_in.amount == expected


def test_numeric_description_is_taken_as_text():
    assert validate_expense_payload({"description": 42, "category": "Other", "amount": 1}).description == "42"


@pytest.mark.parametrize("description", [["Coffee"], {"text": "Coffee"}, True])
def test_non_text_description(description):
    with pytest.raises(FieldValidationError) as excinfo:
        validate_expense_payload({"description": description, "category": "Other", "amount": 1})
    assert _fields(excinfo) == {"description": "Description must be text"}
