from __future__ import annotations

from datetime import datetime

import pytest
from pymongo import ASCENDING, DESCENDING

from services.query_builder import build_expense_query
from utils.errors import FieldValidationError


def test_defaults_to_everything_newest_first():
    query = build_expense_query()
    assert query.filter == {}
    assert query.sort == [("date", DESCENDING)]


def test_category_and_date_range_are_combined():
    query = build_expense_query(
        category="Travel",
        start_date="2024-01-01",
        end_date="2024-01-31T23:59:59Z",
        sort_by="amount",
        order="asc",
    )
    assert query.filter == {
        "category": "Travel",
        "date": {"$gte": datetime(2024, 1, 1), "$lte": datetime(2024, 1, 31, 23, 59, 59)},
    }
    assert query.sort == [("amount", ASCENDING)]


def test_single_bound():
    assert build_expense_query(end_date="2024-02-01").filter == {"date": {"$lte": datetime(2024, 2, 1)}}


def test_empty_parameters_are_ignored():
    query = build_expense_query(category="", start_date="", end_date="", sort_by="", order="")
    assert query.filter == {}
    assert query.sort == [("date", DESCENDING)]


@pytest.mark.parametrize("order", ["DESC", "ascending", None, "1"])
def test_anything_but_asc_sorts_descending(order):
    assert build_expense_query(order=order).sort == [("date", DESCENDING)]


def test_id_sort_uses_store_key():
    assert build_expense_query(sort_by="id", order="asc").sort == [("_id", ASCENDING)]


def test_unknown_sort_field_passes_through():
    assert build_expense_query(sort_by="colour").sort == [("colour", DESCENDING)]


def test_bad_bounds_are_reported_together():
    with pytest.raises(FieldValidationError) as excinfo:
        build_expense_query(start_date="tomorrow", end_date="2024-13-45")
    assert [e["field"] for e in excinfo.value.errors] == ["startDate", "endDate"]


def test_bound_outside_the_calendar_is_a_field_error():
    with pytest.raises(FieldValidationError) as excinfo:
        build_expense_query(start_date="0001-01-01T00:00:00+01:00")
    assert excinfo.value.errors == [{"field": "startDate", "message": "startDate must be in valid ISO 8601 format"}]
