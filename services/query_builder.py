"""Builds MongoDB filter and sort specifications for the expense listing."""
import logging
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from pymongo import ASCENDING, DESCENDING

from models.expense import parse_iso_datetime
from utils.errors import FieldValidationError

logger = logging.getLogger(__name__)

DEFAULT_SORT_FIELD = 'date'
# Public field names that are stored under a different key
SORT_FIELD_ALIASES = {'id': '_id'}


class ExpenseQuery(NamedTuple):
    filter: Dict[str, Any]
    sort: List[Tuple[str, int]]


def build_expense_query(
    category: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    sort_by: Optional[str] = DEFAULT_SORT_FIELD,
    order: Optional[str] = 'desc',
) -> ExpenseQuery:
    """
    Translates listing parameters into a store query.

    The filter is the conjunction of an exact ``category`` match and an
    inclusive ``date`` range; each part is included only when its parameter
    is given. Category and sort field names are passed through unchecked.
    Any ``order`` other than ``asc`` sorts descending.
    """
    query_filter: Dict[str, Any] = {}
    if category:
        query_filter['category'] = category

    errors = []
    date_range = {}
    for param, operator, value in (('startDate', '$gte', start_date), ('endDate', '$lte', end_date)):
        if not value:
            continue
        try:
            date_range[operator] = parse_iso_datetime(value)
        except ValueError:
            errors.append({'field': param, 'message': f'{param} must be in valid ISO 8601 format'})
    if errors:
        raise FieldValidationError(errors)
    if date_range:
        query_filter['date'] = date_range

    field = sort_by or DEFAULT_SORT_FIELD
    direction = ASCENDING if order == 'asc' else DESCENDING
    sort = [(SORT_FIELD_ALIASES.get(field, field), direction)]

    logger.debug(f"Built expense query: filter={query_filter} sort={sort}")
    return ExpenseQuery(filter=query_filter, sort=sort)
