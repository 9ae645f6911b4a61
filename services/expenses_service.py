"""Service layer for storing and querying expenses in MongoDB."""
import logging
from typing import Any, List

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection # Type hint for collection
from pydantic import ValidationError
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError
from pymongo.errors import OperationFailure

from models.expense import Expense, ExpenseIn, utc_now
from services.query_builder import ExpenseQuery
from utils.errors import (
    DuplicateKeyError,
    ExpenseAPIError,
    ExpenseNotFoundError,
    FieldValidationError,
    InvalidIdError,
    ServerError,
)

logger = logging.getLogger(__name__)

# MongoDB server code for a document rejected by collection validation rules
DOCUMENT_VALIDATION_FAILURE = 121


def to_object_id(expense_id: str) -> ObjectId:
    """Parses a path id into an ObjectId, raising InvalidIdError when malformed."""
    try:
        return ObjectId(expense_id)
    except (InvalidId, TypeError) as e:
        logger.warning(f"Malformed expense id: {expense_id!r}")
        raise InvalidIdError() from e


def _validated_record(**fields: Any) -> Expense:
    """Checks the fields against the stored-record schema before they are written."""
    try:
        return Expense(**fields)
    except ValidationError as e:
        logger.warning(f"Document failed schema validation: {e}")
        raise FieldValidationError.from_pydantic(e) from e


def _store_failure(exc: Exception, action: str) -> ExpenseAPIError:
    """Classifies a driver exception into the API error taxonomy."""
    if isinstance(exc, MongoDuplicateKeyError):
        logger.warning(f"Duplicate key while {action}: {exc}")
        return DuplicateKeyError()
    # findAndModify reports this as a command failure, inserts as a WriteError subclass
    if isinstance(exc, OperationFailure) and exc.code == DOCUMENT_VALIDATION_FAILURE:
        logger.warning(f"Server-side document validation failed while {action}: {exc}")
        return FieldValidationError([{"field": "document", "message": "Document failed validation"}])
    logger.error(f"Database error while {action}: {exc}")
    return ServerError(str(exc))


# --- Database Interaction Functions (Depend on collection passed from route) ---

async def ensure_indexes(collection: AsyncIOMotorCollection) -> None:
    """Creates the date and category indexes used by the listing queries."""
    try:
        await collection.create_index([("date", DESCENDING)])
        await collection.create_index([("category", ASCENDING)])
    except Exception as e:
        raise _store_failure(e, "creating indexes") from e
    logger.info(f"Indexes ensured on collection '{collection.name}'.")


async def list_expenses(collection: AsyncIOMotorCollection, query: ExpenseQuery) -> List[Expense]:
    """Fetches the expenses matching the query filter, in the query's sort order."""
    logger.info(f"Fetching expenses from collection '{collection.name}' with filter {query.filter}, sort {query.sort}...")
    expenses = []
    try:
        cursor = collection.find(query.filter, sort=query.sort)
        async for doc in cursor:
            try:
                expenses.append(Expense.from_document(doc))
            except ValidationError as e:
                logger.error(f"Data validation error for document ID {doc.get('_id', 'N/A')}: {e}")
                # Skip invalid documents
                continue
    except Exception as e:
        raise _store_failure(e, "fetching expenses") from e
    logger.info(f"Fetched {len(expenses)} expenses successfully.")
    return expenses


async def create_expense(collection: AsyncIOMotorCollection, payload: ExpenseIn) -> Expense:
    """Inserts a new expense. The date defaults to the current time."""
    now = utc_now()
    record = _validated_record(
        date=payload.date or now,
        description=payload.description,
        category=payload.category,
        amount=payload.amount,
        created_at=now,
        updated_at=now,
    )
    try:
        result = await collection.insert_one(record.to_document())
    except Exception as e:
        raise _store_failure(e, "creating expense") from e
    record.id = str(result.inserted_id)
    logger.info(f"Created expense {record.id} ({record.category}, {record.amount}).")
    return record


async def update_expense(collection: AsyncIOMotorCollection, expense_id: str, payload: ExpenseIn) -> Expense:
    """
    Replaces the mutable fields of an expense in a single atomic call.

    When the payload carries no date the stored one is kept. Raises
    ExpenseNotFoundError when no document has the given id.
    """
    object_id = to_object_id(expense_id)
    now = utc_now()
    record = _validated_record(
        date=payload.date or now,
        description=payload.description,
        category=payload.category,
        amount=payload.amount,
        updated_at=now,
    )
    changes = record.to_document()
    if payload.date is None:
        del changes["date"]

    try:
        doc = await collection.find_one_and_update(
            {"_id": object_id},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
    except Exception as e:
        raise _store_failure(e, f"updating expense {expense_id}") from e
    if doc is None:
        logger.warning(f"Update requested for missing expense {expense_id}.")
        raise ExpenseNotFoundError()

    logger.info(f"Updated expense {expense_id}.")
    try:
        return Expense.from_document(doc)
    except ValidationError as e:
        raise ServerError(f"Stored expense {expense_id} is invalid: {e}") from e


async def delete_expense(collection: AsyncIOMotorCollection, expense_id: str) -> None:
    """Hard-deletes an expense. Raises ExpenseNotFoundError when it does not exist."""
    object_id = to_object_id(expense_id)
    try:
        doc = await collection.find_one_and_delete({"_id": object_id})
    except Exception as e:
        raise _store_failure(e, f"deleting expense {expense_id}") from e
    if doc is None:
        logger.warning(f"Delete requested for missing expense {expense_id}.")
        raise ExpenseNotFoundError()
    logger.info(f"Deleted expense {expense_id}.")
