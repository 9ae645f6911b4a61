"""API Routes for expenses"""
from fastapi import APIRouter, Body, Depends, Query, Request, status
from typing import Annotated, Any, Dict, Optional
from services import expenses_service
from services.query_builder import build_expense_query
from models.expense import validate_expense_payload
from motor.motor_asyncio import AsyncIOMotorCollection
from utils.errors import ExpenseAPIError, ServerError, ServiceUnavailableError
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

# --- Dependency Function ---
def get_expenses_collection(request: Request) -> AsyncIOMotorCollection:
    """Dependency to get the MongoDB expenses collection from the application state."""
    collection = getattr(request.app.state, "expenses_collection", None)
    if collection is None:
        logger.error("Expenses collection not found in application state. Check MongoDB connection.")
        raise ServiceUnavailableError()
    return collection

# Type hint for the dependency
ExpensesCollectionDep = Annotated[AsyncIOMotorCollection, Depends(get_expenses_collection)]
ExpensePayload = Annotated[Dict[str, Any], Body(description="Expense fields: date (optional), description, category, amount.")]

# --- API Routes ---

@router.get("/expenses", summary="Get All Expenses", description="Retrieves expense records, optionally filtered by category and date range, sorted by date descending by default.")
async def get_expenses(
    collection: ExpensesCollectionDep,
    category: Optional[str] = Query(None, description="Exact category to match."),
    start_date: Optional[str] = Query(None, alias="startDate", description="Inclusive lower bound on date (ISO 8601)."),
    end_date: Optional[str] = Query(None, alias="endDate", description="Inclusive upper bound on date (ISO 8601)."),
    sort_by: Optional[str] = Query("date", alias="sortBy", description="Field to sort by."),
    order: Optional[str] = Query("desc", description="Sort order: 'asc' or 'desc'."),
):
    logger.info(f"GET /expenses called. category={category!r} startDate={start_date!r} endDate={end_date!r} sortBy={sort_by!r} order={order!r}")
    try:
        query = build_expense_query(category, start_date, end_date, sort_by, order)
        expenses = await expenses_service.list_expenses(collection, query)
    except ExpenseAPIError as e:
        logger.error(f"Error fetching expenses: {e}")
        raise
    except Exception as e:
        logger.exception(f"Unexpected error fetching expenses: {e}")
        raise ServerError(str(e)) from e

    return {
        "success": True,
        "count": len(expenses),
        "data": [expense.to_response() for expense in expenses],
    }

@router.post("/expenses", status_code=status.HTTP_201_CREATED, summary="Create Expense", description="Validates and stores a new expense.")
async def create_expense(collection: ExpensesCollectionDep, payload: ExpensePayload):
    logger.info("POST /expenses called.")
    try:
        expense_in = validate_expense_payload(payload)
        expense = await expenses_service.create_expense(collection, expense_in)
    except ExpenseAPIError as e:
        logger.error(f"Error creating expense: {e}")
        raise
    except Exception as e:
        logger.exception(f"Unexpected error creating expense: {e}")
        raise ServerError(str(e)) from e

    return {
        "success": True,
        "message": "Expense created successfully",
        "data": expense.to_response(),
    }

@router.put("/expenses/{expense_id}", summary="Update Expense", description="Replaces the date, description, category and amount of an expense.")
async def update_expense(expense_id: str, collection: ExpensesCollectionDep, payload: ExpensePayload):
    logger.info(f"PUT /expenses/{expense_id} called.")
    try:
        expense_in = validate_expense_payload(payload)
        expense = await expenses_service.update_expense(collection, expense_id, expense_in)
    except ExpenseAPIError as e:
        logger.error(f"Error updating expense {expense_id}: {e}")
        raise
    except Exception as e:
        logger.exception(f"Unexpected error updating expense {expense_id}: {e}")
        raise ServerError(str(e)) from e

    return {
        "success": True,
        "message": "Expense updated successfully",
        "data": expense.to_response(),
    }

@router.delete("/expenses/{expense_id}", summary="Delete Expense", description="Permanently deletes an expense.")
async def delete_expense(expense_id: str, collection: ExpensesCollectionDep):
    logger.info(f"DELETE /expenses/{expense_id} called.")
    try:
        await expenses_service.delete_expense(collection, expense_id)
    except ExpenseAPIError as e:
        logger.error(f"Error deleting expense {expense_id}: {e}")
        raise
    except Exception as e:
        logger.exception(f"Unexpected error deleting expense {expense_id}: {e}")
        raise ServerError(str(e)) from e

    return {"success": True, "message": "Expense deleted successfully"}
