"""Error taxonomy for the expense API and the handlers that render it as JSON envelopes."""
import logging
from typing import Any, Dict, Iterable, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ExpenseAPIError(Exception):
    """Base class for every failure the API reports to clients."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Server Error"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message}


class FieldValidationError(ExpenseAPIError):
    """One or more request fields violate their constraints."""
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Validation Error"

    def __init__(self, errors: List[Dict[str, str]]):
        super().__init__()
        self.errors = errors

    def __str__(self) -> str:
        return "; ".join(f"{e['field']}: {e['message']}" for e in self.errors)

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "FieldValidationError":
        return cls(field_errors(exc.errors()))

    def to_body(self) -> Dict[str, Any]:
        body = super().to_body()
        body["errors"] = self.errors
        return body


class InvalidIdError(ExpenseAPIError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid expense ID format"


class ExpenseNotFoundError(ExpenseAPIError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Expense not found"


class DuplicateKeyError(ExpenseAPIError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Duplicate field value entered"


class ServiceUnavailableError(ExpenseAPIError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Database service not available."


class ServerError(ExpenseAPIError):
    """Anything the client did not cause. The detail is echoed in the ``error`` field."""

    def __init__(self, detail: str):
        super().__init__()
        self.detail = detail

    def __str__(self) -> str:
        return self.detail

    def to_body(self) -> Dict[str, Any]:
        body = super().to_body()
        body["error"] = self.detail
        return body


def field_errors(errors: Iterable[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Flattens pydantic error dicts into ``{field, message}`` pairs, first error per field."""
    result = []
    seen = set()
    for err in errors:
        loc = tuple(err.get("loc") or ("body",))
        # Request-level locations are prefixed with their source ("body", "query", ...)
        if err.get("type") == "json_invalid":
            loc = ("body",)
        elif loc[0] in ("body", "query", "path") and len(loc) > 1:
            loc = loc[1:]
        field = ".".join(str(part) for part in loc)
        if field in seen:
            continue
        seen.add(field)
        result.append({"field": field, "message": err.get("msg", "Invalid value")})
    return result


def _original_url(request: Request) -> str:
    if request.url.query:
        return f"{request.url.path}?{request.url.query}"
    return request.url.path


# --- Exception handlers ---

async def expense_api_error_handler(request: Request, exc: ExpenseAPIError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = FieldValidationError(field_errors(exc.errors()))
    logger.warning(f"Rejected malformed request to {request.url.path}: {error}")
    return await expense_api_error_handler(request, error)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    headers = getattr(exc, "headers", None)
    status_code = exc.status_code
    # A path served only for other methods is still an unmatched route
    if status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
        status_code = status.HTTP_404_NOT_FOUND
        headers = None
        message = f"Not Found - {_original_url(request)}"
    else:
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    logger.warning(f"{request.method} {_original_url(request)} -> {status_code}: {message}")
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return await expense_api_error_handler(request, ServerError(str(exc)))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ExpenseAPIError, expense_api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
