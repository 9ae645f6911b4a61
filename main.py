"""Main FastAPI application"""
import os
import logging
import logging.config
from datetime import datetime, timezone
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from dotenv import load_dotenv
from starlette.middleware.base import BaseHTTPMiddleware

from routes import router as api_router
from services import expenses_service
from utils.errors import ExpenseAPIError, register_error_handlers

# --- Unified Logging Configuration with Rich ---
LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(name)s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "default": {
            "class": "rich.logging.RichHandler",
            "formatter": "default",
            "level": "DEBUG",
            "rich_tracebacks": True,
            "show_time": True,
            "show_path": False,
            "log_time_format": "%Y-%m-%d %H:%M:%S",
            "markup": False,
        },
    },
    "loggers": {
        "uvicorn": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "uvicorn.error": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "uvicorn.access": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "": { # Root logger for our application
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
    },
}

logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(__name__)

load_dotenv() # Searches for .env in current dir and parents

PORT = int(os.getenv("PORT", "5000"))
FRONTEND_URL = os.getenv("FRONTEND_URL", "*")
APP_ENV = os.getenv("APP_ENV", "development")
MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "expense_tracker")
MAX_BODY_SIZE = int(os.getenv("MAX_BODY_SIZE", str(10 * 1024 * 1024)))  # 10MB
API_VERSION = "1.0.0"

# --- Middleware for Request Body Size Limit ---
class LimitBodySizeMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_body_size: int = MAX_BODY_SIZE):
        super().__init__(app)
        self.max_body_size = max_body_size

    async def dispatch(self, request: Request, call_next):
        content_length_header = request.headers.get("content-length")
        if content_length_header:
            try:
                content_length = int(content_length_header)
            except ValueError:
                logger.warning("Request rejected: Invalid Content-Length header.")
                return JSONResponse({"success": False, "message": "Invalid Content-Length header."}, status_code=400)
            if content_length > self.max_body_size:
                logger.warning(f"Request rejected: body size {content_length} exceeds limit {self.max_body_size}.")
                return JSONResponse(
                    {"success": False, "message": f"Request body exceeds the {self.max_body_size / (1024*1024):.1f} MB limit."},
                    status_code=413,
                )
        return await call_next(request)

# --- Middleware for Request Logging (development mode) ---
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        logger.info(f"{request.method} {request.url.path} - {datetime.now(timezone.utc).isoformat()}")
        return await call_next(request)


def create_app(
    collection: Optional[AsyncIOMotorCollection] = None,
    app_env: str = APP_ENV,
    max_body_size: int = MAX_BODY_SIZE,
    frontend_url: str = FRONTEND_URL,
) -> FastAPI:
    """
    Builds the application.

    When ``collection`` is given it is used as the expense store and no
    MongoDB connection is opened; otherwise the lifespan hook connects to
    ``MONGODB_URI``.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = None
        if app.state.expenses_collection is None:
            logger.info(f"Connecting to MongoDB at {MONGODB_URI}...")
            try:
                client = AsyncIOMotorClient(MONGODB_URI, serverSelectionTimeoutMS=5000)
                await client.admin.command('ping')
                app.state.expenses_collection = client[DB_NAME].get_collection("expenses")
                logger.info(f"Successfully connected to MongoDB database: {DB_NAME}")
            except Exception as e:
                # Keep serving; expense routes answer 503 until the database is reachable
                logger.error(f"Failed to connect to MongoDB: {e}")
                if client is not None:
                    client.close()
                    client = None

        if app.state.expenses_collection is not None:
            try:
                await expenses_service.ensure_indexes(app.state.expenses_collection)
            except ExpenseAPIError as e:
                logger.warning(f"Could not ensure indexes: {e}")

        yield # Application runs here

        if client is not None:
            logger.info("Closing MongoDB connection...")
            client.close()
            logger.info("MongoDB connection closed.")

    app = FastAPI(
        title="Expense Tracker API",
        description="API for tracking personal expenses.",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.expenses_collection = collection

    register_error_handlers(app)

    app.add_middleware(LimitBodySizeMiddleware, max_body_size=max_body_size)
    if app_env == "development":
        app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api", tags=["expenses"])

    @app.get("/api/health", tags=["meta"])
    async def health():
        return {
            "success": True,
            "message": "Expense Tracker API is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/", tags=["meta"])
    async def root():
        return {
            "success": True,
            "message": "Welcome to the Expense Tracker API",
            "version": API_VERSION,
            "endpoints": {
                "GET /api/health": "Health check",
                "GET /api/expenses": "Get all expenses",
                "POST /api/expenses": "Create new expense",
                "PUT /api/expenses/:id": "Update expense by ID",
                "DELETE /api/expenses/:id": "Delete expense by ID",
            },
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    logger.info(f"Server running in {APP_ENV} mode on port {PORT}")
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=PORT,
        reload=APP_ENV == "development",
        log_config=LOGGING_CONFIG,
    )
