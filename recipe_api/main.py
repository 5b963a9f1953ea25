"""
RecipeShare Backend: FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() assembles middleware, exception handlers and routers;
       the lifespan connects MongoDB on startup and closes it on shutdown.
Who:   uvicorn (uvicorn recipe_api.main:app), tests (create_app()).

Application Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                     FastAPI App                         │
    │                                                         │
    │  Middleware:  RateLimit → RequestID → Logging → GZip    │
    │               → CORS                                    │
    │                                                         │
    │  Routes:      /api/recipes/...   /api/health            │
    │               /uploads/{file}                           │
    │                                                         │
    │  Errors:      RecipeShareError subclasses → envelope    │
    │               {success: false, message, errors?}        │
    └─────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:   logging → config check → storage dir → Mongo connect
               (retried) → indexes
    Shutdown:  close the Mongo client
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from recipe_api import __version__
from recipe_api.config import settings
from recipe_api.database import ensure_indexes, mongo
from recipe_api.exceptions import (
    AuthError,
    RateLimitExceededError,
    RecipeShareError,
    ValidationError,
)
from recipe_api.middleware.logging import RequestLoggingMiddleware
from recipe_api.middleware.rate_limit import RateLimitMiddleware
from recipe_api.middleware.request_id import RequestIDMiddleware, request_id_var
from recipe_api.routes import health, recipes, uploads

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once, before anything else logs.

    Format: 2024-01-15T12:00:00 [INFO] recipe_api.services.recipe_service: ...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("RecipeShare Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: tokens still verify against the dev secret locally
        logger.warning("Configuration warning: %s", str(e))

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Storage directory: %s", storage.resolve())

    db = await mongo.connect()
    await ensure_indexes(db)

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("RecipeShare Backend shutting down...")
    await mongo.close()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_response(
    status_code: int,
    message: str,
    errors: Optional[List[str]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content = {"success": False, "message": message}
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to the error envelope.

        ValidationError, BadRequestError, RequestValidationError → 400
        HTTPException (unknown route, wrong method, bad multipart) → its status
        AuthError → 401     ForbiddenError → 403     NotFoundError → 404
        ConflictError (incl. DuplicateKeyError) → 409
        RateLimitExceededError → 429
        DatabaseError, FileStorageError, anything else → 500

    Starlette picks the handler of the nearest class in the MRO, so the base
    RecipeShareError handler covers every subclass without its own handler
    and reads the status from the exception class.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        rid = request_id_var.get("")
        logger.warning("[%s] Validation error: %s %s", rid, exc.message, exc.errors)
        return error_response(exc.status_code, exc.message, exc.errors)

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        rid = request_id_var.get("")
        logger.info("[%s] Authentication failed: %s", rid, exc.message)
        return error_response(exc.status_code, exc.message, headers={"WWW-Authenticate": "Bearer"})

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return error_response(
            exc.status_code, exc.message, headers={"Retry-After": str(exc.retry_after)}
        )

    @app.exception_handler(RecipeShareError)
    async def handle_domain_error(request: Request, exc: RecipeShareError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            # Context stays in the log; the client only sees the generic message
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"] if part not in ("body", "query", "path"))
            errors.append(f"{location or 'body'}: {error['msg']}")
        logger.warning("[%s] Request validation failed: %s", request_id_var.get(""), errors)
        return error_response(400, "Validation Error", errors)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        # Unmatched routes, wrong methods and unparseable multipart bodies
        if exc.status_code == 404:
            message = "API route not found" if request.url.path.startswith("/api/") else "Route not found"
        elif exc.status_code == 405:
            message = "Method not allowed"
        else:
            message = str(exc.detail)
        return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return error_response(500, "Server Error")


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="RecipeShare API",
        description=(
            "Share, discover, rate and bookmark recipes. Public recipes can be "
            "filtered, searched and sorted; authors manage their own recipes."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Last added runs first: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    app.include_router(recipes.router)
    app.include_router(health.router)
    app.include_router(uploads.router)

    return app


app = create_app()
