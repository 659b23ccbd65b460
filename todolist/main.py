# main.py — Todo API application
# Features:
# - Request correlation IDs and per-request timing logs
# - Security headers
# - Uniform success/error envelopes for every failure kind
# - Background cleanup of the token revocation list
# - Health check with DB verification
# - Optional OpenTelemetry tracing

import asyncio
import contextlib
import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from todolist import config
from todolist.auth import token_service
from todolist.database import check_db, close_db, engine, get_db_session, init_db
from todolist.entities import utcnow
from todolist.errors import AppError, RepositoryError
from todolist.schemas import error_body

# Logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
)
logger = logging.getLogger("todolist")


async def _revocation_cleanup_loop():
    """Drop revocation entries older than the longest token lifetime."""
    while True:
        await asyncio.sleep(config.REVOCATION_CLEANUP_INTERVAL_SECONDS)
        token_service.cleanup_revoked_tokens(utcnow() - token_service.refresh_ttl)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {config.APP_NAME} v{config.APP_VERSION} ({config.ENVIRONMENT})")
    await init_db()
    if config.OTEL_ENABLED:
        from todolist.telemetry import setup_telemetry
        setup_telemetry(app, engine)
    cleanup = asyncio.create_task(_revocation_cleanup_loop())
    yield
    logger.info(f"Shutting down {config.APP_NAME}...")
    cleanup.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await cleanup
    await close_db()


app = FastAPI(
    title=config.APP_NAME,
    description=config.APP_DESCRIPTION,
    version=config.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ============================================================
# CORS
# ============================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID", "X-Correlation-ID"],
    expose_headers=[
        "X-Request-ID", "X-Correlation-ID",
        "X-Total-Count", "X-Total-Pages", "X-Current-Page", "X-Page-Size",
    ],
)


# ============================================================
# MIDDLEWARE: Correlation IDs + Timing
# ============================================================

@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    correlation_id = request.headers.get("X-Correlation-ID", request_id)
    request.state.request_id = request_id
    request.state.correlation_id = correlation_id

    start = time.perf_counter()
    response = await call_next(request)
    duration = time.perf_counter() - start

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Correlation-ID"] = correlation_id
    response.headers["X-Response-Time"] = f"{duration:.4f}s"

    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} "
        f"({duration:.3f}s) [rid={request_id[:8]}]"
    )
    return response


# ============================================================
# MIDDLEWARE: Security Headers
# ============================================================

@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Cache-Control"] = "no-store"
    return response


# ============================================================
# EXCEPTION HANDLERS
# ============================================================

HTTP_STATUS_CODES = {
    400: "INVALID_REQUEST",
    401: "UNAUTHENTICATED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}


def _error_response(request: Request, status_code: int, body: dict) -> JSONResponse:
    body["request_id"] = getattr(request.state, "request_id", None)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return _error_response(request, exc.status_code, error_body(exc.code, exc.message, exc.details))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", []) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc), "message": str(err.get("msg", ""))})

    details = {"errors": errors}
    if len(errors) == 1:
        details["field"] = errors[0]["field"]
    return _error_response(request, 400, error_body("VALIDATION_ERROR", "request validation failed", details))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = HTTP_STATUS_CODES.get(exc.status_code, "INTERNAL_ERROR" if exc.status_code >= 500 else "INVALID_REQUEST")
    return _error_response(request, exc.status_code, error_body(code, str(exc.detail)))


@app.exception_handler(RepositoryError)
async def repository_error_handler(request: Request, exc: RepositoryError):
    logger.error(f"Repository failure: {exc}", exc_info=True)
    return _error_response(request, 500, error_body("INTERNAL_ERROR", "internal server error"))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return _error_response(request, 500, error_body("INTERNAL_ERROR", "internal server error"))


# ============================================================
# ROUTERS
# ============================================================

from todolist.routers import admin, auth, people, todos  # noqa: E402

app.include_router(auth.router)
app.include_router(todos.router)
app.include_router(people.router)
app.include_router(admin.router)


# ============================================================
# HEALTH & ROOT
# ============================================================

@app.get("/health")
@app.get("/api/v1/health")
async def health_check(db: AsyncSession = Depends(get_db_session)):
    """Health check with database connectivity verification"""
    try:
        await check_db(db)
        db_status = "connected"
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Health check could not reach the database: {e}")
        db_status = f"error: {str(e)[:100]}"

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "app": config.APP_NAME,
        "version": config.APP_VERSION,
        "database": db_status,
    }


@app.get("/")
async def root():
    return {
        "name": config.APP_NAME,
        "version": config.APP_VERSION,
        "environment": config.ENVIRONMENT,
        "docs": "/docs",
        "health": "/health",
    }


def run():
    import uvicorn
    uvicorn.run(
        "todolist.main:app",
        host="0.0.0.0",
        port=config.PORT,
        workers=config.WORKERS,
        timeout_graceful_shutdown=config.GRACEFUL_SHUTDOWN_SECONDS,
    )


if __name__ == "__main__":
    run()
