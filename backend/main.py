"""
Storefront Order Service — FastAPI Application

Payment intents, Stripe webhook fulfilment, order persistence with backend
fallback, and the admin order API.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from domain.errors import DomainError
from routes import admin, auth, health, payments, webhook

# ── Logging ─────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: validate settings, create tables, resolve storage. Shutdown: stop the thread pool."""
    settings.validate_production_settings()

    # An unreachable database is not fatal: the fallback store serves from memory
    from database import init_db
    app.state.database_ready = await init_db()

    # Backends are chosen once per process
    from services.notification_service import build_notifier
    from services.order_storage import resolve_order_repository
    app.state.order_repository = resolve_order_repository(settings)
    app.state.notifier = build_notifier(settings)

    mode = "TEST (simulated payments)" if settings.stripe_test_mode else "LIVE"
    logger.info(f"Stripe gateway mode: {mode}")

    yield  # app runs here

    from services.async_executor import shutdown_executor
    shutdown_executor()

    logger.info("Shutting down")


# ── App Factory ─────────────────────────────────────────────────────

app = FastAPI(
    title="Storefront Order Service API",
    description="Stripe checkout, webhook-driven order recording and admin order management",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routes ──────────────────────────────────────────────────────────

app.include_router(health.router)
app.include_router(payments.router)
app.include_router(webhook.router)
app.include_router(auth.router)
app.include_router(admin.router)

# ── Exception Handler ───────────────────────────────────────────────


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Catch-all for unhandled exceptions.

    Never return raw exception details to clients.
    The full traceback is logged server-side for debugging.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return _error_response(500, "internal_server_error", "Internal server error")


def _error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message, "details": details},
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """
    Standardize HTTPException responses for storefront and admin consumers.

    Keeps the original HTTP status code, but wraps the payload.
    """
    if isinstance(exc, DomainError):
        # InvalidStatusError → "invalidstatus"
        code = exc.__class__.__name__.replace("Error", "").lower()
        if exc.status_code >= 500:
            logger.error(f"{code} on {request.url.path}: {exc.message}")
        return _error_response(exc.status_code, code, exc.message, exc.details)

    detail = exc.detail
    if isinstance(detail, str):
        return _error_response(exc.status_code, "http_error", detail)
    return _error_response(exc.status_code, "http_error", "Request failed", detail)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc: RequestValidationError):
    """Malformed JSON bodies and query params use the same envelope (422)."""
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg")}
        for e in exc.errors()
    ]
    return _error_response(422, "request_validation", "Invalid request", {"errors": errors})


# ── Entrypoint ──────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    import os
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
