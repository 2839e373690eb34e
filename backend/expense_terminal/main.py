"""ExpenseTerminal API entry point."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from expense_terminal.config import settings
from expense_terminal.core.database import async_session_factory, engine
from expense_terminal.core.exceptions import safe_error_message
from expense_terminal.core.middleware import RequestLoggingMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    logger.info("Starting ExpenseTerminal API", env=settings.app_env, provider=settings.classification_provider)
    yield
    logger.info("Shutting down ExpenseTerminal API")
    await engine.dispose()


app = FastAPI(
    title="ExpenseTerminal API",
    description="Small-business expense categorization and Schedule C tax estimates",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    redirect_slashes=False,
)

# ── Middleware ─────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


# ── Health Check ──────────────────────────────────
@app.get("/health", tags=["system"])
async def health_check():
    """Liveness probe: healthy whenever the process is up."""
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/ready", tags=["system"])
async def readiness_check():
    """Readiness probe: checks database connectivity."""
    checks = {"database": "unknown", "api": "ok"}
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
            checks["database"] = "ok"
    except (SQLAlchemyError, OSError) as e:
        logger.warning("readiness_check_failed", error=str(e)[:200])
        checks["database"] = f"error: {safe_error_message(str(e), 'unavailable')}"
        return {"status": "degraded", "checks": checks}

    return {"status": "ready", "checks": checks}


# ── API Routes ────────────────────────────────────
from expense_terminal.api.v1 import deductions, tax, transactions  # noqa: E402

app.include_router(transactions.router, prefix="/api/v1/transactions", tags=["transactions"])
app.include_router(tax.router, prefix="/api/v1/tax", tags=["tax"])
app.include_router(deductions.router, prefix="/api/v1/deductions", tags=["deductions"])
