"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from backoffice.api.middleware import RequestIdMiddleware
from backoffice.api.routes import api_router
from backoffice.logging_config import setup_logging
from backoffice.persistence.database import engine
from backoffice.settings import settings
from backoffice.workers import invoice_reminder_worker, sms_reconciliation_worker

# Setup logging
setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    yield
    # Shutdown
    await engine.dispose()


# Create FastAPI app
app = FastAPI(
    title="Venue Back Office API",
    description="Outbound SMS delivery tracking and invoice reminders",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestIdMiddleware)

# Include API routes
app.include_router(api_router, prefix=settings.api_v1_prefix)

# Include cron routes (called by the scheduler with the cron secret)
app.include_router(sms_reconciliation_worker.router, prefix="/api/cron", tags=["cron"])
app.include_router(invoice_reminder_worker.router, prefix="/api/cron", tags=["cron"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
