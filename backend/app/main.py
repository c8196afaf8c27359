"""TaxMate — FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.billing import router as billing_router
from app.api.v1.forms import router as forms_router
from app.api.v1.webhooks import router as webhooks_router
from app.billing.stripe_client import BillingClient
from app.config import settings
from app.database import build_engine, build_session_factory
from app.services.form_worker import FormWorkerClient

# Configure root logger so all app.* loggers output to stderr (captured by the platform).
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build process-scoped collaborators on startup, dispose them on shutdown."""
    engine = build_engine(settings.async_database_url, echo=settings.debug)
    app.state.session_factory = build_session_factory(engine)

    app.state.billing_client = (
        BillingClient(settings.stripe_secret_key) if settings.stripe_secret_key else None
    )
    if app.state.billing_client is None:
        logger.warning("STRIPE_SECRET_KEY not set; checkout endpoints will answer 503")

    app.state.form_worker = (
        FormWorkerClient(
            settings.form_worker_url,
            settings.form_worker_token,
            timeout=settings.form_worker_timeout_seconds,
        )
        if settings.form_worker_url
        else None
    )
    if app.state.form_worker is None:
        logger.warning("FORM_WORKER_URL not set; form generation will answer 503")

    yield

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Expense tracking, Stripe subscriptions and IRS form generation for freelancers.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(billing_router)
app.include_router(forms_router)
app.include_router(webhooks_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port)
