"""Shared API dependencies — single import point for all routers.

Process-scoped collaborators (session factory, Stripe client, worker client)
are built by the application lifespan and stored on ``app.state``; these
providers hand them to routers so tests can swap them through
``app.dependency_overrides``::

    from app.api.deps import get_db, get_subscription_store
"""

from collections.abc import AsyncIterator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.auth.dependencies import CurrentUser, get_current_user
from app.billing.reconciler import Reconciler
from app.billing.stripe_client import BillingClient
from app.config import Settings, get_settings
from app.services.form_worker import FormWorkerClient
from app.services.subscription_store import SubscriptionStore


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Return the process-wide session factory."""
    return request.app.state.session_factory


async def get_db(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncIterator[AsyncSession]:
    """Yield an async database session, committing on success."""
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_subscription_store(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> SubscriptionStore:
    return SubscriptionStore(session_factory)


def get_reconciler(
    store: SubscriptionStore = Depends(get_subscription_store),
) -> Reconciler:
    return Reconciler(store)


def get_billing_client(request: Request) -> BillingClient:
    """Return the Stripe client, or 503 when no API key is configured."""
    client: BillingClient | None = getattr(request.app.state, "billing_client", None)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stripe not configured",
        )
    return client


def get_form_worker(request: Request) -> FormWorkerClient:
    """Return the worker client, or 503 when no worker URL is configured."""
    worker: FormWorkerClient | None = getattr(request.app.state, "form_worker", None)
    if worker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Form worker not configured",
        )
    return worker


__all__ = [
    "CurrentUser",
    "Settings",
    "get_billing_client",
    "get_current_user",
    "get_db",
    "get_form_worker",
    "get_reconciler",
    "get_session_factory",
    "get_settings",
    "get_subscription_store",
]
