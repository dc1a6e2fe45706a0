"""FastAPI dependencies for database sessions, API key checks and sync services."""

import hmac
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .database import get_db as get_database_session
from .exceptions import AuthenticationError


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_database_session():
        yield session


async def require_internal_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key")
) -> None:
    """
    Reject requests without the configured internal API key.

    The comparison is constant-time. When no key is configured every request
    is rejected.

    Raises:
        AuthenticationError: If the key is missing, wrong or not configured
    """
    expected = settings.internal_api_key
    if not expected:
        raise AuthenticationError(detail="Internal API key is not configured")
    if not x_api_key or not hmac.compare_digest(x_api_key.encode(), expected.encode()):
        raise AuthenticationError()


def get_sync_orchestrator(request: Request):
    """Sync orchestrator created by the application lifespan."""
    return request.app.state.sync_orchestrator


def get_media_fetcher(request: Request):
    """Media URL prober created by the application lifespan."""
    return request.app.state.media_fetcher


InternalApiKey = Depends(require_internal_api_key)
DatabaseSession = Depends(get_db)
