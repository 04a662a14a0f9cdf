"""FastAPI dependency injection functions."""

from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from access.context import AuthorizationContext
from access.query import SqlAlchemyDataSource
from access.registry import ResourceRegistry
from core.security import get_current_user, TokenPayload
import db.database as database
from services.authorization_service import AuthorizationService
from services.resource_provider import ResourceProvider

logger = logging.getLogger(__name__)


async def get_db() -> AsyncSession:
    """
    Provide a database session for API endpoints.

    Yields an async SQLAlchemy session that is automatically
    committed on success or rolled back on error.
    """
    async with database.AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database error: {str(e)}")
            await session.rollback()
            raise
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_authorization_context(
    current_user: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AuthorizationContext:
    """Resolve the caller's AuthorizationContext from the bearer token."""
    return await AuthorizationService(db).build_context(current_user.sub)


def get_registry(request: Request) -> ResourceRegistry:
    """The registry built at startup and stored on ``app.state``."""
    return request.app.state.registry


def get_provider(
    registry: ResourceRegistry = Depends(get_registry),
    db: AsyncSession = Depends(get_db),
) -> ResourceProvider:
    """A ResourceProvider bound to this request's session."""
    return ResourceProvider(registry, SqlAlchemyDataSource(db))
