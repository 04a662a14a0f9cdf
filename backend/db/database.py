"""Async engine and session factory for the warehouse database."""

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

from app.config import get_settings

settings = get_settings()


def create_db_engine(url: str = settings.DATABASE_URL):
    """Build the async engine.

    SQLite gets no pool tuning; server databases get pre-ping and the
    configured pool bounds.
    """
    kwargs = dict(echo=settings.SQLALCHEMY_ECHO)
    if make_url(url).get_backend_name() != "sqlite":
        kwargs.update(
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )
    return create_async_engine(url, **kwargs)


def create_session_factory(engine):
    return sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def safe_url(url: str = settings.DATABASE_URL) -> str:
    """The database URL with any password masked, for logs."""
    return make_url(url).render_as_string(hide_password=True)


engine = create_db_engine()
AsyncSessionLocal = create_session_factory(engine)


async def ping() -> None:
    """Run ``SELECT 1``; raises whatever the driver raises when the database is down."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def init_db():
    """Create missing tables for every model in ``db.models``."""
    from db.base import Base
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    await engine.dispose()
