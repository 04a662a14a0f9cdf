"""Shared pytest fixtures for the Warehouse Admin API test suite.

Provides:
- In-memory async SQLite database (one connection, shared by every session)
- AsyncSession factory
- FastAPI test client (httpx.AsyncClient)
- Pre-seeded warehouses, roles, users, tally cards and entries
- Auth helpers (JWT tokens, AuthorizationContext per seeded user)
"""

import os
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import AsyncGenerator, Callable
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")

from db.base import Base  # noqa: E402
from core.security import create_access_token  # noqa: E402


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    # Import all models so Base.metadata knows about them
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a DB session for tests that talk to the access layer directly."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def app(db_engine, session_factory):
    """Create a FastAPI app instance wired to the test database."""
    # Patch the database module to use our test engine
    import db.database as db_mod
    original_engine = db_mod.engine
    original_session = db_mod.AsyncSessionLocal

    db_mod.engine = db_engine
    db_mod.AsyncSessionLocal = session_factory

    from app.main import create_app
    test_app = create_app()

    yield test_app

    # Restore originals
    db_mod.engine = original_engine
    db_mod.AsyncSessionLocal = original_session


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Test data fixtures
# ---------------------------------------------------------------------------

def _id() -> str:
    return str(uuid4())


@pytest_asyncio.fixture
async def seed(session_factory) -> SimpleNamespace:
    """Seed a small warehouse estate and return the ids by name.

    - WH1, WH2, WH3 active; WH4 inactive
    - admin: global visibility plus every bypass permission
    - auditor: WH1 + WH2, may read every user's entries
    - clerk / clerk2: WH1 only
    - unbound: a role with no warehouse bindings and no global flag
    - inactive: a deactivated user
    """
    from db.models import (
        Permission,
        Role,
        TallyCard,
        TallyCardEntry,
        TallyCardHistory,
        User,
        Warehouse,
        WarehouseLocation,
    )

    warehouses = {
        code: Warehouse(id=_id(), code=code, name=f"Warehouse {code}", is_active=code != "WH4")
        for code in ("WH1", "WH2", "WH3", "WH4")
    }
    permissions = {
        code: Permission(id=_id(), code=code, description=code)
        for code in ("entries:read:any", "admin:read:any", "admin:write:any")
    }
    roles = {
        "admin": Role(
            id=_id(),
            name="admin",
            can_see_all_warehouses=True,
            permissions=list(permissions.values()),
        ),
        "auditor": Role(
            id=_id(),
            name="auditor",
            description="Reads everyone's entries",
            permissions=[permissions["entries:read:any"]],
            warehouses=[warehouses["WH1"], warehouses["WH2"], warehouses["WH4"]],
        ),
        "clerk": Role(id=_id(), name="clerk", warehouses=[warehouses["WH1"]]),
        "unbound": Role(id=_id(), name="unbound"),
        "retired": Role(
            id=_id(),
            name="retired",
            can_see_all_warehouses=True,
            is_active=False,
        ),
    }
    users = {
        "admin": User(id=_id(), email="admin@example.com", roles=[roles["admin"]]),
        "auditor": User(id=_id(), email="auditor@example.com", roles=[roles["auditor"]]),
        "clerk": User(id=_id(), email="clerk@example.com", roles=[roles["clerk"], roles["retired"]]),
        "clerk2": User(id=_id(), email="clerk2@example.com", roles=[roles["clerk"]]),
        "unbound": User(id=_id(), email="unbound@example.com", roles=[roles["unbound"]]),
        "inactive": User(id=_id(), email="inactive@example.com", is_active=False, roles=[roles["admin"]]),
    }
    cards = {
        "TC-1": TallyCard(id=_id(), tally_card_number="TC-1", warehouse="WH1", item_number=501, note="Bolts"),
        "TC-2": TallyCard(id=_id(), tally_card_number="TC-2", warehouse="WH1", item_number=502, is_active=False),
        "TC-3": TallyCard(id=_id(), tally_card_number="TC-3", warehouse="WH2", item_number=601, note="Pallets"),
        "TC-4": TallyCard(id=_id(), tally_card_number="TC-4", warehouse="WH3", item_number=701),
    }
    history = [
        TallyCardHistory(
            id=_id(),
            tally_card_id=cards["TC-1"].id,
            action="item_changed",
            from_item_number=500,
            to_item_number=501,
            changed_at=datetime(2024, 1, 10, tzinfo=timezone.utc),
        ),
        TallyCardHistory(
            id=_id(),
            tally_card_id=cards["TC-1"].id,
            action="note_changed",
            changed_at=datetime(2024, 3, 5, tzinfo=timezone.utc),
        ),
        TallyCardHistory(
            id=_id(),
            tally_card_id=cards["TC-3"].id,
            action="warehouse_changed",
            from_warehouse="WH1",
            to_warehouse="WH2",
            changed_at=datetime(2024, 2, 1, tzinfo=timezone.utc),
        ),
    ]
    locations = {
        "A-01": WarehouseLocation(id=_id(), warehouse_id=warehouses["WH1"].id, name="A-01", description="Rack A"),
        "B-01": WarehouseLocation(id=_id(), warehouse_id=warehouses["WH2"].id, name="B-01"),
        "C-01": WarehouseLocation(id=_id(), warehouse_id=warehouses["WH3"].id, name="C-01"),
    }

    def entry(owner: str, card: str, warehouse: str, qty: int) -> TallyCardEntry:
        return TallyCardEntry(
            id=_id(),
            user_id=users[owner].id,
            tally_card_id=cards[card].id,
            tally_card_number=card,
            warehouse_id=warehouses[warehouse].id,
            qty=qty,
            location="A-01",
        )

    entries = {
        "clerk": entry("clerk", "TC-1", "WH1", 40),
        "clerk2": entry("clerk2", "TC-1", "WH1", 5),
        "auditor": entry("auditor", "TC-3", "WH2", 12),
        "admin": entry("admin", "TC-4", "WH3", 7),
    }

    async with session_factory() as session:
        session.add_all(
            [
                *warehouses.values(),
                *permissions.values(),
                *roles.values(),
                *users.values(),
                *cards.values(),
                *history,
                *locations.values(),
                *entries.values(),
            ]
        )
        await session.commit()

    return SimpleNamespace(
        warehouses={code: w.id for code, w in warehouses.items()},
        roles={name: r.id for name, r in roles.items()},
        users={name: u.id for name, u in users.items()},
        cards={number: c.id for number, c in cards.items()},
        entries={owner: e.id for owner, e in entries.items()},
        locations={name: loc.id for name, loc in locations.items()},
    )


@pytest.fixture
def auth_headers(seed) -> Callable[[str], dict]:
    """Authorization headers for a seeded user, by name."""
    def _headers(name: str) -> dict:
        token = create_access_token(user_id=seed.users[name])
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def contexts(seed, db_session) -> dict:
    """AuthorizationContext for every active seeded user."""
    from services.authorization_service import AuthorizationService

    service = AuthorizationService(db_session)
    return {
        name: await service.build_context(user_id)
        for name, user_id in seed.users.items()
        if name != "inactive"
    }
