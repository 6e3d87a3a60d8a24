"""Pytest configuration and fixtures for StockIT tests.

Provides an in-memory database per test, a temp-file permissions
document, a recording email sender and a batcher whose timers are
fired by hand.
"""

import os

# Settings are read at import time; configure before importing stockit
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOW_STOCK_CHECK_ENABLED"] = "false"
os.environ["SMTP_HOST"] = ""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stockit.auth.jwt import token_service
from stockit.auth.password import hash_password
from stockit.auth.permissions import resolve_user_access
from stockit.database import Base, get_db
from stockit.main import app
from stockit.models.item import Item
from stockit.models.organization import Organization
from stockit.models.store import Store, StoreRole, UserStoreAccess
from stockit.models.user import User, UserRole
from stockit.routers.auth import build_session_claims
from stockit.services.email import EmailSender, get_email_sender
from stockit.services.notifications import UpdateNotificationBatcher, get_update_batcher
from stockit.services.permissions_store import (
    FilePermissionsRepository,
    get_permissions_repository,
)

TEST_PASSWORD = "testpassword123"


# ── Collaborator fakes ───────────────────────────────────────────

class RecordingEmailSender(EmailSender):
    """Collects messages instead of delivering them."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail = False

    async def send(self, recipients, subject, html_body, text_body=None, attachments=None):
        if self.fail:
            raise RuntimeError("SMTP unavailable")
        self.sent.append({
            "recipients": list(recipients),
            "subject": subject,
            "html": html_body,
            "text": text_body,
        })


class ManualHandle:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Batcher scheduler that records timers instead of arming them."""

    def __init__(self):
        self.handles: list[ManualHandle] = []

    def __call__(self, delay, callback):
        handle = ManualHandle(delay, callback)
        self.handles.append(handle)
        return handle

    def fire_pending(self):
        for handle in list(self.handles):
            if not handle.cancelled:
                handle.callback()


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── Collaborators ────────────────────────────────────────────────

@pytest.fixture
def permissions_repo(tmp_path) -> FilePermissionsRepository:
    return FilePermissionsRepository(tmp_path / "config" / "permissions.json")


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def batcher(permissions_repo, email_sender, scheduler, db_session) -> UpdateNotificationBatcher:
    async def store_name(store_id):
        store = await db_session.get(Store, store_id)
        return store.name if store else None

    return UpdateNotificationBatcher(
        permissions=permissions_repo,
        sender=email_sender,
        window_seconds=120,
        store_name_resolver=store_name,
        scheduler=scheduler,
    )


@pytest_asyncio.fixture
async def client(
    db_session, permissions_repo, email_sender, batcher
) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the database and collaborators overridden."""

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_permissions_repository] = lambda: permissions_repo
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    app.dependency_overrides[get_update_batcher] = lambda: batcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def organization(db_session: AsyncSession) -> Organization:
    org = Organization(name="Acme Foods", admin_email="owner@example.com")
    db_session.add(org)
    await db_session.commit()
    return org


@pytest_asyncio.fixture
async def other_organization(db_session: AsyncSession) -> Organization:
    org = Organization(name="Rival Foods")
    db_session.add(org)
    await db_session.commit()
    return org


@pytest_asyncio.fixture
async def store_a(db_session: AsyncSession, organization: Organization) -> Store:
    store = Store(name="Civic", organization_id=organization.id)
    db_session.add(store)
    await db_session.commit()
    return store


@pytest_asyncio.fixture
async def store_b(db_session: AsyncSession, organization: Organization) -> Store:
    store = Store(name="Belconnen", organization_id=organization.id)
    db_session.add(store)
    await db_session.commit()
    return store


@pytest_asyncio.fixture
async def other_store(db_session: AsyncSession, other_organization: Organization) -> Store:
    store = Store(name="Rival Central", organization_id=other_organization.id)
    db_session.add(store)
    await db_session.commit()
    return store


@pytest_asyncio.fixture
async def item(db_session: AsyncSession, store_a: Store) -> Item:
    """Milk in store A; Monday requires 5, Tuesday 3."""
    item = Item(
        name="Milk",
        category="Dairy",
        quantity=2,
        monday_required=5,
        tuesday_required=3,
        store_id=store_a.id,
        organization_id=store_a.organization_id,
    )
    db_session.add(item)
    await db_session.commit()
    return item


async def _create_user(
    db: AsyncSession,
    email: str,
    role: UserRole,
    organization: Organization | None,
    store_rows: list[tuple[Store, StoreRole]] = (),
) -> User:
    user = User(
        email=email,
        hashed_password=hash_password(TEST_PASSWORD),
        role=role,
        organization_id=organization.id if organization else None,
    )
    db.add(user)
    await db.flush()
    for store, store_role in store_rows:
        db.add(UserStoreAccess(
            user_id=user.id,
            store_id=store.id,
            organization_id=store.organization_id,
            store_role=store_role,
        ))
    await db.commit()
    return user


@pytest_asyncio.fixture
async def admin_user(db_session, organization) -> User:
    return await _create_user(db_session, "admin@example.com", UserRole.ADMIN, organization)


@pytest_asyncio.fixture
async def store_user(db_session, organization, store_a) -> User:
    """STORE role with a STORE row for store A (quantity-only edits)."""
    return await _create_user(
        db_session, "clerk@example.com", UserRole.STORE, organization,
        [(store_a, StoreRole.STORE)],
    )


@pytest_asyncio.fixture
async def manager_user(db_session, organization, store_a) -> User:
    """STORE role with a MANAGER row for store A (full edits)."""
    return await _create_user(
        db_session, "lead@example.com", UserRole.STORE, organization,
        [(store_a, StoreRole.MANAGER)],
    )


@pytest_asyncio.fixture
async def unassigned_user(db_session, organization) -> User:
    """STORE role with no store assignment at all."""
    return await _create_user(db_session, "nobody@example.com", UserRole.STORE, organization)


@pytest.fixture
def headers_for(db_session, permissions_repo):
    """Build bearer headers for a user, resolving access as login does."""

    async def _headers(user: User) -> dict:
        access = await resolve_user_access(db_session, user, permissions_repo)
        org = (
            await db_session.get(Organization, user.organization_id)
            if user.organization_id
            else None
        )
        claims = build_session_claims(user, access, org.name if org else None)
        return {"Authorization": f"Bearer {token_service.issue_session_token(claims)}"}

    return _headers


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "auth: Authentication and authorization tests")
    config.addinivalue_line("markers", "notifications: Email notification tests")
