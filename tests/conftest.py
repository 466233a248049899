"""
Shared fixtures: an in-memory SQLite database, a manager with one client
and campaign, a second manager, and an HTTP client bound to the app.
"""

import os
import tempfile

# Settings are read once at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="adsoptimizer-uploads-")
for name in ("OPENAI_API_KEY", "RESEND_API_KEY", "SENTRY_DSN", "GOOGLE_ADS_DEVELOPER_TOKEN"):
    os.environ.pop(name, None)

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core import database
from app.core.database import Base
from app.core.security import create_access_token, hash_password
from app.main import app
from app.models import Campaign, Client, User

PASSWORD = "password123"


def auth_headers(user: User) -> dict:
    token = create_access_token(user.id, user.email, user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def session_factory(anyio_backend, monkeypatch):
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    # get_db and get_db_context look these up on every call
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "async_session_factory", factory)

    yield factory

    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def http_client(session_factory):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def manager(db):
    user = User(
        email="manager@example.com",
        password_hash=hash_password(PASSWORD),
        name="Ana Gestora",
        role="manager",
        company="Agência Teste",
    )
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def other_manager(db):
    user = User(
        email="other@example.com",
        password_hash=hash_password(PASSWORD),
        name="Outro Gestor",
        role="manager",
    )
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def client_user(db, manager):
    user = User(
        email="cliente@example.com",
        password_hash=hash_password(PASSWORD),
        name="Maria Cliente",
        role="client",
        manager_id=manager.id,
    )
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def client_account(db, manager, client_user):
    client = Client(
        manager_id=manager.id,
        user_id=client_user.id,
        name="Maria Cliente",
        email=client_user.email,
        company="Loja Teste LTDA",
    )
    db.add(client)
    await db.commit()
    return client


@pytest.fixture
async def campaign(db, manager, client_account):
    campaign = Campaign(
        client=client_account,
        created_by_id=manager.id,
        google_campaign_id="PMAX-0001",
        name="PMax Produtos",
        status="ENABLED",
        budget_daily=100.0,
        target_roas=4.0,
    )
    db.add(campaign)
    await db.commit()
    return campaign


@pytest.fixture
async def other_campaign(db, other_manager):
    client = Client(
        manager_id=other_manager.id,
        name="Cliente Alheio",
        email="alheio@example.com",
    )
    campaign = Campaign(
        client=client,
        google_campaign_id="PMAX-9999",
        name="PMax Alheia",
        status="ENABLED",
    )
    db.add_all([client, campaign])
    await db.commit()
    return campaign


@pytest.fixture
def manager_headers(manager):
    return auth_headers(manager)


@pytest.fixture
def client_headers(client_user):
    return auth_headers(client_user)


@pytest.fixture
def other_manager_headers(other_manager):
    return auth_headers(other_manager)
