"""
Test fixtures: a fresh in-memory database per test, a blob store rooted in
tmp_path and HTTP clients bound to the app with both dependencies overridden.
"""
from contextlib import asynccontextmanager

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from sitemanager.database import Base, get_db
from sitemanager.main import app
from sitemanager.api.auth import get_password_hash, create_access_token
from sitemanager.models.user import User
from sitemanager.models.site import Site, Package
from sitemanager.services.storage import BlobStore, get_blob_store

TEST_EMAIL = "test@site.local"
TEST_PASSWORD = "testpass123"


@asynccontextmanager
async def app_client(db_session, store, token=None):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: store
    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
            if token:
                ac.headers["Authorization"] = f"Bearer {token}"
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def db_session():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture()
async def seed_data(db_session):
    """Admin user, two sites, and a Civil Works package on Tower A"""
    user = User(
        email=TEST_EMAIL,
        full_name="Test User",
        hashed_password=get_password_hash(TEST_PASSWORD),
        is_admin=True,
    )
    tower = Site(
        name="Tower A", client_name="Acme Realty", location="Pune",
        packages=[Package(name="Civil Works", code="CW")],
    )
    mall = Site(name="City Mall", client_name="Metro Retail", location="Mumbai")

    db_session.add_all([user, tower, mall])
    await db_session.commit()

    return {"user": user, "tower": tower, "mall": mall, "civil": tower.packages[0]}


@pytest_asyncio.fixture()
async def blob_store(tmp_path):
    return BlobStore(root=str(tmp_path / "storage"), secret_key="test-secret")


@pytest_asyncio.fixture()
async def client(db_session, seed_data, blob_store):
    """Client authenticated as the seeded admin"""
    token = create_access_token(data={"sub": seed_data["user"].email})
    async with app_client(db_session, blob_store, token) as ac:
        yield ac


@pytest_asyncio.fixture()
async def unauth_client(db_session, blob_store):
    async with app_client(db_session, blob_store) as ac:
        yield ac
