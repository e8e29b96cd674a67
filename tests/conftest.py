import os

# Settings are read at import time; give the app a harmless environment first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET", "test-secret-key-for-chatline")
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")

from typing import Any, AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
from asyncstdlib import anext  # noqa: E402
from fastapi import Depends, FastAPI  # noqa: E402
from fastapi_users.db import SQLAlchemyUserDatabase  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from chatline.auth_config import get_user_manager  # noqa: E402
from chatline.db import get_db_session, get_user_db  # noqa: E402
from chatline.main import app  # noqa: E402
from chatline.models import User, metadata  # noqa: E402
from chatline.realtime.connection_manager import ConnectionManager  # noqa: E402
from chatline.realtime.relay import RealtimeRelay, get_relay  # noqa: E402
from chatline.schemas.user import UserCreate  # noqa: E402

# Use an in-memory SQLite database for testing; StaticPool keeps one shared
# connection so every session sees the same database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

DEFAULT_PASSWORD = "password123"


# Master fixture to manage table creation/dropping and provide session maker
@pytest.fixture(scope="function")
async def db_test_session_manager() -> (
    AsyncGenerator[async_sessionmaker[AsyncSession], None]
):
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


# A single session for service-level tests
@pytest.fixture(scope="function")
async def db_session(
    db_test_session_manager: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with db_test_session_manager() as session:
        yield session


# Override for the FastAPI Users DB adapter dependency
async def override_get_user_db(
    # FastAPI will provide the overridden get_db_session here.
    session: AsyncSession = Depends(get_db_session),
) -> SQLAlchemyUserDatabase[User, Any]:
    yield SQLAlchemyUserDatabase(session, User)


@pytest.fixture(scope="function")
def connection_manager() -> ConnectionManager:
    return ConnectionManager()


@pytest.fixture(scope="function")
def relay(connection_manager: ConnectionManager) -> RealtimeRelay:
    return RealtimeRelay(connection_manager)


# Fixture for the FastAPI app with overridden dependencies
@pytest.fixture(scope="function")
def test_app(
    db_test_session_manager: async_sessionmaker[AsyncSession],
    relay: RealtimeRelay,
) -> FastAPI:
    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with db_test_session_manager() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_user_db] = override_get_user_db
    app.dependency_overrides[get_relay] = lambda: relay
    yield app
    # Clean up overrides after test function finishes
    app.dependency_overrides.clear()


# Fixture for the async test client
@pytest.fixture(scope="function")
async def test_client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as client:
        yield client


# Helper function to create a user through the real UserManager (not a fixture itself)
async def create_test_user(
    session_maker: async_sessionmaker[AsyncSession],
    user_data: UserCreate,
    user_manager_dependency: Any = get_user_manager,
) -> User:
    async with session_maker() as session:
        user_manager_gen = user_manager_dependency(
            SQLAlchemyUserDatabase(session, User)
        )
        user_manager = await anext(user_manager_gen)
        try:
            user = await user_manager.create(user_data)
            await session.commit()
            await session.refresh(user)
            return user
        finally:
            await user_manager_gen.aclose()


async def login_with_cookie(client: AsyncClient, email: str, password: str) -> str:
    res = await client.post(
        "/auth/jwt/login", data={"username": email, "password": password}
    )
    assert res.status_code == 204, res.text
    # Extract the token from the cookie
    return res.headers["Set-Cookie"].split(";")[0].split("=", 1)[1]


async def login_with_bearer(client: AsyncClient, email: str, password: str) -> str:
    res = await client.post(
        "/auth/bearer/login", data={"username": email, "password": password}
    )
    assert res.status_code == 200, res.text
    return res.json()["access_token"]


# Fixture to provide an authenticated client
@pytest.fixture(scope="function")
async def authenticated_client(
    test_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    user_data = UserCreate(
        email="testuser@example.com",
        password=DEFAULT_PASSWORD,
        username="testuser",
    )
    user = await create_test_user(db_test_session_manager, user_data)
    access_token = await login_with_cookie(
        test_client, user_data.email, user_data.password
    )
    # The login response set the cookie on the client jar; keep requests explicit
    test_client.cookies.clear()
    test_client.headers["Cookie"] = f"fastapiusersauth={access_token}"
    test_client.user = user

    yield test_client

    test_client.headers.pop("Cookie", None)


# Fixture to provide the User object corresponding to the authenticated client
@pytest.fixture(scope="function")
async def logged_in_user(authenticated_client: AsyncClient) -> User:
    """Provides the User object for the default authenticated user."""
    return authenticated_client.user


# A second, independently authenticated user (bearer transport)
@pytest.fixture(scope="function")
async def other_client(
    test_app: FastAPI,
    db_test_session_manager: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    user_data = UserCreate(
        email="otheruser@example.com",
        password=DEFAULT_PASSWORD,
        username="otheruser",
    )
    user = await create_test_user(db_test_session_manager, user_data)
    async with AsyncClient(
        transport=ASGITransport(app=test_app), base_url="http://test"
    ) as client:
        token = await login_with_bearer(client, user_data.email, user_data.password)
        client.headers["Authorization"] = f"Bearer {token}"
        client.user = user
        yield client


@pytest.fixture(scope="function")
async def other_user(other_client: AsyncClient) -> User:
    return other_client.user
