"""
Pytest configuration and fixtures.

Every test gets its own file-backed SQLite database under ``tmp_path`` with the
schema created from model metadata.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from jose import jwt
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from main import app
from app.core.config import settings
from app.db.base import Base
from app.db.database import configure_sqlite, get_db
from app.models.enums import AuthLevel, MembershipRelation, ResourceType
from app.models.resource import Resource, ResourceMembership
from app.models.user import User, UserCityAssignment
from app.services.principal_service import Identity

CITY = "berlin"
OTHER_CITY = "paris"


@pytest_asyncio.fixture
async def isolated_engine(tmp_path):
    """Provide a fresh async engine per test on its own database file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    configure_sqlite(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(isolated_engine):
    return async_sessionmaker(isolated_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def isolated_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Yield an isolated session bound to a fresh engine for DB tests."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    """Async test HTTP client for the FastAPI app, bound to the test database."""

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


def identity_for(user: User) -> Identity:
    return Identity(
        user_id=user.user_id,
        auth_level=int(user.auth_level),
        account_verified=bool(user.account_verified),
    )


def auth_headers(user: User, auth_level=None) -> dict:
    token = jwt.encode(
        {
            "sub": str(user.user_id),
            "type": "access",
            "auth_level": int(user.auth_level if auth_level is None else auth_level),
            "account_verified": bool(user.account_verified),
        },
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(isolated_session):
    counter = {"n": 0}

    async def _make(
        auth_level: AuthLevel = AuthLevel.BASE_USER,
        cities=(),
        all_city_access: bool = False,
        account_verified: bool = True,
        is_claimed: bool = True,
        instagram_handle=None,
        name=None,
    ) -> User:
        counter["n"] += 1
        username = name or f"user{counter['n']}"
        user = User(
            username=username,
            display_name=username.title(),
            email=f"{username}@example.com" if is_claimed else None,
            instagram_handle=instagram_handle,
            auth_level=auth_level,
            all_city_access=all_city_access,
            account_verified=account_verified,
            is_claimed=is_claimed,
        )
        isolated_session.add(user)
        await isolated_session.flush()
        for city_id in cities:
            isolated_session.add(UserCityAssignment(user_id=user.user_id, city_id=city_id))
        await isolated_session.flush()
        await isolated_session.refresh(user, ["city_assignments"])
        await isolated_session.commit()
        return user

    return _make


@pytest.fixture
def make_resource(isolated_session):
    async def _make(
        creator: User = None,
        resource_type: ResourceType = ResourceType.EVENT,
        city_id: str = CITY,
        parent: Resource = None,
        team=(),
        title: str = "Summer Jam",
    ) -> Resource:
        resource = Resource(
            resource_type=resource_type,
            city_id=city_id,
            parent_id=parent.resource_id if parent is not None else None,
            title=title,
        )
        isolated_session.add(resource)
        await isolated_session.flush()
        if creator is not None:
            isolated_session.add(
                ResourceMembership(
                    resource_type=resource_type,
                    resource_id=resource.resource_id,
                    user_id=creator.user_id,
                    relation=MembershipRelation.CREATOR,
                )
            )
        for member in team:
            isolated_session.add(
                ResourceMembership(
                    resource_type=resource_type,
                    resource_id=resource.resource_id,
                    user_id=member.user_id,
                    relation=MembershipRelation.TEAM_MEMBER,
                )
            )
        await isolated_session.commit()
        return resource

    return _make


@pytest_asyncio.fixture
async def admin(make_user) -> User:
    return await make_user(AuthLevel.ADMIN, name="admin")


@pytest_asyncio.fixture
async def super_admin(make_user) -> User:
    return await make_user(AuthLevel.SUPER_ADMIN, name="root")


@pytest_asyncio.fixture
async def moderator(make_user) -> User:
    return await make_user(AuthLevel.MODERATOR, cities=[CITY], name="mod")


@pytest_asyncio.fixture
async def creator(make_user) -> User:
    return await make_user(AuthLevel.CREATOR, cities=[CITY], name="creator")


@pytest_asyncio.fixture
async def base_user(make_user) -> User:
    return await make_user(AuthLevel.BASE_USER, name="dancer")


@pytest_asyncio.fixture
async def event(make_resource, creator) -> Resource:
    return await make_resource(creator=creator)


@pytest.fixture
def identity_of():
    return identity_for


@pytest.fixture
def headers_for():
    return auth_headers
