# tests/conftest.py — Shared test fixtures
import os

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ENVIRONMENT"] = "test"

from todolist import config
from todolist.auth import token_service
from todolist.database import get_db_session
from todolist.entities import Person, User
from todolist.main import app
from todolist.models import Base
from todolist.repositories.memory import (
    InMemoryPersonRepository, InMemoryStore, InMemoryTodoRepository, InMemoryUserRepository,
)
from todolist.repositories.sql import SqlPersonRepository, SqlUserRepository
from todolist.valueobjects import Password, UserRole

ALICE_PASSWORD = "S3cure!Pw"
BOB_PASSWORD = "B0bSecret!"
ADMIN_PASSWORD = "Adm1nPass!"


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'todolist.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_engine):
    """HTTP test client with overridden DB dependency"""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ============================================================
# USERS
# ============================================================

async def create_user(db_session, username, password, name, email, tax_id, role=UserRole.USER) -> User:
    person = Person.create(name, email, "+55 11 99999-0000", tax_id)
    await SqlPersonRepository(db_session).save(person)
    user = User.create(person.id, username, Password.create(password))
    if role != UserRole.USER:
        user.change_role(role)
    await SqlUserRepository(db_session).save(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session):
    """Create alice"""
    return await create_user(
        db_session, "alice", ALICE_PASSWORD, "Alice Example", "alice@todolist.dev", "529.982.247-25"
    )


@pytest_asyncio.fixture
async def other_user(db_session):
    """Create bob"""
    return await create_user(
        db_session, "bob", BOB_PASSWORD, "Bob Example", "bob@todolist.dev", "111.444.777-35"
    )


@pytest_asyncio.fixture
async def admin_user(db_session):
    """Create an administrator"""
    return await create_user(
        db_session, "root", ADMIN_PASSWORD, "Site Admin", "admin@todolist.dev", "11.222.333/0001-81",
        role=UserRole.ADMIN,
    )


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    tokens = token_service.generate_tokens(config.APP_NAME, user.id)
    return {"Authorization": f"Bearer {tokens.access_token}"}


# ============================================================
# IN-MEMORY REPOSITORIES
# ============================================================

@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def person_repo(store):
    return InMemoryPersonRepository(store)


@pytest.fixture
def user_repo(store):
    return InMemoryUserRepository(store)


@pytest.fixture
def todo_repo(store):
    return InMemoryTodoRepository(store)
