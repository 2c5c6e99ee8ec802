import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

import parley.models  # noqa: F401
from parley.db import Base, DatabaseManager, build_engine, get_db
from parley.routers.utils.dependencies import get_context_store
from parley.services.context_store import ContextStore

pytest_plugins = [
    "tests.fixtures.context_store_fixtures",
    "tests.fixtures.telegram_fixtures",
]


@pytest.fixture(scope="function")
def db_manager():
    """In-memory SQLite shared by every session (and worker thread) of one test."""
    engine = build_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    manager = DatabaseManager(engine)
    yield manager
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_manager):
    session = db_manager.session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def store(db_manager) -> ContextStore:
    return ContextStore(db_manager)


@pytest.fixture
def client(db, store):
    """Client with the database session and context store overridden."""
    from parley.main import create_app

    app = create_app(testing=True)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_context_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
