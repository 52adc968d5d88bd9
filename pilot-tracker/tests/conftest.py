"""
Test configuration: in-memory SQLite record store, a TeamStore on top of it
and a FastAPI client wired to that store.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from models import Base
from repository import Repository
from store import TeamStore, get_store


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def repository(session_factory):
    return Repository(session_factory)


@pytest.fixture
def store(repository):
    return TeamStore(repository, debounce_seconds=0.05)


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def no_duck_webhook(monkeypatch):
    monkeypatch.setattr("alert_client.ALERT_WEBHOOK_URL_DUCK", None)
