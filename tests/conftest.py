"""
Shared fixtures: every test gets its own SQLite file database.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config.config_database import Base, get_db
from main import app
from models.server import Server  # noqa: F401  registers the table on Base
from services.server_service import ServerService


def server_payload(**overrides):
    payload = {
        'name': 'web-01',
        'ip_address': '192.168.1.100',
        'provider': 'aws',
        'status': 'active',
        'cpu_cores': 4,
        'ram_mb': 8192,
        'storage_gb': 100,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'inventory.db'}",
        connect_args={"check_same_thread": False, "timeout": 30}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def service(db):
    return ServerService(db)


@pytest.fixture
def other_service(session_factory):
    """A second user's service on its own session."""
    session = session_factory()
    yield ServerService(session)
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
