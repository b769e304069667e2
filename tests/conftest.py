# tests/conftest.py
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from approvalflow.main import app, get_repository
from approvalflow.repository import WorkflowRepository


@pytest.fixture()
def engine():
    # In-memory database shared across threads and connections:
    # "sqlite://" with StaticPool keeps ONE connection alive for the TestClient threads
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )


@pytest.fixture()
def repo(engine):
    """Clean repository per test, with the schema created."""
    r = WorkflowRepository(engine)
    r.create_schema()
    return r


@pytest.fixture()
def client(repo):
    """Test client whose endpoints use the in-memory repository."""
    app.dependency_overrides[get_repository] = lambda: repo
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
