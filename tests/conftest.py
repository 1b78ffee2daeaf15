import pytest
from fastapi.testclient import TestClient

from kanban.db import init_db, make_engine, make_session_factory
from kanban.main import create_app
from kanban.store import TreeStore


@pytest.fixture
def sessions():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(sessions):
    return TreeStore(sessions)


@pytest.fixture
def client(store):
    return TestClient(create_app(store))
