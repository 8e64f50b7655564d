import pytest
from fastapi.testclient import TestClient

from engine.grid import Grid
from web import api


@pytest.fixture
def grid() -> Grid:
    return Grid(rows=100, cols=26, recalc_dependents=True)


@pytest.fixture
def repository():
    api.repository.reset()
    yield api.repository
    api.repository.reset()


@pytest.fixture
def client(repository) -> TestClient:
    return TestClient(api.app)
