from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from repository import TaskRepository

from .fakes import FakeDatabase, FakeGenerator


@pytest.fixture()
def settings() -> Settings:
    """Settings built explicitly so a local .env never leaks into tests."""
    return Settings(
        _env_file=None,
        DB_AUTO_INIT=True,
        LLM_API_KEY=None,
        HIERARCHY_MAX_DEPTH=64,
    )


@pytest.fixture()
def store() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture()
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture()
def repository(store: FakeDatabase) -> TaskRepository:
    return TaskRepository(store)


@pytest.fixture()
def client(settings: Settings, store: FakeDatabase, generator: FakeGenerator):
    app = create_app(settings=settings, store=store, generator=generator)
    with TestClient(app) as c:
        yield c
