"""Shared fixtures: an isolated SQLite store per test and a scripted
completion provider so no Ollama server is needed."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from core.config import Settings
from db.init_db import init_db
from db.session import make_engine, make_session_factory
from db.store import ChatStore
from support import FakeProvider


@pytest.fixture
def engine(tmp_path: Path):
    engine = make_engine(f"sqlite:///{tmp_path / 'chats.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def store(session_factory) -> ChatStore:
    return ChatStore(session_factory)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider(["Hi", " there", "!"])


@pytest.fixture
def client(store, provider):
    from api.main import create_app

    app = create_app(settings=Settings(), store=store, provider=provider)
    with TestClient(app) as c:
        yield c
