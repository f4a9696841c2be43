from __future__ import annotations

import asyncio
import os
import sys
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

# Must be set before importing modules that create the SQLAlchemy engine.
_RUNTIME_DIR = Path(tempfile.mkdtemp(prefix="reminder-calls-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{(_RUNTIME_DIR / 'calls_test.db').as_posix()}"
os.environ["DATA_DIR"] = str(_RUNTIME_DIR)
os.environ["AUTO_CREATE_DB_SCHEMA"] = "true"

from fakes import FakeFetcher, FakeNotifier, build_orchestrator  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def database() -> None:
    from db.base import init_db

    asyncio.run(init_db())


@pytest.fixture(scope="session")
def app():
    import main

    return main.app


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture()
def orchestrator(notifier, fetcher):
    from db.repository import CallRecordRepository

    return build_orchestrator(CallRecordRepository(), notifier, fetcher)


@pytest.fixture()
def client(app, orchestrator):
    # Override the orchestrator so tests never reach Twilio or Deepgram.
    import api.dependencies as deps

    app.dependency_overrides[deps.get_orchestrator] = lambda: orchestrator

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
