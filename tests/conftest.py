"""Shared test fixtures."""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import fritzwatch.database as db_module
import fritzwatch.history.models  # noqa: F401
from fritzwatch.callmonitor.models import CallRecord, Participants
from fritzwatch.database import get_session
from fritzwatch.events.sink import EventSink
from fritzwatch.main import app


class RecordingSink(EventSink):
    """Collects every published event as (hook, args) tuples."""

    def __init__(self) -> None:
        self.events: list[tuple] = []

    def on_presence_changed(self, identity: str, present: bool, name: str | None = None) -> None:
        self.events.append(("presence", identity, present))

    def on_anyone_changed(self, present: bool) -> None:
        self.events.append(("anyone", present))

    def on_call_started(self, record: CallRecord) -> None:
        self.events.append(("started", record))

    def on_call_established(self, call_id: str, participants: Participants) -> None:
        self.events.append(("established", call_id, participants))

    def on_call_finalized(self, record: CallRecord) -> None:
        self.events.append(("finalized", record))

    def on_contact_state(self, active: bool) -> None:
        self.events.append(("contact", active))

    def of(self, kind: str) -> list[tuple]:
        return [e for e in self.events if e[0] == kind]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created.

    StaticPool ensures every session uses the same connection,
    so the in-memory database is shared across the test.
    """
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    return eng


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    with Session(engine) as s:
        yield s


@pytest.fixture
def client(engine) -> Generator[TestClient, None, None]:
    """FastAPI TestClient with overridden DB engine and session."""
    # Patch the module-level engine so lifespan's init_db() and the
    # history sink both use the test engine.
    original_engine = db_module.engine
    db_module.engine = engine

    def _override_session() -> Generator[Session, None, None]:
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _override_session
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    db_module.engine = original_engine
