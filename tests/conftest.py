import pytest
from fastapi.testclient import TestClient

from chat_api.database import init_db, make_engine, make_session_factory
from chat_api.main import create_app
from chat_api.stores import MessageStore, ParticipantStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}", echo=False)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def messages(session_factory, clock):
    return MessageStore(session_factory, clock)


@pytest.fixture
def participants(session_factory, messages, clock):
    return ParticipantStore(session_factory, messages, clock)


@pytest.fixture
def client(tmp_path, clock):
    app = create_app(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", clock=clock, sweep=False)
    with TestClient(app) as client:
        yield client
