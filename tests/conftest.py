"""Shared fixtures.

The application module builds its engine at import time, so the database
settings are pinned here before anything imports it: a throwaway SQLite
file, tables recreated on every app startup, and one timer minute squeezed
into 0.2 seconds.
"""

import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="room-reservations-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'app.db')}"
os.environ["DB_RESET_ON_STARTUP"] = "1"
os.environ["RESERVATION_SECONDS_PER_MINUTE"] = "0.2"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from database import build_engine, build_session_factory, init_db, seed_rooms  # noqa: E402
from lifecycle import ReservationLifecycle  # noqa: E402
from scheduler import TimerScheduler  # noqa: E402
from store import ReservationStore  # noqa: E402

# Real seconds per timer minute in the engine and scheduler tests
MINUTE = 0.2


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    factory = build_session_factory(db_engine)
    await seed_rooms(factory)
    return factory


@pytest.fixture
def store(session_factory):
    return ReservationStore(session_factory)


@pytest_asyncio.fixture
async def scheduler():
    scheduler = TimerScheduler(seconds_per_minute=MINUTE)
    yield scheduler
    await scheduler.shutdown()


@pytest.fixture
def lifecycle(store, scheduler):
    return ReservationLifecycle(store, scheduler)


@pytest.fixture
def unreachable_store(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nope.db'}")
    return ReservationStore(build_session_factory(engine))
