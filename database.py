import os
import logging
from sqlmodel import SQLModel, select
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from dotenv import load_dotenv

from models import Room

logger = logging.getLogger(__name__)

# 1. Load environment variables from .env file
load_dotenv()

DEFAULT_ROOMS = ["Meeting Room", "Conference Room", "Lunch Room"]


def get_database_url() -> str:
    # 2. A full DATABASE_URL wins, otherwise build one from the DB_* parts
    url = os.environ.get("DATABASE_URL")
    if url:
        return url

    user = os.environ.get("DB_USER") or "postgres"
    name = os.environ.get("DB_NAME") or "postgres"
    password = os.environ.get("DB_PASSWORD") or "password"
    host = os.environ.get("DB_HOST") or "localhost"
    return f"postgresql+asyncpg://{user}:{password}@{host}/{name}"


def reset_on_startup() -> bool:
    return os.environ.get("DB_RESET_ON_STARTUP", "").lower() in ("1", "true", "yes")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str) -> AsyncEngine:
    engine = create_async_engine(url, echo=False, future=True)
    if engine.dialect.name == "sqlite":
        # SQLite ignores foreign keys unless asked per connection
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def build_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# 3. Create the Async Engine shared by the store and every background timer
engine = build_engine(get_database_url())
async_session = build_session_factory(engine)


async def init_db(db_engine: AsyncEngine = engine, reset: bool = False):
    async with db_engine.begin() as conn:
        if reset:
            logger.warning("Dropping room and reservation tables")
            await conn.run_sync(SQLModel.metadata.drop_all)
        # This creates the tables if they don't exist
        await conn.run_sync(SQLModel.metadata.create_all)


async def seed_rooms(session_factory: sessionmaker = async_session) -> int:
    """Insert the default rooms when the room table is empty.

    Returns the number of rooms inserted.
    """
    async with session_factory() as session:
        result = await session.execute(select(Room.id).limit(1))
        if result.first() is not None:
            return 0

        session.add_all([Room(name=name) for name in DEFAULT_ROOMS])
        await session.commit()

    logger.info("Seeded %d rooms", len(DEFAULT_ROOMS))
    return len(DEFAULT_ROOMS)
