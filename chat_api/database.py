from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.engine.url import make_url

from . import config


def make_engine(database_url: str = config.DATABASE_URL, echo: bool = config.DATABASE_ECHO) -> AsyncEngine:
    url = make_url(database_url)
    # only SQLite needs that arg
    opts = {"check_same_thread": False} if url.drivername.startswith("sqlite") else {}
    return create_async_engine(database_url, echo=echo, connect_args=opts)


def make_session_factory(engine: AsyncEngine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# Initialize DB (to call on startup)
async def init_db(engine: AsyncEngine):
    # table classes must be registered on the metadata first
    from . import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def ping(engine: AsyncEngine) -> bool:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True
