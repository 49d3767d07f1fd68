from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from config import settings

def _get_engine_kwargs(url: str):
    """Return dialect-specific engine options for SQLite vs PostgreSQL."""
    kwargs = {"echo": settings.debug}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url:
            # one shared connection, otherwise every session sees an empty database
            kwargs["poolclass"] = StaticPool
    return kwargs

def make_engine(url: str):
    return create_async_engine(url, **_get_engine_kwargs(url))

def make_sessionmaker(bind) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

engine = make_engine(settings.database_url)

AsyncSessionLocal = make_sessionmaker(engine)

class Base(DeclarativeBase):
    pass

@asynccontextmanager
async def session_scope(factory: async_sessionmaker[AsyncSession] | None = None):
    """One unit of work: commit on success, roll back and re-raise on error."""
    async with (factory or AsyncSessionLocal)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(bind=None):
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
