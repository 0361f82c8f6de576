from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import settings


def enable_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """
    Turn on FK enforcement for every new SQLite connection.

    SQLite ships with it off, which silently disables the ON DELETE
    CASCADE / SET NULL rules that article and comment deletes rely on.
    """

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Tests and scripts may swap in their own engine and session factory.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)
if engine.dialect.name == "sqlite":
    enable_sqlite_foreign_keys(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """
    Yield one session per request, committed when the handler returns.

    The request pipeline and the route handler share this session through
    FastAPI's per-request dependency cache, so the resource loaded by the
    ownership gate is the same identity-mapped row the handler mutates.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
