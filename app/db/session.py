from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.config import settings
from app.db.base import Base


def _engine_options() -> dict:
    # SQLite connections are bound to the thread/loop that opened them.
    if settings.is_sqlite:
        return {"poolclass": NullPool}
    return {"pool_pre_ping": True}


engine: AsyncEngine = create_async_engine(settings.DATABASE_URL, **_engine_options())
SessionLocal = async_sessionmaker(
    autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
)


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
