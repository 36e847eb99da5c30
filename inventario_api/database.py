from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from inventario_api.config import DATABASE_URL, DB_ECHO

Base = declarative_base()

engine = create_async_engine(DATABASE_URL, echo=DB_ECHO, pool_pre_ping=True)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)


def utcnow() -> datetime:
    # Naive UTC so values compare the same way on every backend
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def init_db():
    # Imported for its side effect of registering the tables on Base.metadata
    from inventario_api import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session():
    async with AsyncSessionLocal() as session:
        yield session
