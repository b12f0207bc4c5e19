from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from editorial.config.settings import settings


def build_engine(database_url: str = None, echo: bool = None) -> AsyncEngine:
    url = str(database_url or settings.DATABASE_URL)
    connect_args = {}
    if url.startswith("sqlite"):
        # Seconds the driver waits on a locked database before giving up
        connect_args["timeout"] = settings.STORE_TIMEOUT_SECONDS
    return create_async_engine(
        url,
        pool_pre_ping=True,
        connect_args=connect_args,
        echo=settings.DATABASE_ECHO if echo is None else echo,
    )


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine()

AsyncSessionLocal = build_sessionmaker(engine)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get async database session"""
    async with AsyncSessionLocal() as db:
        try:
            yield db
        except Exception:
            await db.rollback()
            raise
