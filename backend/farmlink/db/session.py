from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from farmlink.core.config import settings


def _engine_options(url: str) -> dict:
    # SQLite (tests, local dev) takes no pool sizing
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_pre_ping": True,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
    }


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_options(settings.database_url),
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
