from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from urllens.platform.config import settings


def build_engine(database_url: str, pooled: bool = True) -> AsyncEngine:
    """
    Create an async engine. SQLite and short-lived worker engines skip the
    connection pool settings used for Postgres.
    """
    if not pooled:
        return create_async_engine(database_url, echo=False, future=True, poolclass=NullPool)

    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False, future=True)

    return create_async_engine(
        database_url,
        echo=False,
        future=True,
        pool_pre_ping=True,
        pool_recycle=1800,
        pool_size=20,
        max_overflow=30,  # (burst capacity)
        pool_timeout=30,
    )


engine = build_engine(settings.DATABASE_URL)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def init_models(target_engine: AsyncEngine = engine) -> None:
    """Create audit tables directly; Alembic owns the schema outside local runs."""
    from urllens.platform.db.base import Base
    import urllens.features.audit.models  # noqa: F401

    async with target_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    async with SessionLocal() as session:
        yield session
