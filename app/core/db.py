from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.core.config import settings


def to_async_url(database_url: str) -> str:
    """Use asyncpg for postgres URLs; asyncpg does not accept psycopg params like
    sslmode/channel_binding, so strip them (SSL is enabled via connect_args)."""
    parsed = urlparse(database_url)
    if parsed.scheme not in ("postgresql", "postgres"):
        return database_url
    query = parse_qs(parsed.query, keep_blank_values=True)
    query.pop("sslmode", None)
    query.pop("channel_binding", None)
    new_query = urlencode(query, doseq=True)
    return urlunparse(
        ("postgresql+asyncpg", parsed.netloc, parsed.path, parsed.params, new_query, parsed.fragment)
    )


def make_engine(database_url: str) -> AsyncEngine:
    url = to_async_url(database_url)
    if url.startswith("postgresql+asyncpg"):
        return create_async_engine(
            url,
            echo=settings.env == "development",
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
            connect_args={"ssl": settings.env == "production"},
        )
    return create_async_engine(url, echo=False)


def make_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = make_engine(settings.database_url)
async_session_maker = make_session_maker(engine)


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create tables if using create_all; prefer Alembic in production."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
