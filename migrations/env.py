from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url

from sqlmodel import SQLModel
from app.core.config import settings
import app.models  # noqa: F401 - register tables

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _sync_url(database_url: str) -> str:
    """Migrations run on a sync driver: drop +asyncpg / +aiosqlite from the URL."""
    url = make_url(database_url)
    if url.drivername.startswith("postgres"):
        return url.set(drivername="postgresql").render_as_string(hide_password=False)
    return url.set(drivername=url.get_backend_name()).render_as_string(hide_password=False)


config.set_main_option("sqlalchemy.url", _sync_url(settings.database_url).replace("%", "%%"))
target_metadata = SQLModel.metadata


def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(config.get_main_option("sqlalchemy.url"))

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
