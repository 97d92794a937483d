import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import Connection
from dotenv import load_dotenv

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

load_dotenv()

target_metadata = None


def _get_database_url() -> str:
    url = os.getenv("DATABASE_URL", "").strip() or (config.get_main_option("sqlalchemy.url") or "")
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://") :]
    return url


def _require_database_url(mode: str) -> str:
    url = _get_database_url()
    if not url:
        raise RuntimeError(f"DATABASE_URL no esta definido para migraciones del cotizador ({mode})")
    return url


def run_migrations_offline() -> None:
    """Emite el SQL de las migraciones sin conectarse."""
    context.configure(
        url=_require_database_url("offline"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(_require_database_url("online"), poolclass=pool.NullPool)

    with connectable.connect() as connection:  # type: Connection
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()

    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
