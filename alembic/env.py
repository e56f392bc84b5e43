# alembic/env.py
import logging
import os
import sys
from logging.config import fileConfig

from sqlalchemy import create_engine

from alembic import context

# The alembic directory sits one level below the project root; make
# `socialvox` importable when alembic is run from a checkout.
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

# socialvox.config loads .env from the project root on import
from socialvox.config import Settings  # noqa: E402
from socialvox.database import Base  # noqa: E402
from socialvox import models  # noqa: E402,F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata


def sync_database_url() -> str:
    """DATABASE_URL without the async driver; migrations run synchronously."""
    url = Settings.from_env().database_url
    if not url:
        raise ValueError("DATABASE_URL is not set. Configure it in .env.")
    return url.replace("+asyncpg", "").replace("+aiosqlite", "")


def run_migrations_offline() -> None:
    """Emit SQL for the migrations without connecting to a database."""
    url = sync_database_url()
    logger.info("Offline migrations for %s", url)
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = sync_database_url()
    logger.info("Online migrations against %s", url)
    connectable = create_engine(url)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
