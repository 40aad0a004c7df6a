import os
import sys
from pathlib import Path
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

# Alembic Config object (from alembic.ini)
config = context.config

# Configure Python logging (alembic.ini)
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Ensure the project root is on sys.path when running alembic from a checkout
proj_root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(proj_root))

# DATABASE_URL wins; otherwise the same DATA_DIR fallback the app uses.
from invite_service.core.config import get_settings  # noqa: E402

db_url = os.environ.get("DATABASE_URL") or get_settings().resolved_database_url
config.set_main_option("sqlalchemy.url", db_url)

# Import Base, then the models module to register every table with Base.metadata
from invite_service.db.base import Base  # noqa: E402
import invite_service.models  # noqa: F401, E402

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
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
    """Run migrations in 'online' mode."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
