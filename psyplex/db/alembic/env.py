"""
Alembic environment configuration for PsyPlex database migrations.

Imports all models so autogenerate can detect schema changes.
Reads DATABASE_URL from environment, falling back to SQLite for development.
Migrations should run with the privileged credential on PostgreSQL, since
they create row-level security policies.
"""

import os
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Override sqlalchemy.url from environment; the privileged URL wins when set
database_url = os.getenv("PRIVILEGED_DATABASE_URL") or os.getenv("DATABASE_URL")
if database_url:
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+psycopg2://", 1)
    config.set_main_option("sqlalchemy.url", database_url)

# Import Base and all models for autogenerate support
from psyplex.models.base import Base  # noqa: E402
from psyplex.models.therapist import Therapist  # noqa: E402, F401
from psyplex.models.client import Client  # noqa: E402, F401
from psyplex.models.client_profile import ClientProfile  # noqa: E402, F401
from psyplex.models.session import Session  # noqa: E402, F401
from psyplex.models.session_note import SessionNote  # noqa: E402, F401
from psyplex.models.treatment_goal import TreatmentGoal  # noqa: E402, F401
from psyplex.models.progress_metric import ProgressMetric  # noqa: E402, F401
from psyplex.models.audit_log import AuditLog  # noqa: E402, F401

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    This configures the context with just a URL
    and not an Engine, though an Engine is acceptable
    here as well.  By skipping the Engine creation
    we don't even need a DBAPI to be available.

    Calls to context.execute() here emit the given string to the
    script output.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,  # Required for SQLite ALTER TABLE support
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode.

    In this scenario we need to create an Engine
    and associate a connection with the context.
    """
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,  # Required for SQLite ALTER TABLE support
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
