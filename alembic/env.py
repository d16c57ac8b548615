"""Alembic environment for the provisioning state database."""

from logging.config import fileConfig

from alembic import context

from provisioning_engine.infrastructure.postgres.config import settings
from provisioning_engine.infrastructure.postgres.database import Base, create_db_engine
from provisioning_engine.infrastructure.postgres.models import ResourceRecordORM  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# STATE_DB_* settings win over alembic.ini
database_url = settings.database_url
target_metadata = Base.metadata

COMPARE_OPTIONS = {"compare_type": True, "compare_server_default": True}


def run_migrations_offline() -> None:
    """Emit SQL for the state schema without a live connection."""
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Migrate the state database over the engine the provisioner uses."""
    engine = create_db_engine(database_url)
    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                # sqlite cannot ALTER most columns in place
                render_as_batch=connection.dialect.name == "sqlite",
                **COMPARE_OPTIONS,
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
