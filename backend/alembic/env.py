"""Migration runner; ``alembic.ini`` puts ``backend/`` on the path."""

from alembic import context
from sqlalchemy import pool

from dental_ledger.core.settings import settings
from dental_ledger.db.session import build_engine
from dental_ledger.models import Base


def _configure(**options) -> None:
    context.configure(target_metadata=Base.metadata, compare_type=True, **options)


def migrate_offline(url: str) -> None:
    _configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def migrate_online(url: str) -> None:
    # Same engine factory as the app, so SQLite runs with foreign keys enforced.
    engine = build_engine(url, poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            _configure(
                connection=connection,
                render_as_batch=connection.dialect.name == "sqlite",
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


database_url = context.config.get_main_option("sqlalchemy.url") or settings.database_url

if context.is_offline_mode():
    migrate_offline(database_url)
else:
    migrate_online(database_url)
