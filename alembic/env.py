"""Migration runner for the ``ingested_records`` store.

Migrations are raw SQL, so there is no metadata to autogenerate from. The
asyncpg URL the worker uses is rewritten to the synchronous driver here.
"""

from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context
from hemicycle.core.config import settings


def _sync_url() -> str:
    url = settings.DATABASE_URL
    if not url:
        raise RuntimeError("DATABASE_URL is empty; nothing to migrate (the worker stores records in memory)")
    return url.replace("+asyncpg", "")


if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)

if context.is_offline_mode():
    context.configure(url=_sync_url(), target_metadata=None, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()
else:
    engine = create_engine(_sync_url(), poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=None)
        with context.begin_transaction():
            context.run_migrations()
