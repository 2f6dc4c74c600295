"""Alembic environment for the score and approval schema.

Revisions are hand-written SQL run through ``op.execute``; there is no model
metadata, so autogenerate is not supported.
"""

import logging
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from db import sqlalchemy_url

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger('alembic.env')


def run_offline(url):
    """Render the pending revisions as SQL without a connection."""
    context.configure(url=url, target_metadata=None, literal_binds=True, dialect_opts={'paramstyle': 'named'})
    with context.begin_transaction():
        context.run_migrations()


def run_online(url):
    """Apply the pending revisions in one transaction over a throwaway engine."""
    engine = create_engine(url, poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, target_metadata=None)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


mode = 'offline' if context.is_offline_mode() else 'online'
logger.info("Applying score schema revisions (%s)", mode)
if mode == 'offline':
    run_offline(sqlalchemy_url())
else:
    run_online(sqlalchemy_url())
