import logging
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from config import get_settings  # noqa: E402
from database import Base, make_engine  # noqa: E402
import models  # noqa: E402,F401

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)

logger = logging.getLogger("alembic.env")

database_url = get_settings().database_url


def run_migrations() -> None:
    if context.is_offline_mode():
        context.configure(
            url=database_url,
            target_metadata=Base.metadata,
            literal_binds=True,
            render_as_batch=True,
        )
        with context.begin_transaction():
            context.run_migrations()
        return

    # the ledger engine applies the same SQLite pragmas as the app
    with make_engine(database_url).connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=Base.metadata,
            render_as_batch=True,
        )
        with context.begin_transaction():
            logger.info(f"ledger_migrations: url={connection.engine.url!r}")
            context.run_migrations()


run_migrations()
