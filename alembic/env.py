from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import pool

# alembic.ini puts the project root on sys.path
from app.core.config import settings
from app.db.base import Base
from app.db.session import make_engine
import app.models  # noqa: F401  (registers the ledger tables)

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)


def _migrate(**options: Any) -> None:
    context.configure(target_metadata=Base.metadata, compare_type=True, **options)
    with context.begin_transaction():
        context.run_migrations()


def main() -> None:
    # DATABASE_URL wins over alembic.ini
    url = settings.database_url or context.config.get_main_option("sqlalchemy.url")

    if context.is_offline_mode():
        _migrate(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
        return

    engine = make_engine(url, poolclass=pool.NullPool)
    with engine.connect() as connection:
        # SQLite cannot ALTER constraints in place
        _migrate(connection=connection, render_as_batch=connection.dialect.name == "sqlite")


main()
