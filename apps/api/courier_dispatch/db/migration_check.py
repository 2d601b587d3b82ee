from __future__ import annotations

from pathlib import Path
from typing import Optional

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy.engine import Engine

from courier_dispatch.config import is_production_mode, settings
from courier_dispatch.db.base import Base

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def _script_directory() -> ScriptDirectory:
    # Resolved from the package so checks work without alembic.ini on the cwd.
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    return ScriptDirectory.from_config(config)


def get_alembic_head_revision() -> str:
    return _script_directory().get_current_head()


def get_current_db_revision(engine: Engine) -> Optional[str]:
    with engine.connect() as connection:
        return MigrationContext.configure(connection).get_current_revision()


def assert_db_is_up_to_date(engine: Engine) -> None:
    current = get_current_db_revision(engine)
    head = get_alembic_head_revision()
    if current != head:
        raise RuntimeError(
            f"Database schema not up to date (at {current or 'nothing'}, head is {head}). "
            "Run: alembic upgrade head"
        )


def maybe_create_schema(engine: Engine) -> None:
    """Create the dispatch tables directly; only for demo and test databases."""
    if not settings.auto_create_schema:
        return
    if is_production_mode():
        raise RuntimeError("AUTO_CREATE_SCHEMA must be disabled in APP_MODE=production")
    Base.metadata.create_all(bind=engine)


def prepare_schema(engine: Engine) -> None:
    if settings.require_migrations:
        assert_db_is_up_to_date(engine)
    else:
        maybe_create_schema(engine)
