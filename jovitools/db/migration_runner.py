"""
Migration Runner - applies pending Alembic migrations.

Called from the application lifespan when RUN_MIGRATIONS is set, and from
scripts/maintenance.py.
"""

from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import Engine, create_engine
from structlog import get_logger

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from jovitools.config import settings

logger = get_logger(__name__)

ALEMBIC_INI_PATH = Path(__file__).parent.parent.parent / "alembic.ini"


@dataclass(frozen=True)
class MigrationStatus:
    current_revision: str | None
    head_revision: str | None

    @property
    def pending(self) -> bool:
        return self.current_revision != self.head_revision


def sync_database_url(url: str | None = None) -> str:
    """Alembic's command API is synchronous: swap asyncpg for psycopg2."""
    return (url or settings.database_url).replace("+asyncpg", "+psycopg2")


def _alembic_config(url: str) -> Config:
    cfg = Config(str(ALEMBIC_INI_PATH))
    cfg.set_main_option("script_location", str(ALEMBIC_INI_PATH.parent / "alembic"))
    cfg.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    cfg.attributes["url_overridden"] = True
    return cfg


def _current_revision(engine: Engine) -> str | None:
    with engine.connect() as conn:
        return MigrationContext.configure(conn).get_current_revision()


def _status(cfg: Config, engine: Engine) -> MigrationStatus:
    head = ScriptDirectory.from_config(cfg).get_current_head()
    return MigrationStatus(current_revision=_current_revision(engine), head_revision=head)


def check_migrations_status(url: str | None = None) -> MigrationStatus:
    """Current and head revision without applying anything."""
    sync_url = sync_database_url(url)
    engine = create_engine(sync_url)
    try:
        return _status(_alembic_config(sync_url), engine)
    finally:
        engine.dispose()


def run_migrations(url: str | None = None) -> MigrationStatus:
    """
    Upgrade the schema to head if anything is pending.

    Raises:
        RuntimeError: alembic.ini missing or the upgrade failed
    """
    if not ALEMBIC_INI_PATH.exists():
        raise RuntimeError(f"Alembic config not found at {ALEMBIC_INI_PATH}")

    sync_url = sync_database_url(url)
    cfg = _alembic_config(sync_url)
    engine = create_engine(sync_url)

    try:
        status = _status(cfg, engine)
        if not status.pending:
            logger.info("database_schema_up_to_date", revision=status.current_revision)
            return status

        logger.info(
            "migrations_starting",
            from_revision=status.current_revision,
            to_revision=status.head_revision,
        )
        command.upgrade(cfg, "head")
        status = _status(cfg, engine)
        logger.info("migrations_complete", revision=status.current_revision)
        return status
    except Exception as e:
        logger.error("migration_failed", error=str(e))
        raise RuntimeError(f"Database migration failed: {e}") from e
    finally:
        engine.dispose()
