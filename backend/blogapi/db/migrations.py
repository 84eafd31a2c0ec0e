import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

from blogapi.core.config import Settings

logger = logging.getLogger("blog.migrations")


def _alembic_config(settings: Settings) -> Config:
    """Alembic config pointing at backend/alembic.ini, with the URL from settings."""
    backend_dir = Path(__file__).resolve().parents[2]  # .../backend
    cfg = Config(str(backend_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(backend_dir / "alembic"))
    cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return cfg


def upgrade_head(settings: Settings) -> None:
    logger.info("Running Alembic upgrade head.")
    command.upgrade(_alembic_config(settings), "head")


def run_migrations_on_startup(settings: Settings) -> None:
    """Apply pending migrations when DB_MIGRATE_ON_STARTUP is set."""
    if not settings.db_migrate_on_startup:
        return
    try:
        upgrade_head(settings)
    except Exception:
        logger.exception("Migration startup step failed.")
        raise
