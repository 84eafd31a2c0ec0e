from sqlalchemy import create_engine, inspect

from blogapi.core.config import get_settings
from blogapi.db.session import engine, engine_for
from blogapi.main import create_app


def test_create_app_creates_tables_on_its_own_database(tmp_path):
    """Tables land in the database named by the settings handed to create_app."""
    settings = get_settings().model_copy(update={"database_url": f"sqlite:///{tmp_path / 'blog.db'}"})
    create_app(settings=settings)

    eng = create_engine(settings.database_url)
    try:
        insp = inspect(eng)
        for table in ("users", "device_auth_sessions", "attempts"):
            assert insp.has_table(table)
    finally:
        eng.dispose()


def test_engine_for_reuses_shared_engine_for_default_settings():
    assert engine_for(get_settings()) is engine
