from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import sessionmaker

from blogapi.core.config import Settings, get_settings


def _is_sqlite(db_url: str) -> bool:
    try:
        return make_url(db_url).get_backend_name() == "sqlite"
    except Exception:
        # Fallback: handle values like "sqlite+pysqlite:///:memory:"
        return db_url.startswith("sqlite")


def build_engine(db_url: str) -> Engine:
    # Create engine - tune params for SQLite vs. others
    if _is_sqlite(db_url):
        # SQLite: limited concurrency; avoid unsupported pool args
        return create_engine(
            db_url,
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
            echo=False,
        )
    # Postgres/MySQL: enable pooling. pool_timeout bounds every store call
    # waiting for a connection.
    return create_engine(
        db_url,
        pool_pre_ping=True,
        pool_size=20,
        max_overflow=10,
        pool_recycle=3600,
        pool_timeout=10,
        echo=False,
    )


settings = get_settings()
engine = build_engine(settings.database_url)


def engine_for(app_settings: Settings) -> Engine:
    """The shared engine when `app_settings` points at the default database, else a new one."""
    if make_url(app_settings.database_url) == engine.url:
        return engine
    return build_engine(app_settings.database_url)


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db_session():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        # Ensure failed requests don't leave transactions open
        db.rollback()
        raise
    finally:
        db.close()
