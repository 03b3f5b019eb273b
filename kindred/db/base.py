import os
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from kindred.core.log import get_logger

logger = get_logger(__name__, "DB")


def _build_database_url() -> str:
    """
    Determine the database URL.

    - Prefer DATABASE_URL from the environment (production).
    - Fallback to a local SQLite file for development.
    - Normalize legacy postgres:// URLs to SQLAlchemy's postgresql+psycopg2://.
    """
    url = os.getenv("DATABASE_URL", "sqlite:///./local.db").strip()

    if url.startswith("postgres://"):
        # SQLAlchemy 2.x expects a driver-qualified URL
        url = url.replace("postgres://", "postgresql+psycopg2://", 1)

    return url


DATABASE_URL = _build_database_url()

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # Needed for SQLite when FastAPI runs sync endpoints in a threadpool
    connect_args = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, connect_args=connect_args, future=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def log_database_diagnostics() -> None:
    """Log which backend is in use, with the password hidden."""
    try:
        url_safe = engine.url.render_as_string(hide_password=True)
        backend = engine.url.get_backend_name()
        logger.info(f"Using database backend={backend} url={url_safe}")

        if backend == "sqlite":
            db_path = Path(engine.url.database or "").resolve()
            exists = db_path.exists()
            size = db_path.stat().st_size if exists else 0
            logger.info(f"SQLite path={db_path} exists={exists} size_bytes={size}")
    except Exception as exc:
        # Never crash app on logging
        logger.warning(f"Failed to log DB diagnostics: {exc!r}")
