from typing import Iterator

from sqlalchemy.orm import Session

from kindred.db.base import SessionLocal


def get_db() -> Iterator[Session]:
    """One SQLAlchemy session per request; uncommitted work is rolled back on close."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
