from pathlib import Path

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from kindred.auth.models import User, AuthSession
from kindred.db.base import engine
from kindred.db.session import get_db
from kindred.progress.models import Achievement, JourneyProgress, StepCompletion

router = APIRouter(prefix="/debug", tags=["debug"])


@router.get("/diagnostics/db")
def db_diagnostics(db: Session = Depends(get_db)):
    """
    Lightweight DB diagnostics for debugging deployments.

    This endpoint is meant to be exposed only when ENABLE_DEBUG_ROUTES=1.
    It intentionally avoids leaking secrets while still being useful.
    """
    url = engine.url
    backend = url.get_backend_name()
    rendered = url.render_as_string(hide_password=True)

    info = {
        "backend": backend,
        "url": rendered,
        "row_counts": {
            model.__tablename__: db.query(func.count(model.id)).scalar()
            for model in (User, AuthSession, JourneyProgress, StepCompletion, Achievement)
        },
    }

    if backend == "sqlite":
        db_path = Path(url.database or "").resolve()
        exists = db_path.exists()
        size = db_path.stat().st_size if exists else 0
        info.update(
            {
                "sqlite_path": str(db_path),
                "sqlite_exists": exists,
                "sqlite_size_bytes": size,
            }
        )
    else:
        info.update(
            {
                "database": url.database,
                "host": url.host,
                "port": url.port,
                "drivername": url.drivername,
            }
        )

    return info
