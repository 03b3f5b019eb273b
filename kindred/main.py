from fastapi import FastAPI

from kindred.core.config import API_PREFIX, ENABLE_DEBUG_ROUTES
from kindred.core.errors import register_exception_handlers
from kindred.db.base import Base, engine, log_database_diagnostics
from kindred.auth.models import User, AuthSession, Subscription  # noqa: F401  (create_all picks them up)
from kindred.progress.models import JourneyProgress, StepCompletion, Achievement  # noqa: F401

from kindred.auth.routes import router as auth_router
from kindred.progress.routes import router as progress_router, gmail_router as gmail_progress_router
from kindred.debug_routes import router as debug_router


app = FastAPI(title="Kindred", version="0.1.0")

register_exception_handlers(app)

log_database_diagnostics()

# Create database tables (still useful in dev; in production prefer Alembic)
Base.metadata.create_all(bind=engine)

# Only expose debug routes (including diagnostics) when explicitly enabled.
if ENABLE_DEBUG_ROUTES:
    app.include_router(debug_router)

# Include routers
app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(progress_router, prefix=API_PREFIX)
app.include_router(gmail_progress_router, prefix=API_PREFIX)


@app.get("/health", include_in_schema=False)
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("kindred.main:app", host="0.0.0.0", port=8000, reload=True)
