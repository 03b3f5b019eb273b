from fastapi import Request, Depends, HTTPException
from sqlalchemy.orm import Session

from kindred.db.session import get_db
from kindred.auth.models import User, AuthSession
from kindred.core.log import get_logger
from kindred.storage import Storage

logger = get_logger(__name__, "AUTH")


def get_storage(db: Session = Depends(get_db)) -> Storage:
    return Storage(db)


def _bearer_token(request: Request):
    auth_header = request.headers.get("authorization")
    if not auth_header:
        return None
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def require_auth(
    request: Request,
    storage: Storage = Depends(get_storage),
) -> User:
    """
    Resolve ``Authorization: Bearer <token>`` to a user.

    Every request re-validates against the database (session lookup, then
    user lookup). On success the user and session are attached to
    ``request.state``.
    """
    token = _bearer_token(request)
    if not token:
        logger.debug(f"reject reason=missing_or_malformed_header path={request.url.path}")
        raise HTTPException(status_code=401, detail="Authentication required")

    session = storage.get_session_by_token(token)
    if not session:
        logger.debug(f"reject reason=invalid_or_expired_session path={request.url.path}")
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    user = storage.get_user(session.user_id)
    if not user:
        logger.debug(f"reject reason=user_not_found user={session.user_id} path={request.url.path}")
        raise HTTPException(status_code=401, detail="User not found")

    request.state.user = user
    request.state.session = session
    return user


def get_current_session(
    request: Request,
    user: User = Depends(require_auth),
) -> AuthSession:
    """The session that authenticated this request."""
    return request.state.session
