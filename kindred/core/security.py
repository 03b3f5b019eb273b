import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt

from kindred.core.config import BCRYPT_ROUNDS, SESSION_TTL_DAYS

# ======================
# PASSWORD HASHING (bcrypt)
# ======================

def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, stored: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), stored.encode("utf-8"))
    except ValueError:
        # Malformed stored hash, or a password bcrypt refuses (over 72 bytes)
        return False


# ======================
# SESSION TOKENS
# ======================

SESSION_TOKEN_BYTES = 32


def generate_session_token() -> str:
    """64 hex characters from 32 random bytes."""
    return secrets.token_hex(SESSION_TOKEN_BYTES)


def session_expiry(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(days=SESSION_TTL_DAYS)
