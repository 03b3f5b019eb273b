"""
Maintenance script: delete sessions whose expiry has passed.

Purpose:
- Expired sessions are normally removed lazily, the first time someone
  presents the token. Tokens that are never presented again stay behind.
- This clears them in one pass.

IMPORTANT:
- SAFE to run multiple times
- Does not touch sessions that are still valid
- Run manually (or from cron) when you decide
"""

import argparse

from sqlalchemy.orm import Session

from kindred.db.base import SessionLocal
from kindred.auth.models import AuthSession
from kindred.storage import utcnow


def purge_expired_sessions(dry_run: bool = False) -> int:
    db: Session = SessionLocal()

    try:
        query = db.query(AuthSession).filter(AuthSession.expires_at < utcnow())
        expired = query.count()

        if dry_run:
            print(f"🔎 {expired} expired session(s) would be deleted")
            return expired

        query.delete(synchronize_session=False)
        db.commit()

        print("✅ Expired session purge complete")
        print(f"   Deleted: {expired}")
        return expired

    except Exception as e:
        db.rollback()
        print("❌ Error while purging expired sessions")
        print(str(e))
        raise
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--dry-run", action="store_true", help="only count expired sessions")
    args = parser.parse_args()
    purge_expired_sessions(dry_run=args.dry_run)
