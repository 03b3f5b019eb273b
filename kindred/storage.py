"""
Storage service: the only code that talks to the database.

Every method maps to one CRUD or upsert operation. Absence is reported as
None, never as an exception; database errors propagate to the caller.

Writes commit immediately unless they run inside ``Storage.atomic()``, in
which case they are flushed and the whole block commits (or rolls back) once.
"""
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from sqlalchemy import and_, case
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from kindred.auth.models import User, AuthSession, Subscription
from kindred.core.log import get_logger
from kindred.core.security import generate_session_token, session_expiry
from kindred.progress.models import (
    GENERAL_NAMESPACE,
    Achievement,
    JourneyProgress,
    StepCompletion,
)

logger = get_logger(__name__, "STORAGE")

# Dialects with INSERT ... ON CONFLICT support
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Storage:
    def __init__(self, db: Session):
        self.db = db
        self._atomic_depth = 0

    # ---------------------------------------------------------------------------
    # Transactions
    # ---------------------------------------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator["Storage"]:
        """Group several writes into one all-or-nothing transaction."""
        self._atomic_depth += 1
        try:
            yield self
        except Exception:
            self._atomic_depth -= 1
            if self._atomic_depth == 0:
                self.db.rollback()
            raise
        self._atomic_depth -= 1
        if self._atomic_depth == 0:
            self.db.commit()

    def _commit(self) -> None:
        if self._atomic_depth:
            self.db.flush()
        else:
            self.db.commit()

    def _upsert_insert(self):
        return _UPSERT_INSERTS.get(self.db.get_bind().dialect.name)

    # ---------------------------------------------------------------------------
    # Users
    # ---------------------------------------------------------------------------

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def create_user(self, **fields) -> User:
        """Insert a user. The caller must pass an already hashed ``password_hash``."""
        user = User(**fields)
        self.db.add(user)
        self._commit()
        self.db.refresh(user)
        return user

    def update_user(self, user_id: int, **changes) -> Optional[User]:
        user = self.get_user(user_id)
        if not user:
            return None
        for key, value in changes.items():
            setattr(user, key, value)
        user.updated_at = utcnow()
        self._commit()
        self.db.refresh(user)
        return user

    # ---------------------------------------------------------------------------
    # Sessions
    # ---------------------------------------------------------------------------

    def create_session(self, user_id: int) -> AuthSession:
        session = AuthSession(
            user_id=user_id,
            token=generate_session_token(),
            expires_at=session_expiry(),
        )
        self.db.add(session)
        self._commit()
        self.db.refresh(session)
        return session

    def get_session_by_token(self, token: str) -> Optional[AuthSession]:
        """
        Look up a session. Expired sessions are deleted on read and reported
        as missing; there is no background sweep.
        """
        session = self.db.query(AuthSession).filter(AuthSession.token == token).first()
        if not session:
            return None
        if as_utc(session.expires_at) < utcnow():
            logger.debug(f"session id={session.id} user={session.user_id} expired; deleting")
            self.delete_session(token)
            return None
        return session

    def delete_session(self, token: str) -> None:
        self.db.query(AuthSession).filter(AuthSession.token == token).delete(synchronize_session=False)
        self._commit()

    def delete_user_sessions(self, user_id: int) -> int:
        deleted = (
            self.db.query(AuthSession)
            .filter(AuthSession.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self._commit()
        return deleted

    # ---------------------------------------------------------------------------
    # Journey progress
    # ---------------------------------------------------------------------------

    def get_journey_progress(
        self, user_id: int, journey_id: str, namespace: str = GENERAL_NAMESPACE
    ) -> Optional[JourneyProgress]:
        return (
            self.db.query(JourneyProgress)
            .filter(
                JourneyProgress.user_id == user_id,
                JourneyProgress.namespace == namespace,
                JourneyProgress.journey_id == journey_id,
            )
            .first()
        )

    def get_all_journey_progress(
        self, user_id: int, namespace: Optional[str] = None
    ) -> list[JourneyProgress]:
        """All progress rows of a user; ``namespace=None`` spans every namespace."""
        query = self.db.query(JourneyProgress).filter(JourneyProgress.user_id == user_id)
        if namespace is not None:
            query = query.filter(JourneyProgress.namespace == namespace)
        return query.order_by(JourneyProgress.id.asc()).all()

    def upsert_journey_progress(
        self,
        user_id: int,
        journey_id: str,
        current_step: int,
        completed: bool = False,
        namespace: str = GENERAL_NAMESPACE,
    ) -> JourneyProgress:
        """
        Insert or overwrite the cursor for (user, namespace, journey).

        ``current_step`` and ``completed`` are overwritten as given; steps may
        go backwards. ``last_accessed_at`` is always refreshed. ``completed_at``
        is stamped when the row goes from not completed to completed and is
        otherwise left alone.
        """
        now = utcnow()
        insert = self._upsert_insert()

        if insert is None:
            return self._upsert_journey_progress_fallback(
                user_id, journey_id, current_step, completed, namespace, now
            )

        stmt = insert(JourneyProgress.__table__).values(
            user_id=user_id,
            namespace=namespace,
            journey_id=journey_id,
            current_step=current_step,
            completed=completed,
            completed_at=now if completed else None,
            started_at=now,
            last_accessed_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "namespace", "journey_id"],
            set_={
                "current_step": stmt.excluded.current_step,
                "completed": stmt.excluded.completed,
                "completed_at": case(
                    (
                        and_(
                            stmt.excluded.completed.is_(True),
                            JourneyProgress.completed.is_(False),
                        ),
                        now,
                    ),
                    else_=JourneyProgress.completed_at,
                ),
                "last_accessed_at": stmt.excluded.last_accessed_at,
            },
        )
        self.db.execute(stmt)
        self._commit()
        # The identity map may still hold the pre-upsert row
        self.db.expire_all()
        return self.get_journey_progress(user_id, journey_id, namespace)

    def _upsert_journey_progress_fallback(
        self,
        user_id: int,
        journey_id: str,
        current_step: int,
        completed: bool,
        namespace: str,
        now: datetime,
    ) -> JourneyProgress:
        """Lookup-then-write for dialects without ON CONFLICT; the unique constraint still guards duplicates."""
        progress = self.get_journey_progress(user_id, journey_id, namespace)
        if progress:
            if completed and not progress.completed:
                progress.completed_at = now
            progress.current_step = current_step
            progress.completed = completed
            progress.last_accessed_at = now
        else:
            progress = JourneyProgress(
                user_id=user_id,
                namespace=namespace,
                journey_id=journey_id,
                current_step=current_step,
                completed=completed,
                completed_at=now if completed else None,
                started_at=now,
                last_accessed_at=now,
            )
            self.db.add(progress)
        self._commit()
        self.db.refresh(progress)
        return progress

    # ---------------------------------------------------------------------------
    # Step completions
    # ---------------------------------------------------------------------------

    def record_step_completion(
        self,
        user_id: int,
        journey_id: str,
        step_index: int,
        time_spent_seconds: Optional[int] = None,
        namespace: str = GENERAL_NAMESPACE,
    ) -> StepCompletion:
        completion = StepCompletion(
            user_id=user_id,
            namespace=namespace,
            journey_id=journey_id,
            step_index=step_index,
            time_spent_seconds=time_spent_seconds,
            completed_at=utcnow(),
        )
        self.db.add(completion)
        self._commit()
        self.db.refresh(completion)
        return completion

    def get_step_completions(
        self, user_id: int, journey_id: str, namespace: str = GENERAL_NAMESPACE
    ) -> list[StepCompletion]:
        return (
            self.db.query(StepCompletion)
            .filter(
                StepCompletion.user_id == user_id,
                StepCompletion.namespace == namespace,
                StepCompletion.journey_id == journey_id,
            )
            .order_by(StepCompletion.id.asc())
            .all()
        )

    # ---------------------------------------------------------------------------
    # Achievements
    # ---------------------------------------------------------------------------

    def get_achievement(self, user_id: int, achievement_type: str) -> Optional[Achievement]:
        return (
            self.db.query(Achievement)
            .filter(
                Achievement.user_id == user_id,
                Achievement.achievement_type == achievement_type,
            )
            .first()
        )

    def grant_achievement(
        self, user_id: int, achievement_type: str, metadata: Optional[dict] = None
    ) -> Optional[Achievement]:
        """
        Grant an achievement at most once per user.

        Returns the new row, or None if the user already had it.
        """
        insert = self._upsert_insert()
        if insert is None:
            if self.get_achievement(user_id, achievement_type):
                return None
            self.db.add(Achievement(
                user_id=user_id,
                achievement_type=achievement_type,
                details=metadata,
                earned_at=utcnow(),
            ))
            self._commit()
            return self.get_achievement(user_id, achievement_type)

        stmt = (
            insert(Achievement.__table__)
            .values(
                user_id=user_id,
                achievement_type=achievement_type,
                details=metadata,
                earned_at=utcnow(),
            )
            .on_conflict_do_nothing(index_elements=["user_id", "achievement_type"])
        )
        result = self.db.execute(stmt)
        self._commit()
        if not result.rowcount:
            return None
        logger.info(f"user={user_id} earned '{achievement_type}'")
        return self.get_achievement(user_id, achievement_type)

    def get_user_achievements(self, user_id: int) -> list[Achievement]:
        return (
            self.db.query(Achievement)
            .filter(Achievement.user_id == user_id)
            .order_by(Achievement.id.asc())
            .all()
        )

    # ---------------------------------------------------------------------------
    # Subscriptions
    # ---------------------------------------------------------------------------

    def get_subscription(self, user_id: int) -> Optional[Subscription]:
        return self.db.query(Subscription).filter(Subscription.user_id == user_id).first()

    def create_subscription(self, user_id: int, plan: str = "free") -> Subscription:
        subscription = Subscription(user_id=user_id, plan=plan, status="active")
        self.db.add(subscription)
        self._commit()
        self.db.refresh(subscription)
        return subscription

    def update_subscription(self, user_id: int, **changes) -> Optional[Subscription]:
        subscription = self.get_subscription(user_id)
        if not subscription:
            return None
        for key, value in changes.items():
            setattr(subscription, key, value)
        subscription.updated_at = utcnow()
        self._commit()
        self.db.refresh(subscription)
        return subscription
