from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.sql import func

from kindred.db.base import Base

# Journey families. Progress and step rows carry one of these so that
# Gmail journeys and the other guides can share ids without colliding.
GENERAL_NAMESPACE = "general"
GMAIL_NAMESPACE = "gmail"

JOURNEY_ID_MAX_LENGTH = 128
# Upper bound of an INTEGER column on PostgreSQL
MAX_INT = 2**31 - 1


class JourneyProgress(Base):
    """
    Cursor for one user on one journey: which step they are on and whether
    they finished it. One row per (user, namespace, journey).
    """

    __tablename__ = "journey_progress"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    namespace = Column(String(32), nullable=False, default=GENERAL_NAMESPACE)
    journey_id = Column(String(JOURNEY_ID_MAX_LENGTH), nullable=False)

    current_step = Column(Integer, nullable=False, default=0)
    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    started_at = Column(DateTime(timezone=True), server_default=func.now())
    last_accessed_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "namespace", "journey_id", name="uq_journey_progress"),
    )


class StepCompletion(Base):
    """Append-only log; revisiting a step adds another row."""

    __tablename__ = "step_completions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    namespace = Column(String(32), nullable=False, default=GENERAL_NAMESPACE)
    journey_id = Column(String(JOURNEY_ID_MAX_LENGTH), nullable=False)
    step_index = Column(Integer, nullable=False)

    time_spent_seconds = Column(Integer, nullable=True)
    completed_at = Column(DateTime(timezone=True), server_default=func.now())


class Achievement(Base):
    __tablename__ = "achievements"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # e.g. "onboarding_complete", "first_journey_complete", "all_gmail_journeys_complete"
    achievement_type = Column(String(64), nullable=False)
    # Free-form context (journey id, completion time); exposed as "metadata"
    details = Column(JSON, nullable=True)

    earned_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_type", name="uq_user_achievement"),
    )
