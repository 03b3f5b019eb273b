"""
Achievement system.
Awards: onboarding_complete, first/all journeys per namespace.
Each awarded at most once (UNIQUE user_id+achievement_type), so the checks
below may fire as often as their conditions hold.
"""
from datetime import datetime, timezone
from typing import NamedTuple, Optional

from kindred.core.config import GENERAL_JOURNEY_TOTAL, GMAIL_JOURNEY_TOTAL
from kindred.progress.models import Achievement, GENERAL_NAMESPACE, GMAIL_NAMESPACE
from kindred.storage import Storage

# Achievement definitions for display
ACHIEVEMENTS = {
    "onboarding_complete":          {"label": "Welcome Aboard",       "desc": "Finished the app introduction"},
    "first_journey_complete":       {"label": "First Guide Done",     "desc": "Completed your first guide"},
    "all_journeys_complete":        {"label": "Guide Master",         "desc": "Completed every guide"},
    "first_gmail_journey_complete": {"label": "First Email Lesson",   "desc": "Completed your first Gmail guide"},
    "all_gmail_journeys_complete":  {"label": "Gmail Graduate",       "desc": "Completed every Gmail guide"},
}


class JourneyMilestones(NamedTuple):
    first: str
    all: str
    total: int


MILESTONES = {
    GENERAL_NAMESPACE: JourneyMilestones("first_journey_complete", "all_journeys_complete", GENERAL_JOURNEY_TOTAL),
    GMAIL_NAMESPACE: JourneyMilestones("first_gmail_journey_complete", "all_gmail_journeys_complete", GMAIL_JOURNEY_TOTAL),
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def grant_onboarding_complete(storage: Storage, user_id: int) -> Optional[Achievement]:
    return storage.grant_achievement(user_id, "onboarding_complete", {"completedAt": _now_iso()})


def check_journey_milestones(
    storage: Storage, user_id: int, namespace: str, journey_id: str
) -> list[Achievement]:
    """
    Run after a journey in *namespace* is marked completed.

    Recounts completed journeys from a fresh scan: exactly one completed
    earns the "first" award, reaching the namespace total earns the "all"
    award. Returns only newly granted achievements.
    """
    milestones = MILESTONES.get(namespace)
    if not milestones:
        return []

    rows = storage.get_all_journey_progress(user_id, namespace=namespace)
    completed_count = sum(1 for p in rows if p.completed)

    granted = []
    if completed_count == 1:
        achievement = storage.grant_achievement(user_id, milestones.first, {
            "journeyId": journey_id,
            "completedAt": _now_iso(),
        })
        if achievement:
            granted.append(achievement)

    if completed_count >= milestones.total:
        achievement = storage.grant_achievement(user_id, milestones.all, {
            "completedAt": _now_iso(),
        })
        if achievement:
            granted.append(achievement)

    return granted


def describe_achievement(achievement: Achievement) -> dict:
    """Achievement row plus its display label/description."""
    meta = ACHIEVEMENTS.get(achievement.achievement_type, {})
    return {
        "id": achievement.id,
        "achievement_type": achievement.achievement_type,
        "details": achievement.details,
        "earned_at": achievement.earned_at,
        "label": meta.get("label"),
        "description": meta.get("desc"),
    }
