"""
Journey progress routes.

The same route set is mounted once per journey namespace: ``/progress`` for
the general guides and ``/gmail-progress`` for the Gmail guides. Journey ids
on the wire are plain (``inbox_basics``); the namespace lives in its own
column, never in the id.
"""
from typing import Annotated, Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Path

from kindred.auth.models import User
from kindred.core.deps import get_storage, require_auth
from kindred.core.log import get_logger
from kindred.progress.achievements import check_journey_milestones, describe_achievement
from kindred.progress.models import (
    GENERAL_NAMESPACE,
    GMAIL_NAMESPACE,
    JOURNEY_ID_MAX_LENGTH,
    MAX_INT,
)
from kindred.progress.schemas import (
    AchievementListResponse,
    ProgressDetailResponse,
    ProgressListResponse,
    ProgressResponse,
    ProgressUpdateRequest,
    StatsSummaryResponse,
    StepCompletionRequest,
    StepCompletionResponse,
)
from kindred.storage import Storage, as_utc

logger = get_logger(__name__, "PROGRESS")

# Older clients sent Gmail ids with this prefix
LEGACY_GMAIL_PREFIX = "gmail_"

JourneyId = Annotated[str, Path(min_length=1, max_length=JOURNEY_ID_MAX_LENGTH)]


def _identity(journey_id: str) -> str:
    return journey_id


def strip_legacy_gmail_prefix(journey_id: str) -> str:
    if journey_id.startswith(LEGACY_GMAIL_PREFIX):
        return journey_id[len(LEGACY_GMAIL_PREFIX):]
    return journey_id


def build_progress_router(
    namespace: str,
    prefix: str,
    tag: str,
    normalize_journey_id: Callable[[str], str] = _identity,
) -> APIRouter:
    """Build the list/get/update/step routes for one journey namespace."""
    router = APIRouter(prefix=prefix, tags=[tag])
    label = "Gmail " if namespace == GMAIL_NAMESPACE else ""

    # ======================================================
    # LIST ALL PROGRESS IN THIS NAMESPACE
    # ======================================================
    @router.get("/", response_model=ProgressListResponse)
    def list_progress(
        user: User = Depends(require_auth),
        storage: Storage = Depends(get_storage),
    ):
        try:
            rows = storage.get_all_journey_progress(user.id, namespace=namespace)
        except Exception:
            logger.exception(f"Get {label}progress error")
            raise HTTPException(status_code=500, detail="Failed to get progress")
        return {"progress": rows}

    # ======================================================
    # ONE JOURNEY (+ its step log)
    # ======================================================
    @router.get("/{journey_id}", response_model=ProgressDetailResponse)
    def get_progress(
        journey_id: JourneyId,
        user: User = Depends(require_auth),
        storage: Storage = Depends(get_storage),
    ):
        """A journey the user never touched reports step 0, not completed; nothing is written."""
        journey_id = normalize_journey_id(journey_id)
        try:
            progress = storage.get_journey_progress(user.id, journey_id, namespace)
            completions = storage.get_step_completions(user.id, journey_id, namespace)
        except Exception:
            logger.exception(f"Get {label}journey progress error")
            raise HTTPException(status_code=500, detail="Failed to get journey progress")

        return {
            "progress": progress or {"journey_id": journey_id, "current_step": 0, "completed": False},
            "step_completions": completions,
        }

    # ======================================================
    # UPSERT PROGRESS (+ milestone achievements)
    # ======================================================
    @router.put("/{journey_id}", response_model=ProgressResponse)
    def update_progress(
        journey_id: JourneyId,
        payload: ProgressUpdateRequest,
        user: User = Depends(require_auth),
        storage: Storage = Depends(get_storage),
    ):
        journey_id = normalize_journey_id(journey_id)
        try:
            progress = storage.upsert_journey_progress(
                user.id,
                journey_id,
                payload.current_step,
                payload.completed,
                namespace=namespace,
            )
            if payload.completed:
                check_journey_milestones(storage, user.id, namespace, journey_id)
        except Exception:
            logger.exception(f"Update {label}progress error")
            raise HTTPException(status_code=500, detail="Failed to update progress")

        return {"progress": progress}

    # ======================================================
    # STEP COMPLETION LOG
    # ======================================================
    @router.post("/{journey_id}/steps/{step_index}", response_model=StepCompletionResponse)
    def record_step(
        journey_id: JourneyId,
        step_index: int = Path(..., ge=0, le=MAX_INT),
        payload: Optional[StepCompletionRequest] = None,
        user: User = Depends(require_auth),
        storage: Storage = Depends(get_storage),
    ):
        journey_id = normalize_journey_id(journey_id)
        time_spent = payload.time_spent_seconds if payload else None
        try:
            completion = storage.record_step_completion(
                user.id, journey_id, step_index, time_spent, namespace=namespace
            )
        except Exception:
            logger.exception(f"Record {label}step error")
            raise HTTPException(status_code=500, detail="Failed to record step completion")
        return {"completion": completion}

    return router


router = build_progress_router(GENERAL_NAMESPACE, "/progress", "progress")


# Registered on the general router only. FastAPI matches routes in the order
# they were added; these two-segment paths never collide with /{journey_id}.
@router.get("/achievements/all", response_model=AchievementListResponse)
def list_achievements(
    user: User = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    try:
        achievements = storage.get_user_achievements(user.id)
    except Exception:
        logger.exception("Get achievements error")
        raise HTTPException(status_code=500, detail="Failed to get achievements")
    return {"achievements": [describe_achievement(a) for a in achievements]}


@router.get("/stats/summary", response_model=StatsSummaryResponse)
def stats_summary(
    user: User = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    """Counts across every namespace, plus the most recent activity time."""
    try:
        rows = storage.get_all_journey_progress(user.id)
        achievements = storage.get_user_achievements(user.id)
    except Exception:
        logger.exception("Get stats error")
        raise HTTPException(status_code=500, detail="Failed to get stats")

    last_activity = None
    for p in rows:
        if p.last_accessed_at and (last_activity is None or as_utc(p.last_accessed_at) > as_utc(last_activity)):
            last_activity = p.last_accessed_at

    return {
        "completed_journeys": sum(1 for p in rows if p.completed),
        "in_progress_journeys": sum(1 for p in rows if not p.completed and (p.current_step or 0) > 0),
        "total_achievements": len(achievements),
        "last_activity_at": last_activity,
    }


gmail_router = build_progress_router(
    GMAIL_NAMESPACE,
    "/gmail-progress",
    "gmail-progress",
    normalize_journey_id=strip_legacy_gmail_prefix,
)
