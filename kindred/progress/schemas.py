from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from kindred.core.schemas import CamelModel
from kindred.progress.models import MAX_INT


# Strict fields: "3", 2.0 and "yes" are rejected rather than coerced
class ProgressUpdateRequest(CamelModel):
    current_step: int = Field(..., ge=0, le=MAX_INT, strict=True)
    completed: bool = Field(default=False, strict=True)


class StepCompletionRequest(CamelModel):
    time_spent_seconds: Optional[int] = Field(default=None, ge=0, le=MAX_INT, strict=True)


class ProgressOut(CamelModel):
    # id and timestamps are absent for journeys the user has not started
    id: Optional[int] = None
    journey_id: str
    current_step: int = 0
    completed: bool = False
    completed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    last_accessed_at: Optional[datetime] = None


class StepCompletionOut(CamelModel):
    id: int
    journey_id: str
    step_index: int
    time_spent_seconds: Optional[int] = None
    completed_at: Optional[datetime] = None


class AchievementOut(CamelModel):
    id: int
    achievement_type: str
    metadata: Optional[dict[str, Any]] = Field(
        default=None, validation_alias="details", serialization_alias="metadata"
    )
    earned_at: Optional[datetime] = None
    label: Optional[str] = None
    description: Optional[str] = None


class ProgressListResponse(CamelModel):
    progress: list[ProgressOut]


class ProgressDetailResponse(CamelModel):
    progress: ProgressOut
    step_completions: list[StepCompletionOut]


class ProgressResponse(CamelModel):
    progress: ProgressOut


class StepCompletionResponse(CamelModel):
    completion: StepCompletionOut


class AchievementListResponse(CamelModel):
    achievements: list[AchievementOut]


class StatsSummaryResponse(CamelModel):
    completed_journeys: int
    in_progress_journeys: int
    total_achievements: int
    last_activity_at: Optional[datetime] = None
