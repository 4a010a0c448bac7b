"""
Workout API Router

Endpoints for:
- AI workout generation (tier + quota gated)
- Saving generated workouts to the user's history
- Listing recent history
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from core.exceptions import StorageError, ValidationError
from schemas import (
    USER_ID_MIN_LENGTH,
    GenerateWorkoutRequest,
    GenerateWorkoutResponse,
    SaveWorkoutRequest,
    StoredWorkoutRecord,
    WorkoutHistoryResponse,
)
from services.profile_service import ProfileService, get_profile_service
from services.workout_generator import WorkoutGenerator, get_workout_generator
from services.workout_history import list_workouts, save_workout

logger = logging.getLogger(__name__)

router = APIRouter(tags=["workouts"])


@router.post("/generate-workout", response_model=GenerateWorkoutResponse)
def generate_workout(
    request: GenerateWorkoutRequest,
    profiles: ProfileService = Depends(get_profile_service),
    generator: WorkoutGenerator = Depends(get_workout_generator),
):
    """
    Validate -> authorize access -> authorize quota -> generate ->
    validate output -> record usage + settings -> respond.
    """
    profile = profiles.get_profile(request.user_id)
    profiles.assert_access(profile, request)
    profiles.assert_quota(profile)

    plan = generator.generate(request)

    # The plan is already paid for; bookkeeping failures must not lose it.
    try:
        profiles.record_usage(profile)
    except StorageError:
        logger.error(
            "Failed to record usage after generation",
            exc_info=True,
            extra={"extra_fields": {"user_id": request.user_id}},
        )
    try:
        profiles.save_settings(profile, request)
    except StorageError:
        logger.error(
            "Failed to save settings after generation",
            exc_info=True,
            extra={"extra_fields": {"user_id": request.user_id}},
        )

    return {
        "request": request.model_dump(mode="json", by_alias=True),
        "plan": plan.model_dump(mode="json", by_alias=True),
    }


@router.post("/save-workout", status_code=status.HTTP_201_CREATED, response_model=StoredWorkoutRecord)
@router.post("/workouts", status_code=status.HTTP_201_CREATED, response_model=StoredWorkoutRecord)
def create_workout_record(
    payload: SaveWorkoutRequest,
    profiles: ProfileService = Depends(get_profile_service),
):
    return save_workout(profiles, payload)


@router.get("/workouts", response_model=WorkoutHistoryResponse)
def get_workouts(
    user_id: Optional[str] = Query(None, alias="userId"),
    profiles: ProfileService = Depends(get_profile_service),
):
    if not user_id or len(user_id) < USER_ID_MIN_LENGTH:
        raise ValidationError(
            "userId is required and must be valid",
            details=[{"field": "userId", "message": f"at least {USER_ID_MIN_LENGTH} characters"}],
        )
    return {"data": list_workouts(profiles, user_id)}
