"""
Workout history: a short, newest-first list of saved plans per user.
"""
import logging
from typing import List
from uuid import uuid4

from core.clock import isoformat_utc
from schemas import SaveWorkoutRequest, StoredWorkoutRecord
from services.profile_service import ProfileService

logger = logging.getLogger(__name__)


def save_workout(profiles: ProfileService, payload: SaveWorkoutRequest) -> StoredWorkoutRecord:
    profile = profiles.get_profile(payload.user_id)
    profiles.assert_history_access(profile)

    record = StoredWorkoutRecord(
        id=str(uuid4()),
        user_id=payload.user_id,
        created_at=isoformat_utc(profiles.store.clock()),
        inputs=payload.request,
        output=payload.plan,
    )
    profiles.store.append_history(payload.user_id, record)
    profiles.save_settings(profile, payload.request)

    logger.info(
        "Workout saved",
        extra={"extra_fields": {"user_id": payload.user_id, "record_id": record.id}},
    )
    return record


def list_workouts(profiles: ProfileService, user_id: str) -> List[StoredWorkoutRecord]:
    return profiles.store.list_history(user_id)
