"""
User profile and upgrade endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from core.exceptions import ValidationError
from schemas import USER_ID_MIN_LENGTH, UpgradeRequest
from services.profile_service import ProfileService, get_profile_service

router = APIRouter(tags=["user"])


@router.get("/user")
def get_user(
    user_id: Optional[str] = Query(None, alias="userId"),
    profiles: ProfileService = Depends(get_profile_service),
):
    if not user_id or len(user_id) < USER_ID_MIN_LENGTH:
        raise ValidationError(
            "userId is required",
            details=[{"field": "userId", "message": f"at least {USER_ID_MIN_LENGTH} characters"}],
        )
    profile = profiles.get_profile(user_id)
    return profiles.serialize_for_client(profile)


@router.post("/upgrade")
def upgrade_user(
    request: UpgradeRequest,
    profiles: ProfileService = Depends(get_profile_service),
):
    """
    Upgrade after a purchase. The receipt is verified with the billing
    provider before anything is written; unpaid or unknown receipts leave
    the tier unchanged.
    """
    profile = profiles.upgrade_with_receipt(
        request.user_id,
        provider=request.provider,
        receipt=request.receipt,
        plan=request.plan,
    )
    return profiles.serialize_for_client(profile)
