from __future__ import annotations

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, Response

from core.config import settings
from core.exceptions import ProviderUnavailableError, UnauthorizedError
from schemas import VerifySubscriptionRequest, VerifySubscriptionResponse
from services.profile_service import ProfileService, get_profile_service


router = APIRouter(tags=["billing"])


def require_verification_key(x_api_key: Optional[str] = Header(None, alias="x-api-key")) -> None:
    """
    Server-to-server auth for /verify-subscription.

    Fail closed: without both secrets configured the endpoint can't run.
    """
    if not settings.VERIFY_SUBSCRIPTION_API_KEY:
        raise ProviderUnavailableError("verify-subscription")
    if not settings.REVENUECAT_API_KEY:
        raise ProviderUnavailableError("revenuecat")
    if not x_api_key or not hmac.compare_digest(x_api_key, settings.VERIFY_SUBSCRIPTION_API_KEY):
        raise UnauthorizedError()


@router.post(
    "/verify-subscription",
    response_model=VerifySubscriptionResponse,
    dependencies=[Depends(require_verification_key)],
)
def verify_subscription(
    request: VerifySubscriptionRequest,
    response: Response,
    profiles: ProfileService = Depends(get_profile_service),
):
    """
    Ask the entitlement provider whether the user is currently premium.

    Provider outages degrade to a non-premium answer with today's remaining
    free workouts rather than an error.
    """
    result = profiles.verify_subscription_status(request.user_id)
    response.headers["cache-control"] = f"s-maxage={settings.SUBSCRIPTION_CACHE_TTL_S}"
    return result
