"""
Profile Service

Orchestrates the entitlement store, the tier policy and billing
verification to answer the questions the endpoints ask:

- who is this user and what tier are they on?
- may they generate this workout right now?
- record that they did
- upgrade them after a verified purchase
- what does the app need to render the paywall/limits?

Policy is always re-checked here against stored state; whatever the app
believes about the user's tier is never the gate.
"""

import logging
from typing import Any, Callable, Dict, Optional

from fastapi import Depends

from core.cache import cache_key, get_cache, set_cache
from core.config import settings
from core.exceptions import ProviderError, ProviderUnavailableError, TierLimitError
from schemas import PlanInterval, SubscriptionRecord, Tier, UserProfile, WorkoutRequest
from services.entitlement_provider import EntitlementStatus, RevenueCatClient
from services.entitlement_store import EntitlementStore, get_entitlement_store
from services.receipt_verifier import verify_receipt
from services.tier_policy import (
    TierConfig,
    get_tier_config,
    is_equipment_allowed,
    is_goal_allowed,
    remaining_free_workouts,
    should_block_daily_usage,
)

logger = logging.getLogger(__name__)

ENTITLEMENT_CACHE_PREFIX = "entitlement"


class ProfileService:

    def __init__(
        self,
        store: EntitlementStore,
        config: Optional[TierConfig] = None,
        entitlement_client_factory: Callable[[], RevenueCatClient] = RevenueCatClient,
        history_requires_premium: Optional[bool] = None,
    ):
        self.store = store
        self.config = config or get_tier_config()
        self.entitlement_client_factory = entitlement_client_factory
        if history_requires_premium is None:
            history_requires_premium = settings.HISTORY_REQUIRES_PREMIUM
        self.history_requires_premium = history_requires_premium

    # ============ Profile ============

    def get_profile(self, user_id: str) -> UserProfile:
        self.store.ensure_user(user_id)
        return self.store.get_profile(user_id)

    # ============ Gates ============

    def assert_access(self, profile: UserProfile, request: WorkoutRequest) -> None:
        if not is_goal_allowed(profile.tier, request.goal, self.config):
            raise TierLimitError(
                "That goal is premium-only. Upgrade to unlock advanced goals.",
                TierLimitError.GOAL_RESTRICTED,
            )
        if not is_equipment_allowed(profile.tier, request.equipment, self.config):
            raise TierLimitError(
                "That equipment option requires premium access.",
                TierLimitError.EQUIPMENT_RESTRICTED,
            )

    def assert_quota(self, profile: UserProfile) -> None:
        if profile.is_premium:
            return
        usage = self.store.get_usage_count(profile.id)
        if should_block_daily_usage(profile.tier, usage, self.config):
            raise TierLimitError(
                f"Free tier allows {self.config.daily_free_limit} workout(s) per day. "
                "Upgrade for unlimited sessions.",
                TierLimitError.DAILY_LIMIT,
            )

    def assert_history_access(self, profile: UserProfile) -> None:
        if self.history_requires_premium and not profile.is_premium:
            raise TierLimitError(
                "Saving workouts is a premium feature.",
                TierLimitError.PREMIUM_REQUIRED,
            )

    # ============ Usage ============

    def record_usage(self, profile: UserProfile) -> Optional[int]:
        """No-op for premium; returns today's count for free users."""
        if profile.is_premium:
            return None
        return self.store.record_usage(profile.id)

    def save_settings(self, profile: UserProfile, request: WorkoutRequest) -> None:
        self.store.save_settings(profile.id, request)

    def remaining_free_workouts(self, profile: UserProfile) -> Optional[int]:
        if profile.is_premium:
            return None
        return remaining_free_workouts(profile.tier, self.store.get_usage_count(profile.id), self.config)

    # ============ Upgrade ============

    def upgrade(self, user_id: str, subscription: Optional[SubscriptionRecord] = None) -> UserProfile:
        """Persist the subscription (if any) and move the user to premium."""
        self.store.ensure_user(user_id)
        if subscription is not None:
            self.store.save_subscription(user_id, subscription)
        self.store.set_tier(user_id, Tier.PREMIUM, subscription)
        logger.info(
            "User upgraded to premium",
            extra={"extra_fields": {
                "user_id": user_id,
                "plan": subscription.plan.value if subscription else None,
            }},
        )
        return self.store.get_profile(user_id)

    def upgrade_with_receipt(self, user_id: str, provider: str, receipt: str, plan: PlanInterval) -> UserProfile:
        """
        Verify the receipt server-side, then upgrade. Any verification
        failure propagates before the store is touched, so the tier stays
        where it was.
        """
        record = verify_receipt(provider, receipt, plan)
        return self.upgrade(user_id, record)

    # ============ Client payload ============

    def serialize_for_client(self, profile: UserProfile) -> Dict[str, Any]:
        subscription = self.store.get_subscription(profile.id)
        return {
            "id": profile.id,
            "tier": profile.tier.value,
            "premiumPrice": self.config.pricing.get("monthly"),
            "pricing": dict(self.config.pricing),
            "remainingFreeWorkouts": self.remaining_free_workouts(profile),
            "limits": {
                "dailyFreeWorkouts": self.config.daily_free_limit,
                "allowedGoals": [g.value for g in self.config.allowed_goals(profile.tier)],
                "allowedEquipment": [e.value for e in self.config.allowed_equipment(profile.tier)],
            },
            "subscription": subscription.model_dump(mode="json", by_alias=True) if subscription else None,
        }

    # ============ Remote verification ============

    def _lookup_entitlement(self, user_id: str) -> Optional[EntitlementStatus]:
        """Cached provider lookup; None when the provider could not answer."""
        key = cache_key(ENTITLEMENT_CACHE_PREFIX, user_id)
        cached = get_cache(key, client=self.store.client)
        if cached is not None:
            return EntitlementStatus.from_dict(cached)

        try:
            status = self.entitlement_client_factory().fetch_entitlement(user_id)
        except ProviderUnavailableError:
            raise
        except ProviderError as e:
            logger.warning(
                "Entitlement lookup failed; reporting not premium",
                extra={"extra_fields": {"user_id": user_id, "error": e.detail}},
            )
            return None

        set_cache(key, status.to_dict(), settings.SUBSCRIPTION_CACHE_TTL_S, client=self.store.client)
        return status

    def verify_subscription_status(self, user_id: str) -> Dict[str, Any]:
        """
        Ask the entitlement provider, not the local store, whether the user
        is premium. Provider failures degrade to "not premium" with the
        remaining free count instead of failing the request.
        """
        status = self._lookup_entitlement(user_id)
        premium = bool(status and status.premium)
        remaining = None
        if not premium:
            remaining = remaining_free_workouts(Tier.FREE, self.store.get_usage_count(user_id), self.config)
        return {
            "premium": premium,
            "entitlementExpiration": status.expiration if status else None,
            "remainingFreeWorkouts": remaining,
        }


def get_profile_service(store: EntitlementStore = Depends(get_entitlement_store)) -> ProfileService:
    return ProfileService(store)
