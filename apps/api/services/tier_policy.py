"""
Tier Policy

Pure "can they do this?" rules for the free and premium tiers.
No I/O: callers pass in the tier and the usage they already read.

The free-tier allow-lists live in one TierConfig so the policy checks
and the profile payload sent to the app can't drift apart.

Usage:
    config = get_tier_config()
    if not is_goal_allowed(profile.tier, request.goal, config):
        ...
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from core.config import settings
from schemas import Equipment, Goal, Tier


FREE_ALLOWED_GOALS: Tuple[Goal, ...] = (Goal.STRENGTH, Goal.ENDURANCE)
FREE_ALLOWED_EQUIPMENT: Tuple[Equipment, ...] = (Equipment.BODYWEIGHT, Equipment.MINIMAL)
DEFAULT_DAILY_FREE_LIMIT = 1


@dataclass(frozen=True)
class TierConfig:
    free_goals: Tuple[Goal, ...] = FREE_ALLOWED_GOALS
    free_equipment: Tuple[Equipment, ...] = FREE_ALLOWED_EQUIPMENT
    daily_free_limit: int = DEFAULT_DAILY_FREE_LIMIT
    pricing: Dict[str, str] = field(default_factory=lambda: {"monthly": "5.99", "annual": "59.99", "currency": "usd"})

    def allowed_goals(self, tier: Tier) -> Tuple[Goal, ...]:
        return tuple(Goal) if _is_premium(tier) else self.free_goals

    def allowed_equipment(self, tier: Tier) -> Tuple[Equipment, ...]:
        return tuple(Equipment) if _is_premium(tier) else self.free_equipment


def get_tier_config() -> TierConfig:
    """Build the tier config from settings."""
    return TierConfig(
        daily_free_limit=settings.FREE_DAILY_WORKOUT_LIMIT,
        pricing={
            "monthly": settings.PREMIUM_MONTHLY_PRICE,
            "annual": settings.PREMIUM_ANNUAL_PRICE,
            "currency": settings.PRICING_CURRENCY,
        },
    )


def _is_premium(tier) -> bool:
    return tier == Tier.PREMIUM


def is_goal_allowed(tier: Tier, goal: Goal, config: Optional[TierConfig] = None) -> bool:
    config = config or TierConfig()
    return _is_premium(tier) or goal in config.free_goals


def is_equipment_allowed(tier: Tier, equipment: Equipment, config: Optional[TierConfig] = None) -> bool:
    config = config or TierConfig()
    return _is_premium(tier) or equipment in config.free_equipment


def should_block_daily_usage(tier: Tier, usage_count: int, config: Optional[TierConfig] = None) -> bool:
    """True when a free user has used up today's generations."""
    config = config or TierConfig()
    return not _is_premium(tier) and usage_count >= config.daily_free_limit


def remaining_free_workouts(tier: Tier, usage_count: int, config: Optional[TierConfig] = None) -> Optional[int]:
    """None for premium (unlimited)."""
    config = config or TierConfig()
    if _is_premium(tier):
        return None
    return max(config.daily_free_limit - usage_count, 0)
