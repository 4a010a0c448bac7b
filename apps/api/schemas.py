from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


USER_ID_MIN_LENGTH = 8


class Tier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"


class Intensity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Goal(str, Enum):
    STRENGTH = "strength"
    HYPERTROPHY = "hypertrophy"
    ENDURANCE = "endurance"
    MOBILITY = "mobility"
    FAT_LOSS = "fat_loss"


class Equipment(str, Enum):
    BODYWEIGHT = "bodyweight"
    MINIMAL = "minimal"
    FULL_GYM = "full_gym"


class PlanInterval(str, Enum):
    MONTHLY = "monthly"
    ANNUAL = "annual"


class BillingProvider(str, Enum):
    STRIPE = "stripe"


class CamelModel(BaseModel):
    """Wire format is camelCase (mobile client); attributes stay snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============ Workout request / plan ============

class WorkoutRequest(CamelModel):
    time: int = Field(..., ge=10, le=120, strict=True, description="Available minutes")
    intensity: Intensity
    goal: Goal
    equipment: Equipment
    user_id: Optional[str] = Field(None, min_length=USER_ID_MIN_LENGTH)

    def settings_payload(self) -> dict:
        """The request minus the user id, as persisted on the profile."""
        return self.model_dump(mode="json", by_alias=True, exclude={"user_id"})


class GenerateWorkoutRequest(WorkoutRequest):
    """Generation needs a user to gate tier access and quota against."""
    user_id: str = Field(..., min_length=USER_ID_MIN_LENGTH)


class Exercise(CamelModel):
    id: str
    name: str
    prescription: str
    equipment: Optional[str] = None
    notes: List[str] = Field(default_factory=list)


class Block(CamelModel):
    id: str
    title: str
    focus: str
    duration_minutes: float = Field(..., ge=3, le=90)
    instructions: str
    timer_seconds: int = Field(..., ge=60, le=3600)
    exercises: List[Exercise] = Field(..., min_length=1)
    tips: List[str] = Field(default_factory=list)


class PlanMetrics(CamelModel):
    intensity: Intensity
    rpe_target: str
    estimated_calories: Optional[float] = None


class WorkoutPlan(CamelModel):
    summary: str
    total_duration_minutes: float = Field(..., ge=10, le=180)
    warmup: List[str] = Field(default_factory=list)
    cooldown: List[str] = Field(default_factory=list)
    finisher: List[str] = Field(default_factory=list)
    metrics: PlanMetrics
    blocks: List[Block] = Field(..., min_length=2)


class GenerateWorkoutResponse(CamelModel):
    request: WorkoutRequest
    plan: WorkoutPlan


# ============ History ============

class SaveWorkoutRequest(CamelModel):
    user_id: str = Field(..., min_length=USER_ID_MIN_LENGTH)
    request: WorkoutRequest
    plan: WorkoutPlan


class StoredWorkoutRecord(CamelModel):
    id: str
    user_id: str
    created_at: str
    inputs: WorkoutRequest
    output: WorkoutPlan


class WorkoutHistoryResponse(BaseModel):
    data: List[StoredWorkoutRecord]


# ============ Profile / billing ============

class SubscriptionRecord(CamelModel):
    """Normalized purchase; overwritten wholesale by a later upgrade."""
    model_config = ConfigDict(frozen=True)

    provider: BillingProvider
    plan: PlanInterval
    receipt_id: str
    amount: int = 0  # minor units, as reported by the provider
    currency: str = "usd"
    purchased_at: str
    expires_at: str


class UserProfile(CamelModel):
    id: str
    tier: Tier = Tier.FREE
    created_at: str
    settings: Optional[WorkoutRequest] = None

    @property
    def is_premium(self) -> bool:
        return self.tier == Tier.PREMIUM


class UpgradeRequest(CamelModel):
    user_id: str = Field(..., min_length=USER_ID_MIN_LENGTH)
    provider: str = Field(..., min_length=1)
    plan: PlanInterval
    receipt: str = Field(..., min_length=1)


class VerifySubscriptionRequest(CamelModel):
    user_id: str = Field(..., min_length=3)


class VerifySubscriptionResponse(CamelModel):
    premium: bool
    entitlement_expiration: Optional[str] = None
    remaining_free_workouts: Optional[int] = None
