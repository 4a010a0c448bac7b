"""
Entitlement Store

Redis-backed storage for per-user tier, settings, daily usage, the last
subscription record and the recent workout history.

Key layout:
    users:{id}                 hash  (id, tier, created_at, updated_at, settings,
                                      plan, expires_at, last_receipt_id)
    usage:{id}:{YYYY-MM-DD}    int   expires at the next UTC midnight
    subscriptions:{id}         JSON SubscriptionRecord
    workouts:{id}              list of JSON StoredWorkoutRecord, newest first

Nothing is cached in-process; every read goes back to Redis so concurrent
requests for the same user see each other's writes. Idempotent reads and
INCR are retried on connection/timeout errors; other writes are not.
"""

import json
import logging
import time
from datetime import datetime
from typing import Callable, List, Optional, TypeVar

import redis
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import ConnectionError, TimeoutError, RedisError

from core.cache import get_redis_client
from core.clock import isoformat_utc, seconds_until_next_utc_midnight, utc_date_key, utc_now
from core.config import settings
from core.exceptions import StorageError
from schemas import StoredWorkoutRecord, SubscriptionRecord, Tier, UserProfile, WorkoutRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")

USER_KEY_PREFIX = "users"
USAGE_KEY_PREFIX = "usage"
SUBSCRIPTION_KEY_PREFIX = "subscriptions"
WORKOUTS_KEY_PREFIX = "workouts"


def user_key(user_id: str) -> str:
    return f"{USER_KEY_PREFIX}:{user_id}"


def usage_key(user_id: str, now: datetime) -> str:
    return f"{USAGE_KEY_PREFIX}:{user_id}:{utc_date_key(now)}"


def subscription_key(user_id: str) -> str:
    return f"{SUBSCRIPTION_KEY_PREFIX}:{user_id}"


def workouts_key(user_id: str) -> str:
    return f"{WORKOUTS_KEY_PREFIX}:{user_id}"


class EntitlementStore:

    def __init__(
        self,
        client: redis.Redis,
        history_cap: int = 50,
        retry_attempts: int = 3,
        retry_delay_s: float = 0.1,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.client = client
        self.history_cap = history_cap
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay_s = retry_delay_s
        self.clock = clock

    # ------------------------------------------------------------------ #
    # Redis call wrappers
    # ------------------------------------------------------------------ #

    def _retrying(self, op: str, fn: Callable[[], T]) -> T:
        """Run an idempotent command with exponential backoff."""
        for attempt in range(self.retry_attempts):
            try:
                return fn()
            except (ConnectionError, TimeoutError) as e:
                if attempt == self.retry_attempts - 1:
                    logger.error(f"Store {op} failed after {self.retry_attempts} attempts: {e}")
                    raise StorageError() from e
                logger.warning(f"Store {op} attempt {attempt + 1} failed, retrying...")
                time.sleep(self.retry_delay_s * (2 ** attempt))
            except RedisError as e:
                logger.error(f"Store {op} failed: {e}")
                raise StorageError() from e
        raise StorageError()

    def _once(self, op: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except RedisError as e:
            logger.error(f"Store {op} failed: {e}")
            raise StorageError() from e

    # ------------------------------------------------------------------ #
    # Profiles
    # ------------------------------------------------------------------ #

    def ensure_user(self, user_id: str) -> str:
        """Create a free-tier record if none exists. Safe to call repeatedly."""
        key = user_key(user_id)
        now = isoformat_utc(self.clock())

        # HSETNX only fills missing fields, so a retry can't clobber anything.
        def _create() -> bool:
            created = self.client.hsetnx(key, "id", user_id)
            self.client.hsetnx(key, "tier", Tier.FREE.value)
            self.client.hsetnx(key, "created_at", now)
            self.client.hsetnx(key, "updated_at", now)
            return bool(created)

        if self._retrying("ensure_user", _create):
            logger.info(
                "Created user profile",
                extra={"extra_fields": {"user_id": user_id}},
            )
        return key

    def get_profile(self, user_id: str) -> UserProfile:
        raw = self._retrying("get_profile", lambda: self.client.hgetall(user_key(user_id))) or {}
        return UserProfile(
            id=user_id,
            tier=Tier.PREMIUM if raw.get("tier") == Tier.PREMIUM.value else Tier.FREE,
            created_at=raw.get("created_at") or isoformat_utc(self.clock()),
            settings=_parse_settings(raw.get("settings")),
        )

    def set_tier(self, user_id: str, tier: Tier, subscription: Optional[SubscriptionRecord] = None) -> None:
        mapping = {
            "tier": Tier(tier).value,
            "updated_at": isoformat_utc(self.clock()),
        }
        if subscription is not None:
            mapping["plan"] = subscription.plan.value
            mapping["expires_at"] = subscription.expires_at
            mapping["last_receipt_id"] = subscription.receipt_id
        self._once("set_tier", lambda: self.client.hset(user_key(user_id), mapping=mapping))

    def save_settings(self, user_id: str, request: WorkoutRequest) -> None:
        mapping = {
            "settings": json.dumps(request.settings_payload()),
            "updated_at": isoformat_utc(self.clock()),
        }
        self._once("save_settings", lambda: self.client.hset(user_key(user_id), mapping=mapping))

    # ------------------------------------------------------------------ #
    # Daily usage
    # ------------------------------------------------------------------ #

    def record_usage(self, user_id: str) -> int:
        """
        Increment today's counter and return the new value.

        The key carries the UTC date, so "reset at midnight" is just the
        key rotating; the TTL only cleans up yesterday's counter.
        """
        now = self.clock()
        key = usage_key(user_id, now)
        count = int(self._retrying("record_usage", lambda: self.client.incr(key)))
        if count == 1:
            ttl = seconds_until_next_utc_midnight(now)
            self._retrying("expire_usage", lambda: self.client.expire(key, ttl))
        return count

    def get_usage_count(self, user_id: str) -> int:
        raw = self._retrying("get_usage", lambda: self.client.get(usage_key(user_id, self.clock())))
        try:
            return int(raw) if raw is not None else 0
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-integer usage counter for {user_id}")
            return 0

    # ------------------------------------------------------------------ #
    # Subscriptions
    # ------------------------------------------------------------------ #

    def save_subscription(self, user_id: str, record: SubscriptionRecord) -> None:
        payload = record.model_dump_json(by_alias=True)
        self._once("save_subscription", lambda: self.client.set(subscription_key(user_id), payload))

    def get_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        raw = self._retrying("get_subscription", lambda: self.client.get(subscription_key(user_id)))
        if not raw:
            return None
        try:
            return SubscriptionRecord.model_validate_json(raw)
        except PydanticValidationError:
            logger.warning(f"Discarding malformed subscription record for {user_id}")
            return None

    # ------------------------------------------------------------------ #
    # Workout history
    # ------------------------------------------------------------------ #

    def append_history(self, user_id: str, record: StoredWorkoutRecord) -> None:
        """
        Push newest-first and trim to the cap.

        Push and trim are separate commands; concurrent appends can briefly
        leave more than `history_cap` entries until the next trim.
        """
        key = workouts_key(user_id)
        payload = record.model_dump_json(by_alias=True)
        self._once("append_history", lambda: self.client.lpush(key, payload))
        self._once("trim_history", lambda: self.client.ltrim(key, 0, self.history_cap - 1))

    def list_history(self, user_id: str) -> List[StoredWorkoutRecord]:
        raw_items = self._retrying(
            "list_history",
            lambda: self.client.lrange(workouts_key(user_id), 0, self.history_cap - 1),
        ) or []
        records: List[StoredWorkoutRecord] = []
        for raw in raw_items:
            try:
                records.append(StoredWorkoutRecord.model_validate_json(raw))
            except PydanticValidationError:
                logger.warning(f"Skipping malformed workout record for {user_id}")
        return records


def _parse_settings(raw: Optional[str]) -> Optional[WorkoutRequest]:
    if not raw:
        return None
    try:
        return WorkoutRequest.model_validate(json.loads(raw))
    except (ValueError, PydanticValidationError):
        return None


def get_entitlement_store() -> EntitlementStore:
    """FastAPI dependency: store bound to the shared Redis client."""
    client = get_redis_client()
    if client is None:
        logger.error("Entitlement store requested but Redis is unavailable")
        raise StorageError()
    return EntitlementStore(
        client,
        history_cap=settings.WORKOUT_HISTORY_CAP,
        retry_attempts=settings.STORE_RETRY_ATTEMPTS,
        retry_delay_s=settings.STORE_RETRY_DELAY_S,
    )
