"""
Pytest configuration and fixtures

Redis is replaced by an in-memory FakeRedis and the FastAPI dependencies
are overridden per test, so nothing here needs a running Redis or any
provider credentials.
"""
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "text")

from fastapi.testclient import TestClient  # noqa: E402

from main import app  # noqa: E402
from schemas import WorkoutPlan  # noqa: E402
from services.entitlement_store import EntitlementStore, get_entitlement_store  # noqa: E402
from services.workout_generator import get_workout_generator  # noqa: E402


class FakeRedis:
    """Minimal in-memory Redis for unit tests (decode_responses=True semantics)."""

    def __init__(self):
        self._store: dict = {}
        self._ttls: dict = {}
        self.calls: list = []

    # strings / counters
    def get(self, key):
        value = self._store.get(key)
        return value if isinstance(value, str) else None

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self._store:
            return False
        self._store[key] = str(value)
        if ex:
            self._ttls[key] = ex
        return True

    def setex(self, key, ttl, value):
        self._store[key] = str(value)
        self._ttls[key] = ttl
        return True

    def incr(self, key):
        self.calls.append(("incr", key))
        val = int(self._store.get(key, 0)) + 1
        self._store[key] = str(val)
        return val

    def expire(self, key, ttl):
        self.calls.append(("expire", key, ttl))
        self._ttls[key] = ttl
        return key in self._store

    def ttl(self, key):
        return self._ttls.get(key, -1)

    def delete(self, *keys):
        for k in keys:
            self._store.pop(k, None)
            self._ttls.pop(k, None)

    def exists(self, key):
        return key in self._store

    # hashes
    def hsetnx(self, key, field, value):
        h = self._store.setdefault(key, {})
        if field in h:
            return 0
        h[field] = str(value)
        return 1

    def hset(self, key, field=None, value=None, mapping=None):
        h = self._store.setdefault(key, {})
        added = 0
        items = dict(mapping or {})
        if field is not None:
            items[field] = value
        for f, v in items.items():
            added += 0 if f in h else 1
            h[f] = str(v)
        return added

    def hget(self, key, field):
        return self._store.get(key, {}).get(field)

    def hgetall(self, key):
        return dict(self._store.get(key, {}))

    # lists
    def lpush(self, key, *values):
        lst = self._store.setdefault(key, [])
        for v in values:
            lst.insert(0, str(v))
        return len(lst)

    def ltrim(self, key, start, end):
        lst = self._store.get(key, [])
        stop = None if end == -1 else end + 1
        self._store[key] = lst[start:stop]
        return True

    def lrange(self, key, start, end):
        lst = self._store.get(key, [])
        stop = None if end == -1 else end + 1
        return list(lst[start:stop])

    def ping(self):
        return True


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_plan_dict(blocks: int = 2, exercises_per_block: int = 1) -> dict:
    return {
        "summary": "Full-body strength session",
        "totalDurationMinutes": 40,
        "warmup": ["Joint circles 2 min"],
        "cooldown": ["Box breathing 2 min"],
        "finisher": [],
        "metrics": {"intensity": "medium", "rpeTarget": "RPE 6-8", "estimatedCalories": 320},
        "blocks": [
            {
                "id": f"block-{b}",
                "title": f"Block {b}",
                "focus": "Strength",
                "durationMinutes": 12,
                "instructions": "Alternate movements, rest 60s between rounds.",
                "timerSeconds": 720,
                "exercises": [
                    {
                        "id": f"exercise-{b}-{e}",
                        "name": "Push-up",
                        "prescription": "3 x 10",
                        "notes": ["Brace core"],
                    }
                    for e in range(exercises_per_block)
                ],
                "tips": [],
            }
            for b in range(blocks)
        ],
    }


def make_request_dict(**overrides) -> dict:
    base = {
        "time": 30,
        "intensity": "medium",
        "goal": "strength",
        "equipment": "bodyweight",
        "userId": "user-12345678",
    }
    base.update(overrides)
    return base


class FakeGenerator:
    """Stands in for WorkoutGenerator; counts calls instead of hitting a provider."""

    def __init__(self, plan: dict = None, error: Exception = None):
        self.plan = plan or make_plan_dict()
        self.error = error
        self.calls = []

    def generate(self, request):
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        return WorkoutPlan.model_validate(self.plan)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 3, 15, 18, 30, tzinfo=timezone.utc))


@pytest.fixture
def store(fake_redis, clock):
    return EntitlementStore(fake_redis, history_cap=5, retry_attempts=3, retry_delay_s=0, clock=clock)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def client(store, generator):
    app.dependency_overrides[get_entitlement_store] = lambda: store
    app.dependency_overrides[get_workout_generator] = lambda: generator
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
