"""
Profile service: access gates, quota, upgrades and remote verification.
"""
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from conftest import make_request_dict
from core.exceptions import ProviderError, ProviderUnavailableError, ReceiptNotPaidError, TierLimitError
from schemas import BillingProvider, PlanInterval, SubscriptionRecord, Tier, WorkoutRequest
from services import profile_service as profile_module
from services.entitlement_provider import EntitlementStatus
from services.profile_service import ProfileService
from services.tier_policy import TierConfig

USER = "user-12345678"


def _request(**overrides) -> WorkoutRequest:
    return WorkoutRequest.model_validate(make_request_dict(**overrides))


class _FakeEntitlementClient:
    def __init__(self, status=None, error=None):
        self.status = status
        self.error = error
        self.calls = 0

    def fetch_entitlement(self, user_id):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.status


@pytest.fixture
def profiles(store):
    return ProfileService(store, config=TierConfig(), history_requires_premium=True)


def _make_premium(store):
    store.ensure_user(USER)
    store.set_tier(USER, Tier.PREMIUM)


class TestGates:
    def test_new_user_is_free(self, profiles):
        assert profiles.get_profile(USER).tier == Tier.FREE

    def test_free_goal_restricted(self, profiles):
        profile = profiles.get_profile(USER)
        with pytest.raises(TierLimitError) as exc:
            profiles.assert_access(profile, _request(goal="hypertrophy"))
        assert exc.value.code == TierLimitError.GOAL_RESTRICTED
        assert exc.value.status_code == 403

    def test_free_equipment_restricted(self, profiles):
        profile = profiles.get_profile(USER)
        with pytest.raises(TierLimitError) as exc:
            profiles.assert_access(profile, _request(equipment="full_gym"))
        assert exc.value.code == TierLimitError.EQUIPMENT_RESTRICTED

    def test_goal_checked_before_equipment(self, profiles):
        profile = profiles.get_profile(USER)
        with pytest.raises(TierLimitError) as exc:
            profiles.assert_access(profile, _request(goal="mobility", equipment="full_gym"))
        assert exc.value.code == TierLimitError.GOAL_RESTRICTED

    def test_premium_unrestricted(self, profiles, store):
        _make_premium(store)
        profile = profiles.get_profile(USER)
        profiles.assert_access(profile, _request(goal="fat_loss", equipment="full_gym"))

    def test_free_quota(self, profiles):
        profile = profiles.get_profile(USER)
        profiles.assert_quota(profile)
        assert profiles.record_usage(profile) == 1
        with pytest.raises(TierLimitError) as exc:
            profiles.assert_quota(profile)
        assert exc.value.code == TierLimitError.DAILY_LIMIT

    def test_premium_usage_not_counted(self, profiles, store):
        _make_premium(store)
        profile = profiles.get_profile(USER)
        for _ in range(3):
            profiles.assert_quota(profile)
            assert profiles.record_usage(profile) is None
        assert store.get_usage_count(USER) == 0

    def test_history_requires_premium(self, profiles, store):
        with pytest.raises(TierLimitError) as exc:
            profiles.assert_history_access(profiles.get_profile(USER))
        assert exc.value.code == TierLimitError.PREMIUM_REQUIRED

        _make_premium(store)
        profiles.assert_history_access(profiles.get_profile(USER))

    def test_history_gate_can_be_disabled(self, store):
        service = ProfileService(store, config=TierConfig(), history_requires_premium=False)
        service.assert_history_access(service.get_profile(USER))


class TestUpgrade:
    def _subscription(self):
        return SubscriptionRecord(
            provider=BillingProvider.STRIPE,
            plan=PlanInterval.ANNUAL,
            receipt_id="cs_test_1",
            amount=5999,
            purchased_at="2024-03-15T18:30:00.000Z",
            expires_at="2025-03-15T18:30:00.000Z",
        )

    def test_upgrade_persists_subscription(self, profiles, store):
        profile = profiles.upgrade(USER, self._subscription())
        assert profile.tier == Tier.PREMIUM
        assert store.get_subscription(USER).receipt_id == "cs_test_1"

    def test_upgrade_with_verified_receipt(self, profiles, monkeypatch):
        monkeypatch.setattr(profile_module, "verify_receipt", lambda provider, receipt, plan: self._subscription())
        profile = profiles.upgrade_with_receipt(USER, "stripe", "cs_test_1", PlanInterval.ANNUAL)
        assert profile.is_premium

    def test_failed_verification_keeps_tier(self, profiles, store, monkeypatch):
        def _reject(provider, receipt, plan):
            raise ReceiptNotPaidError()

        monkeypatch.setattr(profile_module, "verify_receipt", _reject)
        profiles.get_profile(USER)
        with pytest.raises(ReceiptNotPaidError):
            profiles.upgrade_with_receipt(USER, "stripe", "cs_unpaid", PlanInterval.MONTHLY)

        assert profiles.get_profile(USER).tier == Tier.FREE
        assert store.get_subscription(USER) is None


class TestSerialize:
    def test_free_payload(self, profiles):
        profile = profiles.get_profile(USER)
        payload = profiles.serialize_for_client(profile)
        assert payload["id"] == USER
        assert payload["tier"] == "free"
        assert payload["premiumPrice"] == "5.99"
        assert payload["remainingFreeWorkouts"] == 1
        assert payload["limits"]["allowedGoals"] == ["strength", "endurance"]
        assert payload["limits"]["allowedEquipment"] == ["bodyweight", "minimal"]
        assert payload["subscription"] is None

    def test_remaining_drops_after_use(self, profiles):
        profile = profiles.get_profile(USER)
        profiles.record_usage(profile)
        assert profiles.serialize_for_client(profile)["remainingFreeWorkouts"] == 0

    def test_premium_payload(self, profiles, store):
        _make_premium(store)
        payload = profiles.serialize_for_client(profiles.get_profile(USER))
        assert payload["tier"] == "premium"
        assert payload["remainingFreeWorkouts"] is None
        assert "full_gym" in payload["limits"]["allowedEquipment"]


class TestVerifySubscriptionStatus:
    def _service(self, store, fake_client):
        return ProfileService(store, config=TierConfig(), entitlement_client_factory=lambda: fake_client)

    def test_premium_per_provider(self, store):
        client = _FakeEntitlementClient(EntitlementStatus(premium=True, expiration="2099-01-01T00:00:00Z"))
        result = self._service(store, client).verify_subscription_status(USER)
        assert result == {
            "premium": True,
            "entitlementExpiration": "2099-01-01T00:00:00Z",
            "remainingFreeWorkouts": None,
        }

    def test_not_premium_reports_remaining(self, store):
        store.record_usage(USER)
        client = _FakeEntitlementClient(EntitlementStatus(premium=False, found=False))
        result = self._service(store, client).verify_subscription_status(USER)
        assert result["premium"] is False
        assert result["remainingFreeWorkouts"] == 0

    def test_result_is_cached(self, store, fake_redis):
        client = _FakeEntitlementClient(EntitlementStatus(premium=True))
        service = self._service(store, client)
        service.verify_subscription_status(USER)
        service.verify_subscription_status(USER)
        assert client.calls == 1
        assert fake_redis.ttl(f"entitlement:{USER}") == 600

    def test_provider_failure_degrades_and_is_not_cached(self, store, fake_redis):
        client = _FakeEntitlementClient(error=ProviderError("Unable to verify subscription"))
        service = self._service(store, client)
        result = service.verify_subscription_status(USER)
        assert result == {"premium": False, "entitlementExpiration": None, "remainingFreeWorkouts": 1}
        assert fake_redis.get(f"entitlement:{USER}") is None

    def test_missing_credentials_propagate(self, store):
        def _factory():
            raise ProviderUnavailableError("revenuecat")

        service = ProfileService(store, config=TierConfig(), entitlement_client_factory=_factory)
        with pytest.raises(ProviderUnavailableError):
            service.verify_subscription_status(USER)
