"""
Remote entitlement lookup (RevenueCat).

Asks the billing provider directly whether a user currently holds the
premium entitlement. Used to reconcile what the app reports against the
provider's truth, independently of the local store.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from core.clock import utc_now
from core.config import settings
from core.exceptions import ProviderError, ProviderUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntitlementStatus:
    premium: bool
    expiration: Optional[str] = None
    found: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"premium": self.premium, "expiration": self.expiration, "found": self.found}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EntitlementStatus":
        return cls(
            premium=bool(data.get("premium")),
            expiration=data.get("expiration"),
            found=bool(data.get("found", True)),
        )


def _parse_expiration(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def entitlement_from_subscriber(payload: Dict[str, Any], entitlement_id: str, now: datetime) -> EntitlementStatus:
    """Active when the entitlement exists and has no expiry or expires in the future."""
    entitlements = ((payload or {}).get("subscriber") or {}).get("entitlements") or {}
    entitlement = entitlements.get(entitlement_id)
    if not entitlement:
        return EntitlementStatus(premium=False, expiration=None)

    expiration = entitlement.get("expires_date")
    if not expiration:
        return EntitlementStatus(premium=True, expiration=None)

    expires_at = _parse_expiration(expiration)
    if expires_at is None:
        logger.warning(f"Unparseable entitlement expiry: {expiration!r}")
        return EntitlementStatus(premium=False, expiration=expiration)
    return EntitlementStatus(premium=expires_at > now, expiration=expiration)


class RevenueCatClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        entitlement_id: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.api_key = api_key or settings.REVENUECAT_API_KEY
        if not self.api_key:
            raise ProviderUnavailableError("revenuecat")
        self.base_url = (base_url or settings.REVENUECAT_API_URL).rstrip("/")
        self.entitlement_id = entitlement_id or settings.REVENUECAT_ENTITLEMENT_ID
        self.timeout = timeout or settings.EXTERNAL_API_TIMEOUT

    def fetch_entitlement(self, user_id: str, now: Optional[datetime] = None) -> EntitlementStatus:
        """
        Raises ProviderError on transport failures and non-404 error statuses.
        An unknown subscriber (404) is not an error: it is simply not premium.
        """
        url = f"{self.base_url}/{quote(user_id, safe='')}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            r = requests.get(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"RevenueCat request failed: {e}")
            raise ProviderError("Unable to verify subscription") from e

        if r.status_code == 404:
            return EntitlementStatus(premium=False, expiration=None, found=False)
        if not r.ok:
            logger.warning(f"RevenueCat returned {r.status_code} for subscriber lookup")
            raise ProviderError("Unable to verify subscription")

        try:
            payload = r.json()
        except ValueError as e:
            logger.warning("RevenueCat returned a non-JSON body")
            raise ProviderError("Unable to verify subscription") from e

        return entitlement_from_subscriber(payload, self.entitlement_id, now or utc_now())
