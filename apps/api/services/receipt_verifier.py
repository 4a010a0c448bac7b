"""
Purchase receipt verification.

Turns a billing-provider receipt into a normalized SubscriptionRecord with
its expiry date. Stripe Checkout Sessions are the only supported receipt.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

import stripe

from core.clock import add_months, add_years, isoformat_utc, utc_now
from core.config import settings
from core.exceptions import (
    ProviderError,
    ProviderUnavailableError,
    ReceiptNotPaidError,
    UnsupportedProviderError,
)
from schemas import BillingProvider, PlanInterval, SubscriptionRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StripeConfig:
    secret_key: str


def _get_stripe_config() -> StripeConfig:
    """
    Load Stripe config from settings.

    Fail closed: without a secret key no upgrade can be verified.
    """
    secret_key = getattr(settings, "STRIPE_SECRET_KEY", None)
    if not secret_key:
        raise ProviderUnavailableError("stripe")
    return StripeConfig(secret_key=str(secret_key))


def calculate_expiry(purchased_at: datetime, plan: PlanInterval) -> datetime:
    """Calendar arithmetic: same day next month / next year."""
    if PlanInterval(plan) == PlanInterval.ANNUAL:
        return add_years(purchased_at, 1)
    return add_months(purchased_at, 1)


class StripeReceiptVerifier:
    """
    The receipt is the id of a Stripe Checkout Session created by the app's
    paywall. Only a session whose payment_status is "paid" counts.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        cfg = _get_stripe_config()
        stripe.api_key = cfg.secret_key
        self.cfg = cfg
        self.clock = clock

    def _retrieve_session(self, receipt_id: str) -> Any:
        return stripe.checkout.Session.retrieve(receipt_id)

    def verify(self, receipt_id: str, plan: PlanInterval) -> SubscriptionRecord:
        try:
            session = self._retrieve_session(receipt_id)
        except stripe.InvalidRequestError as e:
            logger.info(f"Stripe rejected receipt lookup: {e}")
            raise ReceiptNotPaidError("Receipt could not be verified") from e
        except stripe.StripeError as e:
            logger.error(f"Stripe receipt lookup failed: {e}", exc_info=True)
            raise ProviderError("Unable to verify receipt") from e

        payment_status = str(getattr(session, "payment_status", "") or "").lower()
        if payment_status != "paid":
            logger.info(
                "Receipt not paid",
                extra={"extra_fields": {"receipt_id": receipt_id, "payment_status": payment_status}},
            )
            raise ReceiptNotPaidError()

        purchased_at = self.clock()
        return SubscriptionRecord(
            provider=BillingProvider.STRIPE,
            plan=PlanInterval(plan),
            receipt_id=str(getattr(session, "id", None) or receipt_id),
            amount=int(getattr(session, "amount_total", None) or 0),
            currency=str(getattr(session, "currency", None) or "usd"),
            purchased_at=isoformat_utc(purchased_at),
            expires_at=isoformat_utc(calculate_expiry(purchased_at, plan)),
        )


def verify_receipt(
    provider: str,
    receipt_token: str,
    plan: PlanInterval,
    clock: Optional[Callable[[], datetime]] = None,
) -> SubscriptionRecord:
    """
    Exchange a provider receipt for a normalized SubscriptionRecord.

    This is the only path by which a user becomes premium; a tier claimed
    by the client is never trusted.
    """
    try:
        billing_provider = BillingProvider(provider)
    except ValueError:
        raise UnsupportedProviderError(provider)

    if billing_provider == BillingProvider.STRIPE:
        verifier = StripeReceiptVerifier(clock=clock or utc_now)
        return verifier.verify(receipt_token, plan)

    raise UnsupportedProviderError(provider)
