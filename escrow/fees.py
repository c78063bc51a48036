"""
Fee Calculator
==============
Money math for escrow payments and payouts.

All amounts are handled as Decimal and rounded half-up to two places.
Floats are only ever converted through ``str()`` so binary drift never
reaches a total.

Two layers:
  - Payment page: a flat buyer fee (2% by default) added on top of the
    item amount, used until the backend returns its own breakdown.
  - Fee schedule: per-tier, per-currency buyer/seller rates with a
    gateway cost estimate and transaction limits.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from escrow.settings import Settings


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CENT = Decimal("0.01")
DEFAULT_BUYER_FEE_RATE = Decimal("0.02")
UNLIMITED = -1

PAYMENT_METHODS = ("paystack", "flutterwave", "crypto")

# Seller payout bands for the paystack transfer fee.
PAYSTACK_SMALL_TRANSFER = Decimal("5000")
PAYSTACK_MEDIUM_TRANSFER = Decimal("50000")


# ---------------------------------------------------------------------------
# Rounding
# ---------------------------------------------------------------------------

def to_decimal(value: Any) -> Decimal:
    """
    Coerce a number, numeric string or Mongo decimal wrapper to Decimal.

    NaN and infinities are rejected like any other unparseable amount.
    """
    if isinstance(value, Mapping) and "$numberDecimal" in value:
        value = value["$numberDecimal"]
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return result


def round2(value: Any) -> Decimal:
    """Round half-up to two decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Payment page
# ---------------------------------------------------------------------------

def buyer_fee(amount: Any, currency: str = "USD", rate: Any = DEFAULT_BUYER_FEE_RATE) -> Decimal:
    """Flat escrow protection fee the buyer pays on top of the amount."""
    return round2(to_decimal(amount) * to_decimal(rate))


def buyer_pays(amount: Any, currency: str = "USD", rate: Any = DEFAULT_BUYER_FEE_RATE) -> Decimal:
    return round2(round2(amount) + buyer_fee(amount, currency, rate))


def payment_summary(escrow: Any, rate: Any = DEFAULT_BUYER_FEE_RATE) -> tuple[Decimal, Decimal]:
    """
    Buyer fee and total for the payment page.

    The backend's figures win when the snapshot carries them; otherwise
    the flat rate is applied to the escrow amount.
    """
    payment = getattr(escrow, "payment", None)
    amount = getattr(escrow, "amount", None)
    currency = getattr(escrow, "currency", "USD")

    fee = getattr(payment, "buyer_fee", None) if payment else None
    total = getattr(payment, "buyer_pays", None) if payment else None

    if fee is None:
        fee = buyer_fee(amount, currency, rate)
    if total is None:
        total = round2(to_decimal(amount) + fee)
    return round2(fee), round2(total)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FeeBreakdown:
    amount: Decimal
    currency: str
    tier: str
    payment_method: str
    buyer_fee: Decimal
    seller_fee: Decimal
    buyer_pays: Decimal
    seller_receives: Decimal
    platform_fee: Decimal
    buyer_fee_pct: Decimal
    seller_fee_pct: Decimal
    gateway_incoming: Decimal
    gateway_outgoing: Decimal
    gateway_cost: Decimal
    platform_profit: Decimal

    @property
    def total_fee_pct(self) -> Decimal:
        return self.buyer_fee_pct + self.seller_fee_pct

    def summary(self) -> str:
        lines = [
            f"Tier:             {self.tier}",
            f"Payment Method:   {self.payment_method}",
            f"Amount:           {self.amount} {self.currency}",
            f"Buyer Fee:        {self.buyer_fee} ({self.buyer_fee_pct}%)",
            f"Buyer Pays:       {self.buyer_pays}",
            f"Seller Fee:       {self.seller_fee} ({self.seller_fee_pct}%)",
            f"Seller Receives:  {self.seller_receives}",
            f"Platform Fee:     {self.platform_fee}",
            f"Gateway Cost:     {self.gateway_cost}",
            f"Platform Profit:  {self.platform_profit}",
        ]
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": str(self.amount),
            "currency": self.currency,
            "tier": self.tier,
            "payment_method": self.payment_method,
            "buyer_fee": str(self.buyer_fee),
            "seller_fee": str(self.seller_fee),
            "buyer_pays": str(self.buyer_pays),
            "seller_receives": str(self.seller_receives),
            "platform_fee": str(self.platform_fee),
            "buyer_fee_pct": str(self.buyer_fee_pct),
            "seller_fee_pct": str(self.seller_fee_pct),
            "total_fee_pct": str(self.total_fee_pct),
            "gateway_incoming": str(self.gateway_incoming),
            "gateway_outgoing": str(self.gateway_outgoing),
            "gateway_cost": str(self.gateway_cost),
            "platform_profit": str(self.platform_profit),
        }


@dataclass(frozen=True)
class LimitDecision:
    allowed: bool
    reason: str = ""
    limit: int | None = None
    upgrade_required: bool = False


# ---------------------------------------------------------------------------
# Fee Schedule
# ---------------------------------------------------------------------------

class FeeSchedule:
    """
    Tier-based fee schedule with gateway cost estimation.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or Settings()
        self._tiers: dict[str, Any] = settings.fee_tiers
        self._gateways: dict[str, Any] = settings.gateway_costs
        self._default_tier = settings.default_tier
        if not self._tiers:
            raise ValueError("Fee schedule has no tiers configured.")

    @property
    def tiers(self) -> list[str]:
        return list(self._tiers)

    def tier_info(self, tier: str) -> dict[str, Any]:
        """Tier definition; unknown tiers fall back to the default tier."""
        return self._tiers.get(tier) or self._tiers[self._default_tier]

    def rates(self, currency: str, tier: str, payment_method: str = "") -> tuple[Decimal, Decimal]:
        fees = self.tier_info(tier)["fees"]
        key = "crypto" if payment_method == "crypto" and "crypto" in fees else currency
        entry = fees.get(key) or fees["USD"]
        return to_decimal(entry["buyer"]), to_decimal(entry["seller"])

    def calculate(
        self,
        amount: Any,
        currency: str = "USD",
        tier: str | None = None,
        payment_method: str = "flutterwave",
    ) -> FeeBreakdown:
        base = to_decimal(amount)
        if base <= 0:
            raise ValueError("Invalid transaction amount")

        tier = tier if tier in self._tiers else self._default_tier
        buyer_rate, seller_rate = self.rates(currency, tier, payment_method)

        fee_b = base * buyer_rate
        fee_s = base * seller_rate
        pays = base + fee_b
        receives = base - fee_s
        incoming, outgoing = self._gateway_cost(pays, receives, currency, payment_method)
        gateway = incoming + outgoing

        return FeeBreakdown(
            amount=round2(base),
            currency=currency,
            tier=tier,
            payment_method=payment_method,
            buyer_fee=round2(fee_b),
            seller_fee=round2(fee_s),
            buyer_pays=round2(pays),
            seller_receives=round2(receives),
            platform_fee=round2(fee_b + fee_s),
            buyer_fee_pct=(buyer_rate * 100).normalize(),
            seller_fee_pct=(seller_rate * 100).normalize(),
            gateway_incoming=round2(incoming),
            gateway_outgoing=round2(outgoing),
            gateway_cost=round2(gateway),
            platform_profit=round2(fee_b + fee_s - gateway),
        )

    def _gateway_cost(
        self,
        buyer_total: Decimal,
        seller_total: Decimal,
        currency: str,
        payment_method: str,
    ) -> tuple[Decimal, Decimal]:
        costs = self._gateways.get(payment_method)
        if not costs:
            return Decimal("0"), Decimal("0")

        if payment_method == "paystack":
            entry = costs.get(currency) or costs["NGN"]
            incoming = buyer_total * to_decimal(entry["percentage"]) + to_decimal(entry.get("flat_fee", 0))
            if currency == "NGN" and entry.get("cap") is not None:
                incoming = min(incoming, to_decimal(entry["cap"]))
            bands = costs["transfer_fee"]
            if seller_total <= PAYSTACK_SMALL_TRANSFER:
                outgoing = to_decimal(bands["small"])
            elif seller_total <= PAYSTACK_MEDIUM_TRANSFER:
                outgoing = to_decimal(bands["medium"])
            else:
                outgoing = to_decimal(bands["large"])
            return incoming, outgoing

        if payment_method == "flutterwave":
            entry = costs.get(currency) or costs["USD"]
            incoming = buyer_total * to_decimal(entry["percentage"]) + to_decimal(entry.get("flat_fee", 0))
            return incoming, to_decimal(costs.get("transfer_fee", 0))

        # crypto
        incoming = buyer_total * to_decimal(costs["percentage"]) + to_decimal(costs.get("flat_fee", 0))
        return incoming, to_decimal(costs.get("transfer_fee", 0))

    # --- Limits ---

    def is_amount_within_limit(self, amount: Any, currency: str, tier: str) -> bool:
        limits = self.tier_info(tier).get("max_transaction_amount", {})
        limit = limits.get(currency, limits.get("USD", UNLIMITED))
        if limit == UNLIMITED:
            return True
        return to_decimal(amount) <= to_decimal(limit)

    def can_create_transaction(
        self,
        amount: Any,
        currency: str,
        tier: str,
        *,
        monthly_count: int = 0,
        kyc_verified: bool = False,
    ) -> LimitDecision:
        """Gate a new escrow on KYC, monthly count and per-transaction limits."""
        if not kyc_verified:
            return LimitDecision(False, "KYC verification required")

        info = self.tier_info(tier)
        monthly_limit = info.get("max_transactions_per_month", UNLIMITED)
        if monthly_limit != UNLIMITED and monthly_count >= monthly_limit:
            return LimitDecision(
                False, "Monthly transaction limit reached",
                limit=monthly_limit, upgrade_required=True,
            )

        if not self.is_amount_within_limit(amount, currency, tier):
            limits = info.get("max_transaction_amount", {})
            return LimitDecision(
                False, "Transaction amount exceeds tier limit",
                limit=limits.get(currency, limits.get("USD")), upgrade_required=True,
            )

        return LimitDecision(True)
