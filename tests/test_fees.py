"""
Tests for the fee calculator and tiered fee schedule.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from escrow.fees import (
    FeeSchedule,
    buyer_fee,
    buyer_pays,
    payment_summary,
    round2,
    to_decimal,
)
from escrow.formatting import (
    currency_symbol,
    format_currency,
    format_date,
    format_percentage,
    format_relative_time,
)
from escrow.models import Escrow
from escrow.settings import Settings


@pytest.fixture
def schedule():
    return FeeSchedule(Settings())


def _escrow(amount="100", payment=None):
    return Escrow.from_dict({
        "_id": "e1",
        "amount": amount,
        "currency": "USD",
        "status": "accepted",
        "buyer": {"_id": "b1"},
        "seller": {"_id": "s1"},
        "payment": payment or {},
    })


# =========================================================================
# Rounding
# =========================================================================

class TestRounding:
    def test_half_up(self):
        assert round2("2.345") == Decimal("2.35")
        assert round2("0.005") == Decimal("0.01")

    def test_float_goes_through_str(self):
        assert round2(0.1 + 0.2) == Decimal("0.30")

    def test_mongo_decimal_wrapper(self):
        assert to_decimal({"$numberDecimal": "12.50"}) == Decimal("12.50")

    @pytest.mark.parametrize(
        "value", [None, True, "abc", "", "NaN", "Infinity", "-inf", Decimal("NaN"), float("inf")],
    )
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="Invalid amount"):
            to_decimal(value)


# =========================================================================
# Payment page
# =========================================================================

class TestBuyerFee:
    def test_two_percent(self):
        assert buyer_fee(100) == Decimal("2.00")
        assert buyer_pays(100) == Decimal("102.00")

    def test_rounds_half_up(self):
        assert buyer_fee("0.33") == Decimal("0.01")
        assert buyer_fee("0.25") == Decimal("0.01")
        assert buyer_fee("0.24") == Decimal("0.00")

    def test_custom_rate(self):
        assert buyer_fee("250", rate="0.035") == Decimal("8.75")

    def test_total_is_amount_plus_fee(self):
        for amount in ("19.99", "1234.56", "0.01"):
            assert buyer_pays(amount) == round2(amount) + buyer_fee(amount)

    def test_summary_falls_back_to_flat_rate(self):
        fee, total = payment_summary(_escrow("100"))
        assert fee == Decimal("2.00")
        assert total == Decimal("102.00")

    def test_summary_prefers_backend_figures(self):
        escrow = _escrow("100", {"buyerFee": "3.50", "buyerPays": "103.50"})
        assert payment_summary(escrow) == (Decimal("3.50"), Decimal("103.50"))

    def test_summary_backend_fee_only(self):
        escrow = _escrow("100", {"buyerFee": "3.50"})
        assert payment_summary(escrow) == (Decimal("3.50"), Decimal("103.50"))

    def test_summary_accepts_plain_objects(self):
        fake = SimpleNamespace(amount="50", currency="USD", payment=None)
        assert payment_summary(fake) == (Decimal("1.00"), Decimal("51.00"))


# =========================================================================
# Fee schedule
# =========================================================================

class TestFeeSchedule:
    def test_tiers(self, schedule):
        assert schedule.tiers == ["free", "starter", "growth", "enterprise", "api"]

    def test_unknown_tier_falls_back(self, schedule):
        assert schedule.tier_info("platinum")["name"] == "Starter"
        assert schedule.calculate(100, tier="platinum").tier == "starter"

    def test_starter_usd_flutterwave(self, schedule):
        b = schedule.calculate(100, "USD", "starter", "flutterwave")
        assert b.buyer_fee == Decimal("3.50")
        assert b.seller_fee == Decimal("3.50")
        assert b.buyer_pays == Decimal("103.50")
        assert b.seller_receives == Decimal("96.50")
        assert b.platform_fee == Decimal("7.00")
        assert b.gateway_incoming == Decimal("3.93")
        assert b.gateway_outgoing == Decimal("0.00")
        assert b.platform_profit == Decimal("3.07")
        assert b.total_fee_pct == Decimal("7")

    def test_growth_ngn_paystack_medium_transfer(self, schedule):
        b = schedule.calculate(10000, "NGN", "growth", "paystack")
        assert b.buyer_fee == Decimal("250.00")
        assert b.gateway_incoming == Decimal("253.75")
        assert b.gateway_outgoing == Decimal("25.00")
        assert b.platform_profit == Decimal("221.25")

    def test_paystack_ngn_cap(self, schedule):
        b = schedule.calculate(200000, "NGN", "growth", "paystack")
        assert b.gateway_incoming == Decimal("2000.00")
        assert b.gateway_outgoing == Decimal("50.00")

    def test_paystack_small_transfer(self, schedule):
        b = schedule.calculate(1000, "NGN", "starter", "paystack")
        assert b.gateway_outgoing == Decimal("10.00")

    def test_crypto_uses_crypto_rates(self, schedule):
        b = schedule.calculate(1000, "USD", "enterprise", "crypto")
        assert b.buyer_fee == Decimal("9.00")
        assert b.gateway_incoming == Decimal("5.05")
        assert b.platform_profit == Decimal("12.96")

    def test_unknown_method_has_no_gateway_cost(self, schedule):
        b = schedule.calculate(100, "USD", "starter", "cash")
        assert b.gateway_cost == Decimal("0.00")
        assert b.platform_profit == b.platform_fee

    @pytest.mark.parametrize("amount", [0, -5, "0.00"])
    def test_non_positive_amount(self, schedule, amount):
        with pytest.raises(ValueError, match="Invalid transaction amount"):
            schedule.calculate(amount)

    @pytest.mark.parametrize("amount", ["Infinity", "NaN"])
    def test_non_finite_amount(self, schedule, amount):
        with pytest.raises(ValueError, match="Invalid amount"):
            schedule.calculate(amount)

    def test_to_dict_is_strings(self, schedule):
        d = schedule.calculate(100).to_dict()
        assert d["buyer_pays"] == "103.50"
        assert all(isinstance(v, str) for v in d.values())

    def test_summary_mentions_tier(self, schedule):
        assert "starter" in schedule.calculate(100).summary()

    def test_empty_settings_rejected(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("api: {}\n")
        with pytest.raises(ValueError, match="no tiers"):
            FeeSchedule(Settings(path, environ={}))


class TestLimits:
    def test_kyc_first(self, schedule):
        d = schedule.can_create_transaction(10, "USD", "starter")
        assert not d.allowed
        assert d.reason == "KYC verification required"

    def test_monthly_limit(self, schedule):
        d = schedule.can_create_transaction(10, "USD", "starter", monthly_count=10, kyc_verified=True)
        assert not d.allowed
        assert d.limit == 10
        assert d.upgrade_required

    def test_amount_limit(self, schedule):
        d = schedule.can_create_transaction(600, "USD", "starter", kyc_verified=True)
        assert d.reason == "Transaction amount exceeds tier limit"
        assert d.limit == 500

    def test_currency_without_limit_uses_usd(self, schedule):
        assert schedule.is_amount_within_limit(500, "EUR", "starter")
        assert not schedule.is_amount_within_limit(501, "EUR", "starter")

    def test_free_eur_limit(self, schedule):
        assert schedule.is_amount_within_limit(450, "EUR", "free")
        assert not schedule.is_amount_within_limit("450.01", "EUR", "free")

    def test_enterprise_unlimited(self, schedule):
        d = schedule.can_create_transaction(
            10_000_000, "USD", "enterprise", monthly_count=999, kyc_verified=True,
        )
        assert d.allowed


# =========================================================================
# Formatting
# =========================================================================

class TestFormatting:
    def test_currency(self):
        assert format_currency(1234.5) == "$1,234.50"
        assert format_currency("-5", "USD") == "-$5.00"
        assert format_currency(100, "ngn") == "₦100.00"

    def test_unknown_currency_uses_code(self):
        assert currency_symbol("XYZ") == "XYZ "
        assert format_currency(1, "XYZ") == "XYZ 1.00"

    def test_date(self):
        assert format_date("2026-01-05T10:00:00Z") == "Jan 5, 2026"

    def test_relative(self):
        now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert format_relative_time(now - timedelta(seconds=30), now) == "Just now"
        assert format_relative_time(now - timedelta(minutes=5), now) == "5 minutes ago"
        assert format_relative_time(now - timedelta(hours=3), now) == "3 hours ago"
        assert format_relative_time(now - timedelta(days=2), now) == "2 days ago"
        assert format_relative_time("2026-01-05T10:00:00Z", now) == "Jan 5, 2026"

    def test_percentage(self):
        assert format_percentage(Decimal("0.035")) == "3.50%"
