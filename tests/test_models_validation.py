"""
Tests for escrow snapshot parsing and request validation.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from escrow.errors import ValidationError
from escrow.lifecycle import EscrowStatus, Role, get_next_action
from escrow.models import Escrow, Party
from escrow.validation import (
    Severity,
    validate_cancel,
    validate_create_escrow,
    validate_dispute,
)


def _snapshot(**overrides):
    data = {
        "_id": "64f0c0ffee",
        "title": "Vintage camera",
        "description": "Leica M3, 1956",
        "amount": "250",
        "currency": "usd",
        "status": "funded",
        "buyer": {"_id": "u-buyer", "firstName": "Ada", "lastName": "Obi", "email": "ada@example.com"},
        "seller": {"_id": "u-seller", "name": "Kemi Shop"},
        "payment": {"method": "paystack", "buyerFee": "5.00", "buyerPays": "255.00", "paidAt": "2026-01-06T09:00:00Z"},
        "dispute": {"isDisputed": False},
        "timeline": [
            {"status": "pending", "timestamp": "2026-01-05T10:00:00Z", "note": "Escrow created"},
            {"status": "funded", "timestamp": "2026-01-06T09:00:00Z"},
        ],
        "createdAt": "2026-01-05T10:00:00Z",
    }
    data.update(overrides)
    return data


def _create_form(**overrides):
    data = {
        "itemName": "Vintage camera",
        "amount": "250",
        "currency": "USD",
        "paymentMethod": "paystack",
        "location": "Lagos",
        "itemCondition": "used",
        "description": "Leica M3 in working order",
    }
    data.update(overrides)
    return data


# =========================================================================
# Snapshots
# =========================================================================

class TestEscrowSnapshot:
    def test_parses_canonical_shape(self):
        e = Escrow.from_dict(_snapshot())
        assert e.id == "64f0c0ffee"
        assert e.amount == Decimal("250.00")
        assert e.currency == "USD"
        assert e.status_enum == EscrowStatus.FUNDED
        assert e.buyer.name == "Ada Obi"
        assert e.seller.name == "Kemi Shop"
        assert e.payment.buyer_pays == Decimal("255.00")
        assert len(e.timeline) == 2
        assert e.timeline[0].note == "Escrow created"

    def test_rejects_legacy_shape(self):
        with pytest.raises(ValueError, match="legacy"):
            Escrow.from_dict({"id": "1", "senderId": "u1", "status": "pending", "amount": 5})

    def test_requires_id(self):
        with pytest.raises(ValueError, match="_id"):
            Escrow.from_dict({"status": "pending"})

    def test_requires_parties(self):
        data = _snapshot()
        del data["seller"]
        with pytest.raises(ValueError, match="seller"):
            Escrow.from_dict(data)

    def test_item_name_fallback(self):
        data = _snapshot(title=None, itemName="Bike")
        assert Escrow.from_dict(data).title == "Bike"

    def test_bare_party_ids(self):
        e = Escrow.from_dict(_snapshot(buyer="u-buyer", seller="u-seller"))
        assert e.buyer == Party(id="u-buyer")

    def test_mongo_decimal_amount(self):
        e = Escrow.from_dict(_snapshot(amount={"$numberDecimal": "99.999"}))
        assert e.amount == Decimal("100.00")

    def test_infinite_amount_rejected(self):
        with pytest.raises(ValueError, match="Invalid amount"):
            Escrow.from_dict(_snapshot(amount="Infinity"))

    def test_role_of(self):
        e = Escrow.from_dict(_snapshot())
        assert e.role_of("u-buyer") == Role.BUYER
        assert e.role_of("u-seller") == Role.SELLER
        assert e.role_of("stranger") is None
        assert e.role_of("") is None

    def test_unknown_status_is_kept(self):
        e = Escrow.from_dict(_snapshot(status="archived"))
        assert e.status == "archived"
        assert e.status_enum is None
        assert get_next_action(e, "buyer").text == "View Details"

    def test_drives_lifecycle_directly(self):
        e = Escrow.from_dict(_snapshot())
        assert get_next_action(e, "seller").text == "Mark as Delivered"

    def test_to_dict_roundtrip_keeps_id(self):
        e = Escrow.from_dict(_snapshot())
        again = Escrow.from_dict(e.to_dict())
        assert again == e

    def test_terminal(self):
        assert Escrow.from_dict(_snapshot(status="paid_out")).is_terminal
        assert not Escrow.from_dict(_snapshot()).is_terminal


class TestSnapshotConsistency:
    def test_clean(self):
        assert Escrow.from_dict(_snapshot()).validate() == []

    def test_paid_while_pending(self):
        issues = Escrow.from_dict(_snapshot(status="pending")).validate()
        assert any("paidAt" in i for i in issues)

    def test_disputed_flag_mismatch(self):
        issues = Escrow.from_dict(_snapshot(status="disputed")).validate()
        assert any("isDisputed" in i for i in issues)

    def test_same_party(self):
        issues = Escrow.from_dict(_snapshot(seller={"_id": "u-buyer"})).validate()
        assert "buyer and seller are the same party" in issues

    def test_unrecognized_status(self):
        issues = Escrow.from_dict(_snapshot(status="archived")).validate()
        assert issues == ["Unrecognized status 'archived'"]


# =========================================================================
# Validation
# =========================================================================

class TestCreateValidation:
    def test_valid(self):
        report = validate_create_escrow(_create_form())
        assert not report.is_blocked
        assert report.warnings == []

    def test_missing_fields(self):
        report = validate_create_escrow({})
        fields = report.field_errors()
        for key in ("itemName", "amount", "paymentMethod", "location", "itemCondition"):
            assert key in fields
        assert "currency" not in fields

    @pytest.mark.parametrize("amount", ["0", "-1", "abc", None, "NaN", "Infinity"])
    def test_bad_amount(self, amount):
        report = validate_create_escrow(_create_form(amount=amount))
        assert [f.code for f in report.errors] == ["AMT-001"]

    def test_title_length(self):
        report = validate_create_escrow(_create_form(itemName="x" * 201))
        assert report.errors[0].code == "LEN-001"

    def test_bad_currency(self):
        report = validate_create_escrow(_create_form(currency="BTC"))
        assert report.field_errors() == {"currency": "Invalid currency"}

    def test_empty_description_warns(self):
        report = validate_create_escrow(_create_form(description=""))
        assert not report.is_blocked
        assert [f.code for f in report.warnings] == ["DSC-001"]
        assert report.warnings[0].severity == Severity.WARNING

    def test_long_description(self):
        report = validate_create_escrow(_create_form(description="d" * 2001))
        assert report.errors[0].code == "LEN-002"

    def test_raise_if_blocked(self):
        report = validate_create_escrow(_create_form(paymentMethod="cash"))
        with pytest.raises(ValidationError) as exc:
            report.raise_if_blocked()
        assert exc.value.fields == {"paymentMethod": "Valid payment method is required"}

    def test_summary(self):
        text = validate_create_escrow({}).summary()
        assert text.startswith("Create escrow: 5 error(s), 1 warning(s)")


class TestDisputeValidation:
    def test_valid(self):
        report = validate_dispute({
            "reason": "not_received",
            "description": "Nothing arrived after two weeks of waiting",
            "evidenceUrls": ["https://example.com/receipt.png"],
        })
        assert report.findings == []

    def test_reason_required(self):
        report = validate_dispute({"reason": "bored", "description": "x" * 30})
        assert "reason" in report.field_errors()

    def test_short_description(self):
        report = validate_dispute({"reason": "damaged", "description": "broken"})
        assert report.errors[0].code == "DSP-002"

    def test_missing_evidence_warns(self):
        report = validate_dispute({"reason": "damaged", "description": "x" * 20})
        assert not report.is_blocked
        assert report.warnings[0].code == "DSP-003"


class TestCancelValidation:
    def test_empty_reason_ok(self):
        assert not validate_cancel({}).is_blocked

    def test_long_reason(self):
        report = validate_cancel({"reason": "r" * 501})
        assert report.errors[0].code == "CXL-001"
        assert "CXL" not in str(report.errors[0])
        assert "[reason]" in str(report.errors[0])
