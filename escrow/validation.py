"""
Request Validator
==================
Form-layer checks run before any escrow request leaves the client.

Outputs:
  - Errors   -- Block submission. Must be resolved.
  - Warnings -- Submission may proceed.

The backend re-validates everything; these checks exist so that the user
gets field-level feedback without a round trip.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from escrow._icons import SEVERITY_ICONS
from escrow.errors import ValidationError
from escrow.fees import to_decimal


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CREATE_CURRENCIES = ("USD", "EUR", "GBP", "NGN", "CNY", "JPY", "AUD", "CAD", "INR", "ZAR")
CREATE_PAYMENT_METHODS = ("flutterwave", "paystack", "nowpayments", "bank_transfer")

MIN_AMOUNT = Decimal("0.01")
MAX_TITLE = 200
MAX_DESCRIPTION = 2000
MAX_CANCEL_REASON = 500
MIN_DISPUTE_DESCRIPTION = 20

DISPUTE_REASONS: dict[str, str] = {
    "not_received": "Item Not Received",
    "wrong_item": "Wrong Item Delivered",
    "damaged": "Item Damaged/Defective",
    "not_as_described": "Item Not As Described",
    "counterfeit": "Counterfeit/Fake Item",
    "other": "Other Issue",
}


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class Severity(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"


@dataclass
class Finding:
    severity: Severity
    code: str
    message: str
    field: str | None = None

    @property
    def icon(self) -> str:
        return SEVERITY_ICONS.get(self.severity.value, "[?]")

    def __str__(self) -> str:
        loc = f" [{self.field}]" if self.field else ""
        return f"{self.icon} {self.severity.value}{loc}: {self.message}"


@dataclass
class ValidationReport:
    subject: str
    findings: list[Finding] = field(default_factory=list)

    @property
    def errors(self) -> list[Finding]:
        return [f for f in self.findings if f.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[Finding]:
        return [f for f in self.findings if f.severity == Severity.WARNING]

    @property
    def is_blocked(self) -> bool:
        return len(self.errors) > 0

    def field_errors(self) -> dict[str, str]:
        """First error message per field, for inline form display."""
        out: dict[str, str] = {}
        for f in self.errors:
            if f.field and f.field not in out:
                out[f.field] = f.message
        return out

    def raise_if_blocked(self) -> None:
        if self.is_blocked:
            raise ValidationError(
                f"{self.subject}: " + "; ".join(f.message for f in self.errors),
                fields=self.field_errors(),
            )

    def summary(self) -> str:
        lines = [f"{self.subject}: {len(self.errors)} error(s), {len(self.warnings)} warning(s)"]
        lines.extend(f"  {f}" for f in self.findings)
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    return str(value).strip() if value is not None else ""


def _require(report: ValidationReport, data: Mapping[str, Any], key: str, label: str) -> str:
    value = _text(data, key)
    if not value:
        report.findings.append(Finding(Severity.ERROR, "REQ-001", f"{label} is required", key))
    return value


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------

def validate_create_escrow(data: Mapping[str, Any]) -> ValidationReport:
    report = ValidationReport(subject="Create escrow")

    title = _require(report, data, "itemName", "Item name")
    if len(title) > MAX_TITLE:
        report.findings.append(Finding(
            Severity.ERROR, "LEN-001", f"Item name cannot exceed {MAX_TITLE} characters", "itemName",
        ))

    try:
        amount = to_decimal(data.get("amount"))
    except ValueError:
        amount = None
    if amount is None or amount < MIN_AMOUNT:
        report.findings.append(Finding(Severity.ERROR, "AMT-001", "Valid amount is required", "amount"))

    currency = _text(data, "currency")
    if currency and currency.upper() not in CREATE_CURRENCIES:
        report.findings.append(Finding(Severity.ERROR, "CUR-001", "Invalid currency", "currency"))

    if _text(data, "paymentMethod") not in CREATE_PAYMENT_METHODS:
        report.findings.append(Finding(
            Severity.ERROR, "PAY-001", "Valid payment method is required", "paymentMethod",
        ))

    _require(report, data, "location", "Location")
    _require(report, data, "itemCondition", "Item condition")

    description = _text(data, "description")
    if len(description) > MAX_DESCRIPTION:
        report.findings.append(Finding(
            Severity.ERROR, "LEN-002",
            f"Description cannot exceed {MAX_DESCRIPTION} characters", "description",
        ))
    elif not description:
        report.findings.append(Finding(
            Severity.WARNING, "DSC-001", "A description helps resolve disputes", "description",
        ))

    return report


def validate_dispute(data: Mapping[str, Any]) -> ValidationReport:
    report = ValidationReport(subject="Raise dispute")

    reason = _text(data, "reason")
    if reason not in DISPUTE_REASONS:
        report.findings.append(Finding(
            Severity.ERROR, "DSP-001", "Select a dispute reason", "reason",
        ))

    description = _text(data, "description")
    if len(description) < MIN_DISPUTE_DESCRIPTION:
        report.findings.append(Finding(
            Severity.ERROR, "DSP-002",
            f"Description must be at least {MIN_DISPUTE_DESCRIPTION} characters", "description",
        ))

    if not data.get("evidenceUrls"):
        report.findings.append(Finding(
            Severity.WARNING, "DSP-003", "No evidence attached", "evidenceUrls",
        ))

    return report


def validate_cancel(data: Mapping[str, Any]) -> ValidationReport:
    report = ValidationReport(subject="Cancel escrow")
    if len(_text(data, "reason")) > MAX_CANCEL_REASON:
        report.findings.append(Finding(
            Severity.ERROR, "CXL-001",
            f"Reason cannot exceed {MAX_CANCEL_REASON} characters", "reason",
        ))
    return report
