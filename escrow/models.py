"""
Escrow Snapshot Models
=======================
Read-only records for the escrow snapshots returned by the backend.

The canonical wire shape identifies documents by ``_id`` and embeds the
parties as objects:

  {"_id": "...", "status": "funded", "amount": "250.00", "currency": "USD",
   "buyer": {"_id": "...", "name": "..."}, "seller": {...},
   "payment": {"buyerFee": "5.00", "buyerPays": "255.00", ...},
   "dispute": {"isDisputed": false}, "timeline": [...], "createdAt": "..."}

The older flat shape (``id`` / ``senderId``) is not accepted. Snapshots
are replaced wholesale after every backend call, never patched locally.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from escrow.fees import round2
from escrow.lifecycle import EscrowStatus, Role, is_terminal_status, parse_status


def _money(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return round2(value)


def _ref_id(value: Any) -> str:
    """Party references arrive populated (``{"_id": ...}``) or as bare ids."""
    if isinstance(value, Mapping):
        return str(value.get("_id", ""))
    return "" if value is None else str(value)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Party:
    id: str
    name: str = ""
    email: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Party:
        if not isinstance(data, Mapping):
            return cls(id=_ref_id(data))
        name = data.get("name") or " ".join(
            p for p in (data.get("firstName"), data.get("lastName")) if p
        )
        return cls(id=_ref_id(data), name=name or "", email=data.get("email", "") or "")

    def to_dict(self) -> dict[str, Any]:
        return {"_id": self.id, "name": self.name, "email": self.email}


@dataclass(frozen=True)
class PaymentRecord:
    method: str | None = None
    reference: str | None = None
    amount: Decimal | None = None
    buyer_fee: Decimal | None = None
    buyer_pays: Decimal | None = None
    seller_fee: Decimal | None = None
    seller_receives: Decimal | None = None
    platform_fee: Decimal | None = None
    paid_at: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> PaymentRecord:
        data = data or {}
        return cls(
            method=data.get("method"),
            reference=data.get("reference"),
            amount=_money(data.get("amount")),
            buyer_fee=_money(data.get("buyerFee")),
            buyer_pays=_money(data.get("buyerPays")),
            seller_fee=_money(data.get("sellerFee")),
            seller_receives=_money(data.get("sellerReceives")),
            platform_fee=_money(data.get("platformFee")),
            paid_at=data.get("paidAt"),
        )

    def to_dict(self) -> dict[str, Any]:
        def s(v: Decimal | None) -> str | None:
            return None if v is None else str(v)

        return {
            "method": self.method,
            "reference": self.reference,
            "amount": s(self.amount),
            "buyerFee": s(self.buyer_fee),
            "buyerPays": s(self.buyer_pays),
            "sellerFee": s(self.seller_fee),
            "sellerReceives": s(self.seller_receives),
            "platformFee": s(self.platform_fee),
            "paidAt": self.paid_at,
        }


@dataclass(frozen=True)
class DisputeRecord:
    is_disputed: bool = False
    reason: str = ""
    raised_by: str = ""
    raised_at: str | None = None
    status: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> DisputeRecord:
        data = data or {}
        return cls(
            is_disputed=bool(data.get("isDisputed", False)),
            reason=data.get("reason") or "",
            raised_by=_ref_id(data.get("raisedBy")),
            raised_at=data.get("raisedAt"),
            status=data.get("status"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "isDisputed": self.is_disputed,
            "reason": self.reason,
            "raisedBy": self.raised_by,
            "raisedAt": self.raised_at,
            "status": self.status,
        }


@dataclass(frozen=True)
class TimelineEntry:
    status: str
    timestamp: str
    note: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "timestamp": self.timestamp, "note": self.note}


@dataclass(frozen=True)
class Escrow:
    """Backend escrow snapshot."""
    id: str
    title: str
    amount: Decimal
    currency: str
    status: str
    buyer: Party
    seller: Party
    description: str = ""
    payment: PaymentRecord = field(default_factory=PaymentRecord)
    dispute: DisputeRecord = field(default_factory=DisputeRecord)
    timeline: tuple[TimelineEntry, ...] = ()
    created_at: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Escrow:
        if "_id" not in data:
            if "id" in data or "senderId" in data:
                raise ValueError(
                    "Escrow snapshot uses the legacy flat shape (id/senderId); "
                    "expected '_id' with embedded buyer/seller."
                )
            raise ValueError("Escrow snapshot missing '_id'.")
        missing = [k for k in ("amount", "status", "buyer", "seller") if data.get(k) is None]
        if missing:
            raise ValueError(f"Escrow {data['_id']} missing fields: {', '.join(missing)}")

        return cls(
            id=str(data["_id"]),
            title=data.get("title") or data.get("itemName") or "",
            description=data.get("description") or "",
            amount=round2(data["amount"]),
            currency=(data.get("currency") or "USD").upper(),
            status=str(data["status"]),
            buyer=Party.from_dict(data["buyer"]),
            seller=Party.from_dict(data["seller"]),
            payment=PaymentRecord.from_dict(data.get("payment")),
            dispute=DisputeRecord.from_dict(data.get("dispute")),
            timeline=tuple(
                TimelineEntry(
                    status=str(t.get("status", "")),
                    timestamp=str(t.get("timestamp", "")),
                    note=t.get("note") or "",
                )
                for t in data.get("timeline") or []
            ),
            created_at=data.get("createdAt"),
        )

    @property
    def status_enum(self) -> EscrowStatus | None:
        return parse_status(self.status)

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.status)

    def role_of(self, user_id: str) -> Role | None:
        """The role ``user_id`` plays in this escrow, if any."""
        if user_id and user_id == self.buyer.id:
            return Role.BUYER
        if user_id and user_id == self.seller.id:
            return Role.SELLER
        return None

    def validate(self) -> list[str]:
        """Consistency issues in the snapshot. Returns list of issues."""
        issues = []
        status = self.status_enum
        if status is None:
            issues.append(f"Unrecognized status '{self.status}'")
        if status in (EscrowStatus.PENDING, EscrowStatus.ACCEPTED) and self.payment.paid_at:
            issues.append(f"payment.paidAt set while escrow is still {self.status}")
        if status == EscrowStatus.DISPUTED and not self.dispute.is_disputed:
            issues.append("status is disputed but dispute.isDisputed is false")
        if self.buyer.id and self.buyer.id == self.seller.id:
            issues.append("buyer and seller are the same party")
        return issues

    def to_dict(self) -> dict[str, Any]:
        return {
            "_id": self.id,
            "title": self.title,
            "description": self.description,
            "amount": str(self.amount),
            "currency": self.currency,
            "status": self.status,
            "buyer": self.buyer.to_dict(),
            "seller": self.seller.to_dict(),
            "payment": self.payment.to_dict(),
            "dispute": self.dispute.to_dict(),
            "timeline": [t.to_dict() for t in self.timeline],
            "createdAt": self.created_at,
        }
