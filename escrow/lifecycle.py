"""
Escrow Lifecycle State Machine
================================
Pure decision tables for an escrow between a buyer and a seller:

  pending -> accepted -> funded -> delivered -> completed -> paid_out
     |          |           \\          /
     +----------+--> cancelled  +-> disputed

Given a status and the viewer's role, this module answers:
  - how the status is displayed (badge color, glyph, label)
  - the single next action offered to that role
  - whether the escape hatches (cancel / dispute) are open
  - where the status sits on the progress stepper

The backend is the authority on every transition. These tables drive
client affordances and can equally back a server-side authorization layer.
Unknown statuses never raise; they degrade to a safe default so that new
backend statuses do not break older clients.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from escrow._icons import (
    ICON_CANCELLED,
    ICON_CARD,
    ICON_CLEAR,
    ICON_HOURGLASS,
    ICON_MEMO,
    ICON_MONEYBAG,
    ICON_PACKAGE,
    ICON_PAYOUT,
    ICON_THUMBS_UP,
    ICON_WARN,
)


# ---------------------------------------------------------------------------
# State Model
# ---------------------------------------------------------------------------

class EscrowStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    FUNDED = "funded"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    PAID_OUT = "paid_out"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"


class ActionKind(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    FUND = "fund"
    DELIVER = "deliver"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    DISPUTE = "dispute"
    PAYOUT = "payout"
    RATE = "rate"
    VIEW = "view"

    @property
    def mutates(self) -> bool:
        """True if the action changes escrow state on the backend."""
        return self not in (ActionKind.RATE, ActionKind.VIEW)


TERMINAL_STATUSES = frozenset({
    EscrowStatus.COMPLETED,
    EscrowStatus.PAID_OUT,
    EscrowStatus.CANCELLED,
    EscrowStatus.DISPUTED,
})

CANCELLABLE_STATUSES = frozenset({EscrowStatus.PENDING, EscrowStatus.ACCEPTED})
DISPUTABLE_STATUSES = frozenset({EscrowStatus.FUNDED, EscrowStatus.DELIVERED})

# Roles allowed to request a transition. PAYOUT is system-driven.
_EITHER = frozenset({Role.BUYER, Role.SELLER})
_BUYER = frozenset({Role.BUYER})
_SELLER = frozenset({Role.SELLER})
_SYSTEM: frozenset[Role] = frozenset()

TRANSITIONS: dict[EscrowStatus, dict[ActionKind, tuple[frozenset[Role], EscrowStatus]]] = {
    EscrowStatus.PENDING: {
        ActionKind.ACCEPT: (_SELLER, EscrowStatus.ACCEPTED),
        ActionKind.REJECT: (_SELLER, EscrowStatus.CANCELLED),
        ActionKind.CANCEL: (_BUYER, EscrowStatus.CANCELLED),
    },
    EscrowStatus.ACCEPTED: {
        ActionKind.FUND: (_BUYER, EscrowStatus.FUNDED),
        ActionKind.CANCEL: (_EITHER, EscrowStatus.CANCELLED),
    },
    EscrowStatus.FUNDED: {
        ActionKind.DELIVER: (_SELLER, EscrowStatus.DELIVERED),
        ActionKind.DISPUTE: (_EITHER, EscrowStatus.DISPUTED),
    },
    EscrowStatus.DELIVERED: {
        ActionKind.CONFIRM: (_BUYER, EscrowStatus.COMPLETED),
        ActionKind.DISPUTE: (_EITHER, EscrowStatus.DISPUTED),
    },
    EscrowStatus.COMPLETED: {
        ActionKind.PAYOUT: (_SYSTEM, EscrowStatus.PAID_OUT),
    },
    EscrowStatus.PAID_OUT: {},
    EscrowStatus.CANCELLED: {},
    EscrowStatus.DISPUTED: {},
}


class TransitionError(ValueError):
    """Raised when an action is not available from the current status."""


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StatusInfo:
    color: str
    icon: str
    text: str

    def to_dict(self) -> dict[str, str]:
        return {"color": self.color, "icon": self.icon, "text": self.text}


@dataclass(frozen=True)
class NextAction:
    """The single action offered to a role for an escrow's current status."""
    text: str
    action: ActionKind | None
    disabled: bool
    primary: bool = False

    @property
    def is_invokable(self) -> bool:
        return not self.disabled and self.action is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "action": self.action.value if self.action else None,
            "disabled": self.disabled,
            "primary": self.primary,
        }


@dataclass(frozen=True)
class TimelineStep:
    key: EscrowStatus
    label: str
    icon: str


# ---------------------------------------------------------------------------
# Lookup Tables
# ---------------------------------------------------------------------------

STATUS_INFO: dict[EscrowStatus, StatusInfo] = {
    EscrowStatus.PENDING: StatusInfo(
        "bg-yellow-100 text-yellow-800 dark:bg-yellow-900/20 dark:text-yellow-400",
        ICON_HOURGLASS, "Pending Acceptance",
    ),
    EscrowStatus.ACCEPTED: StatusInfo(
        "bg-blue-100 text-blue-800 dark:bg-blue-900/20 dark:text-blue-400",
        ICON_CARD, "Awaiting Payment",
    ),
    EscrowStatus.FUNDED: StatusInfo(
        "bg-purple-100 text-purple-800 dark:bg-purple-900/20 dark:text-purple-400",
        ICON_MONEYBAG, "Funded - Awaiting Delivery",
    ),
    EscrowStatus.DELIVERED: StatusInfo(
        "bg-indigo-100 text-indigo-800 dark:bg-indigo-900/20 dark:text-indigo-400",
        ICON_PACKAGE, "Delivered - Awaiting Confirmation",
    ),
    EscrowStatus.COMPLETED: StatusInfo(
        "bg-green-100 text-green-800 dark:bg-green-900/20 dark:text-green-400",
        ICON_CLEAR, "Completed",
    ),
    EscrowStatus.PAID_OUT: StatusInfo(
        "bg-emerald-100 text-emerald-800 dark:bg-emerald-900/20 dark:text-emerald-400",
        ICON_PAYOUT, "Paid Out",
    ),
    EscrowStatus.CANCELLED: StatusInfo(
        "bg-gray-100 text-gray-800 dark:bg-gray-800 dark:text-gray-400",
        ICON_CANCELLED, "Cancelled",
    ),
    EscrowStatus.DISPUTED: StatusInfo(
        "bg-red-100 text-red-800 dark:bg-red-900/20 dark:text-red-400",
        ICON_WARN, "Disputed",
    ),
}

_VIEW = NextAction("View Details", ActionKind.VIEW, disabled=False)

NEXT_ACTIONS: dict[Role, dict[EscrowStatus, NextAction]] = {
    Role.BUYER: {
        EscrowStatus.PENDING: NextAction("Waiting for seller to accept", None, disabled=True),
        EscrowStatus.ACCEPTED: NextAction("Pay Now", ActionKind.FUND, disabled=False, primary=True),
        EscrowStatus.FUNDED: NextAction("Waiting for delivery", None, disabled=True),
        EscrowStatus.DELIVERED: NextAction(
            "Confirm Receipt", ActionKind.CONFIRM, disabled=False, primary=True,
        ),
        EscrowStatus.COMPLETED: NextAction("Rate Seller", ActionKind.RATE, disabled=False),
        EscrowStatus.PAID_OUT: NextAction("Transaction Complete", None, disabled=True),
    },
    Role.SELLER: {
        EscrowStatus.PENDING: NextAction("Accept Deal", ActionKind.ACCEPT, disabled=False, primary=True),
        EscrowStatus.ACCEPTED: NextAction("Waiting for buyer payment", None, disabled=True),
        EscrowStatus.FUNDED: NextAction(
            "Mark as Delivered", ActionKind.DELIVER, disabled=False, primary=True,
        ),
        EscrowStatus.DELIVERED: NextAction("Waiting for buyer confirmation", None, disabled=True),
        EscrowStatus.COMPLETED: NextAction("Processing payout", None, disabled=True),
        EscrowStatus.PAID_OUT: NextAction("Payment Received", None, disabled=True),
    },
}

TIMELINE_STEPS: tuple[TimelineStep, ...] = (
    TimelineStep(EscrowStatus.PENDING, "Created", ICON_MEMO),
    TimelineStep(EscrowStatus.ACCEPTED, "Accepted", ICON_CLEAR),
    TimelineStep(EscrowStatus.FUNDED, "Funded", ICON_MONEYBAG),
    TimelineStep(EscrowStatus.DELIVERED, "Delivered", ICON_PACKAGE),
    TimelineStep(EscrowStatus.COMPLETED, "Confirmed", ICON_THUMBS_UP),
    TimelineStep(EscrowStatus.PAID_OUT, "Paid Out", ICON_PAYOUT),
)

PROGRESS_PERCENTAGE: dict[EscrowStatus, int] = {
    EscrowStatus.PENDING: 16,
    EscrowStatus.ACCEPTED: 33,
    EscrowStatus.FUNDED: 50,
    EscrowStatus.DELIVERED: 66,
    EscrowStatus.COMPLETED: 83,
    EscrowStatus.PAID_OUT: 100,
    EscrowStatus.CANCELLED: 0,
    EscrowStatus.DISPUTED: 50,
}


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------

def parse_status(value: Any) -> EscrowStatus | None:
    """Map a raw status value to an EscrowStatus, or None if unrecognized.

    Matching is exact: ``"FUNDED"`` is not ``funded``.
    """
    if isinstance(value, EscrowStatus):
        return value
    try:
        return EscrowStatus(value)
    except (ValueError, TypeError):
        return None


def parse_role(value: Any) -> Role | None:
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except (ValueError, TypeError):
        return None


def _status_of(escrow: Any) -> Any:
    """Accept an Escrow record, a snapshot mapping, or a bare status."""
    if isinstance(escrow, (str, EscrowStatus)):
        return escrow
    if isinstance(escrow, Mapping):
        return escrow.get("status")
    return getattr(escrow, "status", None)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def get_status_info(status: Any) -> StatusInfo:
    """Display metadata for a status. Unknown values get the pending entry."""
    parsed = parse_status(status)
    return STATUS_INFO[parsed or EscrowStatus.PENDING]


def get_next_action(escrow: Any, role: Any) -> NextAction:
    """The action offered to ``role`` for the escrow's current status."""
    parsed_role = parse_role(role)
    status = parse_status(_status_of(escrow))
    if parsed_role is None or status is None:
        return _VIEW
    return NEXT_ACTIONS[parsed_role].get(status, _VIEW)


def can_cancel(status: Any) -> bool:
    """Cancellation is only open before funds move."""
    return parse_status(status) in CANCELLABLE_STATUSES


def can_dispute(status: Any) -> bool:
    """Disputes open once funds are held and close at buyer confirmation."""
    return parse_status(status) in DISPUTABLE_STATUSES


def is_terminal_status(status: Any) -> bool:
    return parse_status(status) in TERMINAL_STATUSES


def get_timeline_steps() -> list[TimelineStep]:
    return list(TIMELINE_STEPS)


def timeline_index(status: Any) -> int:
    """Position on the stepper; -1 for cancelled, disputed and unknown."""
    parsed = parse_status(status)
    for i, step in enumerate(TIMELINE_STEPS):
        if step.key == parsed:
            return i
    return -1


def get_progress_percentage(status: Any) -> int:
    parsed = parse_status(status)
    if parsed is None:
        return 0
    return PROGRESS_PERCENTAGE[parsed]


def allowed_actions(status: Any, role: Any) -> list[ActionKind]:
    """Mutating actions ``role`` may request from ``status``."""
    parsed = parse_status(status)
    parsed_role = parse_role(role)
    if parsed is None or parsed_role is None:
        return []
    return [
        action for action, (roles, _) in TRANSITIONS[parsed].items()
        if parsed_role in roles
    ]


def next_status(status: Any, action: Any, role: Any = None) -> EscrowStatus:
    """
    Resolve the status an action leads to.

    With ``role`` given, the role must be allowed to request the action.
    Without it, the transition is checked as the system would see it.
    """
    parsed = parse_status(status)
    if parsed is None:
        raise TransitionError(f"Unknown escrow status: {status!r}")

    try:
        kind = ActionKind(action)
    except ValueError:
        raise TransitionError(f"Unknown action: {action!r}") from None

    options = TRANSITIONS[parsed]
    if kind not in options:
        available = [a.value for a in options] or "NONE (terminal)"
        raise TransitionError(
            f"Cannot {kind.value} an escrow in {parsed.value}. Available: {available}"
        )

    roles, target = options[kind]
    if role is not None:
        parsed_role = parse_role(role)
        if parsed_role not in roles:
            who = ", ".join(sorted(r.value for r in roles)) or "system"
            label = parsed_role.value if parsed_role else role
            raise TransitionError(
                f"Role {label!r} cannot {kind.value} an escrow in {parsed.value} "
                f"(allowed: {who})"
            )
    return target
