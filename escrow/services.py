"""
Backend Services
=================
One service class per backend area. Each wraps an ApiClient and maps a
method to one request:

  AuthService          /auth/*
  EscrowService        /escrow/*
  PaymentService       /payments/*
  ChatService          /chat/*
  NotificationService  /notifications/*
  ProfileService       /profile/*, /bank/*

Escrow actions go through ``EscrowService.perform`` which checks the
lifecycle tables before sending and writes an audit record afterwards.
The backend stays the authority; the local check only keeps disabled
affordances from ever reaching it.
"""

from __future__ import annotations

import logging
from typing import Any

from escrow.api_client import ApiClient
from escrow.audit_logger import AuditLogger
from escrow.errors import ActionNotAllowed, EscrowClientError
from escrow.fees import PAYMENT_METHODS
from escrow.lifecycle import ActionKind, Role, TransitionError, next_status, parse_role
from escrow.models import Escrow
from escrow.validation import validate_cancel, validate_create_escrow, validate_dispute

logger = logging.getLogger(__name__)


def _escrow_from(data: Any) -> Escrow:
    """Escrow endpoints answer with ``{"escrow": {...}}`` or the bare document."""
    if isinstance(data, dict) and isinstance(data.get("escrow"), dict):
        data = data["escrow"]
    return Escrow.from_dict(data)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class AuthService:
    def __init__(self, client: ApiClient) -> None:
        self.client = client

    def register(self, user_data: dict[str, Any]) -> Any:
        return self.client.post("/auth/register", user_data)

    def login(self, email: str, password: str) -> dict[str, Any]:
        """Sign in and store the token on the session. Unverified accounts get no token."""
        data = self.client.post("/auth/login", {"email": email, "password": password})
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise EscrowClientError("Your email is not verified yet. Please check your inbox.")
        self.client.session.sign_in(token, data.get("user") or {})
        logger.info("Signed in as %s", email)
        return data

    def logout(self) -> None:
        """Clear the local session even when the backend call fails."""
        try:
            self.client.post("/auth/logout")
        except EscrowClientError as e:
            logger.info("Logout request failed, clearing session anyway: %s", e)
        finally:
            self.client.session.clear()

    def me(self) -> Any:
        return self.client.get("/auth/me")

    def verify_email(self, token: str) -> Any:
        return self.client.post("/auth/verify-email", {"token": token})

    def resend_verification(self, email: str) -> Any:
        return self.client.post("/auth/resend-verification", {"email": email})

    def forgot_password(self, email: str) -> Any:
        return self.client.post("/auth/forgot-password", {"email": email})

    def reset_password(self, token: str, password: str) -> Any:
        return self.client.post("/auth/reset-password", {"token": token, "password": password})


# ---------------------------------------------------------------------------
# Escrow
# ---------------------------------------------------------------------------

class EscrowService:
    def __init__(self, client: ApiClient, audit: AuditLogger | None = None) -> None:
        self.client = client
        self.audit = audit

    def create(self, data: dict[str, Any]) -> Escrow:
        validate_create_escrow(data).raise_if_blocked()
        return _escrow_from(self.client.post("/escrow/create", data))

    def my_escrows(self, status: str | None = None, page: int = 1, limit: int = 20) -> list[Escrow]:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if status and status != "all":
            params["status"] = status
        data = self.client.get("/escrow/my-escrows", params=params)
        items = data.get("escrows", []) if isinstance(data, dict) else data or []
        return [Escrow.from_dict(item) for item in items]

    def get(self, escrow_id: str) -> Escrow:
        return _escrow_from(self.client.get(f"/escrow/{escrow_id}"))

    def calculate_fees(self, amount: Any) -> Any:
        return self.client.get("/escrow/calculate-fees", params={"amount": str(amount)})

    def dashboard_stats(self) -> Any:
        return self.client.get("/escrow/dashboard-stats")

    # --- Actions ---

    def accept(self, escrow_id: str) -> Escrow:
        return self._post_action(escrow_id, ActionKind.ACCEPT)

    def reject(self, escrow_id: str, reason: str = "") -> Escrow:
        return self._post_action(escrow_id, ActionKind.REJECT, {"reason": reason})

    def fund(self, escrow_id: str, payment_data: dict[str, Any] | None = None) -> Escrow:
        return self._post_action(escrow_id, ActionKind.FUND, payment_data)

    def deliver(self, escrow_id: str, delivery_data: dict[str, Any] | None = None) -> Escrow:
        return self._post_action(escrow_id, ActionKind.DELIVER, delivery_data)

    def confirm(self, escrow_id: str) -> Escrow:
        return self._post_action(escrow_id, ActionKind.CONFIRM)

    def cancel(self, escrow_id: str, reason: str = "") -> Escrow:
        payload = {"reason": reason}
        validate_cancel(payload).raise_if_blocked()
        return self._post_action(escrow_id, ActionKind.CANCEL, payload)

    def dispute(self, escrow_id: str, dispute_data: dict[str, Any]) -> Escrow:
        validate_dispute(dispute_data).raise_if_blocked()
        return self._post_action(escrow_id, ActionKind.DISPUTE, dispute_data)

    def _post_action(
        self, escrow_id: str, action: ActionKind, payload: dict[str, Any] | None = None,
    ) -> Escrow:
        return _escrow_from(self.client.post(f"/escrow/{escrow_id}/{action.value}", payload))

    def perform(
        self,
        escrow: Escrow,
        action: ActionKind | str,
        role: Role | str | None = None,
        **payload: Any,
    ) -> Escrow:
        """
        Run ``action`` on ``escrow`` as ``role`` after checking the lifecycle.

        ``role`` defaults to the signed-in user's role in the escrow.
        Raises ActionNotAllowed without contacting the backend when the
        role cannot take the action from the current status.
        """
        try:
            kind = ActionKind(action)
        except ValueError:
            raise ActionNotAllowed(f"Unknown action: {action!r}") from None

        actor = self.client.session.user_id
        parsed_role = parse_role(role) if role is not None else escrow.role_of(actor)
        if parsed_role is None:
            raise ActionNotAllowed(f"You are not part of escrow {escrow.id}")

        try:
            next_status(escrow.status, kind, parsed_role)
        except TransitionError as e:
            raise ActionNotAllowed(str(e)) from None

        handlers = {
            ActionKind.ACCEPT: lambda: self.accept(escrow.id),
            ActionKind.REJECT: lambda: self.reject(escrow.id, payload.get("reason", "")),
            ActionKind.FUND: lambda: self.fund(escrow.id, payload or None),
            ActionKind.DELIVER: lambda: self.deliver(escrow.id, payload or None),
            ActionKind.CONFIRM: lambda: self.confirm(escrow.id),
            ActionKind.CANCEL: lambda: self.cancel(escrow.id, payload.get("reason", "")),
            ActionKind.DISPUTE: lambda: self.dispute(escrow.id, payload),
        }
        updated = handlers[kind]()
        logger.info("Escrow %s: %s -> %s (%s)", escrow.id, escrow.status, updated.status, kind.value)

        if self.audit is not None:
            self.audit.log_action(
                action=kind.value,
                escrow_id=escrow.id,
                role=parsed_role.value,
                actor=actor or None,
                from_status=escrow.status,
                to_status=updated.status,
                snapshot=updated.to_dict(),
            )
        return updated


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

class PaymentService:
    def __init__(self, client: ApiClient) -> None:
        self.client = client

    def initialize(
        self, escrow_id: str, payment_method: str, cryptocurrency: str | None = None,
    ) -> str:
        """Start a gateway payment and return the redirect URL."""
        if payment_method not in PAYMENT_METHODS:
            raise ValueError(
                f"Unsupported payment method '{payment_method}'. "
                f"Available: {', '.join(PAYMENT_METHODS)}"
            )
        body: dict[str, Any] = {"escrowId": escrow_id, "paymentMethod": payment_method}
        if cryptocurrency:
            body["cryptocurrency"] = cryptocurrency
        data = self.client.post("/payments/initialize", body)
        for key in ("authorizationUrl", "paymentLink", "paymentUrl", "invoiceUrl"):
            if isinstance(data, dict) and data.get(key):
                return data[key]
        raise EscrowClientError("Payment gateway did not return a redirect URL", payload=data)

    def verify(
        self,
        reference: str,
        payment_method: str,
        transaction_id: str | None = None,
        payment_id: str | None = None,
    ) -> Any:
        return self.client.post("/payments/verify", {
            "reference": reference,
            "paymentMethod": payment_method,
            "transactionId": transaction_id,
            "paymentId": payment_id,
        })


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

class ChatService:
    def __init__(self, client: ApiClient) -> None:
        self.client = client

    def get_messages(self, escrow_id: str, page: int = 1, limit: int = 50) -> list[dict[str, Any]]:
        data = self.client.get(f"/chat/{escrow_id}/messages", params={"page": page, "limit": limit})
        return data.get("messages", []) if isinstance(data, dict) else data or []

    def send_message(self, escrow_id: str, message: str) -> Any:
        if not message.strip():
            raise ValueError("Message cannot be empty")
        return self.client.post(f"/chat/{escrow_id}/messages", {"message": message})

    def unread_count(self) -> int:
        data = self.client.get("/chat/unread-count")
        return int(data.get("count", 0)) if isinstance(data, dict) else int(data or 0)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class NotificationService:
    def __init__(self, client: ApiClient) -> None:
        self.client = client

    def list(self, page: int = 1, limit: int = 20, unread_only: bool = False) -> list[dict[str, Any]]:
        data = self.client.get("/notifications", params={
            "page": page, "limit": limit, "unreadOnly": str(unread_only).lower(),
        })
        return data.get("notifications", []) if isinstance(data, dict) else data or []

    def unread_count(self) -> int:
        data = self.client.get("/notifications/unread-count")
        return int(data.get("count", 0)) if isinstance(data, dict) else int(data or 0)

    def mark_read(self, notification_id: str) -> Any:
        return self.client.put(f"/notifications/{notification_id}/read")

    def mark_all_read(self) -> Any:
        return self.client.put("/notifications/read-all")

    def delete(self, notification_id: str) -> Any:
        return self.client.delete(f"/notifications/{notification_id}")

    def clear_read(self) -> Any:
        return self.client.delete("/notifications/read/clear")


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

class ProfileService:
    def __init__(self, client: ApiClient) -> None:
        self.client = client

    def get(self) -> Any:
        return self.client.get("/profile")

    def update(self, data: dict[str, Any]) -> Any:
        return self.client.put("/profile", data)

    def submit_kyc(self, data: dict[str, Any]) -> Any:
        return self.client.post("/profile/kyc", data)

    def kyc_status(self) -> Any:
        return self.client.get("/profile/kyc/status")

    def change_password(self, current_password: str, new_password: str) -> Any:
        return self.client.post("/profile/change-password", {
            "currentPassword": current_password, "newPassword": new_password,
        })

    def delete_account(self, password: str, reason: str = "") -> Any:
        return self.client.post("/profile/delete-account", {"password": password, "reason": reason})

    def bank_accounts(self) -> Any:
        return self.client.get("/bank/list")

    def add_bank_account(self, data: dict[str, Any]) -> Any:
        return self.client.post("/bank/add", data)

    def remove_bank_account(self, account_id: str) -> Any:
        return self.client.delete(f"/bank/{account_id}")
