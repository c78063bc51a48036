"""
Client Settings
================
Loads client configuration from ``settings.yaml`` next to this module,
then applies environment overrides for deployment-specific values.

  ESCROW_API_URL        -> api.base_url
  ESCROW_SESSION_PATH   -> session.path
  ESCROW_AUDIT_DIR      -> audit.logs_dir

The fee tier and gateway cost tables live here too so that the fee
schedule can be tuned without touching code.
"""

from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SETTINGS_PATH = Path(__file__).resolve().parent / "settings.yaml"

DEFAULT_API_URL = "http://localhost:5000/api"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class Settings:
    """
    Read-only view over the client configuration.
    """

    def __init__(
        self,
        settings_path: Path | None = None,
        environ: dict[str, str] | None = None,
    ) -> None:
        self._path = settings_path or SETTINGS_PATH
        self._environ = os.environ if environ is None else environ
        self._settings: dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        if self._path.exists():
            with open(self._path, "r", encoding="utf-8") as f:
                self._settings = yaml.safe_load(f) or {}
        else:
            self._settings = {}

    # --- Core accessors ---

    @property
    def raw(self) -> dict[str, Any]:
        return self._settings

    @property
    def version(self) -> str:
        return self._settings.get("settings_version", "0.0.0")

    def _section(self, key: str) -> dict[str, Any]:
        return self._settings.get(key) or {}

    # --- API ---

    @property
    def api_url(self) -> str:
        url = self._environ.get("ESCROW_API_URL") or self._section("api").get(
            "base_url", DEFAULT_API_URL
        )
        return url.rstrip("/")

    @property
    def request_timeout(self) -> float:
        return float(self._section("api").get("request_timeout", 30))

    @property
    def poll_interval(self) -> float:
        return float(self._section("api").get("poll_interval", 5))

    # --- Session / audit ---

    @property
    def session_path(self) -> Path:
        path = self._environ.get("ESCROW_SESSION_PATH") or self._section("session").get(
            "path", "~/.escrow/session.json"
        )
        return Path(path).expanduser()

    @property
    def audit_dir(self) -> Path:
        path = self._environ.get("ESCROW_AUDIT_DIR") or self._section("audit").get(
            "logs_dir", "~/.escrow/audit"
        )
        return Path(path).expanduser()

    def should_audit(self) -> bool:
        return bool(self._section("audit").get("audit_every_action", True))

    # --- Fees ---

    @property
    def buyer_fee_rate(self) -> Decimal:
        return Decimal(str(self._section("fees").get("buyer_fee_rate", "0.02")))

    @property
    def default_tier(self) -> str:
        return self._section("fees").get("default_tier", "starter")

    @property
    def fee_tiers(self) -> dict[str, Any]:
        return self._section("fee_tiers")

    @property
    def gateway_costs(self) -> dict[str, Any]:
        return self._section("gateway_costs")

    # --- Summary ---

    def summary(self) -> str:
        """Human-readable settings summary."""
        lines = [
            f"Settings Version: {self.version}",
            f"API URL:          {self.api_url}",
            f"Timeout:          {self.request_timeout:g}s",
            f"Poll Interval:    {self.poll_interval:g}s",
            f"Session File:     {self.session_path}",
            f"Audit Dir:        {self.audit_dir}",
            f"Buyer Fee Rate:   {self.buyer_fee_rate * 100:.2f}%",
            f"Fee Tiers:        {', '.join(self.fee_tiers) or 'NONE'}",
        ]
        return "\n".join(lines)
