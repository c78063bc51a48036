"""
Audit Logger
=============
Writes a trail of every escrow action requested through this client.

Each action produces a timestamped JSON file in the audit directory:
  - Escrow id, action and acting role
  - Status before and after (as returned by the backend)
  - Amount and currency of the snapshot
  - SHA256 hash of the returned snapshot
  - SHA256 hash of the record itself

This is not debug logging. Debug output goes through ``logging``;
the audit trail is what a party can show when a transaction is disputed.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from escrow.settings import Settings


class AuditLogger:
    """
    Writes structured audit records for escrow actions.
    """

    def __init__(self, logs_dir: Path | None = None) -> None:
        self._logs_dir = logs_dir or Settings().audit_dir
        self._logs_dir.mkdir(parents=True, exist_ok=True)

    @property
    def logs_dir(self) -> Path:
        return self._logs_dir

    def log_action(
        self,
        *,
        action: str,
        escrow_id: str,
        role: str | None = None,
        actor: str | None = None,
        from_status: str | None = None,
        to_status: str | None = None,
        snapshot: dict[str, Any] | None = None,
        extra: dict[str, Any] | None = None,
    ) -> Path:
        """
        Write a single audit record.

        Returns:
            Path to the written audit log file.
        """
        now = datetime.now(timezone.utc)
        timestamp = now.strftime("%Y-%m-%dT%H-%M-%S-%f")

        record: dict[str, Any] = {
            "audit_version": "1.0",
            "timestamp_utc": now.isoformat(),
            "action": action,
            "escrow_id": escrow_id,
        }

        if role:
            record["role"] = role
        if actor:
            record["actor"] = actor
        if from_status is not None:
            record["from_status"] = from_status
        if to_status is not None:
            record["to_status"] = to_status

        if snapshot:
            record["amount"] = snapshot.get("amount")
            record["currency"] = snapshot.get("currency")
            record["snapshot_hash"] = self._hash_dict(snapshot)

        if extra:
            record["extra"] = extra

        # Compute record hash for tamper detection
        record["record_hash"] = self._hash_dict(record)

        slug = f"{escrow_id}_{action}".replace(" ", "_").replace("-", "_").lower()
        filepath = self._logs_dir / f"{timestamp}_{slug}.json"

        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2, default=str, ensure_ascii=False)

        return filepath

    def records(self, escrow_id: str | None = None) -> list[dict[str, Any]]:
        """Load written records, oldest first, optionally for one escrow."""
        out = []
        for path in sorted(self._logs_dir.glob("*.json")):
            with open(path, "r", encoding="utf-8") as f:
                record = json.load(f)
            if escrow_id is None or record.get("escrow_id") == escrow_id:
                out.append(record)
        return out

    @classmethod
    def verify(cls, record: dict[str, Any]) -> bool:
        """True if the record hash matches its contents."""
        body = {k: v for k, v in record.items() if k != "record_hash"}
        return record.get("record_hash") == cls._hash_dict(body)

    # --- Helpers ---

    @staticmethod
    def _hash_dict(d: dict[str, Any]) -> str:
        """SHA256 hash of a dictionary for tamper detection."""
        canonical = json.dumps(d, sort_keys=True, default=str)
        return hashlib.sha256(canonical.encode()).hexdigest()
