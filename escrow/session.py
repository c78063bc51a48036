"""
Session Store
=============
Holds the bearer token, the signed-in user and the UI preferences for one
client. The session is constructed once and handed to whatever needs it;
nothing else reads or writes the session file.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class Session:
    token: str | None = None
    user: dict[str, Any] = field(default_factory=dict)
    dark_mode: bool = False
    path: Path | None = field(default=None, repr=False)

    @classmethod
    def load(cls, path: Path) -> Session:
        """Read a persisted session; a missing or corrupt file yields an empty one."""
        path = Path(path)
        if not path.exists():
            return cls(path=path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", path, e)
            return cls(path=path)
        return cls(
            token=data.get("token"),
            user=data.get("user") or {},
            dark_mode=bool(data.get("dark_mode", False)),
            path=path,
        )

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def user_id(self) -> str:
        return str(self.user.get("_id") or self.user.get("id") or "")

    def authorization_header(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def sign_in(self, token: str, user: dict[str, Any] | None = None) -> None:
        self.token = token
        self.user = user or {}
        self.save()

    def clear(self) -> None:
        self.token = None
        self.user = {}
        self.save()

    def to_dict(self) -> dict[str, Any]:
        return {"token": self.token, "user": self.user, "dark_mode": self.dark_mode}

    def save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
