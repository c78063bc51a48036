"""
Windows-safe icon map
======================
Windows legacy consoles (cp1252) cannot render emoji.
This module detects the encoding and falls back to ASCII.
"""

from __future__ import annotations

import os
import sys

def _can_render_emoji() -> bool:
    """Return True if stdout can handle emoji characters."""
    if os.environ.get("PYTHONIOENCODING", "").lower().startswith("utf"):
        return True
    encoding = getattr(sys.stdout, "encoding", None) or ""
    return encoding.lower().replace("-", "") in ("utf8", "utf16", "utf32")


_EMOJI = _can_render_emoji()

# ---- Status glyphs ----
ICON_HOURGLASS  = "\u23f3" if _EMOJI else "[..]"        # pending
ICON_CARD       = "\U0001f4b3" if _EMOJI else "[$?]"    # accepted
ICON_MONEYBAG   = "\U0001f4b0" if _EMOJI else "[$$]"    # funded
ICON_PACKAGE    = "\U0001f4e6" if _EMOJI else "[>>]"    # delivered
ICON_CLEAR      = "\u2705" if _EMOJI else "[OK]"        # completed
ICON_PAYOUT     = "\U0001f4b8" if _EMOJI else "[$>]"    # paid_out
ICON_CANCELLED  = "\u274c" if _EMOJI else "[XX]"        # cancelled
ICON_WARN       = "\u26a0\ufe0f" if _EMOJI else "[!]"   # disputed

# ---- Timeline steps ----
ICON_MEMO       = "\U0001f4dd" if _EMOJI else "[+]"
ICON_THUMBS_UP  = "\U0001f44d" if _EMOJI else "[^]"

# ---- Misc ----
ICON_CHECK      = "\u2713"     if _EMOJI else "(v)"
ICON_CROSS      = "\u2717"     if _EMOJI else "(x)"
ICON_INFO       = "\u2139\ufe0f" if _EMOJI else "(i)"
ICON_BLOCK      = "\U0001f6ab" if _EMOJI else "[X]"

# ---- Lookup helpers ----

SEVERITY_ICONS: dict[str, str] = {
    "ERROR": ICON_BLOCK,
    "WARNING": ICON_WARN,
    "INFO": ICON_INFO,
}
