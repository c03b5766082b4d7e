"""
Client-side pseudonymous identity ("browser id") and submission ids.

The identity is generated once and kept in a small JSON document; it is not a
credential, only a correlation key for votes and messages.
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import time
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

STORAGE_KEY = "babyRegistryBrowserId"
DEFAULT_IDENTITY_PATH = Path.home() / ".babyregistry" / "identity.json"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _random_base36(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_browser_id() -> str:
    return f"browser_{_now_ms()}_{_random_base36(13)}"


def new_submission_id() -> str:
    """Per-attempt nonce making one logical submission idempotent across retries."""
    return f"{_now_ms()}_{_random_base36(7)}"


class IdentityProvider:
    """
    Returns the persisted browser id, creating it on first use.

    When the storage file cannot be read or written, each call yields a fresh
    id; the caller is then simply treated as a new visitor.
    """

    def __init__(self, path: Optional[os.PathLike] = None):
        self.path = Path(path) if path else DEFAULT_IDENTITY_PATH

    def _load(self) -> dict:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        return data if isinstance(data, dict) else {}

    def get_identity(self) -> str:
        try:
            data = self._load()
            browser_id = data.get(STORAGE_KEY)
            if isinstance(browser_id, str) and browser_id:
                return browser_id
            browser_id = generate_browser_id()
            data[STORAGE_KEY] = browser_id
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f)
            return browser_id
        except (OSError, ValueError) as exc:
            logger.warning("Identity storage unavailable (%s); using a fresh id", exc)
            return generate_browser_id()

    def forget(self) -> bool:
        """Drop the persisted id. Returns True if one was stored."""
        try:
            data = self._load()
        except (OSError, ValueError):
            return False
        if STORAGE_KEY not in data:
            return False
        del data[STORAGE_KEY]
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f)
        except OSError as exc:
            logger.warning("Identity storage unavailable (%s); nothing forgotten", exc)
            return False
        return True
