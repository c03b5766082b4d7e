"""
Shared-secret admin gate.

The admin key is a long-lived secret, not a session: ``login`` only hands it
out to callers on the configured allow-list.
"""

from __future__ import annotations

import hmac
import logging
from typing import Iterable, Optional

from babyregistry.errors import AdminRequired, InvalidCredentials

logger = logging.getLogger(__name__)


def _same(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


class AdminGate:
    def __init__(self, admin_key: str, credentials: Iterable[tuple[str, str]]):
        if not admin_key:
            raise ValueError("admin_key must not be empty")
        self._admin_key = admin_key
        self._credentials = list(credentials)

    def authorize(self, provided: Optional[str]) -> bool:
        if not provided:
            return False
        return _same(provided, self._admin_key)

    def require(self, provided: Optional[str]) -> None:
        if not self.authorize(provided):
            logger.warning("Rejected privileged request with a bad admin key")
            raise AdminRequired()

    def login(self, email: Optional[str], password: Optional[str]) -> str:
        logger.info(
            "Admin login attempt for %r (password %s)",
            email,
            "***" if password else "missing",
        )
        email = email or ""
        password = password or ""
        # Every entry is compared, matched or not.
        matched = False
        for known_email, known_password in self._credentials:
            if _same(email, known_email) & _same(password, known_password):
                matched = True
        if not matched:
            logger.info("Admin login failed - invalid credentials")
            raise InvalidCredentials()
        logger.info("Admin login succeeded")
        return self._admin_key
