"""
Guestbook messages.

A submission passes through three duplicate-suppression layers before a new
record is written:

1. the identity already owns a message: it is updated in place;
2. the same trimmed (name, message) was stored inside the duplicate window:
   the earlier record is reported as a duplicate;
3. the submission id was already stored: the earlier record is returned.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from babyregistry.db import MessageRecord, RegistryStore
from babyregistry.errors import (
    DuplicateMessage,
    InvalidInput,
    NotFound,
    RecordExists,
    StorageError,
)
from babyregistry.votes import require_browser_id

logger = logging.getLogger(__name__)

DEFAULT_DUPLICATE_WINDOW = 10.0


@dataclass(frozen=True)
class MessageStatus:
    has: bool
    message: Optional[MessageRecord] = None


class MessageService:
    def __init__(
        self,
        store: RegistryStore,
        *,
        duplicate_window: float = DEFAULT_DUPLICATE_WINDOW,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.duplicate_window = duplicate_window
        self.clock = clock

    def list_messages(self) -> list[MessageRecord]:
        return self.store.list_messages()

    def check_message(self, browser_id: Optional[str]) -> MessageStatus:
        browser_id = require_browser_id(browser_id)
        message = self.store.get_message_for_browser(browser_id)
        return MessageStatus(has=message is not None, message=message)

    def submit_message(
        self,
        name: Optional[str],
        body: Optional[str],
        browser_id: Optional[str] = None,
        submission_id: Optional[str] = None,
    ) -> MessageRecord:
        if not name or not body:
            raise InvalidInput("Name and message are required")
        name, body = name.strip(), body.strip()
        if not name or not body:
            raise InvalidInput("Name and message cannot be empty")
        submission_id = submission_id or None
        browser_id = browser_id or None
        now = self.clock()

        if browser_id:
            updated = self._update_for_browser(browser_id, name, body, submission_id, now)
            if updated:
                return updated

        duplicate = self.store.find_recent_message(
            name, body, since=now - self.duplicate_window
        )
        if duplicate:
            logger.info(
                "Duplicate message detected from %s within %.0f seconds",
                name,
                self.duplicate_window,
            )
            raise DuplicateMessage(duplicate)

        if submission_id:
            existing = self.store.get_message_by_submission(submission_id)
            if existing:
                logger.info("Message with submission ID %s already exists", submission_id)
                return existing

        record = MessageRecord(
            name=name,
            message=body,
            browser_id=browser_id,
            submission_id=submission_id,
            created_at=now,
        )
        try:
            self.store.insert_message(record)
        except RecordExists as exc:
            return self._resolve_conflict(exc, record)
        logger.info("Added new message from %s [browser %s]", name, browser_id)
        return record

    def _update_for_browser(
        self,
        browser_id: str,
        name: str,
        body: str,
        submission_id: Optional[str],
        now: float,
    ) -> Optional[MessageRecord]:
        updated = self.store.update_message_for_browser(
            browser_id,
            name=name,
            message=body,
            submission_id=submission_id,
            created_at=now,
        )
        if updated:
            logger.info("Browser %s already has a message, updated it", browser_id)
        return updated

    def _resolve_conflict(
        self, exc: RecordExists, record: MessageRecord
    ) -> MessageRecord:
        # Lost an insert race against a concurrent request.
        if exc.field == "browser_id" and record.browser_id:
            updated = self._update_for_browser(
                record.browser_id,
                record.name,
                record.message,
                record.submission_id,
                record.created_at,
            )
            if updated:
                return updated
        if record.submission_id:
            existing = self.store.get_message_by_submission(record.submission_id)
            if existing:
                return existing
        raise StorageError("Failed to submit message") from exc

    def retract_message(self, browser_id: Optional[str]) -> None:
        browser_id = require_browser_id(browser_id)
        if not self.store.delete_message_for_browser(browser_id):
            raise NotFound("No message found to delete")
        logger.info("Message cleared for browser %s", browser_id)

    def delete_message(self, message_id: str) -> None:
        if not message_id:
            raise InvalidInput("Message ID is required")
        if not self.store.delete_message(message_id):
            raise NotFound("Message not found")
        logger.info("Message %s deleted by admin", message_id)

    def clear_all(self) -> int:
        removed = self.store.clear_messages()
        logger.info("All messages cleared (%d removed)", removed)
        return removed
