"""
Flat-file storage: two JSON documents holding arrays of vote and message
records, each rewritten wholesale on every mutation.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import asdict
from typing import Callable, Optional, TypeVar

from babyregistry.db import (
    MessageRecord,
    VoteCounts,
    VoteRecord,
    apply_message_update,
    check_message_unique,
    find_message,
    find_recent,
    newest_first,
    tally,
)
from babyregistry.errors import RecordExists, StorageError, StorageUnavailable

logger = logging.getLogger(__name__)

VOTES_FILE = "votes.json"
MESSAGES_FILE = "messages.json"

T = TypeVar("T")


def atomic_write_json(path: str, obj) -> None:
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w", delete=False, dir=directory, encoding="utf-8"
    ) as tf:
        json.dump(obj, tf, indent=2)
        tf.flush()
        os.fsync(tf.fileno())
        tmp = tf.name
    os.replace(tmp, path)


class JsonFileStore:
    """
    JSON-document implementation of ``RegistryStore``.

    A single lock serializes every read-modify-write so the uniqueness rules
    hold for concurrent requests inside one process.
    """

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self.votes_path = os.path.join(data_dir, VOTES_FILE)
        self.messages_path = os.path.join(data_dir, MESSAGES_FILE)
        self._lock = threading.RLock()

    def initialize(self) -> None:
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            for path in (self.votes_path, self.messages_path):
                if not os.path.exists(path):
                    atomic_write_json(path, [])
        except OSError as exc:
            raise StorageUnavailable(f"Data directory not writable: {exc}") from exc
        logger.info("Using JSON file storage in %s", self.data_dir)

    def close(self) -> None:
        return None

    def _read(self, path: str) -> list[dict]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as exc:
            logger.exception("Cannot read %s", path)
            raise StorageError(f"Failed to read {os.path.basename(path)}") from exc
        if not isinstance(data, list):
            raise StorageError(f"{os.path.basename(path)} does not hold an array")
        return data

    def _write(self, path: str, rows: list[dict]) -> None:
        try:
            atomic_write_json(path, rows)
        except OSError as exc:
            logger.exception("Cannot write %s", path)
            raise StorageError(f"Failed to write {os.path.basename(path)}") from exc
        # Acknowledge only what a fresh read can see.
        if self._read(path) != rows:
            raise StorageError(f"Write to {os.path.basename(path)} not verified")

    def _votes(self) -> list[VoteRecord]:
        return [VoteRecord(**row) for row in self._read(self.votes_path)]

    def _messages(self) -> list[MessageRecord]:
        return [MessageRecord(**row) for row in self._read(self.messages_path)]

    def _save_votes(self, votes: list[VoteRecord]) -> None:
        self._write(self.votes_path, [asdict(v) for v in votes])

    def _save_messages(self, messages: list[MessageRecord]) -> None:
        self._write(self.messages_path, [asdict(m) for m in messages])

    def _locked(self, fn: Callable[[], T]) -> T:
        with self._lock:
            return fn()

    def count_votes(self) -> VoteCounts:
        return tally(self._locked(self._votes))

    def list_votes(self) -> list[VoteRecord]:
        return newest_first(self._locked(self._votes))

    def get_vote(self, browser_id: str) -> Optional[VoteRecord]:
        for vote in self._locked(self._votes):
            if vote.browser_id == browser_id:
                return vote
        return None

    def insert_vote(self, vote: VoteRecord) -> VoteRecord:
        with self._lock:
            votes = self._votes()
            if any(v.browser_id == vote.browser_id for v in votes):
                raise RecordExists("browser_id", vote.browser_id)
            votes.append(vote)
            self._save_votes(votes)
            return vote

    def delete_vote(self, browser_id: str) -> bool:
        with self._lock:
            votes = self._votes()
            remaining = [v for v in votes if v.browser_id != browser_id]
            if len(remaining) == len(votes):
                return False
            self._save_votes(remaining)
            return True

    def clear_votes(self) -> int:
        with self._lock:
            removed = len(self._votes())
            self._save_votes([])
            return removed

    def list_messages(self) -> list[MessageRecord]:
        return newest_first(self._locked(self._messages))

    def get_message(self, message_id: str) -> Optional[MessageRecord]:
        for record in self._locked(self._messages):
            if record.id == message_id:
                return record
        return None

    def get_message_for_browser(self, browser_id: str) -> Optional[MessageRecord]:
        return find_message(self._locked(self._messages), browser_id=browser_id)

    def get_message_by_submission(
        self, submission_id: str
    ) -> Optional[MessageRecord]:
        return find_message(
            self._locked(self._messages), submission_id=submission_id
        )

    def find_recent_message(
        self, name: str, message: str, since: float
    ) -> Optional[MessageRecord]:
        return find_recent(self._locked(self._messages), name, message, since)

    def insert_message(self, record: MessageRecord) -> MessageRecord:
        with self._lock:
            messages = self._messages()
            check_message_unique(messages, record)
            messages.append(record)
            self._save_messages(messages)
            return record

    def update_message_for_browser(
        self,
        browser_id: str,
        *,
        name: str,
        message: str,
        submission_id: Optional[str],
        created_at: float,
    ) -> Optional[MessageRecord]:
        with self._lock:
            messages = self._messages()
            existing = find_message(messages, browser_id=browser_id)
            if not existing:
                return None
            apply_message_update(
                messages, existing, name, message, submission_id, created_at
            )
            self._save_messages(messages)
            return existing

    def delete_message(self, message_id: str) -> bool:
        with self._lock:
            messages = self._messages()
            remaining = [m for m in messages if m.id != message_id]
            if len(remaining) == len(messages):
                return False
            self._save_messages(remaining)
            return True

    def delete_message_for_browser(self, browser_id: str) -> bool:
        with self._lock:
            messages = self._messages()
            remaining = [m for m in messages if m.browser_id != browser_id]
            if len(remaining) == len(messages):
                return False
            self._save_messages(remaining)
            return True

    def clear_messages(self) -> int:
        with self._lock:
            removed = len(self._messages())
            self._save_messages([])
            return removed
