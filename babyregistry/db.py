"""
Storage abstraction for votes and messages.

``RegistryStore`` is the contract every backend honours. Uniqueness of the
identity (and of the submission id for messages) is enforced by the store
itself: ``insert_vote``/``insert_message`` raise ``RecordExists`` rather
than create a second record, so callers never depend on read-then-write.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional, Protocol

from sqlalchemy import (
    CheckConstraint,
    Column,
    Float,
    String,
    Text,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from babyregistry.errors import RecordExists, StorageError, StorageUnavailable

logger = logging.getLogger(__name__)

VOTE_TYPES = ("boy", "girl")


def new_record_id() -> str:
    return uuid.uuid4().hex


def to_iso(timestamp: float) -> str:
    return (
        datetime.fromtimestamp(timestamp, tz=timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


@dataclass(frozen=True)
class VoteCounts:
    boy: int = 0
    girl: int = 0

    @property
    def total(self) -> int:
        return self.boy + self.girl

    def percentages(self) -> dict[str, int]:
        """Display percentages; an empty tally is 0% for both choices."""
        if not self.total:
            return {"boy": 0, "girl": 0}
        return {
            "boy": round(self.boy / self.total * 100),
            "girl": round(self.girl / self.total * 100),
        }

    def as_dict(self) -> dict:
        return {"boy": self.boy, "girl": self.girl, "total": self.total}


@dataclass
class VoteRecord:
    browser_id: str
    vote_type: str
    origin: Optional[str] = None
    id: str = field(default_factory=new_record_id)
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        # Public shape: anonymized, no identity or origin.
        return {"voteType": self.vote_type, "createdAt": to_iso(self.created_at)}


@dataclass
class MessageRecord:
    name: str
    message: str
    browser_id: Optional[str] = None
    submission_id: Optional[str] = None
    id: str = field(default_factory=new_record_id)
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "browserId": self.browser_id,
            "name": self.name,
            "message": self.message,
            "submissionId": self.submission_id,
            "timestamp": to_iso(self.created_at),
        }


class RegistryStore(Protocol):
    """Interface for vote and message persistence."""

    def initialize(self) -> None:
        ...

    def close(self) -> None:
        ...

    def count_votes(self) -> VoteCounts:
        ...

    def list_votes(self) -> list[VoteRecord]:
        ...

    def get_vote(self, browser_id: str) -> Optional[VoteRecord]:
        ...

    def insert_vote(self, vote: VoteRecord) -> VoteRecord:
        ...

    def delete_vote(self, browser_id: str) -> bool:
        ...

    def clear_votes(self) -> int:
        ...

    def list_messages(self) -> list[MessageRecord]:
        ...

    def get_message(self, message_id: str) -> Optional[MessageRecord]:
        ...

    def get_message_for_browser(self, browser_id: str) -> Optional[MessageRecord]:
        ...

    def get_message_by_submission(
        self, submission_id: str
    ) -> Optional[MessageRecord]:
        ...

    def find_recent_message(
        self, name: str, message: str, since: float
    ) -> Optional[MessageRecord]:
        ...

    def insert_message(self, record: MessageRecord) -> MessageRecord:
        ...

    def update_message_for_browser(
        self,
        browser_id: str,
        *,
        name: str,
        message: str,
        submission_id: Optional[str],
        created_at: float,
    ) -> Optional[MessageRecord]:
        ...

    def delete_message(self, message_id: str) -> bool:
        ...

    def delete_message_for_browser(self, browser_id: str) -> bool:
        ...

    def clear_messages(self) -> int:
        ...


def newest_first(records):
    return sorted(records, key=lambda r: r.created_at, reverse=True)


class InMemoryStore:
    """Simple in-memory store for development and tests."""

    def __init__(self):
        self.votes: Dict[str, VoteRecord] = {}
        self.messages: Dict[str, MessageRecord] = {}
        self._lock = threading.Lock()

    def initialize(self) -> None:
        return None

    def close(self) -> None:
        return None

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.votes.clear()
            self.messages.clear()

    def count_votes(self) -> VoteCounts:
        with self._lock:
            return tally(self.votes.values())

    def list_votes(self) -> list[VoteRecord]:
        with self._lock:
            return newest_first(self.votes.values())

    def get_vote(self, browser_id: str) -> Optional[VoteRecord]:
        with self._lock:
            return self.votes.get(browser_id)

    def insert_vote(self, vote: VoteRecord) -> VoteRecord:
        with self._lock:
            if vote.browser_id in self.votes:
                raise RecordExists("browser_id", vote.browser_id)
            self.votes[vote.browser_id] = vote
            return vote

    def delete_vote(self, browser_id: str) -> bool:
        with self._lock:
            return self.votes.pop(browser_id, None) is not None

    def clear_votes(self) -> int:
        with self._lock:
            removed = len(self.votes)
            self.votes.clear()
            return removed

    def list_messages(self) -> list[MessageRecord]:
        with self._lock:
            return newest_first(self.messages.values())

    def get_message(self, message_id: str) -> Optional[MessageRecord]:
        with self._lock:
            return self.messages.get(message_id)

    def get_message_for_browser(self, browser_id: str) -> Optional[MessageRecord]:
        with self._lock:
            return find_message(self.messages.values(), browser_id=browser_id)

    def get_message_by_submission(
        self, submission_id: str
    ) -> Optional[MessageRecord]:
        with self._lock:
            return find_message(self.messages.values(), submission_id=submission_id)

    def find_recent_message(
        self, name: str, message: str, since: float
    ) -> Optional[MessageRecord]:
        with self._lock:
            return find_recent(self.messages.values(), name, message, since)

    def insert_message(self, record: MessageRecord) -> MessageRecord:
        with self._lock:
            check_message_unique(self.messages.values(), record)
            self.messages[record.id] = record
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
            existing = find_message(self.messages.values(), browser_id=browser_id)
            if not existing:
                return None
            apply_message_update(
                self.messages.values(), existing, name, message, submission_id, created_at
            )
            return existing

    def delete_message(self, message_id: str) -> bool:
        with self._lock:
            return self.messages.pop(message_id, None) is not None

    def delete_message_for_browser(self, browser_id: str) -> bool:
        with self._lock:
            existing = find_message(self.messages.values(), browser_id=browser_id)
            if not existing:
                return False
            del self.messages[existing.id]
            return True

    def clear_messages(self) -> int:
        with self._lock:
            removed = len(self.messages)
            self.messages.clear()
            return removed


def tally(votes) -> VoteCounts:
    boy = girl = 0
    for vote in votes:
        if vote.vote_type == "boy":
            boy += 1
        elif vote.vote_type == "girl":
            girl += 1
    return VoteCounts(boy=boy, girl=girl)


def find_message(
    messages,
    *,
    browser_id: Optional[str] = None,
    submission_id: Optional[str] = None,
) -> Optional[MessageRecord]:
    for record in messages:
        if browser_id is not None and record.browser_id == browser_id:
            return record
        if submission_id is not None and record.submission_id == submission_id:
            return record
    return None


def find_recent(messages, name: str, message: str, since: float):
    matches = [
        r
        for r in messages
        if r.name == name and r.message == message and r.created_at > since
    ]
    return newest_first(matches)[0] if matches else None


def check_message_unique(messages, record: MessageRecord) -> None:
    if record.browser_id and find_message(messages, browser_id=record.browser_id):
        raise RecordExists("browser_id", record.browser_id)
    if record.submission_id and find_message(
        messages, submission_id=record.submission_id
    ):
        raise RecordExists("submission_id", record.submission_id)


def apply_message_update(
    messages,
    record: MessageRecord,
    name: str,
    message: str,
    submission_id: Optional[str],
    created_at: float,
) -> None:
    record.name = name
    record.message = message
    if submission_id:
        holder = find_message(messages, submission_id=submission_id)
        # A token held by another record stays with that record.
        if holder is None or holder.id == record.id:
            record.submission_id = submission_id
    record.created_at = created_at


class UnavailableStore:
    """
    Stand-in used when no storage is configured or reachable.

    Reads degrade to empty results; every write raises ``StorageUnavailable``.
    """

    def initialize(self) -> None:
        return None

    def close(self) -> None:
        return None

    def _unavailable(self, *args, **kwargs):
        raise StorageUnavailable(
            "Database not available. Please set up Postgres database."
        )

    def count_votes(self) -> VoteCounts:
        return VoteCounts()

    def list_votes(self) -> list[VoteRecord]:
        return []

    def get_vote(self, browser_id: str) -> Optional[VoteRecord]:
        return None

    def list_messages(self) -> list[MessageRecord]:
        return []

    def get_message(self, message_id: str) -> Optional[MessageRecord]:
        return None

    def get_message_for_browser(self, browser_id: str) -> Optional[MessageRecord]:
        return None

    def get_message_by_submission(
        self, submission_id: str
    ) -> Optional[MessageRecord]:
        return None

    def find_recent_message(
        self, name: str, message: str, since: float
    ) -> Optional[MessageRecord]:
        return None

    insert_vote = _unavailable
    delete_vote = _unavailable
    clear_votes = _unavailable
    insert_message = _unavailable
    update_message_for_browser = _unavailable
    delete_message = _unavailable
    delete_message_for_browser = _unavailable
    clear_messages = _unavailable


def normalize_database_url(database_url: str) -> str:
    """Route bare Postgres URLs (as handed out by hosting providers) to psycopg."""
    for prefix in ("postgres://", "postgresql://"):
        if database_url.startswith(prefix):
            return "postgresql+psycopg://" + database_url[len(prefix) :]
    return database_url


class SqlStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (Postgres in
    production, SQLite for tests).
    """

    def __init__(self, database_url: str, connect_timeout: int = 5):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlStore")
        url = normalize_database_url(database_url)
        engine_kwargs: dict = {"future": True, "pool_pre_ping": True}
        if url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in url or url.rstrip("/").endswith("sqlite:"):
                engine_kwargs["poolclass"] = StaticPool
        else:
            connect_args: dict = {"connect_timeout": connect_timeout}
            if "railway" in url:
                connect_args["sslmode"] = "require"
            engine_kwargs["connect_args"] = connect_args
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )

    def initialize(self) -> None:
        with translate_errors():
            Base.metadata.create_all(self.engine)
        logger.info("Database tables initialized")

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with translate_errors():
            with self.Session() as session:
                yield session

    def count_votes(self) -> VoteCounts:
        with self._session() as session:
            rows = session.execute(
                select(VoteRow.vote_type, func.count()).group_by(VoteRow.vote_type)
            ).all()
        counts = {vote_type: count for vote_type, count in rows}
        return VoteCounts(boy=counts.get("boy", 0), girl=counts.get("girl", 0))

    def list_votes(self) -> list[VoteRecord]:
        with self._session() as session:
            rows = session.scalars(
                select(VoteRow).order_by(VoteRow.created_at.desc())
            ).all()
            return [row.to_record() for row in rows]

    def get_vote(self, browser_id: str) -> Optional[VoteRecord]:
        with self._session() as session:
            row = session.scalars(
                select(VoteRow).where(VoteRow.browser_id == browser_id)
            ).first()
            return row.to_record() if row else None

    def insert_vote(self, vote: VoteRecord) -> VoteRecord:
        with self._session() as session:
            session.add(
                VoteRow(
                    id=vote.id,
                    browser_id=vote.browser_id,
                    vote_type=vote.vote_type,
                    origin=vote.origin,
                    created_at=vote.created_at,
                )
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise RecordExists("browser_id", vote.browser_id)
            return vote

    def delete_vote(self, browser_id: str) -> bool:
        with self._session() as session:
            result = session.execute(
                delete(VoteRow).where(VoteRow.browser_id == browser_id)
            )
            session.commit()
            return (result.rowcount or 0) > 0

    def clear_votes(self) -> int:
        with self._session() as session:
            result = session.execute(delete(VoteRow))
            session.commit()
            return result.rowcount or 0

    def list_messages(self) -> list[MessageRecord]:
        with self._session() as session:
            rows = session.scalars(
                select(MessageRow).order_by(MessageRow.created_at.desc())
            ).all()
            return [row.to_record() for row in rows]

    def get_message(self, message_id: str) -> Optional[MessageRecord]:
        with self._session() as session:
            row = session.get(MessageRow, message_id)
            return row.to_record() if row else None

    def _first_message(self, *criteria) -> Optional[MessageRecord]:
        with self._session() as session:
            row = session.scalars(
                select(MessageRow)
                .where(*criteria)
                .order_by(MessageRow.created_at.desc())
                .limit(1)
            ).first()
            return row.to_record() if row else None

    def get_message_for_browser(self, browser_id: str) -> Optional[MessageRecord]:
        return self._first_message(MessageRow.browser_id == browser_id)

    def get_message_by_submission(
        self, submission_id: str
    ) -> Optional[MessageRecord]:
        return self._first_message(MessageRow.submission_id == submission_id)

    def find_recent_message(
        self, name: str, message: str, since: float
    ) -> Optional[MessageRecord]:
        return self._first_message(
            MessageRow.name == name,
            MessageRow.message == message,
            MessageRow.created_at > since,
        )

    def insert_message(self, record: MessageRecord) -> MessageRecord:
        with self._session() as session:
            session.add(MessageRow.from_record(record))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                if record.browser_id and self.get_message_for_browser(
                    record.browser_id
                ):
                    raise RecordExists("browser_id", record.browser_id)
                raise RecordExists("submission_id", record.submission_id or "")
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
        with self._session() as session:
            row = session.scalars(
                select(MessageRow).where(MessageRow.browser_id == browser_id)
            ).first()
            if not row:
                return None
            if submission_id:
                holder = session.scalars(
                    select(MessageRow.id).where(
                        MessageRow.submission_id == submission_id,
                        MessageRow.id != row.id,
                    )
                ).first()
                if holder is None:
                    row.submission_id = submission_id
            row.name = name
            row.message = message
            row.created_at = created_at
            try:
                session.commit()
            except IntegrityError:
                # Token claimed concurrently; keep the stored one.
                session.rollback()
                row = session.scalars(
                    select(MessageRow).where(MessageRow.browser_id == browser_id)
                ).first()
                if not row:
                    return None
                row.name = name
                row.message = message
                row.created_at = created_at
                session.commit()
            return row.to_record()

    def delete_message(self, message_id: str) -> bool:
        with self._session() as session:
            result = session.execute(
                delete(MessageRow).where(MessageRow.id == message_id)
            )
            session.commit()
            return (result.rowcount or 0) > 0

    def delete_message_for_browser(self, browser_id: str) -> bool:
        with self._session() as session:
            result = session.execute(
                delete(MessageRow).where(MessageRow.browser_id == browser_id)
            )
            session.commit()
            return (result.rowcount or 0) > 0

    def clear_messages(self) -> int:
        with self._session() as session:
            result = session.execute(delete(MessageRow))
            session.commit()
            return result.rowcount or 0


@contextmanager
def translate_errors() -> Iterator[None]:
    """Map driver failures onto the registry error taxonomy."""
    try:
        yield
    except OperationalError as exc:
        logger.error("Database unreachable: %s", exc)
        raise StorageUnavailable() from exc
    except SQLAlchemyError as exc:
        logger.exception("Database operation failed")
        raise StorageError() from exc


Base = declarative_base()


class VoteRow(Base):
    __tablename__ = "votes"
    __table_args__ = (
        CheckConstraint("vote_type IN ('boy', 'girl')", name="ck_votes_vote_type"),
    )

    id = Column(String(32), primary_key=True)
    browser_id = Column(String(255), nullable=False, unique=True)
    vote_type = Column(String(10), nullable=False)
    origin = Column(String(255), nullable=True)
    created_at = Column(Float, nullable=False, index=True)

    def to_record(self) -> VoteRecord:
        return VoteRecord(
            id=self.id,
            browser_id=self.browser_id,
            vote_type=self.vote_type,
            origin=self.origin,
            created_at=self.created_at,
        )


class MessageRow(Base):
    __tablename__ = "messages"

    id = Column(String(32), primary_key=True)
    browser_id = Column(String(255), nullable=True, unique=True)
    name = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    submission_id = Column(String(255), nullable=True, unique=True)
    created_at = Column(Float, nullable=False, index=True)

    @classmethod
    def from_record(cls, record: MessageRecord) -> "MessageRow":
        return cls(
            id=record.id,
            browser_id=record.browser_id,
            name=record.name,
            message=record.message,
            submission_id=record.submission_id,
            created_at=record.created_at,
        )

    def to_record(self) -> MessageRecord:
        return MessageRecord(
            id=self.id,
            browser_id=self.browser_id,
            name=self.name,
            message=self.message,
            submission_id=self.submission_id,
            created_at=self.created_at,
        )
