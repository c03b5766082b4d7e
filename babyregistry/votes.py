"""
Gender-prediction votes: one write-once vote per browser identity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from babyregistry.db import VOTE_TYPES, RegistryStore, VoteCounts, VoteRecord
from babyregistry.errors import AlreadyVoted, InvalidInput, NotFound, RecordExists

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoteStatus:
    voted: bool
    vote_type: Optional[str] = None


def require_browser_id(browser_id: Optional[str]) -> str:
    if not browser_id or not browser_id.strip():
        raise InvalidInput("Browser ID is required")
    return browser_id


class VoteService:
    """
    Voting is monotone per identity: a repeated vote never creates a second
    record or flips the stored choice, it reports the current state instead.
    """

    def __init__(self, store: RegistryStore):
        self.store = store

    def get_counts(self) -> VoteCounts:
        return self.store.count_votes()

    def list_votes(self) -> list[VoteRecord]:
        return self.store.list_votes()

    def check_voted(self, browser_id: Optional[str]) -> VoteStatus:
        browser_id = require_browser_id(browser_id)
        vote = self.store.get_vote(browser_id)
        if not vote:
            return VoteStatus(voted=False)
        return VoteStatus(voted=True, vote_type=vote.vote_type)

    def submit_vote(
        self,
        browser_id: Optional[str],
        vote_type: Optional[str],
        origin: Optional[str] = None,
    ) -> VoteCounts:
        if vote_type not in VOTE_TYPES:
            raise InvalidInput("Invalid vote type")
        browser_id = require_browser_id(browser_id)

        logger.info("Received vote: %s from browser %s", vote_type, browser_id)
        existing = self.store.get_vote(browser_id)
        if existing:
            logger.info(
                "Browser %s already voted: %s", browser_id, existing.vote_type
            )
            raise AlreadyVoted(self.store.count_votes(), existing.vote_type)

        try:
            self.store.insert_vote(
                VoteRecord(browser_id=browser_id, vote_type=vote_type, origin=origin)
            )
        except RecordExists:
            # A concurrent request from the same identity won the insert.
            winner = self.store.get_vote(browser_id)
            raise AlreadyVoted(
                self.store.count_votes(), winner.vote_type if winner else vote_type
            )
        logger.info("Added new vote")
        return self.store.count_votes()

    def retract_vote(self, browser_id: Optional[str]) -> VoteCounts:
        browser_id = require_browser_id(browser_id)
        if not self.store.delete_vote(browser_id):
            raise NotFound("No vote found to delete")
        logger.info("Vote cleared for browser %s", browser_id)
        return self.store.count_votes()

    def clear_all(self) -> VoteCounts:
        removed = self.store.clear_votes()
        logger.info("All votes cleared (%d removed)", removed)
        return VoteCounts()
