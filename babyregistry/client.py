"""
HTTP client for the registry API, carrying the local browser identity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from babyregistry.db import VoteCounts
from babyregistry.identity import IdentityProvider, new_submission_id

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10  # seconds


class ApiError(Exception):
    """The server answered with an error; ``message`` is its own text."""

    def __init__(self, message: str, status_code: int, payload: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}


class ServerUnreachable(Exception):
    def __init__(self, base_url: str, cause: Exception):
        super().__init__(
            f"Cannot reach the registry API at {base_url}. "
            "Check that the API server is running and the URL is correct."
        )
        self.cause = cause


@dataclass(frozen=True)
class VoteOutcome:
    counts: VoteCounts
    vote_type: str
    already_voted: bool = False


def _counts(payload: dict) -> VoteCounts:
    return VoteCounts(boy=int(payload.get("boy", 0)), girl=int(payload.get("girl", 0)))


class RegistryClient:
    def __init__(
        self,
        base_url: str,
        identity: Optional[IdentityProvider] = None,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
        admin_key: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.identity = identity or IdentityProvider()
        self.session = session or requests.Session()
        self.timeout = timeout
        self.admin_key = admin_key

    @property
    def browser_id(self) -> str:
        return self.identity.get_identity()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        admin: bool = False,
    ) -> requests.Response:
        headers = {}
        if admin and self.admin_key:
            headers["x-admin-key"] = self.admin_key
        try:
            return self.session.request(
                method,
                f"{self.base_url}{path}",
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise ServerUnreachable(self.base_url, exc) from exc

    @staticmethod
    def _payload(response: requests.Response) -> dict:
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    def _call(self, method: str, path: str, **kwargs) -> dict:
        response = self._request(method, path, **kwargs)
        payload = self._payload(response)
        if not response.ok:
            raise ApiError(
                payload.get("error") or f"HTTP {response.status_code}",
                response.status_code,
                payload,
            )
        return payload

    def get_counts(self) -> VoteCounts:
        return _counts(self._call("GET", "/api/votes"))

    def list_votes(self) -> list[dict]:
        return self._call("GET", "/api/votes/all").get("votes", [])

    def check_vote(self) -> Optional[str]:
        """The choice this identity voted for, or None."""
        payload = self._call(
            "GET", "/api/votes/check", params={"browserId": self.browser_id}
        )
        return payload.get("voteType") if payload.get("hasVoted") else None

    def vote(self, vote_type: str) -> VoteOutcome:
        response = self._request(
            "POST",
            "/api/votes",
            json={"voteType": vote_type, "browserId": self.browser_id},
        )
        payload = self._payload(response)
        if response.ok:
            return VoteOutcome(counts=_counts(payload), vote_type=vote_type)
        if response.status_code == 400 and payload.get("voteType"):
            # Already voted: the server sent the current truth to resync from.
            return VoteOutcome(
                counts=_counts(payload),
                vote_type=payload["voteType"],
                already_voted=True,
            )
        raise ApiError(
            payload.get("error") or f"HTTP {response.status_code}",
            response.status_code,
            payload,
        )

    def retract_vote(self) -> VoteCounts:
        return _counts(
            self._call("DELETE", "/api/votes", params={"browserId": self.browser_id})
        )

    def list_messages(self) -> list[dict]:
        return self._call("GET", "/api/messages").get("messages", [])

    def check_message(self) -> Optional[dict]:
        payload = self._call(
            "GET", "/api/messages/check", params={"browserId": self.browser_id}
        )
        return payload.get("message") if payload.get("hasMessage") else None

    def post_message(self, name: str, message: str, retries: int = 2) -> dict:
        """
        Submit a guestbook message. Connection failures are retried with the
        same submission id, so a request that did reach the server is not
        stored twice.
        """
        body = {
            "name": name,
            "message": message,
            "browserId": self.browser_id,
            "submissionId": new_submission_id(),
        }
        attempt = 0
        while True:
            try:
                return self._call("POST", "/api/messages", json=body)["message"]
            except ServerUnreachable:
                if attempt >= retries:
                    raise
                attempt += 1
                logger.warning(
                    "Retrying message submission %s (attempt %d)",
                    body["submissionId"],
                    attempt + 1,
                )

    def retract_message(self) -> str:
        payload = self._call(
            "DELETE", "/api/messages", params={"browserId": self.browser_id}
        )
        return payload.get("message", "")

    def login(self, email: str, password: str) -> str:
        payload = self._call(
            "POST", "/api/admin/login", json={"email": email, "password": password}
        )
        self.admin_key = payload["adminKey"]
        return self.admin_key

    def delete_message(self, message_id: str) -> None:
        self._call("DELETE", f"/api/messages/{message_id}", admin=True)

    def clear_messages(self) -> None:
        self._call("DELETE", "/api/messages", params={"clearAll": "true"}, admin=True)

    def clear_votes(self) -> VoteCounts:
        return _counts(self._call("DELETE", "/api/votes/all", admin=True))
