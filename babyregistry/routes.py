"""
HTTP routes for the registry API.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from babyregistry.admin import AdminGate
from babyregistry.dependencies import (
    get_admin_gate,
    get_admin_key,
    get_client_origin,
    get_message_service,
    get_vote_service,
    require_admin,
)
from babyregistry.errors import InvalidInput
from babyregistry.messages import MessageService
from babyregistry.schemas import (
    AdminLoginRequest,
    AdminLoginResponse,
    MessageCheckResponse,
    MessageListResponse,
    MessageOut,
    MessageRequest,
    MessageSubmitResponse,
    StatusResponse,
    VoteCheckResponse,
    VoteClearResponse,
    VoteCountsResponse,
    VoteListItem,
    VoteListResponse,
    VoteRequest,
    VoteSubmitResponse,
)
from babyregistry.votes import VoteService

router = APIRouter()


@router.get("/votes", response_model=VoteCountsResponse)
def get_votes(votes: VoteService = Depends(get_vote_service)):
    return VoteCountsResponse.from_counts(votes.get_counts())


@router.get("/votes/all", response_model=VoteListResponse)
def list_votes(votes: VoteService = Depends(get_vote_service)):
    return VoteListResponse(
        votes=[VoteListItem(**vote.as_dict()) for vote in votes.list_votes()]
    )


@router.post("/votes", response_model=VoteSubmitResponse)
def submit_vote(
    payload: VoteRequest,
    origin: str = Depends(get_client_origin),
    votes: VoteService = Depends(get_vote_service),
):
    counts = votes.submit_vote(payload.browserId, payload.voteType, origin=origin)
    return VoteSubmitResponse.from_counts(counts)


@router.get("/votes/check", response_model=VoteCheckResponse)
def check_vote(
    browser_id: Optional[str] = Query(default=None, alias="browserId"),
    votes: VoteService = Depends(get_vote_service),
):
    status = votes.check_voted(browser_id)
    return VoteCheckResponse(hasVoted=status.voted, voteType=status.vote_type)


@router.delete(
    "/votes/all",
    response_model=VoteClearResponse,
    dependencies=[Depends(require_admin)],
)
def clear_votes(votes: VoteService = Depends(get_vote_service)):
    counts = votes.clear_all()
    return VoteClearResponse.from_counts(counts, message="All votes cleared")


@router.delete("/votes", response_model=VoteClearResponse)
def retract_vote(
    browser_id: Optional[str] = Query(default=None, alias="browserId"),
    votes: VoteService = Depends(get_vote_service),
):
    counts = votes.retract_vote(browser_id)
    return VoteClearResponse.from_counts(counts, message="Your vote has been cleared")


@router.get("/messages", response_model=MessageListResponse)
def list_messages(messages: MessageService = Depends(get_message_service)):
    return MessageListResponse(
        messages=[MessageOut.from_record(m) for m in messages.list_messages()]
    )


@router.post("/messages", response_model=MessageSubmitResponse)
def submit_message(
    payload: MessageRequest,
    messages: MessageService = Depends(get_message_service),
):
    if payload.name and payload.message and not payload.browserId:
        raise InvalidInput("Browser ID is required")
    record = messages.submit_message(
        payload.name,
        payload.message,
        browser_id=payload.browserId,
        submission_id=payload.submissionId,
    )
    return MessageSubmitResponse(message=MessageOut.from_record(record))


@router.get("/messages/check", response_model=MessageCheckResponse)
def check_message(
    browser_id: Optional[str] = Query(default=None, alias="browserId"),
    messages: MessageService = Depends(get_message_service),
):
    status = messages.check_message(browser_id)
    return MessageCheckResponse(
        hasMessage=status.has,
        message=MessageOut.from_record(status.message) if status.message else None,
    )


@router.delete("/messages", response_model=StatusResponse)
def delete_own_message(
    browser_id: Optional[str] = Query(default=None, alias="browserId"),
    clear_all: bool = Query(default=False, alias="clearAll"),
    admin_key: Optional[str] = Depends(get_admin_key),
    gate: AdminGate = Depends(get_admin_gate),
    messages: MessageService = Depends(get_message_service),
):
    if clear_all:
        gate.require(admin_key)
        messages.clear_all()
        return StatusResponse(message="All messages cleared")
    messages.retract_message(browser_id)
    return StatusResponse(message="Your message has been cleared")


@router.delete(
    "/messages/{message_id}",
    response_model=StatusResponse,
    dependencies=[Depends(require_admin)],
)
def delete_message(
    message_id: str,
    messages: MessageService = Depends(get_message_service),
):
    messages.delete_message(message_id)
    return StatusResponse(message="Message deleted successfully")


@router.post("/admin/login", response_model=AdminLoginResponse)
def admin_login(
    payload: AdminLoginRequest,
    gate: AdminGate = Depends(get_admin_gate),
):
    return AdminLoginResponse(adminKey=gate.login(payload.email, payload.password))
