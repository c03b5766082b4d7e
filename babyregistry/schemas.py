"""
Pydantic schemas for the registry API.

Field names follow the wire format the frontend already speaks (camelCase).
Required-ness is checked by the services so that missing fields produce the
same error messages as blank ones.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from babyregistry.db import MessageRecord, VoteCounts


class VoteRequest(BaseModel):
    voteType: Optional[str] = None
    browserId: Optional[str] = Field(default=None, max_length=255)


class VoteCountsResponse(BaseModel):
    boy: int
    girl: int
    total: int

    @classmethod
    def from_counts(cls, counts: VoteCounts, **extra):
        return cls(**counts.as_dict(), **extra)


class VoteSubmitResponse(VoteCountsResponse):
    success: bool = True


class VoteClearResponse(VoteCountsResponse):
    success: bool = True
    message: str


class VoteListItem(BaseModel):
    voteType: str
    createdAt: str


class VoteListResponse(BaseModel):
    votes: list[VoteListItem]


class VoteCheckResponse(BaseModel):
    hasVoted: bool
    voteType: Optional[str] = None


class MessageRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    message: Optional[str] = None
    browserId: Optional[str] = Field(default=None, max_length=255)
    submissionId: Optional[str] = Field(default=None, max_length=255)


class MessageOut(BaseModel):
    id: str
    browserId: Optional[str] = None
    name: str
    message: str
    submissionId: Optional[str] = None
    timestamp: str

    @classmethod
    def from_record(cls, record: MessageRecord) -> "MessageOut":
        return cls(**record.as_dict())


class MessageListResponse(BaseModel):
    messages: list[MessageOut]


class MessageSubmitResponse(BaseModel):
    success: bool = True
    message: MessageOut


class MessageCheckResponse(BaseModel):
    hasMessage: bool
    message: Optional[MessageOut] = None


class StatusResponse(BaseModel):
    success: bool = True
    message: str


class AdminLoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class AdminLoginResponse(BaseModel):
    success: bool = True
    adminKey: str


class HealthResponse(BaseModel):
    status: str
    timestamp: str
