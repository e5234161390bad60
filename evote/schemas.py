"""
Pydantic schemas: request validation and response serialisation.

Organised by bounded context:
    1. Auth         registration, OTP verification, login
    2. Election     create / update payloads, election and result bodies
    3. Voting       ballot submission, ballot history
    4. Common       health

Wire names are camelCase (``electionId``, ``startDate`` ...); the models
accept either the alias or the Python field name.
"""
from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from .models import Ballot, Candidate, Election, User
from .security import UserRole


def _as_utc(value: datetime | None) -> datetime | None:
    # Naive timestamps are taken to be UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ══════════════════════════════════════════════════════════════════════════════
# 1. AUTH
# ══════════════════════════════════════════════════════════════════════════════

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(min_length=1, max_length=100)
    role: UserRole = UserRole.VOTER

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: str) -> str:
        return v.lower()


class VerifyOtpRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(alias="userId")
    otp: str = Field(min_length=1, max_length=12)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: str) -> str:
        return v.lower()


def user_out(user: User) -> dict:
    """Public view of a user; never includes the password hash or OTP."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "isVerified": user.is_verified,
        "votedElections": list(user.voted_elections),
        "createdAt": _iso(user.created_at),
    }


# ══════════════════════════════════════════════════════════════════════════════
# 2. ELECTION
# ══════════════════════════════════════════════════════════════════════════════

# Keys a client may not set on a candidate; counts are owned by vote casting.
_RESERVED_CANDIDATE_KEYS = {"id", "_id", "votes", "voteCount", "vote_count", "position"}


class CandidateIn(BaseModel):
    """A candidate entry; any field besides ``name`` is kept as metadata."""
    model_config = ConfigDict(extra="allow")

    name: str = Field(min_length=1, max_length=255)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("candidate name must not be blank")
        return v

    @property
    def metadata(self) -> dict:
        extra = self.model_extra or {}
        return {k: v for k, v in extra.items() if k not in _RESERVED_CANDIDATE_KEYS}


def _check_unique_names(candidates: list[CandidateIn] | None) -> None:
    if candidates is None:
        return
    names = [c.name.lower() for c in candidates]
    if len(names) != len(set(names)):
        raise ValueError("candidate names must be unique within an election")


class ElectionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    candidates: list[CandidateIn] = Field(min_length=1)
    start_date: datetime = Field(alias="startDate")
    end_date: datetime = Field(alias="endDate")

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @model_validator(mode="after")
    def _check(self) -> ElectionCreate:
        if self.end_date <= self.start_date:
            raise ValueError("endDate must be after startDate")
        _check_unique_names(self.candidates)
        return self


class ElectionUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    candidates: list[CandidateIn] | None = Field(default=None, min_length=1)
    start_date: datetime | None = Field(default=None, alias="startDate")
    end_date: datetime | None = Field(default=None, alias="endDate")
    is_active: bool | None = Field(default=None, alias="isActive")

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    @model_validator(mode="after")
    def _check(self) -> ElectionUpdate:
        _check_unique_names(self.candidates)
        return self


def candidate_out(candidate: Candidate) -> dict:
    body = dict(candidate.metadata)
    body.update({
        "id": candidate.id,
        "name": candidate.name,
        "voteCount": candidate.vote_count,
    })
    return body


def election_out(election: Election) -> dict:
    return {
        "id": election.id,
        "title": election.title,
        "description": election.description,
        "candidates": [candidate_out(c) for c in election.candidates],
        "startDate": _iso(election.start_time),
        "endDate": _iso(election.end_time),
        "totalVotes": election.total_vote_count,
        "isActive": election.is_active,
        "createdBy": election.creator,
        "createdAt": _iso(election.created_at),
        "updatedAt": _iso(election.updated_at),
    }


# ══════════════════════════════════════════════════════════════════════════════
# 3. VOTING
# ══════════════════════════════════════════════════════════════════════════════

class CastVoteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    election_id: int = Field(alias="electionId")
    candidate_id: int = Field(alias="candidateId")


def ballot_out(ballot: Ballot) -> dict:
    body = {
        "id": ballot.id,
        "electionId": ballot.election_id,
        "voterId": ballot.voter_id,
        "candidateId": ballot.candidate_id,
        "castAt": _iso(ballot.cast_at),
    }
    if ballot.election is not None:
        body["election"] = {
            "id": ballot.election["id"],
            "title": ballot.election["title"],
            "startDate": _iso(ballot.election["start_time"]),
            "endDate": _iso(ballot.election["end_time"]),
        }
    return body


# ══════════════════════════════════════════════════════════════════════════════
# 4. COMMON
# ══════════════════════════════════════════════════════════════════════════════

class HealthResponse(BaseModel):
    status: str
    service: str
