"""
Records returned by the store.

Plain dataclasses: the store builds them from database rows, the services
read them, and ``schemas`` turns them into JSON bodies.
"""
from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class User:
    id: int
    email: str
    password_hash: str
    name: str
    role: str = "voter"
    is_verified: bool = False
    otp: str | None = None
    otp_expires_at: datetime | None = None
    voted_elections: list[int] = field(default_factory=list)
    created_at: datetime | None = None


@dataclass
class Candidate:
    id: int
    name: str
    metadata: dict = field(default_factory=dict)
    vote_count: int = 0
    position: int = 0


@dataclass
class Election:
    id: int
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    total_vote_count: int = 0
    is_active: bool = True
    created_by: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    candidates: list[Candidate] = field(default_factory=list)
    # {"id", "name", "email"} of the creating admin, when known
    creator: dict | None = None

    def candidate(self, candidate_id: int) -> Candidate | None:
        for c in self.candidates:
            if c.id == candidate_id:
                return c
        return None

    def is_open_at(self, moment: datetime) -> bool:
        return self.start_time <= moment <= self.end_time


@dataclass
class Ballot:
    id: int
    election_id: int
    voter_id: int
    candidate_id: int
    cast_at: datetime
    # {"id", "title", "start_time", "end_time"}; filled in for history reads
    election: dict | None = None
