"""
PostgreSQL store: every SQL statement the service issues lives here.

Tables: users, elections, candidates, ballots (see ``database.SCHEMA``).

Integrity rules enforced by the database rather than by Python:
  - users.email is UNIQUE                       → DuplicateEmailError
  - ballots (election_id, voter_id) is UNIQUE   → DuplicateBallotError
  - vote counters only move through ``SET n = n + 1`` inside the
    ballot-insert transaction, so no increment is lost under concurrency
"""
import logging
from datetime import datetime

import asyncpg

from .database import Database
from .errors import (
    ConflictError,
    DuplicateBallotError,
    DuplicateEmailError,
    ElectionUnavailableError,
    InvalidCandidateError,
)
from .models import Ballot, Candidate, Election, User

logger = logging.getLogger(__name__)

_ELECTION_COLUMNS = """
    e.id, e.title, e.description, e.start_time, e.end_time,
    e.total_vote_count, e.is_active, e.created_by, e.created_at, e.updated_at,
    u.name AS creator_name, u.email AS creator_email
"""

# Columns ElectionUpdate may touch, mapped to their SQL names.
_UPDATABLE = {
    "title": "title",
    "description": "description",
    "start_time": "start_time",
    "end_time": "end_time",
    "is_active": "is_active",
}


def _user(row) -> User:
    return User(
        id=row["id"], email=row["email"], password_hash=row["password_hash"],
        name=row["name"], role=row["role"], is_verified=row["is_verified"],
        otp=row["otp"], otp_expires_at=row["otp_expires_at"],
        voted_elections=list(row["voted_elections"] or []),
        created_at=row["created_at"],
    )


def _candidate(row) -> Candidate:
    return Candidate(
        id=row["id"], name=row["name"], metadata=row["metadata"] or {},
        vote_count=row["vote_count"], position=row["position"],
    )


def _election(row, candidates: list[Candidate]) -> Election:
    creator = None
    if row["created_by"] is not None and row["creator_name"] is not None:
        creator = {"id": row["created_by"], "name": row["creator_name"],
                   "email": row["creator_email"]}
    return Election(
        id=row["id"], title=row["title"], description=row["description"],
        start_time=row["start_time"], end_time=row["end_time"],
        total_vote_count=row["total_vote_count"], is_active=row["is_active"],
        created_by=row["created_by"], created_at=row["created_at"],
        updated_at=row["updated_at"], candidates=candidates, creator=creator,
    )


class PostgresStore:
    """Users, elections, candidates and ballots over an asyncpg pool."""

    def __init__(self, db: Database):
        self.db = db

    async def open(self) -> None:
        await self.db.get_pool()
        await self.db.init_schema()

    async def close(self) -> None:
        await self.db.close()

    # ── Users ────────────────────────────────────────────────────────────────

    async def create_user(self, email: str, password_hash: str, name: str, role: str,
                          otp: str | None = None, otp_expires_at: datetime | None = None) -> User:
        try:
            async with self.db.transaction() as conn:
                row = await conn.fetchrow(
                    """INSERT INTO users (email, password_hash, name, role, otp, otp_expires_at)
                       VALUES ($1, $2, $3, $4, $5, $6) RETURNING *""",
                    email, password_hash, name, role, otp, otp_expires_at,
                )
        except asyncpg.UniqueViolationError:
            raise DuplicateEmailError(email)
        return _user(row)

    async def get_user(self, user_id: int) -> User | None:
        async with self.db.connection() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
        return _user(row) if row else None

    async def get_user_by_email(self, email: str) -> User | None:
        async with self.db.connection() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE email = $1", email)
        return _user(row) if row else None

    async def set_otp(self, user_id: int, otp: str, expires_at: datetime) -> None:
        async with self.db.connection() as conn:
            await conn.execute(
                "UPDATE users SET otp = $2, otp_expires_at = $3 WHERE id = $1",
                user_id, otp, expires_at,
            )

    async def consume_otp(self, user_id: int, otp: str, now: datetime) -> User | None:
        """Mark the user verified iff ``otp`` matches and is unexpired.

        A single conditional UPDATE, so one code verifies at most once even
        when two requests present it together.
        """
        async with self.db.connection() as conn:
            row = await conn.fetchrow(
                """UPDATE users
                   SET is_verified = TRUE, otp = NULL, otp_expires_at = NULL
                   WHERE id = $1 AND otp = $2 AND otp_expires_at >= $3
                   RETURNING *""",
                user_id, otp, now,
            )
        return _user(row) if row else None

    # ── Elections ────────────────────────────────────────────────────────────

    async def _candidates_for(self, conn, election_ids: list[int]) -> dict[int, list[Candidate]]:
        rows = await conn.fetch(
            """SELECT id, election_id, name, metadata, vote_count, position
               FROM candidates WHERE election_id = ANY($1::int[])
               ORDER BY election_id, position, id""",
            election_ids,
        )
        grouped: dict[int, list[Candidate]] = {eid: [] for eid in election_ids}
        for r in rows:
            grouped[r["election_id"]].append(_candidate(r))
        return grouped

    async def _fetch_election(self, conn, election_id: int) -> Election | None:
        row = await conn.fetchrow(
            f"""SELECT {_ELECTION_COLUMNS}
                FROM elections e LEFT JOIN users u ON u.id = e.created_by
                WHERE e.id = $1 AND e.deleted_at IS NULL""",
            election_id,
        )
        if not row:
            return None
        candidates = await self._candidates_for(conn, [election_id])
        return _election(row, candidates[election_id])

    async def list_active_elections(self) -> list[Election]:
        async with self.db.connection() as conn:
            rows = await conn.fetch(
                f"""SELECT {_ELECTION_COLUMNS}
                    FROM elections e LEFT JOIN users u ON u.id = e.created_by
                    WHERE e.is_active AND e.deleted_at IS NULL
                    ORDER BY e.created_at DESC, e.id DESC"""
            )
            candidates = await self._candidates_for(conn, [r["id"] for r in rows])
        return [_election(r, candidates[r["id"]]) for r in rows]

    async def get_election(self, election_id: int) -> Election | None:
        async with self.db.connection() as conn:
            return await self._fetch_election(conn, election_id)

    async def _insert_candidates(self, conn, election_id: int, candidates: list[dict]) -> None:
        for position, cand in enumerate(candidates):
            await conn.execute(
                """INSERT INTO candidates (election_id, name, metadata, position)
                   VALUES ($1, $2, $3, $4)""",
                election_id, cand["name"], cand.get("metadata") or {}, position,
            )

    async def create_election(self, title: str, description: str, candidates: list[dict],
                              start_time: datetime, end_time: datetime,
                              created_by: int | None) -> Election:
        async with self.db.transaction() as conn:
            election_id = await conn.fetchval(
                """INSERT INTO elections (title, description, start_time, end_time, created_by)
                   VALUES ($1, $2, $3, $4, $5) RETURNING id""",
                title, description, start_time, end_time, created_by,
            )
            await self._insert_candidates(conn, election_id, candidates)
            return await self._fetch_election(conn, election_id)

    async def update_election(self, election_id: int, fields: dict,
                              candidates: list[dict] | None = None) -> Election | None:
        """Apply a partial update; ``candidates`` replaces the whole list.

        The list can only be replaced while the election has no ballots;
        otherwise per-candidate counts would no longer add up to the total.
        """
        async with self.db.transaction() as conn:
            current = await conn.fetchrow(
                "SELECT total_vote_count FROM elections WHERE id = $1 AND deleted_at IS NULL FOR UPDATE",
                election_id,
            )
            if not current:
                return None
            if candidates is not None and current["total_vote_count"] > 0:
                raise ConflictError("Cannot change candidates after voting has started")

            sets, args = [], [election_id]
            for key, column in _UPDATABLE.items():
                if key in fields:
                    args.append(fields[key])
                    sets.append(f"{column} = ${len(args)}")
            if sets or candidates is not None:
                sets.append("updated_at = now()")
                await conn.execute(
                    f"UPDATE elections SET {', '.join(sets)} WHERE id = $1", *args
                )

            if candidates is not None:
                await conn.execute("DELETE FROM candidates WHERE election_id = $1", election_id)
                await self._insert_candidates(conn, election_id, candidates)

            return await self._fetch_election(conn, election_id)

    async def delete_election(self, election_id: int) -> bool:
        """Soft-delete an election: it disappears from reads and stops
        accepting ballots. Its candidates and ballots are kept.
        """
        async with self.db.connection() as conn:
            deleted = await conn.fetchval(
                """UPDATE elections
                   SET deleted_at = now(), is_active = FALSE, updated_at = now()
                   WHERE id = $1 AND deleted_at IS NULL
                   RETURNING id""",
                election_id,
            )
        return deleted is not None

    # ── Ballots ──────────────────────────────────────────────────────────────

    async def has_ballot(self, election_id: int, voter_id: int) -> bool:
        async with self.db.connection() as conn:
            return await conn.fetchval(
                "SELECT EXISTS(SELECT 1 FROM ballots WHERE election_id = $1 AND voter_id = $2)",
                election_id, voter_id,
            )

    async def record_ballot(self, election_id: int, voter_id: int, candidate_id: int,
                            cast_at: datetime) -> Ballot:
        """Insert a ballot and bump the tallies in one transaction.

        Raises DuplicateBallotError when the (election, voter) slot is
        already taken; the whole transaction is rolled back on any error.
        """
        async with self.db.transaction() as conn:
            try:
                row = await conn.fetchrow(
                    """INSERT INTO ballots (election_id, voter_id, candidate_id, cast_at)
                       VALUES ($1, $2, $3, $4) RETURNING id, cast_at""",
                    election_id, voter_id, candidate_id, cast_at,
                )
            except asyncpg.UniqueViolationError:
                raise DuplicateBallotError(f"election={election_id} voter={voter_id}")
            except asyncpg.ForeignKeyViolationError as e:
                if e.constraint_name == "ballots_election_id_fkey":
                    raise ElectionUnavailableError()
                if e.constraint_name == "ballots_candidate_id_fkey":
                    raise InvalidCandidateError()
                raise

            # elections before candidates: same lock order as update_election
            result = await conn.execute(
                """UPDATE elections
                   SET total_vote_count = total_vote_count + 1, updated_at = now()
                   WHERE id = $1 AND is_active AND deleted_at IS NULL""",
                election_id,
            )
            if result == "UPDATE 0":
                raise ElectionUnavailableError()

            result = await conn.execute(
                """UPDATE candidates SET vote_count = vote_count + 1
                   WHERE id = $1 AND election_id = $2""",
                candidate_id, election_id,
            )
            if result == "UPDATE 0":
                raise InvalidCandidateError()

            await conn.execute(
                """UPDATE users SET voted_elections = array_append(voted_elections, $1)
                   WHERE id = $2 AND NOT ($1 = ANY(voted_elections))""",
                election_id, voter_id,
            )

        return Ballot(id=row["id"], election_id=election_id, voter_id=voter_id,
                      candidate_id=candidate_id, cast_at=row["cast_at"])

    async def list_ballots_for_voter(self, voter_id: int) -> list[Ballot]:
        async with self.db.connection() as conn:
            rows = await conn.fetch(
                """SELECT b.id, b.election_id, b.voter_id, b.candidate_id, b.cast_at,
                          e.title, e.start_time, e.end_time, e.deleted_at
                   FROM ballots b JOIN elections e ON e.id = b.election_id
                   WHERE b.voter_id = $1
                   ORDER BY b.cast_at DESC, b.id DESC""",
                voter_id,
            )
        return [
            Ballot(id=r["id"], election_id=r["election_id"], voter_id=r["voter_id"],
                   candidate_id=r["candidate_id"], cast_at=r["cast_at"],
                   election=None if r["deleted_at"] else {
                       "id": r["election_id"], "title": r["title"],
                       "start_time": r["start_time"], "end_time": r["end_time"],
                   })
            for r in rows
        ]

    async def recount(self, election_id: int) -> dict[int, int]:
        """Per-candidate ballot counts straight from the ballots table."""
        async with self.db.connection() as conn:
            rows = await conn.fetch(
                """SELECT c.id, COUNT(b.id) AS n
                   FROM candidates c
                   LEFT JOIN ballots b ON b.candidate_id = c.id AND b.election_id = c.election_id
                   WHERE c.election_id = $1
                   GROUP BY c.id""",
                election_id,
            )
        return {r["id"]: r["n"] for r in rows}
