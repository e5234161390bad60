"""
Vote casting and tallying.

``VoteCaster.cast_vote`` runs the checks below in order, each with its own
rejection, and then asks the store to record the ballot:

    1. election exists and is active        → ElectionUnavailableError
    2. now is inside [start_time, end_time]  → VotingWindowClosedError
    3. voter has no ballot in the election   → AlreadyVotedError
    4. candidate belongs to the election     → InvalidCandidateError

Check 3 only saves a round trip.  Two concurrent casts by the same voter can
both pass it; the store's (election, voter) uniqueness constraint then
rejects the second insert and that rejection is reported as AlreadyVoted,
exactly as if the pre-check had caught it.
"""
import logging
from datetime import datetime
from typing import Callable

from .errors import (
    AlreadyVotedError,
    DuplicateBallotError,
    ElectionUnavailableError,
    InvalidCandidateError,
    ServerError,
    VoteRejected,
    VotingWindowClosedError,
)
from .models import Ballot, Election
from .schemas import election_out
from .security import utcnow

logger = logging.getLogger(__name__)


class VoteCaster:
    def __init__(self, store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    async def cast_vote(self, voter_id: int, election_id: int, candidate_id: int) -> Ballot:
        election = await self.store.get_election(election_id)
        if election is None or not election.is_active:
            raise ElectionUnavailableError()

        now = self.clock()
        if not election.is_open_at(now):
            raise VotingWindowClosedError()

        if await self.store.has_ballot(election_id, voter_id):
            raise AlreadyVotedError()

        if election.candidate(candidate_id) is None:
            raise InvalidCandidateError()

        try:
            ballot = await self.store.record_ballot(election_id, voter_id, candidate_id, now)
        except DuplicateBallotError:
            logger.info(f"Concurrent duplicate ballot rejected: election={election_id} voter={voter_id}")
            raise AlreadyVotedError()
        except VoteRejected:
            raise
        except Exception as e:
            logger.exception(f"Ballot insert failed: election={election_id} voter={voter_id}")
            raise ServerError() from e

        logger.info(f"Ballot cast: election={election_id} voter={voter_id} ballot={ballot.id}")
        return ballot

    async def has_voted(self, voter_id: int, election_id: int) -> bool:
        return await self.store.has_ballot(election_id, voter_id)


def percentage(votes: int, total: int) -> int:
    """``votes / total`` as a whole percentage, halves rounded up; 0 when total is 0."""
    if total <= 0:
        return 0
    return (votes * 200 + total) // (2 * total)


def tally_results(election: Election) -> dict:
    """Election body with a ``percentage`` on every candidate."""
    body = election_out(election)
    for cand in body["candidates"]:
        cand["percentage"] = percentage(cand["voteCount"], election.total_vote_count)
    return body
