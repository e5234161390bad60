"""
Ballot routes: cast a vote, list own ballots, check participation.
"""
from fastapi import APIRouter, Depends

from .auth import CurrentUser, require_permission
from .dependencies import get_store, get_vote_caster
from .schemas import CastVoteRequest, ballot_out
from .security import Permission
from .voting import VoteCaster

router = APIRouter(prefix="/votes", tags=["Votes"])

voter = require_permission(Permission.VOTE)


@router.post("")
async def cast_vote(data: CastVoteRequest,
                    user: CurrentUser = Depends(voter),
                    caster: VoteCaster = Depends(get_vote_caster)):
    ballot = await caster.cast_vote(user.id, data.election_id, data.candidate_id)
    return {"message": "Vote cast successfully", "ballot": ballot_out(ballot)}


@router.get("/history")
async def vote_history(user: CurrentUser = Depends(voter), store=Depends(get_store)):
    ballots = await store.list_ballots_for_voter(user.id)
    return [ballot_out(b) for b in ballots]


@router.get("/check/{election_id}")
async def check_vote(election_id: int,
                     user: CurrentUser = Depends(voter),
                     caster: VoteCaster = Depends(get_vote_caster)):
    return {"hasVoted": await caster.has_voted(user.id, election_id)}
