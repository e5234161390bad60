"""
Election routes: listing, CRUD (admin only) and results.

Reads are open to any authenticated user; create / update / delete pass the
MANAGE_ELECTIONS permission check first.
"""
import logging

from fastapi import APIRouter, Depends

from .auth import CurrentUser, get_current_user, require_permission
from .dependencies import get_store
from .errors import NotFoundError, ValidationError
from .schemas import ElectionCreate, ElectionUpdate, election_out
from .security import Permission
from .voting import tally_results

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/elections", tags=["Elections"])

admin_only = require_permission(Permission.MANAGE_ELECTIONS)


def _candidate_rows(candidates) -> list[dict]:
    return [{"name": c.name, "metadata": c.metadata} for c in candidates]


async def _get_or_404(store, election_id: int):
    election = await store.get_election(election_id)
    if election is None:
        raise NotFoundError("Election not found")
    return election


@router.get("")
async def list_elections(_: CurrentUser = Depends(get_current_user), store=Depends(get_store)):
    elections = await store.list_active_elections()
    return [election_out(e) for e in elections]


@router.get("/{election_id}")
async def get_election(election_id: int,
                       _: CurrentUser = Depends(get_current_user),
                       store=Depends(get_store)):
    return election_out(await _get_or_404(store, election_id))


@router.post("", status_code=201)
async def create_election(data: ElectionCreate,
                          admin: CurrentUser = Depends(admin_only),
                          store=Depends(get_store)):
    election = await store.create_election(
        title=data.title.strip(),
        description=data.description,
        candidates=_candidate_rows(data.candidates),
        start_time=data.start_date,
        end_time=data.end_date,
        created_by=admin.id,
    )
    logger.info(f"Election created: id={election.id} by admin={admin.id}")
    return election_out(election)


@router.put("/{election_id}")
async def update_election(election_id: int, data: ElectionUpdate,
                          admin: CurrentUser = Depends(admin_only),
                          store=Depends(get_store)):
    current = await _get_or_404(store, election_id)

    fields = {}
    if data.title is not None:
        fields["title"] = data.title.strip()
    if data.description is not None:
        fields["description"] = data.description
    if data.start_date is not None:
        fields["start_time"] = data.start_date
    if data.end_date is not None:
        fields["end_time"] = data.end_date
    if data.is_active is not None:
        fields["is_active"] = data.is_active

    start = fields.get("start_time", current.start_time)
    end = fields.get("end_time", current.end_time)
    if end <= start:
        raise ValidationError("endDate must be after startDate")

    candidates = _candidate_rows(data.candidates) if data.candidates is not None else None
    election = await store.update_election(election_id, fields, candidates)
    if election is None:
        raise NotFoundError("Election not found")

    logger.info(f"Election updated: id={election_id} by admin={admin.id} fields={sorted(fields)}")
    return election_out(election)


@router.delete("/{election_id}")
async def delete_election(election_id: int,
                          admin: CurrentUser = Depends(admin_only),
                          store=Depends(get_store)):
    if not await store.delete_election(election_id):
        raise NotFoundError("Election not found")
    logger.info(f"Election deleted: id={election_id} by admin={admin.id}")
    return {"message": "Election deleted successfully"}


@router.get("/{election_id}/results")
async def get_results(election_id: int,
                      _: CurrentUser = Depends(get_current_user),
                      store=Depends(get_store)):
    return tally_results(await _get_or_404(store, election_id))
