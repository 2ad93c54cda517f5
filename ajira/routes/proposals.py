"""Proposal routes: freelancers bid on open jobs, clients pick one."""

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from ..auth import CurrentUser
from ..database import PROPOSALS_TABLE, Database, new_id, utcnow
from ..logging_config import get_logger
from ..rate_limit import limiter
from .jobs import atomic_update_job, get_job, increment_proposal_count

logger = get_logger("ajira.proposals")
router = APIRouter(prefix="/api", tags=["jobs", "proposals"])


# =============================================================================
# Request/Response Models
# =============================================================================

ProposalStatus = Literal["submitted", "shortlisted", "rejected", "accepted"]


class ProposalCreate(BaseModel):
    cover_letter: str = Field(..., min_length=20, max_length=5000)
    proposed_rate: float = Field(..., ge=0)


class ProposalStatusUpdate(BaseModel):
    status: Literal["shortlisted", "rejected", "accepted"]


class ProposalResponse(BaseModel):
    id: str
    job_id: str
    freelancer_id: str
    freelancer_name: str | None = None
    cover_letter: str
    proposed_rate: float
    status: ProposalStatus
    created_at: datetime


class ProposalListResponse(BaseModel):
    proposals: list[ProposalResponse]
    total: int


# =============================================================================
# Database Operations
# =============================================================================


async def create_proposal(
    db, job_id: str, freelancer_id: str, freelancer_name: str | None, proposal: ProposalCreate
) -> dict | None:
    data = {
        "id": new_id(),
        "job_id": job_id,
        "freelancer_id": freelancer_id,
        "freelancer_name": freelancer_name,
        "cover_letter": proposal.cover_letter,
        "proposed_rate": proposal.proposed_rate,
        "status": "submitted",
        "created_at": utcnow().isoformat(),
    }
    result = db.table(PROPOSALS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def get_proposal(db, proposal_id: str) -> dict | None:
    result = db.table(PROPOSALS_TABLE).select("*").eq("id", proposal_id).execute()
    return result.data[0] if result.data else None


async def find_existing_proposal(db, job_id: str, freelancer_id: str) -> dict | None:
    result = (
        db.table(PROPOSALS_TABLE)
        .select("*")
        .eq("job_id", job_id)
        .eq("freelancer_id", freelancer_id)
        .execute()
    )
    return result.data[0] if result.data else None


async def list_proposals_for_job(db, job_id: str) -> list[dict]:
    result = (
        db.table(PROPOSALS_TABLE)
        .select("*")
        .eq("job_id", job_id)
        .order("created_at", desc=True)
        .execute()
    )
    return result.data or []


async def list_proposals_by_freelancer(db, freelancer_id: str) -> list[dict]:
    result = (
        db.table(PROPOSALS_TABLE)
        .select("*")
        .eq("freelancer_id", freelancer_id)
        .order("created_at", desc=True)
        .execute()
    )
    return result.data or []


async def set_proposal_status(db, proposal_id: str, new_status: str) -> dict | None:
    result = (
        db.table(PROPOSALS_TABLE).update({"status": new_status}).eq("id", proposal_id).execute()
    )
    return result.data[0] if result.data else None


async def reject_other_proposals(db, job_id: str, accepted_id: str) -> None:
    """Reject every still-pending proposal on the job except the accepted one."""
    (
        db.table(PROPOSALS_TABLE)
        .update({"status": "rejected"})
        .eq("job_id", job_id)
        .neq("id", accepted_id)
        .in_("status", ["submitted", "shortlisted"])
        .execute()
    )


def to_proposal_response(proposal: dict) -> ProposalResponse:
    return ProposalResponse(
        id=proposal["id"],
        job_id=proposal["job_id"],
        freelancer_id=proposal["freelancer_id"],
        freelancer_name=proposal.get("freelancer_name"),
        cover_letter=proposal["cover_letter"],
        proposed_rate=float(proposal["proposed_rate"]),
        status=proposal["status"],
        created_at=proposal["created_at"],
    )


# =============================================================================
# Routes
# =============================================================================


@router.post(
    "/jobs/{job_id}/proposals",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("10/minute")
async def submit_proposal(
    request: Request,
    job_id: str,
    body: ProposalCreate,
    auth: CurrentUser,
    db: Database,
):
    """Bid on an open job."""
    logger.info(f"POST /jobs/{job_id}/proposals | user={auth.user_id}")
    job = await get_job(db, job_id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    if job["status"] != "open":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This job is no longer accepting proposals",
        )
    if job["client_id"] == auth.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You cannot submit a proposal to your own job",
        )
    if await find_existing_proposal(db, job_id, auth.user_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You have already submitted a proposal for this job",
        )

    created = await create_proposal(db, job_id, auth.user_id, auth.name, body)
    if not created:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to submit proposal",
        )
    await increment_proposal_count(db, job)

    logger.info(f"Proposal submitted | id={created['id']} | job={job_id}")
    return to_proposal_response(created)


@router.get("/jobs/{job_id}/proposals", response_model=ProposalListResponse)
async def list_job_proposals(job_id: str, auth: CurrentUser, db: Database):
    """Proposals on a job. Visible to the job owner and admins."""
    job = await get_job(db, job_id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    if job["client_id"] != auth.user_id and not auth.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the job owner can view its proposals",
        )

    proposals = await list_proposals_for_job(db, job_id)
    return ProposalListResponse(
        proposals=[to_proposal_response(p) for p in proposals], total=len(proposals)
    )


@router.get("/proposals/mine", response_model=ProposalListResponse)
async def list_my_proposals(auth: CurrentUser, db: Database):
    proposals = await list_proposals_by_freelancer(db, auth.user_id)
    return ProposalListResponse(
        proposals=[to_proposal_response(p) for p in proposals], total=len(proposals)
    )


@router.put("/proposals/{proposal_id}/status", response_model=ProposalResponse)
@limiter.limit("20/minute")
async def update_proposal_status(
    request: Request,
    proposal_id: str,
    body: ProposalStatusUpdate,
    auth: CurrentUser,
    db: Database,
):
    """
    Shortlist, reject or accept a proposal.

    Accepting assigns the freelancer, moves the job to in-progress and
    rejects the other pending proposals.
    """
    logger.info(f"PUT /proposals/{proposal_id}/status | user={auth.user_id} | status={body.status}")
    proposal = await get_proposal(db, proposal_id)
    if not proposal:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Proposal not found")

    job = await get_job(db, proposal["job_id"])
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    if job["client_id"] != auth.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the job owner can update proposals",
        )

    if body.status != "accepted":
        updated = await set_proposal_status(db, proposal_id, body.status)
        if not updated:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to update proposal",
            )
        return to_proposal_response(updated)

    if job["status"] != "open":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot accept a proposal. Job is currently '{job['status']}'.",
        )

    _, error = await atomic_update_job(
        db,
        job["id"],
        expected={"status": "open"},
        updates={"status": "in-progress", "freelancer_id": proposal["freelancer_id"]},
    )
    if error == "not_found":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    if error == "conflict":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Job was modified by another request. Please retry.",
        )

    updated = await set_proposal_status(db, proposal_id, "accepted")
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update proposal",
        )
    await reject_other_proposals(db, job["id"], proposal_id)

    logger.info(f"Proposal accepted | id={proposal_id} | job={job['id']}")
    return to_proposal_response(updated)
