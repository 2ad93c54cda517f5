"""Freelance job routes.

Clients post jobs, accept a proposal (see proposals.py), fund the escrow
while the work is in progress and release it once the job is completed.
"""

from datetime import datetime
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field, field_validator

from ..auth import CurrentUser
from ..config import Settings, get_settings
from ..database import JOBS_TABLE, Database, new_id, utcnow
from ..logging_config import get_logger
from ..payments import MnoProvider, get_azampay_client
from ..rate_limit import limiter

logger = get_logger("ajira.jobs")
router = APIRouter(prefix="/api/jobs", tags=["jobs"])


# =============================================================================
# Request/Response Models
# =============================================================================

JobStatus = Literal["open", "in-progress", "completed", "cancelled"]
EscrowStatus = Literal["unfunded", "funded", "released"]
BudgetType = Literal["fixed", "hourly"]


class JobCreate(BaseModel):
    """Request to post a job."""

    title: str = Field(..., min_length=10, max_length=150)
    description: str = Field(..., min_length=50, max_length=5000)
    budget_type: BudgetType
    budget_amount: float = Field(..., ge=0)
    skills_required: list[str] = Field(..., min_length=1)

    @field_validator("skills_required")
    @classmethod
    def validate_skills(cls, v: list[str]) -> list[str]:
        skills = [s.strip() for s in v if s.strip()]
        if not skills:
            raise ValueError("At least one skill is required")
        for skill in skills:
            if len(skill) > 30:
                raise ValueError(f"Skill '{skill[:30]}...' is longer than 30 characters")
        return skills


class JobResponse(BaseModel):
    id: str
    client_id: str
    freelancer_id: str | None = None
    title: str
    description: str
    budget_type: BudgetType
    budget_amount: float
    skills_required: list[str]
    status: JobStatus
    escrow_status: EscrowStatus
    proposal_count: int = 0
    created_at: datetime
    updated_at: datetime


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    total: int


class FundJobRequest(BaseModel):
    """Fund the escrow. With a phone number, the client pays by mobile money."""

    phone_number: str | None = Field(None, pattern=r"^[0-9]{9,12}$")
    provider: MnoProvider = "Mpesa"


class JobStatusUpdate(BaseModel):
    status: JobStatus


class EscrowActionResponse(BaseModel):
    message: str
    job: JobResponse
    payment: dict | None = None


# =============================================================================
# Database Operations
# =============================================================================


async def create_job(db, client_id: str, job: JobCreate) -> dict | None:
    now = utcnow().isoformat()
    data = {
        "id": new_id(),
        "client_id": client_id,
        **job.model_dump(),
        "status": "open",
        "escrow_status": "unfunded",
        "proposal_count": 0,
        "created_at": now,
        "updated_at": now,
    }
    result = db.table(JOBS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def get_job(db, job_id: str) -> dict | None:
    result = db.table(JOBS_TABLE).select("*").eq("id", job_id).execute()
    return result.data[0] if result.data else None


async def list_jobs(
    db,
    status_filter: str = "open",
    search: str | None = None,
    min_budget: float | None = None,
    max_budget: float | None = None,
    budget_type: str | None = None,
    client_id: str | None = None,
) -> list[dict]:
    """List jobs, newest first. Skill matching happens in ``filter_by_skills``."""
    query = db.table(JOBS_TABLE).select("*").eq("status", status_filter)
    if search:
        query = query.or_(f"title.ilike.%{search}%,description.ilike.%{search}%")
    if min_budget is not None:
        query = query.gte("budget_amount", min_budget)
    if max_budget is not None:
        query = query.lte("budget_amount", max_budget)
    if budget_type:
        query = query.eq("budget_type", budget_type)
    if client_id:
        query = query.eq("client_id", client_id)
    result = query.order("created_at", desc=True).execute()
    return result.data or []


async def atomic_update_job(
    db,
    job_id: str,
    expected: dict,
    updates: dict,
) -> tuple[dict | None, str | None]:
    """Update a job only if every field in ``expected`` still holds.

    Returns:
        Tuple of (updated_job, error).
        - If successful: (job_dict, None)
        - If job not found: (None, "not_found")
        - If the job changed underneath us: (None, "conflict")
    """
    query = db.table(JOBS_TABLE).update({**updates, "updated_at": utcnow().isoformat()})
    query = query.eq("id", job_id)
    for field, value in expected.items():
        query = query.eq(field, value)
    result = query.execute()

    if result.data:
        return result.data[0], None

    job = await get_job(db, job_id)
    if not job:
        return None, "not_found"

    logger.warning(
        f"Race condition detected on job {job_id}: expected {expected}, "
        f"found status='{job['status']}' escrow='{job.get('escrow_status')}'"
    )
    return None, "conflict"


async def increment_proposal_count(db, job: dict) -> None:
    db.table(JOBS_TABLE).update(
        {"proposal_count": (job.get("proposal_count") or 0) + 1}
    ).eq("id", job["id"]).execute()


# =============================================================================
# Helper Functions
# =============================================================================


# Valid state transitions
VALID_TRANSITIONS = {
    "open": {"in-progress", "cancelled"},
    "in-progress": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

# Targets the owner may set directly through PUT /status
OWNER_STATUS_TARGETS = ("completed", "cancelled")


def can_transition(from_status: str, to_status: str) -> bool:
    """Check if a status transition is valid."""
    return to_status in VALID_TRANSITIONS.get(from_status, set())


def filter_by_skills(jobs: list[dict], skills: list[str]) -> list[dict]:
    """Keep jobs that require every one of ``skills`` (case-insensitive)."""
    wanted = {s.strip().lower() for s in skills if s.strip()}
    if not wanted:
        return jobs
    return [
        job
        for job in jobs
        if wanted.issubset({s.lower() for s in job.get("skills_required") or []})
    ]


def to_job_response(job: dict) -> JobResponse:
    """Convert DB job dict to response model."""
    return JobResponse(
        id=job["id"],
        client_id=job["client_id"],
        freelancer_id=job.get("freelancer_id"),
        title=job["title"],
        description=job["description"],
        budget_type=job["budget_type"],
        budget_amount=float(job["budget_amount"]),
        skills_required=job.get("skills_required") or [],
        status=job["status"],
        escrow_status=job.get("escrow_status") or "unfunded",
        proposal_count=job.get("proposal_count") or 0,
        created_at=job["created_at"],
        updated_at=job["updated_at"],
    )


async def _get_owned_job(db, job_id: str, user_id: str) -> dict:
    job = await get_job(db, job_id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    if job["client_id"] != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not the owner of this job",
        )
    return job


def _raise_for_update_error(error: str | None) -> None:
    if error == "not_found":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    if error == "conflict":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Job was modified by another request. Please retry.",
        )


# =============================================================================
# Routes
# =============================================================================


@router.get("", response_model=JobListResponse)
async def list_jobs_endpoint(
    db: Database,
    status_filter: JobStatus = Query("open", alias="status"),
    search: str | None = Query(None, max_length=100),
    min_budget: float | None = Query(None, ge=0),
    max_budget: float | None = Query(None, ge=0),
    budget_type: BudgetType | None = Query(None),
    skills: str | None = Query(None, description="Comma-separated; all must match"),
    client_id: str | None = Query(None),
):
    """
    List jobs.

    Filters:
    - status: defaults to open
    - search: substring of title or description
    - min_budget / max_budget / budget_type
    - skills: every listed skill must be required by the job
    """
    jobs = await list_jobs(
        db, status_filter, search, min_budget, max_budget, budget_type, client_id
    )
    if skills:
        jobs = filter_by_skills(jobs, skills.split(","))
    return JobListResponse(jobs=[to_job_response(j) for j in jobs], total=len(jobs))


@router.post("", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_job_listing(
    request: Request,
    job: JobCreate,
    auth: CurrentUser,
    db: Database,
):
    """Post a job. It starts open and unfunded."""
    logger.info(f"POST /jobs | client={auth.user_id} | title={job.title[:50]}")

    created = await create_job(db, auth.user_id, job)
    if not created:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create job",
        )

    logger.info(f"Job created | id={created['id']} | client={auth.user_id}")
    return to_job_response(created)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job_details(job_id: str, db: Database):
    job = await get_job(db, job_id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return to_job_response(job)


@router.post("/{job_id}/fund", response_model=EscrowActionResponse)
@limiter.limit("10/minute")
async def fund_job(
    request: Request,
    job_id: str,
    auth: CurrentUser,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
    body: FundJobRequest | None = None,
):
    """
    Fund the escrow for an in-progress job.

    With a phone number, an AzamPay checkout is pushed to the client's phone
    first. If the gateway rejects it the escrow stays unfunded.
    """
    logger.info(f"POST /jobs/{job_id}/fund | user={auth.user_id}")
    job = await _get_owned_job(db, job_id, auth.user_id)

    if job["status"] != "in-progress":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot fund job. Job is currently '{job['status']}', not 'in-progress'.",
        )
    if job.get("escrow_status") != "unfunded":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot fund job. Escrow is already '{job.get('escrow_status')}'.",
        )

    payment = None
    if body and body.phone_number:
        client = get_azampay_client(settings)
        result = await client.mno_checkout(
            float(job["budget_amount"]), body.phone_number, job_id, body.provider
        )
        if not result.success:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.message)
        payment = result.to_dict()

    updated, error = await atomic_update_job(
        db,
        job_id,
        expected={"status": "in-progress", "escrow_status": "unfunded"},
        updates={"escrow_status": "funded"},
    )
    _raise_for_update_error(error)

    logger.info(f"Escrow funded | job={job_id}")
    return EscrowActionResponse(
        message=f'Escrow for job "{job["title"]}" has been funded.',
        job=to_job_response(updated),
        payment=payment,
    )


@router.post("/{job_id}/release", response_model=EscrowActionResponse)
@limiter.limit("10/minute")
async def release_job_escrow(request: Request, job_id: str, auth: CurrentUser, db: Database):
    """Release the escrow to the freelancer once the job is completed."""
    logger.info(f"POST /jobs/{job_id}/release | user={auth.user_id}")
    job = await _get_owned_job(db, job_id, auth.user_id)

    if job["status"] != "completed":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot release escrow. Job is currently '{job['status']}', not 'completed'.",
        )
    if job.get("escrow_status") != "funded":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot release escrow. Escrow is '{job.get('escrow_status')}', not 'funded'.",
        )

    updated, error = await atomic_update_job(
        db,
        job_id,
        expected={"status": "completed", "escrow_status": "funded"},
        updates={"escrow_status": "released"},
    )
    _raise_for_update_error(error)

    logger.info(f"Escrow released | job={job_id}")
    return EscrowActionResponse(
        message=f'Escrow for job "{job["title"]}" has been released.',
        job=to_job_response(updated),
    )


@router.put("/{job_id}/status", response_model=JobResponse)
@limiter.limit("20/minute")
async def update_job_status(
    request: Request,
    job_id: str,
    body: JobStatusUpdate,
    auth: CurrentUser,
    db: Database,
):
    """Mark an in-progress job completed or cancelled."""
    logger.info(f"PUT /jobs/{job_id}/status | user={auth.user_id} | status={body.status}")
    if body.status not in OWNER_STATUS_TARGETS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Status must be one of {', '.join(OWNER_STATUS_TARGETS)}",
        )

    job = await _get_owned_job(db, job_id, auth.user_id)
    if job["status"] != "in-progress" or not can_transition(job["status"], body.status):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot move job from '{job['status']}' to '{body.status}'",
        )

    updated, error = await atomic_update_job(
        db, job_id, expected={"status": "in-progress"}, updates={"status": body.status}
    )
    _raise_for_update_error(error)
    return to_job_response(updated)
