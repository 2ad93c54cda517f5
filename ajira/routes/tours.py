"""Tour package routes and tour bookings."""

from datetime import date
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ..auth import AuthContext, CurrentUser, require_role_check
from ..database import TOUR_BOOKINGS_TABLE, TOUR_PACKAGES_TABLE, Database, new_id, utcnow
from ..logging_config import get_logger
from ..rate_limit import limiter
from ..rbac import is_tour_operator

logger = get_logger("ajira.tours")
router = APIRouter(prefix="/api/tours", tags=["bookings", "tours"])

TourBookingStatus = Literal["pending", "confirmed", "completed", "cancelled"]

TourOperator = Annotated[AuthContext, Depends(require_role_check(is_tour_operator))]


# =============================================================================
# Request/Response Models
# =============================================================================


class TourCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=150)
    description: str = Field("", max_length=5000)
    location: str = Field(..., min_length=1, max_length=200)
    price: float = Field(..., gt=0)
    duration_days: int = Field(..., ge=1, le=60)
    max_group_size: int = Field(..., ge=1, le=500)
    inclusions: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)


class TourUpdate(BaseModel):
    title: str | None = Field(None, min_length=3, max_length=150)
    description: str | None = Field(None, max_length=5000)
    location: str | None = Field(None, min_length=1, max_length=200)
    price: float | None = Field(None, gt=0)
    duration_days: int | None = Field(None, ge=1, le=60)
    max_group_size: int | None = Field(None, ge=1, le=500)
    inclusions: list[str] | None = None
    images: list[str] | None = None
    is_active: bool | None = None


class TourBookingCreate(BaseModel):
    participants: int = Field(..., ge=1)
    tour_date: date
    contact_phone: str | None = Field(None, max_length=20)
    notes: str | None = Field(None, max_length=1000)


class TourBookingStatusUpdate(BaseModel):
    status: TourBookingStatus


# =============================================================================
# Database Operations
# =============================================================================


async def list_tours(
    db, location: str | None = None, operator_id: str | None = None
) -> list[dict]:
    query = db.table(TOUR_PACKAGES_TABLE).select("*").eq("is_active", True)
    if location:
        query = query.ilike("location", f"%{location}%")
    if operator_id:
        query = query.eq("operator_id", operator_id)
    result = query.order("created_at", desc=True).execute()
    return result.data or []


async def get_tour(db, tour_id: str) -> dict | None:
    result = db.table(TOUR_PACKAGES_TABLE).select("*").eq("id", tour_id).execute()
    return result.data[0] if result.data else None


async def create_tour(db, operator_id: str, tour: TourCreate) -> dict | None:
    now = utcnow().isoformat()
    data = {
        "id": new_id(),
        "operator_id": operator_id,
        **tour.model_dump(),
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }
    result = db.table(TOUR_PACKAGES_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def update_tour(db, tour_id: str, updates: dict) -> dict | None:
    updates = {**updates, "updated_at": utcnow().isoformat()}
    result = db.table(TOUR_PACKAGES_TABLE).update(updates).eq("id", tour_id).execute()
    return result.data[0] if result.data else None


async def delete_tour(db, tour_id: str) -> None:
    db.table(TOUR_PACKAGES_TABLE).delete().eq("id", tour_id).execute()


async def create_tour_booking(db, data: dict) -> dict | None:
    now = utcnow().isoformat()
    row = {"id": new_id(), **data, "status": "pending", "created_at": now, "updated_at": now}
    result = db.table(TOUR_BOOKINGS_TABLE).insert(row).execute()
    return result.data[0] if result.data else None


async def list_tour_bookings(db, tour_id: str) -> list[dict]:
    result = (
        db.table(TOUR_BOOKINGS_TABLE)
        .select("*")
        .eq("tour_id", tour_id)
        .order("tour_date")
        .execute()
    )
    return result.data or []


async def get_tour_booking(db, booking_id: str) -> dict | None:
    result = db.table(TOUR_BOOKINGS_TABLE).select("*").eq("id", booking_id).execute()
    return result.data[0] if result.data else None


async def set_tour_booking_status(db, booking_id: str, new_status: str) -> dict | None:
    result = (
        db.table(TOUR_BOOKINGS_TABLE)
        .update({"status": new_status, "updated_at": utcnow().isoformat()})
        .eq("id", booking_id)
        .execute()
    )
    return result.data[0] if result.data else None


def _can_manage(tour: dict, auth: AuthContext) -> bool:
    return auth.owns(tour, "operator_id") or auth.is_admin


async def _get_managed_tour(db, tour_id: str, auth: AuthContext) -> dict:
    tour = await get_tour(db, tour_id)
    if not tour:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tour not found")
    if not _can_manage(tour, auth):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only manage your own tours",
        )
    return tour


# =============================================================================
# Routes
# =============================================================================


@router.get("")
async def list_tours_endpoint(
    db: Database,
    location: str | None = Query(None),
    operator_id: str | None = Query(None),
):
    return await list_tours(db, location, operator_id)


@router.get("/{tour_id}")
async def get_tour_endpoint(tour_id: str, db: Database):
    tour = await get_tour(db, tour_id)
    if not tour:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tour not found")
    return tour


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_tour_endpoint(
    request: Request, body: TourCreate, auth: TourOperator, db: Database
):
    logger.info(f"POST /tours | operator={auth.user_id} | title={body.title[:50]}")
    created = await create_tour(db, auth.user_id, body)
    if not created:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create tour",
        )
    return created


@router.put("/{tour_id}")
@limiter.limit("30/minute")
async def update_tour_endpoint(
    request: Request, tour_id: str, body: TourUpdate, auth: TourOperator, db: Database
):
    logger.info(f"PUT /tours/{tour_id} | user={auth.user_id}")
    await _get_managed_tour(db, tour_id, auth)
    updated = await update_tour(db, tour_id, body.model_dump(exclude_none=True))
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update tour",
        )
    return updated


@router.delete("/{tour_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def delete_tour_endpoint(request: Request, tour_id: str, auth: TourOperator, db: Database):
    logger.info(f"DELETE /tours/{tour_id} | user={auth.user_id}")
    await _get_managed_tour(db, tour_id, auth)
    await delete_tour(db, tour_id)


@router.post("/{tour_id}/bookings", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def book_tour(
    request: Request, tour_id: str, body: TourBookingCreate, auth: CurrentUser, db: Database
):
    """Book places on a tour. The total is the per-person price times participants."""
    logger.info(f"POST /tours/{tour_id}/bookings | user={auth.user_id} | n={body.participants}")
    tour = await get_tour(db, tour_id)
    if not tour or not tour.get("is_active", True):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tour not found")
    if body.participants > tour["max_group_size"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Group size cannot exceed {tour['max_group_size']} participants",
        )
    if body.tour_date < date.today():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Tour date cannot be in the past",
        )

    total = round(float(tour["price"]) * body.participants, 2)
    created = await create_tour_booking(
        db,
        {
            "tour_id": tour_id,
            "operator_id": tour["operator_id"],
            "user_id": auth.user_id,
            "participants": body.participants,
            "tour_date": body.tour_date.isoformat(),
            "contact_phone": body.contact_phone,
            "notes": body.notes,
            "total_amount": total,
        },
    )
    if not created:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to book tour",
        )
    return created


@router.get("/{tour_id}/bookings")
async def list_bookings_for_tour(tour_id: str, auth: CurrentUser, db: Database):
    """Bookings on a tour, visible to its operator and admins."""
    tour = await get_tour(db, tour_id)
    if not tour:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tour not found")
    if not _can_manage(tour, auth):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the tour operator can view its bookings",
        )
    return await list_tour_bookings(db, tour_id)


@router.put("/bookings/{booking_id}/status")
@limiter.limit("30/minute")
async def update_tour_booking_status(
    request: Request,
    booking_id: str,
    body: TourBookingStatusUpdate,
    auth: CurrentUser,
    db: Database,
):
    logger.info(f"PUT /tours/bookings/{booking_id}/status | user={auth.user_id}")
    booking = await get_tour_booking(db, booking_id)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    if not auth.owns(booking, "operator_id") and not auth.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the tour operator can update this booking",
        )
    updated = await set_tour_booking_status(db, booking_id, body.status)
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update booking",
        )
    return updated
