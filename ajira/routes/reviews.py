"""Reviews left by guests on their own bookings."""

from typing import Literal

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ..auth import CurrentUser
from ..database import (
    BOOKING_REVIEWS_TABLE,
    CAR_RENTALS_TABLE,
    HOTEL_BOOKINGS_TABLE,
    TOUR_BOOKINGS_TABLE,
    TRANSFER_BOOKINGS_TABLE,
    Database,
    new_id,
    utcnow,
)
from ..errors import NotFoundError
from ..logging_config import get_logger
from ..loyalty import LoyaltyService, TransactionType
from ..loyalty.models import REVIEW_BONUS
from ..rate_limit import limiter

logger = get_logger("ajira.reviews")
router = APIRouter(prefix="/api/reviews", tags=["reviews"])

ReviewType = Literal["hotel", "car_rental", "tour", "transfer"]

BOOKING_TABLES = {
    "hotel": HOTEL_BOOKINGS_TABLE,
    "car_rental": CAR_RENTALS_TABLE,
    "tour": TOUR_BOOKINGS_TABLE,
    "transfer": TRANSFER_BOOKINGS_TABLE,
}

REVIEWABLE_STATUSES = ("completed", "confirmed")


# =============================================================================
# Request/Response Models
# =============================================================================


class ReviewRatings(BaseModel):
    overall: int = Field(..., ge=1, le=5)
    cleanliness: int | None = Field(None, ge=1, le=5)
    service: int | None = Field(None, ge=1, le=5)
    value: int | None = Field(None, ge=1, le=5)
    location: int | None = Field(None, ge=1, le=5)


class ReviewCreate(BaseModel):
    booking_id: str = Field(..., min_length=1)
    review_type: ReviewType
    target_id: str = Field(..., min_length=1)
    ratings: ReviewRatings
    comment: str = Field(..., min_length=10, max_length=2000)


class ReviewListResponse(BaseModel):
    reviews: list[dict]
    total: int
    average_rating: float | None = None


# =============================================================================
# Database Operations
# =============================================================================


async def get_booking(db, review_type: str, booking_id: str) -> dict | None:
    table = BOOKING_TABLES[review_type]
    result = db.table(table).select("*").eq("id", booking_id).execute()
    return result.data[0] if result.data else None


async def get_review_for_booking(db, booking_id: str) -> dict | None:
    result = (
        db.table(BOOKING_REVIEWS_TABLE).select("id").eq("booking_id", booking_id).execute()
    )
    return result.data[0] if result.data else None


async def create_review(db, user_id: str, review: ReviewCreate) -> dict | None:
    data = {
        "id": new_id(),
        "user_id": user_id,
        **review.model_dump(),
        "created_at": utcnow().isoformat(),
    }
    result = db.table(BOOKING_REVIEWS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def list_reviews(db, target_id: str) -> list[dict]:
    result = (
        db.table(BOOKING_REVIEWS_TABLE)
        .select("*")
        .eq("target_id", target_id)
        .order("created_at", desc=True)
        .execute()
    )
    return result.data or []


def average_rating(reviews: list[dict]) -> float | None:
    """Mean overall rating, or None when there are no reviews."""
    scores = [r["ratings"]["overall"] for r in reviews if r.get("ratings")]
    if not scores:
        return None
    return round(sum(scores) / len(scores), 2)


# =============================================================================
# Routes
# =============================================================================


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_review_endpoint(
    request: Request, body: ReviewCreate, auth: CurrentUser, db: Database
):
    """Review a booking the caller made. One review per booking."""
    logger.info(
        f"POST /reviews | user={auth.user_id} | type={body.review_type} "
        f"| booking={body.booking_id}"
    )
    booking = await get_booking(db, body.review_type, body.booking_id)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    if not auth.owns(booking):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only review your own bookings",
        )
    if booking.get("status") not in REVIEWABLE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only confirmed or completed bookings can be reviewed",
        )
    if await get_review_for_booking(db, body.booking_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This booking has already been reviewed",
        )

    created = await create_review(db, auth.user_id, body)
    if not created:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create review",
        )

    try:
        await LoyaltyService.add_transaction(
            db,
            auth.user_id,
            TransactionType.bonus,
            REVIEW_BONUS,
            "Review bonus",
            related_booking_id=body.booking_id,
        )
    except NotFoundError:
        logger.warning(f"No loyalty account for reviewer {auth.user_id}; bonus skipped")

    return created


@router.get("", response_model=ReviewListResponse)
async def list_reviews_endpoint(db: Database, target_id: str = Query(..., min_length=1)):
    reviews = await list_reviews(db, target_id)
    return ReviewListResponse(
        reviews=reviews, total=len(reviews), average_rating=average_rating(reviews)
    )
