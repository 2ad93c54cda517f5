"""Hotel routes: properties, rooms, availability and bookings."""

from datetime import date
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ..auth import AuthContext, CurrentUser, require_roles
from ..availability import ACTIVE_ROOM_BOOKING_STATUSES, check_room_availability
from ..database import (
    HOTEL_BOOKINGS_TABLE,
    HOTEL_ROOMS_TABLE,
    HOTELS_TABLE,
    Database,
    insert_row,
    update_row,
)
from ..logging_config import get_logger
from ..pricing import calculate_hotel_price, validate_booking_dates
from ..rate_limit import limiter
from ..rbac import Role

logger = get_logger("ajira.hotels")
router = APIRouter(prefix="/api/hotels", tags=["bookings", "hotels"])

BookingStatus = Literal["pending", "confirmed", "checked_in", "checked_out", "cancelled"]

PropertyOwner = Annotated[AuthContext, Depends(require_roles(Role.property_owner, Role.admin))]


# =============================================================================
# Request/Response Models
# =============================================================================


class HotelCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=150)
    description: str = Field("", max_length=5000)
    city: str = Field(..., min_length=1, max_length=100)
    address: str = Field(..., min_length=1, max_length=300)
    star_rating: int | None = Field(None, ge=1, le=5)
    amenities: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)


class HotelUpdate(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=150)
    description: str | None = Field(None, max_length=5000)
    address: str | None = Field(None, min_length=1, max_length=300)
    star_rating: int | None = Field(None, ge=1, le=5)
    amenities: list[str] | None = None
    images: list[str] | None = None


class RoomPricing(BaseModel):
    base_price: float = Field(..., gt=0)
    unit: Literal["nightly", "monthly"] = "nightly"
    tax_rate: float = Field(0, ge=0, le=100)
    cleaning_fee: float = Field(0, ge=0)
    extra_guest_fee: float = Field(0, ge=0)


class RoomCapacity(BaseModel):
    adults: int = Field(..., ge=1, le=20)
    children: int = Field(0, ge=0, le=20)


class RoomAvailability(BaseModel):
    total_rooms: int = Field(1, ge=1)
    minimum_stay: int = Field(1, ge=1)
    maximum_stay: int | None = Field(None, ge=1)


class RoomCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    room_type: str = Field(..., min_length=1, max_length=50)
    description: str = Field("", max_length=2000)
    amenities: list[str] = Field(default_factory=list)
    capacity: RoomCapacity
    pricing: RoomPricing
    availability: RoomAvailability = Field(default_factory=RoomAvailability)


class RoomUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=2000)
    amenities: list[str] | None = None
    capacity: RoomCapacity | None = None
    pricing: RoomPricing | None = None
    availability: RoomAvailability | None = None


class HotelBookingCreate(BaseModel):
    room_id: str
    check_in_date: date
    check_out_date: date
    adults: int = Field(1, ge=1, le=20)
    children: int = Field(0, ge=0, le=20)
    rooms: int = Field(1, ge=1, le=10)
    special_requests: str | None = Field(None, max_length=1000)


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


# =============================================================================
# Database Operations
# =============================================================================


async def list_hotels(db, city: str | None = None, owner_id: str | None = None) -> list[dict]:
    query = db.table(HOTELS_TABLE).select("*")
    if city:
        query = query.ilike("city", city)
    if owner_id:
        query = query.eq("owner_id", owner_id)
    result = query.order("name").execute()
    return result.data or []


async def get_hotel(db, hotel_id: str) -> dict | None:
    result = db.table(HOTELS_TABLE).select("*").eq("id", hotel_id).execute()
    return result.data[0] if result.data else None


async def delete_hotel(db, hotel_id: str) -> None:
    db.table(HOTEL_ROOMS_TABLE).delete().eq("hotel_id", hotel_id).execute()
    db.table(HOTELS_TABLE).delete().eq("id", hotel_id).execute()


async def list_rooms(db, hotel_id: str) -> list[dict]:
    result = db.table(HOTEL_ROOMS_TABLE).select("*").eq("hotel_id", hotel_id).execute()
    return result.data or []


async def get_room(db, room_id: str) -> dict | None:
    result = db.table(HOTEL_ROOMS_TABLE).select("*").eq("id", room_id).execute()
    return result.data[0] if result.data else None


async def delete_room(db, room_id: str) -> None:
    db.table(HOTEL_ROOMS_TABLE).delete().eq("id", room_id).execute()


async def get_active_room_bookings(db, room_id: str) -> list[dict]:
    result = (
        db.table(HOTEL_BOOKINGS_TABLE)
        .select("*")
        .eq("room_id", room_id)
        .in_("status", list(ACTIVE_ROOM_BOOKING_STATUSES))
        .execute()
    )
    return result.data or []


async def create_booking(db, data: dict) -> dict | None:
    return await insert_row(db, HOTEL_BOOKINGS_TABLE, {**data, "status": "pending"})


async def get_booking(db, booking_id: str) -> dict | None:
    result = db.table(HOTEL_BOOKINGS_TABLE).select("*").eq("id", booking_id).execute()
    return result.data[0] if result.data else None


async def list_bookings(db, user_id: str | None = None, owner_id: str | None = None) -> list[dict]:
    query = db.table(HOTEL_BOOKINGS_TABLE).select("*")
    if user_id:
        query = query.eq("user_id", user_id)
    if owner_id:
        query = query.eq("owner_id", owner_id)
    result = query.order("created_at", desc=True).execute()
    return result.data or []


async def _get_managed_hotel(db, hotel_id: str, auth: AuthContext) -> dict:
    hotel = await get_hotel(db, hotel_id)
    if not hotel:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Hotel not found")
    if not auth.owns(hotel, "owner_id") and not auth.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only manage your own properties",
        )
    return hotel


async def _get_managed_room(db, room_id: str, auth: AuthContext) -> dict:
    room = await get_room(db, room_id)
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    await _get_managed_hotel(db, room["hotel_id"], auth)
    return room


def _failed(action: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to {action}"
    )


# =============================================================================
# Hotel Routes
# =============================================================================


@router.get("")
async def list_hotels_endpoint(
    db: Database, city: str | None = Query(None), owner_id: str | None = Query(None)
):
    return await list_hotels(db, city, owner_id)


@router.get("/bookings")
async def list_bookings_endpoint(auth: CurrentUser, db: Database, as_owner: bool = Query(False)):
    """The caller's stays, or bookings at their properties with ``as_owner``."""
    if as_owner:
        return await list_bookings(db, owner_id=auth.user_id)
    return await list_bookings(db, user_id=auth.user_id)


@router.get("/{hotel_id}")
async def get_hotel_endpoint(hotel_id: str, db: Database):
    hotel = await get_hotel(db, hotel_id)
    if not hotel:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Hotel not found")
    return {**hotel, "rooms": await list_rooms(db, hotel_id)}


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_hotel_endpoint(
    request: Request, body: HotelCreate, auth: PropertyOwner, db: Database
):
    logger.info(f"POST /hotels | owner={auth.user_id} | name={body.name}")
    created = await insert_row(db, HOTELS_TABLE, {"owner_id": auth.user_id, **body.model_dump()})
    if not created:
        raise _failed("create hotel")
    return created


@router.put("/{hotel_id}")
@limiter.limit("30/minute")
async def update_hotel_endpoint(
    request: Request, hotel_id: str, body: HotelUpdate, auth: PropertyOwner, db: Database
):
    logger.info(f"PUT /hotels/{hotel_id} | user={auth.user_id}")
    await _get_managed_hotel(db, hotel_id, auth)
    updated = await update_row(db, HOTELS_TABLE, hotel_id, body.model_dump(exclude_none=True))
    if not updated:
        raise _failed("update hotel")
    return updated


@router.delete("/{hotel_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def delete_hotel_endpoint(
    request: Request, hotel_id: str, auth: PropertyOwner, db: Database
):
    logger.info(f"DELETE /hotels/{hotel_id} | user={auth.user_id}")
    await _get_managed_hotel(db, hotel_id, auth)
    await delete_hotel(db, hotel_id)


# =============================================================================
# Room Routes
# =============================================================================


@router.post("/{hotel_id}/rooms", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_room_endpoint(
    request: Request, hotel_id: str, body: RoomCreate, auth: PropertyOwner, db: Database
):
    logger.info(f"POST /hotels/{hotel_id}/rooms | user={auth.user_id}")
    hotel = await _get_managed_hotel(db, hotel_id, auth)
    created = await insert_row(
        db,
        HOTEL_ROOMS_TABLE,
        {"hotel_id": hotel_id, "owner_id": hotel["owner_id"], **body.model_dump()},
    )
    if not created:
        raise _failed("create room")
    return created


@router.get("/rooms/{room_id}")
async def get_room_endpoint(room_id: str, db: Database):
    room = await get_room(db, room_id)
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return room


@router.put("/rooms/{room_id}")
@limiter.limit("30/minute")
async def update_room_endpoint(
    request: Request, room_id: str, body: RoomUpdate, auth: PropertyOwner, db: Database
):
    logger.info(f"PUT /hotels/rooms/{room_id} | user={auth.user_id}")
    await _get_managed_room(db, room_id, auth)
    updated = await update_row(db, HOTEL_ROOMS_TABLE, room_id, body.model_dump(exclude_none=True))
    if not updated:
        raise _failed("update room")
    return updated


@router.delete("/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def delete_room_endpoint(request: Request, room_id: str, auth: PropertyOwner, db: Database):
    logger.info(f"DELETE /hotels/rooms/{room_id} | user={auth.user_id}")
    await _get_managed_room(db, room_id, auth)
    await delete_room(db, room_id)


@router.get("/rooms/{room_id}/availability")
async def room_availability(
    room_id: str,
    db: Database,
    checkin: date = Query(...),
    checkout: date = Query(...),
    rooms: int = Query(1, ge=1, le=10),
):
    room = await get_room(db, room_id)
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    if checkout <= checkin:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Check-out date must be after check-in date",
        )

    bookings = await get_active_room_bookings(db, room_id)
    result = check_room_availability(room, bookings, checkin, checkout, rooms)
    return {
        "available": result.available,
        "available_rooms": result.available_units,
        "reason": result.reason,
    }


# =============================================================================
# Booking Routes
# =============================================================================


@router.post("/bookings", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_booking_endpoint(
    request: Request, body: HotelBookingCreate, auth: CurrentUser, db: Database
):
    """Book a room. Stay limits and capacity come from the room."""
    logger.info(f"POST /hotels/bookings | user={auth.user_id} | room={body.room_id}")
    validate_booking_dates(body.check_in_date, body.check_out_date)

    room = await get_room(db, body.room_id)
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")

    price = calculate_hotel_price(
        room, body.check_in_date, body.check_out_date, body.adults, body.children
    )

    bookings = await get_active_room_bookings(db, body.room_id)
    availability = check_room_availability(
        room, bookings, body.check_in_date, body.check_out_date, body.rooms
    )
    if not availability.available:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=availability.reason)

    total = round(price["total"] * body.rooms, 2)
    created = await create_booking(
        db,
        {
            "room_id": room["id"],
            "hotel_id": room["hotel_id"],
            "owner_id": room.get("owner_id"),
            "user_id": auth.user_id,
            "check_in_date": body.check_in_date.isoformat(),
            "check_out_date": body.check_out_date.isoformat(),
            "adults": body.adults,
            "children": body.children,
            "rooms": body.rooms,
            "special_requests": body.special_requests,
            "pricing": price,
            "total_amount": total,
        },
    )
    if not created:
        raise _failed("create booking")
    logger.info(f"Hotel booking created | id={created['id']} | total={total}")
    return created


@router.put("/bookings/{booking_id}/status")
@limiter.limit("30/minute")
async def update_booking_status(
    request: Request,
    booking_id: str,
    body: BookingStatusUpdate,
    auth: CurrentUser,
    db: Database,
):
    """Property owners move bookings along; guests may only cancel their own."""
    logger.info(f"PUT /hotels/bookings/{booking_id}/status | user={auth.user_id}")
    booking = await get_booking(db, booking_id)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")

    is_manager = auth.owns(booking, "owner_id") or auth.is_admin
    guest_cancel = auth.owns(booking) and body.status == "cancelled"
    if not (is_manager or guest_cancel):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You cannot change the status of this booking",
        )

    updated = await update_row(db, HOTEL_BOOKINGS_TABLE, booking_id, {"status": body.status})
    if not updated:
        raise _failed("update booking")
    return updated
