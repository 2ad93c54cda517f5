"""Airport and city transfer routes: vehicles and bookings."""

from datetime import date
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ..auth import AuthContext, CurrentUser, require_role_check
from ..availability import ACTIVE_TRANSFER_STATUSES, check_transfer_availability
from ..database import (
    TRANSFER_BOOKINGS_TABLE,
    TRANSFER_VEHICLES_TABLE,
    Database,
    new_id,
    utcnow,
)
from ..logging_config import get_logger
from ..pricing import calculate_transfer_price
from ..rate_limit import limiter
from ..rbac import is_transfer_provider

logger = get_logger("ajira.transfers")
router = APIRouter(prefix="/api/transfers", tags=["bookings", "transfers"])

TransferType = Literal["airport_to_city", "city_to_airport", "point_to_point", "hourly"]
VehicleCategory = Literal["sedan", "suv", "van", "minibus", "bus", "luxury"]
VehicleStatus = Literal["available", "in_service", "maintenance", "inactive"]
TransferStatus = Literal[
    "pending", "confirmed", "assigned", "in_progress", "completed", "cancelled"
]

TransferProvider = Annotated[AuthContext, Depends(require_role_check(is_transfer_provider))]


# =============================================================================
# Request/Response Models
# =============================================================================


class TransferCapacity(BaseModel):
    passengers: int = Field(..., ge=1, le=60)
    luggage: int = Field(..., ge=0, le=60)


class TransferPricing(BaseModel):
    base_price: float = Field(..., ge=0)
    price_per_km: float = Field(0, ge=0)
    price_per_hour: float = Field(0, ge=0)
    airport_surcharge: float = Field(0, ge=0)
    night_surcharge: float = Field(0, ge=0)


class TransferVehicleCreate(BaseModel):
    category: VehicleCategory
    make: str = Field(..., min_length=1, max_length=50)
    model: str = Field(..., min_length=1, max_length=50)
    year: int = Field(..., ge=1980, le=2100)
    license_plate: str = Field(..., min_length=1, max_length=20)
    city: str = Field(..., min_length=1, max_length=100)
    airport: str | None = Field(None, max_length=10)
    capacity: TransferCapacity
    pricing: TransferPricing
    features: list[str] = Field(default_factory=list)


class TransferVehicleUpdate(BaseModel):
    city: str | None = Field(None, min_length=1, max_length=100)
    airport: str | None = Field(None, max_length=10)
    capacity: TransferCapacity | None = None
    pricing: TransferPricing | None = None
    features: list[str] | None = None
    status: VehicleStatus | None = None


class TransferBookingCreate(BaseModel):
    vehicle_id: str
    transfer_type: TransferType
    pickup_address: str = Field(..., min_length=1, max_length=300)
    dropoff_address: str = Field(..., min_length=1, max_length=300)
    pickup_date: date
    pickup_time: str = Field(..., pattern=r"^([01][0-9]|2[0-3]):[0-5][0-9]$")
    distance_km: float = Field(..., ge=0, le=2000)
    passengers: int = Field(..., ge=1)
    luggage: int = Field(0, ge=0)
    flight_number: str | None = Field(None, max_length=20)
    notes: str | None = Field(None, max_length=1000)


class TransferStatusUpdate(BaseModel):
    status: TransferStatus


# =============================================================================
# Database Operations
# =============================================================================


async def list_transfer_vehicles(
    db, city: str | None = None, min_passengers: int | None = None
) -> list[dict]:
    query = db.table(TRANSFER_VEHICLES_TABLE).select("*").eq("status", "available")
    if city:
        query = query.ilike("city", city)
    result = query.execute()
    vehicles = result.data or []
    if min_passengers:
        vehicles = [
            v for v in vehicles if (v.get("capacity") or {}).get("passengers", 0) >= min_passengers
        ]
    return vehicles


async def get_transfer_vehicle(db, vehicle_id: str) -> dict | None:
    result = db.table(TRANSFER_VEHICLES_TABLE).select("*").eq("id", vehicle_id).execute()
    return result.data[0] if result.data else None


async def create_transfer_vehicle(db, owner_id: str, vehicle: TransferVehicleCreate) -> dict | None:
    now = utcnow().isoformat()
    data = {
        "id": new_id(),
        "owner_id": owner_id,
        **vehicle.model_dump(),
        "status": "available",
        "total_transfers": 0,
        "created_at": now,
        "updated_at": now,
    }
    result = db.table(TRANSFER_VEHICLES_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def update_transfer_vehicle(db, vehicle_id: str, updates: dict) -> dict | None:
    updates = {**updates, "updated_at": utcnow().isoformat()}
    result = db.table(TRANSFER_VEHICLES_TABLE).update(updates).eq("id", vehicle_id).execute()
    return result.data[0] if result.data else None


async def get_bookings_on_date(db, vehicle_id: str, pickup_date: str) -> list[dict]:
    result = (
        db.table(TRANSFER_BOOKINGS_TABLE)
        .select("*")
        .eq("vehicle_id", vehicle_id)
        .eq("pickup_date", pickup_date)
        .in_("status", list(ACTIVE_TRANSFER_STATUSES))
        .execute()
    )
    return result.data or []


async def create_transfer_booking(db, data: dict) -> dict | None:
    now = utcnow().isoformat()
    row = {"id": new_id(), **data, "status": "pending", "created_at": now, "updated_at": now}
    result = db.table(TRANSFER_BOOKINGS_TABLE).insert(row).execute()
    return result.data[0] if result.data else None


async def get_transfer_booking(db, booking_id: str) -> dict | None:
    result = db.table(TRANSFER_BOOKINGS_TABLE).select("*").eq("id", booking_id).execute()
    return result.data[0] if result.data else None


async def list_transfer_bookings(
    db, user_id: str | None = None, owner_id: str | None = None
) -> list[dict]:
    query = db.table(TRANSFER_BOOKINGS_TABLE).select("*")
    if user_id:
        query = query.eq("user_id", user_id)
    if owner_id:
        query = query.eq("owner_id", owner_id)
    result = query.order("pickup_date", desc=True).execute()
    return result.data or []


async def set_transfer_status(db, booking_id: str, new_status: str) -> dict | None:
    result = (
        db.table(TRANSFER_BOOKINGS_TABLE)
        .update({"status": new_status, "updated_at": utcnow().isoformat()})
        .eq("id", booking_id)
        .execute()
    )
    return result.data[0] if result.data else None


def check_capacity(vehicle: dict, passengers: int, luggage: int) -> str | None:
    """Return why the vehicle cannot carry the party, or None if it can."""
    capacity = vehicle.get("capacity") or {}
    if passengers > capacity.get("passengers", 0):
        return f"Vehicle can carry at most {capacity.get('passengers', 0)} passengers"
    if luggage > capacity.get("luggage", 0):
        return f"Vehicle can carry at most {capacity.get('luggage', 0)} pieces of luggage"
    return None


# =============================================================================
# Vehicle Routes
# =============================================================================


@router.get("/vehicles")
async def list_vehicles_endpoint(
    db: Database,
    city: str | None = Query(None),
    passengers: int | None = Query(None, ge=1),
):
    return await list_transfer_vehicles(db, city, passengers)


@router.get("/vehicles/{vehicle_id}")
async def get_vehicle_endpoint(vehicle_id: str, db: Database):
    vehicle = await get_transfer_vehicle(db, vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")
    return vehicle


@router.post("/vehicles", status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_vehicle_endpoint(
    request: Request, body: TransferVehicleCreate, auth: TransferProvider, db: Database
):
    logger.info(f"POST /transfers/vehicles | owner={auth.user_id} | plate={body.license_plate}")
    created = await create_transfer_vehicle(db, auth.user_id, body)
    if not created:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create vehicle",
        )
    return created


@router.put("/vehicles/{vehicle_id}")
@limiter.limit("30/minute")
async def update_vehicle_endpoint(
    request: Request,
    vehicle_id: str,
    body: TransferVehicleUpdate,
    auth: TransferProvider,
    db: Database,
):
    logger.info(f"PUT /transfers/vehicles/{vehicle_id} | user={auth.user_id}")
    vehicle = await get_transfer_vehicle(db, vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")
    if not auth.owns(vehicle, "owner_id") and not auth.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only manage your own vehicles",
        )
    updated = await update_transfer_vehicle(db, vehicle_id, body.model_dump(exclude_none=True))
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update vehicle",
        )
    return updated


# =============================================================================
# Booking Routes
# =============================================================================


@router.post("/bookings", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_booking_endpoint(
    request: Request, body: TransferBookingCreate, auth: CurrentUser, db: Database
):
    """Book a transfer after checking capacity and the vehicle's schedule."""
    logger.info(f"POST /transfers/bookings | user={auth.user_id} | vehicle={body.vehicle_id}")
    if body.pickup_date < date.today():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Pickup date cannot be in the past",
        )

    vehicle = await get_transfer_vehicle(db, body.vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")

    problem = check_capacity(vehicle, body.passengers, body.luggage)
    if problem:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=problem)

    pickup_date = body.pickup_date.isoformat()
    bookings = await get_bookings_on_date(db, body.vehicle_id, pickup_date)
    availability = check_transfer_availability(vehicle, bookings, pickup_date, body.pickup_time)
    if not availability.available:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=availability.reason)

    price = calculate_transfer_price(
        vehicle["pricing"], body.transfer_type, body.distance_km, body.pickup_time
    )
    created = await create_transfer_booking(
        db,
        {
            "vehicle_id": vehicle["id"],
            "owner_id": vehicle["owner_id"],
            "user_id": auth.user_id,
            **body.model_dump(mode="json", exclude={"vehicle_id"}),
            "pricing": price,
            "total_amount": price["total"],
        },
    )
    if not created:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking",
        )
    logger.info(f"Transfer booked | id={created['id']} | total={price['total']}")
    return created


@router.get("/bookings")
async def list_bookings_endpoint(auth: CurrentUser, db: Database, as_owner: bool = Query(False)):
    if as_owner:
        return await list_transfer_bookings(db, owner_id=auth.user_id)
    return await list_transfer_bookings(db, user_id=auth.user_id)


@router.put("/bookings/{booking_id}/status")
@limiter.limit("30/minute")
async def update_booking_status(
    request: Request,
    booking_id: str,
    body: TransferStatusUpdate,
    auth: CurrentUser,
    db: Database,
):
    logger.info(f"PUT /transfers/bookings/{booking_id}/status | user={auth.user_id}")
    booking = await get_transfer_booking(db, booking_id)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")

    is_provider = auth.owns(booking, "owner_id") or auth.is_admin
    rider_cancel = auth.owns(booking) and body.status == "cancelled"
    if not (is_provider or rider_cancel):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You cannot change the status of this booking",
        )

    updated = await set_transfer_status(db, booking_id, body.status)
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update booking",
        )
    return updated
