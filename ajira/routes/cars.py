"""Car rental routes: vehicles, availability and rentals."""

from datetime import date
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ..auth import AuthContext, CurrentUser, require_roles
from ..availability import ACTIVE_RENTAL_STATUSES, check_vehicle_availability
from ..database import CAR_RENTALS_TABLE, CAR_VEHICLES_TABLE, Database, new_id, utcnow
from ..logging_config import get_logger
from ..pricing import calculate_car_price, validate_booking_dates
from ..rate_limit import limiter
from ..rbac import Role

logger = get_logger("ajira.cars")
router = APIRouter(prefix="/api/cars", tags=["bookings", "cars"])

VehicleStatus = Literal["available", "rented", "maintenance", "inactive"]
RentalStatus = Literal["pending", "confirmed", "active", "completed", "cancelled"]

CarOwner = Annotated[AuthContext, Depends(require_roles(Role.car_owner, Role.admin))]


# =============================================================================
# Request/Response Models
# =============================================================================


class VehiclePricing(BaseModel):
    daily_rate: float = Field(..., gt=0)
    weekly_rate: float | None = Field(None, gt=0)
    monthly_rate: float | None = Field(None, gt=0)
    insurance_fee: float = Field(0, ge=0)
    deposit: float = Field(0, ge=0)


class VehicleCreate(BaseModel):
    make: str = Field(..., min_length=1, max_length=50)
    model: str = Field(..., min_length=1, max_length=50)
    year: int = Field(..., ge=1980, le=2100)
    category: str = Field(..., min_length=1, max_length=30)
    seats: int = Field(..., ge=1, le=60)
    transmission: Literal["automatic", "manual"] = "automatic"
    location: str = Field(..., min_length=1, max_length=200)
    features: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    pricing: VehiclePricing


class VehicleUpdate(BaseModel):
    category: str | None = Field(None, min_length=1, max_length=30)
    location: str | None = Field(None, min_length=1, max_length=200)
    features: list[str] | None = None
    images: list[str] | None = None
    pricing: VehiclePricing | None = None
    status: VehicleStatus | None = None


class RentalCreate(BaseModel):
    vehicle_id: str
    pickup_date: date
    return_date: date
    pickup_location: str | None = Field(None, max_length=200)
    notes: str | None = Field(None, max_length=1000)


class RentalStatusUpdate(BaseModel):
    status: RentalStatus


class AvailabilityResponse(BaseModel):
    available: bool
    reason: str | None = None
    pricing: dict | None = None


# =============================================================================
# Database Operations
# =============================================================================


async def list_vehicles(
    db, location: str | None = None, category: str | None = None, owner_id: str | None = None
) -> list[dict]:
    query = db.table(CAR_VEHICLES_TABLE).select("*")
    if location:
        query = query.ilike("location", f"%{location}%")
    if category:
        query = query.eq("category", category)
    if owner_id:
        query = query.eq("owner_id", owner_id)
    result = query.order("created_at", desc=True).execute()
    return result.data or []


async def get_vehicle(db, vehicle_id: str) -> dict | None:
    result = db.table(CAR_VEHICLES_TABLE).select("*").eq("id", vehicle_id).execute()
    return result.data[0] if result.data else None


async def create_vehicle(db, owner_id: str, vehicle: VehicleCreate) -> dict | None:
    now = utcnow().isoformat()
    data = {
        "id": new_id(),
        "owner_id": owner_id,
        **vehicle.model_dump(),
        "status": "available",
        "created_at": now,
        "updated_at": now,
    }
    result = db.table(CAR_VEHICLES_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def update_vehicle(db, vehicle_id: str, updates: dict) -> dict | None:
    updates = {**updates, "updated_at": utcnow().isoformat()}
    result = db.table(CAR_VEHICLES_TABLE).update(updates).eq("id", vehicle_id).execute()
    return result.data[0] if result.data else None


async def delete_vehicle(db, vehicle_id: str) -> None:
    db.table(CAR_VEHICLES_TABLE).delete().eq("id", vehicle_id).execute()


async def get_active_rentals(db, vehicle_id: str) -> list[dict]:
    result = (
        db.table(CAR_RENTALS_TABLE)
        .select("*")
        .eq("vehicle_id", vehicle_id)
        .in_("status", list(ACTIVE_RENTAL_STATUSES))
        .execute()
    )
    return result.data or []


async def create_rental(db, data: dict) -> dict | None:
    now = utcnow().isoformat()
    row = {"id": new_id(), **data, "status": "pending", "created_at": now, "updated_at": now}
    result = db.table(CAR_RENTALS_TABLE).insert(row).execute()
    return result.data[0] if result.data else None


async def get_rental(db, rental_id: str) -> dict | None:
    result = db.table(CAR_RENTALS_TABLE).select("*").eq("id", rental_id).execute()
    return result.data[0] if result.data else None


async def list_rentals(
    db, customer_id: str | None = None, owner_id: str | None = None
) -> list[dict]:
    query = db.table(CAR_RENTALS_TABLE).select("*")
    if customer_id:
        query = query.eq("user_id", customer_id)
    if owner_id:
        query = query.eq("owner_id", owner_id)
    result = query.order("created_at", desc=True).execute()
    return result.data or []


async def set_rental_status(db, rental_id: str, new_status: str) -> dict | None:
    result = (
        db.table(CAR_RENTALS_TABLE)
        .update({"status": new_status, "updated_at": utcnow().isoformat()})
        .eq("id", rental_id)
        .execute()
    )
    return result.data[0] if result.data else None


async def _get_managed_vehicle(db, vehicle_id: str, auth: AuthContext) -> dict:
    vehicle = await get_vehicle(db, vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")
    if not auth.owns(vehicle, "owner_id") and not auth.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only manage your own vehicles",
        )
    return vehicle


# =============================================================================
# Vehicle Routes
# =============================================================================


@router.get("/vehicles")
async def list_vehicles_endpoint(
    db: Database,
    location: str | None = Query(None),
    category: str | None = Query(None),
    owner_id: str | None = Query(None),
):
    return await list_vehicles(db, location, category, owner_id)


@router.get("/vehicles/{vehicle_id}")
async def get_vehicle_endpoint(vehicle_id: str, db: Database):
    vehicle = await get_vehicle(db, vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")
    return vehicle


@router.post("/vehicles", status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_vehicle_endpoint(
    request: Request, body: VehicleCreate, auth: CarOwner, db: Database
):
    logger.info(f"POST /cars/vehicles | owner={auth.user_id} | {body.make} {body.model}")
    created = await create_vehicle(db, auth.user_id, body)
    if not created:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create vehicle",
        )
    return created


@router.put("/vehicles/{vehicle_id}")
@limiter.limit("30/minute")
async def update_vehicle_endpoint(
    request: Request, vehicle_id: str, body: VehicleUpdate, auth: CarOwner, db: Database
):
    logger.info(f"PUT /cars/vehicles/{vehicle_id} | user={auth.user_id}")
    await _get_managed_vehicle(db, vehicle_id, auth)
    updated = await update_vehicle(db, vehicle_id, body.model_dump(exclude_none=True))
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update vehicle",
        )
    return updated


@router.delete("/vehicles/{vehicle_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def delete_vehicle_endpoint(
    request: Request, vehicle_id: str, auth: CarOwner, db: Database
):
    logger.info(f"DELETE /cars/vehicles/{vehicle_id} | user={auth.user_id}")
    await _get_managed_vehicle(db, vehicle_id, auth)
    await delete_vehicle(db, vehicle_id)


@router.get("/vehicles/{vehicle_id}/availability", response_model=AvailabilityResponse)
async def vehicle_availability(
    vehicle_id: str,
    db: Database,
    pickup: date = Query(...),
    return_: date = Query(..., alias="return"),
):
    """Check whether the vehicle is free for the dates, with a price quote if it is."""
    vehicle = await get_vehicle(db, vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")
    if return_ <= pickup:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Return date must be after pickup date",
        )

    rentals = await get_active_rentals(db, vehicle_id)
    result = check_vehicle_availability(vehicle, rentals, pickup, return_)
    pricing = calculate_car_price(vehicle["pricing"], pickup, return_) if result.available else None
    return AvailabilityResponse(available=result.available, reason=result.reason, pricing=pricing)


# =============================================================================
# Rental Routes
# =============================================================================


@router.post("/rentals", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_rental_endpoint(
    request: Request, body: RentalCreate, auth: CurrentUser, db: Database
):
    """Book a vehicle. The rental starts pending with its price breakdown."""
    logger.info(f"POST /cars/rentals | user={auth.user_id} | vehicle={body.vehicle_id}")
    validate_booking_dates(body.pickup_date, body.return_date)

    vehicle = await get_vehicle(db, body.vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found")

    rentals = await get_active_rentals(db, body.vehicle_id)
    availability = check_vehicle_availability(
        vehicle, rentals, body.pickup_date, body.return_date
    )
    if not availability.available:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=availability.reason)

    price = calculate_car_price(vehicle["pricing"], body.pickup_date, body.return_date)
    created = await create_rental(
        db,
        {
            "vehicle_id": vehicle["id"],
            "owner_id": vehicle["owner_id"],
            "user_id": auth.user_id,
            "pickup_date": body.pickup_date.isoformat(),
            "return_date": body.return_date.isoformat(),
            "pickup_location": body.pickup_location or vehicle.get("location"),
            "notes": body.notes,
            "pricing": price,
            "total_amount": price["total"],
        },
    )
    if not created:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create rental",
        )
    logger.info(f"Rental created | id={created['id']} | total={price['total']}")
    return created


@router.get("/rentals")
async def list_rentals_endpoint(auth: CurrentUser, db: Database, as_owner: bool = Query(False)):
    """The caller's rentals, or rentals of their vehicles with ``as_owner``."""
    if as_owner:
        return await list_rentals(db, owner_id=auth.user_id)
    return await list_rentals(db, customer_id=auth.user_id)


@router.get("/rentals/{rental_id}")
async def get_rental_endpoint(rental_id: str, auth: CurrentUser, db: Database):
    rental = await get_rental(db, rental_id)
    if not rental:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rental not found")
    if not (auth.owns(rental) or auth.owns(rental, "owner_id") or auth.is_admin):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return rental


@router.put("/rentals/{rental_id}/status")
@limiter.limit("30/minute")
async def update_rental_status(
    request: Request,
    rental_id: str,
    body: RentalStatusUpdate,
    auth: CurrentUser,
    db: Database,
):
    logger.info(
        f"PUT /cars/rentals/{rental_id}/status | user={auth.user_id} | status={body.status}"
    )
    rental = await get_rental(db, rental_id)
    if not rental:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rental not found")
    if not auth.owns(rental, "owner_id") and not auth.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the vehicle owner can update this rental",
        )

    updated = await set_rental_status(db, rental_id, body.status)
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update rental",
        )
    return updated
