"""Booking price calculators.

Pure functions over dates and pricing dicts as stored on vehicle and room
rows. Money is rounded to 2 decimal places only where the result is shown
as a total.
"""

from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Literal

from dateutil.relativedelta import relativedelta

from .errors import ValidationFailedError

PricingUnit = Literal["nightly", "monthly"]

AIRPORT_TRANSFER_TYPES = ("airport_to_city", "city_to_airport")
NIGHT_START_HOUR = 22
NIGHT_END_HOUR = 6


@dataclass
class PriceBreakdown:
    """Total for a nightly or monthly stay."""

    unit: PricingUnit
    units_count: float
    unit_price: float
    total_price: float
    description: str

    def to_dict(self) -> dict:
        return asdict(self)


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def calculate_nightly_price(
    start: date | datetime, end: date | datetime, price: float
) -> PriceBreakdown:
    """Nights between the two calendar days times the nightly price."""
    start_day, end_day = _as_date(start), _as_date(end)
    if end_day <= start_day:
        return PriceBreakdown("nightly", 0, price, 0, "Invalid dates")

    nights = (end_day - start_day).days
    return PriceBreakdown("nightly", nights, price, nights * price, _plural(nights, "night"))


def calculate_monthly_price(
    start: date | datetime, end: date | datetime, price: float
) -> PriceBreakdown:
    """Full calendar months at the monthly price, leftover days pro-rated at 1/30th."""
    start_day, end_day = _as_date(start), _as_date(end)
    if end_day <= start_day:
        return PriceBreakdown("monthly", 0, price, 0, "Invalid dates")

    delta = relativedelta(end_day, start_day)
    full_months = delta.years * 12 + delta.months
    remaining_days = (end_day - (start_day + relativedelta(months=full_months))).days

    total_months = full_months + remaining_days / 30
    total = round(total_months * price, 2)

    description = _plural(full_months, "month")
    if remaining_days > 0:
        description += f" + {_plural(remaining_days, 'day')}"

    return PriceBreakdown("monthly", round(total_months, 2), price, total, description)


def calculate_booking_price(
    start: date | datetime, end: date | datetime, price: float, unit: PricingUnit
) -> PriceBreakdown:
    if unit == "nightly":
        return calculate_nightly_price(start, end, price)
    return calculate_monthly_price(start, end, price)


def validate_booking_dates(
    start: date | datetime, end: date | datetime, today: date | None = None
) -> None:
    """Reject bookings that start in the past or end before they begin."""
    today = today or date.today()
    if _as_date(start) < today:
        raise ValidationFailedError("Start date cannot be in the past")
    if _as_date(end) <= _as_date(start):
        raise ValidationFailedError("End date must be after start date")


# =============================================================================
# Cars
# =============================================================================


def rental_days(pickup: date | datetime, return_: date | datetime) -> int:
    """Whole days between pickup and return, never less than one."""
    return max(1, (_as_date(return_) - _as_date(pickup)).days)


def calculate_car_price(pricing: dict, pickup: date | datetime, return_: date | datetime) -> dict:
    """Price a car rental.

    Thirty days or more use the monthly rate when the vehicle has one, seven
    or more use the weekly rate; leftover days are charged at the daily rate.
    Insurance is per day and the deposit is added once.
    """
    days = rental_days(pickup, return_)
    daily = pricing["daily_rate"]
    weekly = pricing.get("weekly_rate")
    monthly = pricing.get("monthly_rate")

    if days >= 30 and monthly:
        months, remaining = divmod(days, 30)
        rental_cost = months * monthly + remaining * daily
    elif days >= 7 and weekly:
        weeks, remaining = divmod(days, 7)
        rental_cost = weeks * weekly + remaining * daily
    else:
        rental_cost = days * daily

    insurance_cost = (pricing.get("insurance_fee") or 0) * days
    deposit = pricing.get("deposit") or 0

    return {
        "days": days,
        "rental_cost": rental_cost,
        "insurance_cost": insurance_cost,
        "deposit": deposit,
        "total": round(rental_cost + insurance_cost + deposit, 2),
    }


# =============================================================================
# Hotels
# =============================================================================


def calculate_hotel_price(
    room: dict,
    checkin: date | datetime,
    checkout: date | datetime,
    adults: int = 1,
    children: int = 0,
) -> dict:
    """Price a hotel stay and enforce the room's stay and capacity limits."""
    nights = (_as_date(checkout) - _as_date(checkin)).days
    if nights <= 0:
        raise ValidationFailedError("Check-out date must be after check-in date")

    availability = room.get("availability") or {}
    min_stay = availability.get("minimum_stay") or 1
    max_stay = availability.get("maximum_stay")
    if nights < min_stay:
        raise ValidationFailedError(f"Minimum stay is {min_stay} night(s)")
    if max_stay and nights > max_stay:
        raise ValidationFailedError(f"Maximum stay is {max_stay} night(s)")

    capacity = room.get("capacity") or {}
    adult_capacity = capacity.get("adults", 0)
    total_guests = adults + children
    if total_guests > adult_capacity + capacity.get("children", 0):
        raise ValidationFailedError("Number of guests exceeds room capacity")

    pricing = room["pricing"]
    unit = pricing.get("unit", "nightly")
    stay = calculate_booking_price(checkin, checkout, pricing["base_price"], unit)
    room_price = stay.total_price
    tax = room_price * (pricing.get("tax_rate") or 0) / 100
    cleaning_fee = pricing.get("cleaning_fee") or 0

    extra_guest_fee = 0
    if pricing.get("extra_guest_fee") and total_guests > adult_capacity:
        extra_guest_fee = pricing["extra_guest_fee"] * (total_guests - adult_capacity) * nights

    return {
        "nights": nights,
        "stay_description": stay.description,
        "room_price": room_price,
        "tax": round(tax, 2),
        "cleaning_fee": cleaning_fee,
        "extra_guest_fee": extra_guest_fee,
        "total": round(room_price + tax + cleaning_fee + extra_guest_fee, 2),
    }


# =============================================================================
# Transfers
# =============================================================================


def is_night_pickup(pickup_time: str) -> bool:
    hour = int(pickup_time.split(":")[0])
    return hour >= NIGHT_START_HOUR or hour < NIGHT_END_HOUR


def calculate_transfer_price(
    pricing: dict, transfer_type: str, distance_km: float, pickup_time: str
) -> dict:
    """Base fare plus distance, with airport and night surcharges where they apply."""
    base = pricing["base_price"]
    distance_charge = distance_km * pricing.get("price_per_km", 0)

    airport_surcharge = 0
    if transfer_type in AIRPORT_TRANSFER_TYPES and pricing.get("airport_surcharge"):
        airport_surcharge = pricing["airport_surcharge"]

    night_surcharge = 0
    if is_night_pickup(pickup_time) and pricing.get("night_surcharge"):
        night_surcharge = pricing["night_surcharge"]

    return {
        "base_price": base,
        "distance_charge": round(distance_charge, 2),
        "airport_surcharge": airport_surcharge,
        "night_surcharge": night_surcharge,
        "total": round(base + distance_charge + airport_surcharge + night_surcharge, 2),
    }
