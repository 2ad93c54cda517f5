"""Availability checks for bookable inventory.

The functions here take rows already fetched from the database and decide
whether a new booking fits. Dates on rows are ISO strings.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from dateutil.parser import isoparse

# Booking statuses that hold inventory
ACTIVE_RENTAL_STATUSES = ("pending", "confirmed", "active")
ACTIVE_ROOM_BOOKING_STATUSES = ("pending", "confirmed", "checked_in")
ACTIVE_TRANSFER_STATUSES = ("confirmed", "assigned", "in_progress")

TRANSFER_BUFFER = timedelta(hours=3)


@dataclass
class AvailabilityResult:
    available: bool
    reason: str | None = None
    available_units: int | None = None


def to_date(value: str | date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return isoparse(value).date()


def ranges_overlap(a_start, a_end, b_start, b_end) -> bool:
    """Half-open interval overlap; back-to-back ranges do not overlap."""
    return a_start < b_end and a_end > b_start


def find_overlapping(
    bookings: list[dict],
    start: date,
    end: date,
    statuses: tuple[str, ...],
    start_field: str,
    end_field: str,
) -> list[dict]:
    """Bookings in one of ``statuses`` whose date range overlaps [start, end)."""
    return [
        b
        for b in bookings
        if b.get("status") in statuses
        and ranges_overlap(start, end, to_date(b[start_field]), to_date(b[end_field]))
    ]


def check_vehicle_availability(
    vehicle: dict, rentals: list[dict], pickup: date, return_: date
) -> AvailabilityResult:
    if vehicle.get("status") != "available":
        return AvailabilityResult(False, "Vehicle is not available for rental")

    overlapping = find_overlapping(
        rentals, pickup, return_, ACTIVE_RENTAL_STATUSES, "pickup_date", "return_date"
    )
    if overlapping:
        return AvailabilityResult(False, "Vehicle is already booked for the selected dates")
    return AvailabilityResult(True)


def check_room_availability(
    room: dict,
    bookings: list[dict],
    checkin: date,
    checkout: date,
    rooms_requested: int = 1,
) -> AvailabilityResult:
    """Rooms left once overlapping bookings are subtracted from the room's inventory."""
    overlapping = find_overlapping(
        bookings, checkin, checkout, ACTIVE_ROOM_BOOKING_STATUSES, "check_in_date", "check_out_date"
    )
    total_rooms = (room.get("availability") or {}).get("total_rooms", 1)
    booked_rooms = sum(b.get("rooms") or 1 for b in overlapping)
    available_rooms = max(0, total_rooms - booked_rooms)
    if available_rooms < rooms_requested:
        return AvailabilityResult(
            False, "Room is not available for the selected dates", available_rooms
        )
    return AvailabilityResult(True, None, available_rooms)


def check_transfer_availability(
    vehicle: dict, bookings: list[dict], pickup_date: str, pickup_time: str
) -> AvailabilityResult:
    """A transfer vehicle is blocked within three hours of another booked pickup that day."""
    if vehicle.get("status") != "available":
        return AvailabilityResult(False, "Transfer vehicle is not available")

    requested = datetime.fromisoformat(f"{pickup_date}T{pickup_time}")
    window_start, window_end = requested - TRANSFER_BUFFER, requested + TRANSFER_BUFFER

    for booking in bookings:
        if booking.get("status") not in ACTIVE_TRANSFER_STATUSES:
            continue
        if booking.get("pickup_date") != pickup_date:
            continue
        booked = datetime.fromisoformat(f"{booking['pickup_date']}T{booking['pickup_time']}")
        if window_start <= booked <= window_end:
            return AvailabilityResult(
                False, "Vehicle is not available for the selected date and time"
            )
    return AvailabilityResult(True)
