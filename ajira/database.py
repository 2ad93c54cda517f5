"""Database utilities for Supabase integration."""

import uuid
from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends

from supabase import Client, create_client

from .config import Settings, get_settings

_supabase_client: Client | None = None


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get cached Supabase client."""
    global _supabase_client
    if _supabase_client is None:
        if settings is None:
            settings = get_settings()
        api_key = settings.supabase_secret_key or settings.supabase_service_role_key
        if not api_key:
            raise ValueError("Either SUPABASE_SECRET_KEY or SUPABASE_SERVICE_ROLE_KEY must be set")
        _supabase_client = create_client(settings.supabase_url, api_key)
    return _supabase_client


def get_db(settings: Annotated[Settings, Depends(get_settings)]) -> Client:
    """FastAPI dependency for Supabase client."""
    return get_supabase_client(settings)


# Type alias for dependency injection
Database = Annotated[Client, Depends(get_db)]


def new_id() -> str:
    """Generate a primary key for a new row."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Generic Rows
# =============================================================================


async def insert_row(db: Client, table: str, data: dict) -> dict | None:
    """Insert ``data`` with a fresh id and timestamps; returns the stored row."""
    now = utcnow().isoformat()
    row = {"id": new_id(), **data, "created_at": now, "updated_at": now}
    result = db.table(table).insert(row).execute()
    return result.data[0] if result.data else None


async def update_row(db: Client, table: str, row_id: str, updates: dict) -> dict | None:
    updates = {**updates, "updated_at": utcnow().isoformat()}
    result = db.table(table).update(updates).eq("id", row_id).execute()
    return result.data[0] if result.data else None


async def delete_row(db: Client, table: str, row_id: str) -> None:
    db.table(table).delete().eq("id", row_id).execute()


# =============================================================================
# Table Names
# =============================================================================

USERS_TABLE = "users"
PLATFORM_SETTINGS_TABLE = "platform_settings"
CATEGORIES_TABLE = "categories"
SUBCATEGORIES_TABLE = "subcategories"
TAGS_TABLE = "tags"
POSTS_TABLE = "posts"
JOBS_TABLE = "jobs"
PROPOSALS_TABLE = "proposals"
PRODUCTS_TABLE = "products"
ORDERS_TABLE = "orders"
DELIVERIES_TABLE = "deliveries"
PAYOUTS_TABLE = "payouts"
CAR_VEHICLES_TABLE = "car_vehicles"
CAR_RENTALS_TABLE = "car_rentals"
HOTELS_TABLE = "hotels"
HOTEL_ROOMS_TABLE = "hotel_rooms"
HOTEL_BOOKINGS_TABLE = "hotel_bookings"
TOUR_PACKAGES_TABLE = "tour_packages"
TOUR_BOOKINGS_TABLE = "tour_bookings"
TRANSFER_VEHICLES_TABLE = "transfer_vehicles"
TRANSFER_BOOKINGS_TABLE = "transfer_bookings"
BOOKING_REVIEWS_TABLE = "booking_reviews"
LOYALTY_ACCOUNTS_TABLE = "loyalty_accounts"
LOYALTY_TRANSACTIONS_TABLE = "loyalty_transactions"
LOYALTY_REWARDS_TABLE = "loyalty_rewards"
LOYALTY_REDEMPTIONS_TABLE = "loyalty_redemptions"
CONVERSATIONS_TABLE = "conversations"
MESSAGES_TABLE = "messages"


# =============================================================================
# User Operations
# =============================================================================

DEFAULT_PREFERENCES = {
    "language": "en",
    "currency": "USD",
    "notifications": {"email": True, "sms": False, "push": True},
}


async def create_user(
    db: Client,
    name: str,
    email: str,
    password_hash: str,
    roles: list[str],
    phone: str | None = None,
    birthday: str | None = None,
) -> dict | None:
    """Create a new user in the database."""
    now = utcnow().isoformat()
    data = {
        "id": new_id(),
        "name": name,
        "email": email.lower(),
        "password_hash": password_hash,
        "phone": phone,
        "birthday": birthday,
        "roles": roles,
        "email_verified": False,
        "phone_verified": False,
        "preferences": DEFAULT_PREFERENCES,
        "loyalty_points": 0,
        "membership_tier": "bronze",
        "is_active": True,
        "is_suspended": False,
        "created_at": now,
        "updated_at": now,
    }
    result = db.table(USERS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def get_user(db: Client, user_id: str) -> dict | None:
    """Get a user by id."""
    result = db.table(USERS_TABLE).select("*").eq("id", user_id).execute()
    return result.data[0] if result.data else None


async def get_user_by_email(db: Client, email: str) -> dict | None:
    """Get a user by email (case-insensitive)."""
    result = db.table(USERS_TABLE).select("*").eq("email", email.lower()).execute()
    return result.data[0] if result.data else None


async def update_last_login(db: Client, user_id: str) -> None:
    now = utcnow().isoformat()
    db.table(USERS_TABLE).update({"last_login_at": now, "updated_at": now}).eq(
        "id", user_id
    ).execute()


def public_user(user: dict) -> dict:
    """Strip secrets from a user row before returning it."""
    return {k: v for k, v in user.items() if k != "password_hash"}


# =============================================================================
# Platform Settings
# =============================================================================

PLATFORM_SETTINGS_ID = "global"


async def get_platform_settings(db: Client, settings: Settings | None = None) -> dict:
    """Get platform-wide settings, falling back to configured defaults."""
    if settings is None:
        settings = get_settings()
    defaults = {
        "commission_rate": settings.default_commission_rate,
        "currency": settings.default_currency,
        "site_name": settings.site_name,
    }
    result = (
        db.table(PLATFORM_SETTINGS_TABLE).select("*").eq("id", PLATFORM_SETTINGS_ID).execute()
    )
    if not result.data:
        return defaults
    stored = result.data[0]
    return {
        key: stored.get(key) if stored.get(key) is not None else value
        for key, value in defaults.items()
    }


async def update_platform_settings(db: Client, updates: dict) -> dict | None:
    """Upsert platform settings."""
    data = {"id": PLATFORM_SETTINGS_ID, **updates, "updated_at": utcnow().isoformat()}
    result = db.table(PLATFORM_SETTINGS_TABLE).upsert(data).execute()
    return result.data[0] if result.data else None
