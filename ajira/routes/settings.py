"""Platform settings routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from ..auth import AdminUser
from ..config import Settings, get_settings
from ..database import Database, get_platform_settings, update_platform_settings
from ..logging_config import get_logger
from ..rate_limit import limiter

logger = get_logger("ajira.settings")
router = APIRouter(prefix="/api/settings", tags=["settings"])


class PlatformSettings(BaseModel):
    commission_rate: float
    currency: str
    site_name: str


class PlatformSettingsUpdate(BaseModel):
    commission_rate: float | None = Field(None, ge=0, le=1)
    currency: str | None = Field(None, min_length=3, max_length=3)
    site_name: str | None = Field(None, min_length=1, max_length=100)


@router.get("", response_model=PlatformSettings)
async def read_settings(db: Database, settings: Annotated[Settings, Depends(get_settings)]):
    return await get_platform_settings(db, settings)


@router.put("", response_model=PlatformSettings)
@limiter.limit("10/minute")
async def write_settings(
    request: Request,
    body: PlatformSettingsUpdate,
    auth: AdminUser,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    updates = body.model_dump(exclude_none=True)
    logger.info(f"PUT /settings | admin={auth.user_id} | fields={sorted(updates)}")
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    if not await update_platform_settings(db, updates):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update settings",
        )
    return await get_platform_settings(db, settings)
