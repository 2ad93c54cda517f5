"""Scheduled maintenance routes.

These are meant to be hit by an external scheduler once a day:
- Birthday bonuses for members born today
- Expiry of points older than their validity window
"""

import hmac
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel

from ..config import Settings, get_settings
from ..database import Database
from ..logging_config import get_logger
from ..loyalty import LoyaltyService
from ..rate_limit import limiter

logger = get_logger("ajira.cron")
router = APIRouter(prefix="/api/cron", tags=["cron"])


class BirthdayBonusResponse(BaseModel):
    processed: int
    awarded: int


class ExpirePointsResponse(BaseModel):
    expired_count: int
    expired_points: int
    warning_count: int
    errors: int = 0


async def verify_cron_secret(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Require ``Authorization: Bearer <cron_secret>`` when a secret is configured."""
    if not settings.cron_secret:
        logger.warning("CRON_SECRET is not set; cron endpoints are unauthenticated")
        return
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron credentials",
        )


CronAuth = Annotated[None, Depends(verify_cron_secret)]


@router.post("/birthday-bonus", response_model=BirthdayBonusResponse)
@limiter.limit("10/minute")
async def birthday_bonus(request: Request, _auth: CronAuth, db: Database):
    logger.info("POST /cron/birthday-bonus")
    return await LoyaltyService.award_birthday_bonuses(db)


@router.post("/expire-points", response_model=ExpirePointsResponse)
@limiter.limit("10/minute")
async def expire_points(request: Request, _auth: CronAuth, db: Database):
    logger.info("POST /cron/expire-points")
    return await LoyaltyService.expire_points(db)
