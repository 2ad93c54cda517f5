"""Loyalty program routes: accounts, rewards, redemptions and vouchers."""

from fastapi import APIRouter, HTTPException, Query, Request, status

from ..auth import AdminUser, CurrentUser
from ..database import Database
from ..logging_config import get_logger
from ..loyalty import (
    LoyaltyService,
    PointsTransaction,
    RedemptionStatus,
    Reward,
    RewardRedemption,
    calculate_tier,
    get_tier_config,
)
from ..loyalty.models import (
    AccountResponse,
    EarnPointsRequest,
    RewardCreate,
    RewardUpdate,
    VoucherUseRequest,
    VoucherValidateRequest,
    VoucherValidationResult,
)
from ..rate_limit import limiter

logger = get_logger("ajira.loyalty")
router = APIRouter(prefix="/api/loyalty", tags=["loyalty"])


# =============================================================================
# Account
# =============================================================================


@router.get("/account", response_model=AccountResponse)
async def get_account(auth: CurrentUser, db: Database):
    """Balance, tier progress and referral code for the caller."""
    account = await LoyaltyService.get_account(db, auth.user_id)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Loyalty account not found"
        )
    tier_info = calculate_tier(account.lifetime_points)
    return AccountResponse(
        user_id=account.user_id,
        points=account.points,
        lifetime_points=account.lifetime_points,
        tier=tier_info.tier,
        tier_info=tier_info,
        referral_code=account.referral_code,
        benefits=get_tier_config(tier_info.tier),
    )


@router.get("/transactions", response_model=list[PointsTransaction])
async def list_transactions(
    auth: CurrentUser,
    db: Database,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    return await LoyaltyService.list_transactions(db, auth.user_id, limit, offset)


# =============================================================================
# Rewards
# =============================================================================


@router.get("/rewards", response_model=list[Reward])
async def list_rewards(db: Database, include_inactive: bool = Query(False)):
    return await LoyaltyService.list_rewards(db, active_only=not include_inactive)


@router.get("/rewards/{reward_id}", response_model=Reward)
async def get_reward(reward_id: str, db: Database):
    reward = await LoyaltyService.get_reward(db, reward_id)
    if reward is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reward not found")
    return reward


@router.post("/rewards", response_model=Reward, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_reward(request: Request, body: RewardCreate, auth: AdminUser, db: Database):
    logger.info(f"POST /loyalty/rewards | admin={auth.user_id} | name={body.name}")
    return await LoyaltyService.create_reward(db, body)


@router.put("/rewards/{reward_id}", response_model=Reward)
@limiter.limit("30/minute")
async def update_reward(
    request: Request, reward_id: str, body: RewardUpdate, auth: AdminUser, db: Database
):
    logger.info(f"PUT /loyalty/rewards/{reward_id} | admin={auth.user_id}")
    return await LoyaltyService.update_reward(db, reward_id, body)


@router.delete("/rewards/{reward_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def delete_reward(request: Request, reward_id: str, auth: AdminUser, db: Database):
    logger.info(f"DELETE /loyalty/rewards/{reward_id} | admin={auth.user_id}")
    await LoyaltyService.delete_reward(db, reward_id)


@router.post("/rewards/{reward_id}/redeem", response_model=RewardRedemption)
@limiter.limit("10/minute")
async def redeem_reward(request: Request, reward_id: str, auth: CurrentUser, db: Database):
    """Spend points on a reward. Voucher and discount rewards come back with a code."""
    logger.info(f"POST /loyalty/rewards/{reward_id}/redeem | user={auth.user_id}")
    return await LoyaltyService.redeem_reward(db, auth.user_id, reward_id)


@router.get("/redemptions", response_model=list[RewardRedemption])
async def list_redemptions(
    auth: CurrentUser,
    db: Database,
    status_filter: RedemptionStatus | None = Query(None, alias="status"),
):
    return await LoyaltyService.list_redemptions(db, auth.user_id, status_filter)


# =============================================================================
# Vouchers
# =============================================================================


@router.post("/vouchers/validate", response_model=VoucherValidationResult)
@limiter.limit("30/minute")
async def validate_voucher(
    request: Request, body: VoucherValidateRequest, auth: CurrentUser, db: Database
):
    return await LoyaltyService.validate_voucher(
        db, body.voucher_code, auth.user_id, body.booking_type, body.total_amount
    )


@router.post("/vouchers/{voucher_code}/use", response_model=RewardRedemption)
@limiter.limit("10/minute")
async def use_voucher(
    request: Request,
    voucher_code: str,
    body: VoucherUseRequest,
    auth: CurrentUser,
    db: Database,
):
    logger.info(
        f"POST /loyalty/vouchers/{voucher_code}/use | user={auth.user_id} "
        f"| booking={body.booking_id}"
    )
    return await LoyaltyService.mark_voucher_used(db, voucher_code, auth.user_id, body.booking_id)


# =============================================================================
# Earning
# =============================================================================


@router.post("/earn", response_model=list[PointsTransaction])
@limiter.limit("60/minute")
async def earn_points(request: Request, body: EarnPointsRequest, auth: AdminUser, db: Database):
    """Credit points for a completed booking on a user's behalf."""
    logger.info(
        f"POST /loyalty/earn | admin={auth.user_id} | user={body.user_id} "
        f"| booking={body.booking_id} | amount={body.amount}"
    )
    return await LoyaltyService.award_booking_points(
        db, body.user_id, body.booking_id, body.booking_type, body.amount
    )
