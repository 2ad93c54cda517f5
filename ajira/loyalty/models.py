"""Pydantic models and tier rules for the loyalty program."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================


class LoyaltyTier(str, Enum):
    """Membership tiers, lowest first."""

    bronze = "bronze"
    silver = "silver"
    gold = "gold"
    platinum = "platinum"
    diamond = "diamond"


class TransactionType(str, Enum):
    earn = "earn"
    redeem = "redeem"
    expire = "expire"
    bonus = "bonus"
    refund = "refund"


class RedemptionStatus(str, Enum):
    pending = "pending"
    active = "active"
    used = "used"
    expired = "expired"
    cancelled = "cancelled"


BookingType = Literal["property", "vehicle", "tour", "transfer", "flight"]
RewardType = Literal["discount", "upgrade", "freebie", "voucher"]
DiscountType = Literal["percentage", "fixed"]


# =============================================================================
# Tier Configuration
# =============================================================================


class TierConfig(BaseModel):
    """Static configuration for a loyalty tier."""

    tier: LoyaltyTier
    threshold: int
    points_multiplier: float
    bonus_points: int = 0
    priority_support: bool = False
    free_upgrades: bool = False
    early_access: bool = False

    class Config:
        frozen = True


TIER_CONFIGS: dict[LoyaltyTier, TierConfig] = {
    LoyaltyTier.bronze: TierConfig(
        tier=LoyaltyTier.bronze,
        threshold=0,
        points_multiplier=1.0,
    ),
    LoyaltyTier.silver: TierConfig(
        tier=LoyaltyTier.silver,
        threshold=1000,
        points_multiplier=1.25,
        bonus_points=500,
    ),
    LoyaltyTier.gold: TierConfig(
        tier=LoyaltyTier.gold,
        threshold=5000,
        points_multiplier=1.5,
        bonus_points=1000,
        priority_support=True,
        free_upgrades=True,
    ),
    LoyaltyTier.platinum: TierConfig(
        tier=LoyaltyTier.platinum,
        threshold=15000,
        points_multiplier=1.75,
        bonus_points=2500,
        priority_support=True,
        free_upgrades=True,
        early_access=True,
    ),
    LoyaltyTier.diamond: TierConfig(
        tier=LoyaltyTier.diamond,
        threshold=50000,
        points_multiplier=2.0,
        bonus_points=5000,
        priority_support=True,
        free_upgrades=True,
        early_access=True,
    ),
}

# Points per currency unit spent, by booking type
POINTS_PER_UNIT: dict[str, int] = {
    "property": 10,
    "vehicle": 8,
    "tour": 12,
    "transfer": 6,
    "flight": 5,
}

REFERRAL_BONUS = 500
SIGNUP_BONUS = 100
FIRST_BOOKING_BONUS = 200
REVIEW_BONUS = 50
BIRTHDAY_BONUS = 100

POINTS_VALIDITY_MONTHS = 12


def get_tier_config(tier: LoyaltyTier) -> TierConfig:
    """Look up the config for a tier. Raises KeyError for unknown tiers."""
    return TIER_CONFIGS[tier]


class TierInfo(BaseModel):
    tier: LoyaltyTier
    tier_progress: int
    progress_percent: float
    next_tier: LoyaltyTier | None = None
    next_tier_threshold: int | None = None


def calculate_tier(lifetime_points: int) -> TierInfo:
    """Work out the tier a lifetime points total earns, and the distance to the next."""
    ordered = list(TIER_CONFIGS.values())
    current = ordered[0]
    next_config: TierConfig | None = None
    for i, config in enumerate(ordered):
        if lifetime_points >= config.threshold:
            current = config
            next_config = ordered[i + 1] if i + 1 < len(ordered) else None

    progress = lifetime_points - current.threshold
    if next_config is None:
        return TierInfo(tier=current.tier, tier_progress=progress, progress_percent=100.0)

    span = next_config.threshold - current.threshold
    return TierInfo(
        tier=current.tier,
        tier_progress=progress,
        progress_percent=round(min(100.0, progress / span * 100), 2),
        next_tier=next_config.tier,
        next_tier_threshold=next_config.threshold,
    )


def calculate_booking_points(amount: float, booking_type: str, tier: LoyaltyTier) -> int:
    """Points earned for spending ``amount`` on a booking, with the tier multiplier."""
    rate = POINTS_PER_UNIT.get(booking_type, 0)
    return int(amount * rate * get_tier_config(tier).points_multiplier)


# =============================================================================
# Database / Domain Models
# =============================================================================


class LoyaltyAccount(BaseModel):
    """A user's points account (mirrors the loyalty_accounts table)."""

    id: str
    user_id: str
    points: int = 0
    lifetime_points: int = 0
    tier: LoyaltyTier = LoyaltyTier.bronze
    tier_progress: int = 0
    next_tier: LoyaltyTier | None = LoyaltyTier.silver
    next_tier_threshold: int | None = 1000
    referral_code: str
    referred_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PointsTransaction(BaseModel):
    id: str
    user_id: str
    type: TransactionType
    amount: int
    reason: str
    related_booking_id: str | None = None
    related_reward_id: str | None = None
    expires_at: datetime | None = None
    expired: bool = False
    created_at: datetime | None = None


class Reward(BaseModel):
    id: str
    name: str
    description: str = ""
    points_cost: int
    reward_type: RewardType
    discount_type: DiscountType | None = None
    discount_value: float | None = None
    value: float | None = None
    max_discount: float | None = None
    min_purchase: float | None = None
    applicable_to: list[BookingType] = Field(default_factory=list)
    max_redemptions: int | None = None
    is_active: bool = True
    valid_until: datetime | None = None
    valid_days: int = 90
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def discount_for(self, total: float) -> float:
        """Discount this reward gives on ``total``, never more than the total."""
        if self.reward_type == "discount":
            if self.discount_type == "percentage":
                amount = total * (self.discount_value or 0) / 100
                if self.max_discount and amount > self.max_discount:
                    amount = self.max_discount
            else:
                amount = self.discount_value or 0
        elif self.reward_type == "voucher":
            amount = self.value or 0
        else:
            amount = 0
        return round(min(amount, total), 2)


class RewardRedemption(BaseModel):
    id: str
    user_id: str
    reward_id: str
    points_spent: int
    status: RedemptionStatus = RedemptionStatus.active
    voucher_code: str | None = None
    used_at: datetime | None = None
    used_in_booking_id: str | None = None
    expires_at: datetime
    created_at: datetime | None = None
    updated_at: datetime | None = None


# =============================================================================
# API Models
# =============================================================================


class RewardCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=120)
    description: str = ""
    points_cost: int = Field(..., gt=0)
    reward_type: RewardType
    discount_type: DiscountType | None = None
    discount_value: float | None = Field(default=None, ge=0)
    value: float | None = Field(default=None, ge=0)
    max_discount: float | None = Field(default=None, ge=0)
    min_purchase: float | None = Field(default=None, ge=0)
    applicable_to: list[BookingType] = Field(default_factory=list)
    max_redemptions: int | None = Field(default=None, ge=1)
    is_active: bool = True
    valid_until: datetime | None = None
    valid_days: int = Field(default=90, ge=1, le=3650)


class RewardUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=120)
    description: str | None = None
    points_cost: int | None = Field(default=None, gt=0)
    discount_value: float | None = Field(default=None, ge=0)
    value: float | None = Field(default=None, ge=0)
    max_discount: float | None = Field(default=None, ge=0)
    min_purchase: float | None = Field(default=None, ge=0)
    applicable_to: list[BookingType] | None = None
    max_redemptions: int | None = Field(default=None, ge=1)
    is_active: bool | None = None
    valid_until: datetime | None = None
    valid_days: int | None = Field(default=None, ge=1, le=3650)


class AccountResponse(BaseModel):
    user_id: str
    points: int
    lifetime_points: int
    tier: LoyaltyTier
    tier_info: TierInfo
    referral_code: str
    benefits: TierConfig


class VoucherValidateRequest(BaseModel):
    voucher_code: str = Field(..., min_length=1)
    booking_type: BookingType
    total_amount: float = Field(..., ge=0)


class VoucherValidationResult(BaseModel):
    valid: bool
    message: str
    discount: float = 0
    original_price: float = 0
    final_price: float = 0
    reward_id: str | None = None


class VoucherUseRequest(BaseModel):
    booking_id: str = Field(..., min_length=1)


class EarnPointsRequest(BaseModel):
    user_id: str
    booking_id: str
    booking_type: BookingType
    amount: float = Field(..., gt=0)


def calculate_discounted_price(original_price: float, discount_amount: float) -> dict:
    """Apply a discount amount, clamping so the price never goes negative."""
    applied = min(discount_amount, original_price)
    final_price = max(0.0, original_price - applied)
    return {
        "original_price": original_price,
        "discount_amount": applied,
        "final_price": round(final_price, 2),
        "savings": round(original_price - final_price, 2),
    }
