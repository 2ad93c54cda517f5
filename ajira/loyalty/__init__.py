"""Loyalty points, tiers and rewards."""

from .models import (
    POINTS_PER_UNIT,
    TIER_CONFIGS,
    LoyaltyAccount,
    LoyaltyTier,
    PointsTransaction,
    RedemptionStatus,
    Reward,
    RewardRedemption,
    TierConfig,
    TierInfo,
    TransactionType,
    calculate_booking_points,
    calculate_discounted_price,
    calculate_tier,
    get_tier_config,
)
from .service import LoyaltyService, generate_referral_code, generate_voucher_code

__all__ = [
    # Enums
    "LoyaltyTier",
    "TransactionType",
    "RedemptionStatus",
    # Config
    "TierConfig",
    "TIER_CONFIGS",
    "POINTS_PER_UNIT",
    "get_tier_config",
    # Models
    "LoyaltyAccount",
    "PointsTransaction",
    "Reward",
    "RewardRedemption",
    "TierInfo",
    # Rules
    "calculate_tier",
    "calculate_booking_points",
    "calculate_discounted_price",
    # Service
    "LoyaltyService",
    "generate_referral_code",
    "generate_voucher_code",
]
