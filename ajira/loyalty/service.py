"""Loyalty service: accounts, points ledger, rewards and vouchers.

Every balance change goes through ``add_transaction`` so the ledger and the
account stay in step. Lifetime points only grow; spending or expiring
points never drops a member's tier.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
from datetime import date, datetime, timedelta, timezone

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta
from supabase import Client

from ..database import (
    LOYALTY_ACCOUNTS_TABLE,
    LOYALTY_REDEMPTIONS_TABLE,
    LOYALTY_REWARDS_TABLE,
    LOYALTY_TRANSACTIONS_TABLE,
    USERS_TABLE,
    new_id,
)
from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationFailedError
from .models import (
    BIRTHDAY_BONUS,
    FIRST_BOOKING_BONUS,
    POINTS_VALIDITY_MONTHS,
    REFERRAL_BONUS,
    SIGNUP_BONUS,
    LoyaltyAccount,
    PointsTransaction,
    RedemptionStatus,
    Reward,
    RewardCreate,
    RewardRedemption,
    RewardUpdate,
    TransactionType,
    VoucherValidationResult,
    calculate_booking_points,
    calculate_discounted_price,
    calculate_tier,
)

logger = logging.getLogger("ajira.loyalty")

CODE_ALPHABET = string.ascii_uppercase + string.digits
REFERRAL_CODE_LENGTH = 8
VOUCHER_CODE_PREFIX = "REWARD-"
VOUCHER_CODE_LENGTH = 10
EXPIRY_WARNING_DAYS = 7

# Reward types that hand out a code to apply at checkout
CODED_REWARD_TYPES = ("voucher", "discount")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _random_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_referral_code() -> str:
    return _random_code(REFERRAL_CODE_LENGTH)


def generate_voucher_code() -> str:
    return f"{VOUCHER_CODE_PREFIX}{_random_code(VOUCHER_CODE_LENGTH)}"


def _parse_ts(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    dt = value if isinstance(value, datetime) else isoparse(value)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


# =============================================================================
# Service
# =============================================================================


class LoyaltyService:
    """Stateless service; every method receives a Supabase `Client`."""

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    @staticmethod
    async def get_account(db: Client, user_id: str) -> LoyaltyAccount | None:
        def _query():
            return (
                db.table(LOYALTY_ACCOUNTS_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )

        result = await asyncio.to_thread(_query)
        return LoyaltyAccount(**result.data[0]) if result.data else None

    @staticmethod
    async def get_account_by_referral_code(db: Client, code: str) -> LoyaltyAccount | None:
        def _query():
            return (
                db.table(LOYALTY_ACCOUNTS_TABLE)
                .select("*")
                .eq("referral_code", code.upper())
                .limit(1)
                .execute()
            )

        result = await asyncio.to_thread(_query)
        return LoyaltyAccount(**result.data[0]) if result.data else None

    @staticmethod
    async def create_account(
        db: Client, user_id: str, referral_code: str | None = None
    ) -> LoyaltyAccount:
        """Open an account with the signup bonus, crediting the referrer if any."""
        referrer: LoyaltyAccount | None = None
        if referral_code:
            referrer = await LoyaltyService.get_account_by_referral_code(db, referral_code)
            if referrer is None or referrer.user_id == user_id:
                logger.info("Ignoring unknown referral code %s for user %s", referral_code, user_id)
                referrer = None

        now = _now().isoformat()
        tier_info = calculate_tier(0)
        data = {
            "id": new_id(),
            "user_id": user_id,
            "points": 0,
            "lifetime_points": 0,
            "tier": tier_info.tier.value,
            "tier_progress": 0,
            "next_tier": tier_info.next_tier.value if tier_info.next_tier else None,
            "next_tier_threshold": tier_info.next_tier_threshold,
            "referral_code": generate_referral_code(),
            "referred_by": referrer.user_id if referrer else None,
            "created_at": now,
            "updated_at": now,
        }

        def _insert():
            return db.table(LOYALTY_ACCOUNTS_TABLE).insert(data).execute()

        result = await asyncio.to_thread(_insert)
        if not result.data:
            raise RuntimeError(f"Failed to create loyalty account for user {user_id}")

        await LoyaltyService.add_transaction(
            db, user_id, TransactionType.bonus, SIGNUP_BONUS, "Welcome bonus"
        )
        if referrer:
            await LoyaltyService.add_transaction(
                db, referrer.user_id, TransactionType.bonus, REFERRAL_BONUS, "Referral bonus"
            )

        logger.info("Created loyalty account for user %s", user_id)
        account = await LoyaltyService.get_account(db, user_id)
        return account or LoyaltyAccount(**result.data[0])

    @staticmethod
    async def apply_points_change(
        db: Client, user_id: str, change: int, account: LoyaltyAccount | None = None
    ) -> LoyaltyAccount:
        """Move the balance by ``change`` and recompute the tier."""
        account = account or await LoyaltyService.get_account(db, user_id)
        if account is None:
            raise NotFoundError("Loyalty account not found")

        points = account.points + change
        lifetime = account.lifetime_points + change if change > 0 else account.lifetime_points
        tier_info = calculate_tier(lifetime)
        update = {
            "points": points,
            "lifetime_points": lifetime,
            "tier": tier_info.tier.value,
            "tier_progress": tier_info.tier_progress,
            "next_tier": tier_info.next_tier.value if tier_info.next_tier else None,
            "next_tier_threshold": tier_info.next_tier_threshold,
            "updated_at": _now().isoformat(),
        }

        def _update():
            return db.table(LOYALTY_ACCOUNTS_TABLE).update(update).eq("user_id", user_id).execute()

        await asyncio.to_thread(_update)

        if tier_info.tier != account.tier:
            logger.info(
                "User %s moved %s -> %s", user_id, account.tier.value, tier_info.tier.value
            )
        return account.model_copy(
            update={
                "points": points,
                "lifetime_points": lifetime,
                "tier": tier_info.tier,
                "tier_progress": tier_info.tier_progress,
                "next_tier": tier_info.next_tier,
                "next_tier_threshold": tier_info.next_tier_threshold,
            }
        )

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    @staticmethod
    async def add_transaction(
        db: Client,
        user_id: str,
        type_: TransactionType,
        amount: int,
        reason: str,
        related_booking_id: str | None = None,
        related_reward_id: str | None = None,
    ) -> PointsTransaction:
        """Record a ledger entry and apply it to the account balance.

        Raises ``NotFoundError`` before anything is written when the user has
        no loyalty account.
        """
        account = await LoyaltyService.get_account(db, user_id)
        if account is None:
            raise NotFoundError("Loyalty account not found")

        now = _now()
        data = {
            "id": new_id(),
            "user_id": user_id,
            "type": type_.value,
            "amount": amount,
            "reason": reason,
            "related_booking_id": related_booking_id,
            "related_reward_id": related_reward_id,
            "expires_at": (
                (now + relativedelta(months=POINTS_VALIDITY_MONTHS)).isoformat()
                if amount > 0
                else None
            ),
            "expired": False,
            "created_at": now.isoformat(),
        }

        def _insert():
            return db.table(LOYALTY_TRANSACTIONS_TABLE).insert(data).execute()

        result = await asyncio.to_thread(_insert)
        if not result.data:
            raise RuntimeError(f"Failed to record points transaction for user {user_id}")

        await LoyaltyService.apply_points_change(db, user_id, amount, account)
        return PointsTransaction(**result.data[0])

    @staticmethod
    async def list_transactions(
        db: Client, user_id: str, limit: int = 50, offset: int = 0
    ) -> list[PointsTransaction]:
        def _query():
            return (
                db.table(LOYALTY_TRANSACTIONS_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .range(offset, offset + limit - 1)
                .execute()
            )

        result = await asyncio.to_thread(_query)
        return [PointsTransaction(**row) for row in result.data or []]

    @staticmethod
    async def has_earned_before(db: Client, user_id: str) -> bool:
        def _query():
            return (
                db.table(LOYALTY_TRANSACTIONS_TABLE)
                .select("id")
                .eq("user_id", user_id)
                .eq("type", TransactionType.earn.value)
                .limit(1)
                .execute()
            )

        result = await asyncio.to_thread(_query)
        return bool(result.data)

    @staticmethod
    async def award_booking_points(
        db: Client, user_id: str, booking_id: str, booking_type: str, amount: float
    ) -> list[PointsTransaction]:
        """Credit points for a completed booking, plus the first-booking bonus once."""
        account = await LoyaltyService.get_account(db, user_id)
        if account is None:
            raise NotFoundError("Loyalty account not found")

        first_booking = not await LoyaltyService.has_earned_before(db, user_id)
        points = calculate_booking_points(amount, booking_type, account.tier)

        transactions = [
            await LoyaltyService.add_transaction(
                db,
                user_id,
                TransactionType.earn,
                points,
                f"Points for {booking_type} booking",
                related_booking_id=booking_id,
            )
        ]
        if first_booking:
            transactions.append(
                await LoyaltyService.add_transaction(
                    db,
                    user_id,
                    TransactionType.bonus,
                    FIRST_BOOKING_BONUS,
                    "First booking bonus",
                    related_booking_id=booking_id,
                )
            )
        return transactions

    # ------------------------------------------------------------------
    # Rewards
    # ------------------------------------------------------------------

    @staticmethod
    async def list_rewards(db: Client, active_only: bool = True) -> list[Reward]:
        def _query():
            query = db.table(LOYALTY_REWARDS_TABLE).select("*")
            if active_only:
                query = query.eq("is_active", True)
            return query.order("points_cost").execute()

        result = await asyncio.to_thread(_query)
        return [Reward(**row) for row in result.data or []]

    @staticmethod
    async def get_reward(db: Client, reward_id: str) -> Reward | None:
        def _query():
            return (
                db.table(LOYALTY_REWARDS_TABLE).select("*").eq("id", reward_id).limit(1).execute()
            )

        result = await asyncio.to_thread(_query)
        return Reward(**result.data[0]) if result.data else None

    @staticmethod
    async def create_reward(db: Client, reward: RewardCreate) -> Reward:
        now = _now().isoformat()
        data = {
            "id": new_id(),
            **reward.model_dump(mode="json"),
            "created_at": now,
            "updated_at": now,
        }

        def _insert():
            return db.table(LOYALTY_REWARDS_TABLE).insert(data).execute()

        result = await asyncio.to_thread(_insert)
        if not result.data:
            raise RuntimeError("Failed to create reward")
        return Reward(**result.data[0])

    @staticmethod
    async def update_reward(db: Client, reward_id: str, updates: RewardUpdate) -> Reward:
        data = updates.model_dump(mode="json", exclude_unset=True)
        data["updated_at"] = _now().isoformat()

        def _update():
            return db.table(LOYALTY_REWARDS_TABLE).update(data).eq("id", reward_id).execute()

        result = await asyncio.to_thread(_update)
        if not result.data:
            raise NotFoundError("Reward not found")
        return Reward(**result.data[0])

    @staticmethod
    async def delete_reward(db: Client, reward_id: str) -> None:
        def _delete():
            return db.table(LOYALTY_REWARDS_TABLE).delete().eq("id", reward_id).execute()

        result = await asyncio.to_thread(_delete)
        if not result.data:
            raise NotFoundError("Reward not found")

    @staticmethod
    async def count_redemptions(db: Client, user_id: str, reward_id: str) -> int:
        """Redemptions of a reward by a user that still count toward its limit."""

        def _query():
            return (
                db.table(LOYALTY_REDEMPTIONS_TABLE)
                .select("id")
                .eq("user_id", user_id)
                .eq("reward_id", reward_id)
                .in_("status", [RedemptionStatus.active.value, RedemptionStatus.used.value])
                .execute()
            )

        result = await asyncio.to_thread(_query)
        return len(result.data or [])

    @staticmethod
    async def redeem_reward(db: Client, user_id: str, reward_id: str) -> RewardRedemption:
        """Spend points on a reward.

        Raises:
            NotFoundError: unknown reward or no loyalty account.
            ValidationFailedError: inactive reward, not enough points, or
                the per-user redemption limit is reached.
        """
        reward = await LoyaltyService.get_reward(db, reward_id)
        if reward is None:
            raise NotFoundError("Reward not found")
        if not reward.is_active:
            raise ValidationFailedError("Reward is not active")

        account = await LoyaltyService.get_account(db, user_id)
        if account is None:
            raise NotFoundError("Loyalty account not found")
        if account.points < reward.points_cost:
            raise ValidationFailedError("Insufficient points")

        if reward.max_redemptions:
            existing = await LoyaltyService.count_redemptions(db, user_id, reward_id)
            if existing >= reward.max_redemptions:
                raise ValidationFailedError("Maximum redemptions reached for this reward")

        now = _now()
        expires_at = reward.valid_until or now + timedelta(days=reward.valid_days)
        data = {
            "id": new_id(),
            "user_id": user_id,
            "reward_id": reward_id,
            "points_spent": reward.points_cost,
            "status": RedemptionStatus.active.value,
            "voucher_code": (
                generate_voucher_code() if reward.reward_type in CODED_REWARD_TYPES else None
            ),
            "expires_at": expires_at.isoformat(),
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
        }

        def _insert():
            return db.table(LOYALTY_REDEMPTIONS_TABLE).insert(data).execute()

        result = await asyncio.to_thread(_insert)
        if not result.data:
            raise RuntimeError("Failed to record redemption")

        await LoyaltyService.add_transaction(
            db,
            user_id,
            TransactionType.redeem,
            -reward.points_cost,
            f"Redeemed: {reward.name}",
            related_reward_id=reward_id,
        )
        logger.info(
            "User %s redeemed reward %s for %s points", user_id, reward_id, reward.points_cost
        )
        return RewardRedemption(**result.data[0])

    @staticmethod
    async def list_redemptions(
        db: Client, user_id: str, status: RedemptionStatus | None = None
    ) -> list[RewardRedemption]:
        def _query():
            query = db.table(LOYALTY_REDEMPTIONS_TABLE).select("*").eq("user_id", user_id)
            if status:
                query = query.eq("status", status.value)
            return query.order("created_at", desc=True).execute()

        result = await asyncio.to_thread(_query)
        return [RewardRedemption(**row) for row in result.data or []]

    @staticmethod
    async def get_redemption_by_code(db: Client, voucher_code: str) -> RewardRedemption | None:
        def _query():
            return (
                db.table(LOYALTY_REDEMPTIONS_TABLE)
                .select("*")
                .eq("voucher_code", voucher_code)
                .limit(1)
                .execute()
            )

        result = await asyncio.to_thread(_query)
        return RewardRedemption(**result.data[0]) if result.data else None

    # ------------------------------------------------------------------
    # Vouchers
    # ------------------------------------------------------------------

    @staticmethod
    async def validate_voucher(
        db: Client, voucher_code: str, user_id: str, booking_type: str, total_amount: float
    ) -> VoucherValidationResult:
        """Check a voucher against a booking and work out the discount."""

        def invalid(message: str) -> VoucherValidationResult:
            return VoucherValidationResult(
                valid=False,
                message=message,
                original_price=total_amount,
                final_price=total_amount,
            )

        redemption = await LoyaltyService.get_redemption_by_code(db, voucher_code)
        if redemption is None:
            return invalid("Invalid voucher code")
        if redemption.user_id != user_id:
            return invalid("This voucher does not belong to you")
        if redemption.status == RedemptionStatus.used:
            return invalid("This voucher has already been used")
        if _parse_ts(redemption.expires_at) < _now():
            return invalid("This voucher has expired")

        reward = await LoyaltyService.get_reward(db, redemption.reward_id)
        if reward is None:
            return invalid("Reward not found")
        if not reward.is_active:
            return invalid("This reward is no longer active")
        if reward.applicable_to and booking_type not in reward.applicable_to:
            return invalid(f"This voucher is not valid for {booking_type} bookings")
        if reward.min_purchase and total_amount < reward.min_purchase:
            return invalid(f"Minimum purchase of {reward.min_purchase:g} required")

        priced = calculate_discounted_price(total_amount, reward.discount_for(total_amount))
        return VoucherValidationResult(
            valid=True,
            message="Voucher applied",
            discount=priced["discount_amount"],
            original_price=total_amount,
            final_price=priced["final_price"],
            reward_id=reward.id,
        )

    @staticmethod
    async def mark_voucher_used(
        db: Client, voucher_code: str, user_id: str, booking_id: str
    ) -> RewardRedemption:
        redemption = await LoyaltyService.get_redemption_by_code(db, voucher_code)
        if redemption is None:
            raise NotFoundError("Voucher not found")
        if redemption.user_id != user_id:
            raise PermissionDeniedError("Voucher belongs to another member")
        if redemption.status != RedemptionStatus.active:
            raise ConflictError(f"Voucher is {redemption.status.value}, not active")

        now = _now().isoformat()
        update = {
            "status": RedemptionStatus.used.value,
            "used_at": now,
            "used_in_booking_id": booking_id,
            "updated_at": now,
        }

        def _update():
            return (
                db.table(LOYALTY_REDEMPTIONS_TABLE)
                .update(update)
                .eq("id", redemption.id)
                .eq("status", RedemptionStatus.active.value)
                .execute()
            )

        result = await asyncio.to_thread(_update)
        if not result.data:
            raise ConflictError("Voucher was used concurrently")
        return RewardRedemption(**result.data[0])

    # ------------------------------------------------------------------
    # Scheduled jobs
    # ------------------------------------------------------------------

    @staticmethod
    async def award_birthday_bonuses(db: Client, today: date | None = None) -> dict:
        """Credit the birthday bonus to members born today, once per calendar year."""
        today = today or _now().date()

        def _users():
            return (
                db.table(USERS_TABLE).select("id, birthday").not_.is_("birthday", "null").execute()
            )

        users = (await asyncio.to_thread(_users)).data or []
        celebrating = []
        for user in users:
            try:
                born = isoparse(user["birthday"]).date()
            except (TypeError, ValueError):
                logger.warning("Skipping user %s with unparseable birthday", user.get("id"))
                continue
            if (born.month, born.day) == (today.month, today.day):
                celebrating.append(user["id"])

        year_start = datetime(today.year, 1, 1, tzinfo=timezone.utc).isoformat()
        awarded = 0
        for user_id in celebrating:

            def _already(uid=user_id):
                return (
                    db.table(LOYALTY_TRANSACTIONS_TABLE)
                    .select("id")
                    .eq("user_id", uid)
                    .eq("reason", "Birthday bonus")
                    .gte("created_at", year_start)
                    .limit(1)
                    .execute()
                )

            if (await asyncio.to_thread(_already)).data:
                continue
            try:
                await LoyaltyService.add_transaction(
                    db, user_id, TransactionType.bonus, BIRTHDAY_BONUS, "Birthday bonus"
                )
            except NotFoundError:
                logger.warning("User %s has a birthday but no loyalty account", user_id)
                continue
            awarded += 1

        logger.info("Birthday bonus: %s celebrating, %s awarded", len(celebrating), awarded)
        return {"processed": len(celebrating), "awarded": awarded}

    @staticmethod
    async def expire_points(db: Client, now: datetime | None = None) -> dict:
        """Expire credited points past their expiry and count the ones expiring soon."""
        now = now or _now()
        credit_types = [TransactionType.earn.value, TransactionType.bonus.value]

        def _due():
            return (
                db.table(LOYALTY_TRANSACTIONS_TABLE)
                .select("*")
                .in_("type", credit_types)
                .eq("expired", False)
                .lt("expires_at", now.isoformat())
                .execute()
            )

        def _soon():
            return (
                db.table(LOYALTY_TRANSACTIONS_TABLE)
                .select("id")
                .in_("type", credit_types)
                .eq("expired", False)
                .gte("expires_at", now.isoformat())
                .lt("expires_at", (now + timedelta(days=EXPIRY_WARNING_DAYS)).isoformat())
                .execute()
            )

        due = (await asyncio.to_thread(_due)).data or []
        expired_count = 0
        expired_points = 0
        errors = 0
        for row in due:
            # The credit is claimed before its expire row is written
            def _mark(tx_id=row["id"]):
                return (
                    db.table(LOYALTY_TRANSACTIONS_TABLE)
                    .update({"expired": True})
                    .eq("id", tx_id)
                    .eq("expired", False)
                    .execute()
                )

            try:
                claimed = await asyncio.to_thread(_mark)
                if not claimed.data:
                    continue
                await LoyaltyService.add_transaction(
                    db,
                    row["user_id"],
                    TransactionType.expire,
                    -row["amount"],
                    "Points expired",
                    related_booking_id=row.get("related_booking_id"),
                )
            except Exception as e:
                errors += 1
                logger.warning(
                    "Failed to expire transaction %s: %s: %s", row["id"], type(e).__name__, e
                )
                continue
            expired_count += 1
            expired_points += row["amount"]

        warnings = (await asyncio.to_thread(_soon)).data or []
        logger.info(
            "Expired %s transactions (%s points, %s errors); %s expiring within %s days",
            expired_count,
            expired_points,
            errors,
            len(warnings),
            EXPIRY_WARNING_DAYS,
        )
        return {
            "expired_count": expired_count,
            "expired_points": expired_points,
            "warning_count": len(warnings),
            "errors": errors,
        }
