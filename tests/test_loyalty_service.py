"""Tests for LoyaltyService against a mocked Supabase client."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ajira.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from ajira.loyalty import (
    LoyaltyAccount,
    LoyaltyService,
    LoyaltyTier,
    RedemptionStatus,
    Reward,
    RewardRedemption,
    TransactionType,
)


def _echo_db() -> MagicMock:
    """Supabase stand-in whose insert() returns the inserted row."""
    db = MagicMock()
    db.table.return_value.insert.side_effect = lambda data: MagicMock(
        execute=MagicMock(return_value=MagicMock(data=[data]))
    )
    return db


def _account(points=1000, lifetime=1000, tier=LoyaltyTier.silver) -> LoyaltyAccount:
    return LoyaltyAccount(
        id="acc-1",
        user_id="user-1",
        points=points,
        lifetime_points=lifetime,
        tier=tier,
        referral_code="ABCD1234",
    )


def _reward(**overrides) -> Reward:
    data = {
        "id": "reward-1",
        "name": "Safari voucher",
        "points_cost": 500,
        "reward_type": "voucher",
        "value": 50,
        "is_active": True,
    }
    data.update(overrides)
    return Reward(**data)


def _redemption(**overrides) -> RewardRedemption:
    data = {
        "id": "red-1",
        "user_id": "user-1",
        "reward_id": "reward-1",
        "points_spent": 500,
        "status": RedemptionStatus.active,
        "voucher_code": "REWARD-ABCDEFGHIJ",
        "expires_at": datetime.now(timezone.utc) + timedelta(days=30),
    }
    data.update(overrides)
    return RewardRedemption(**data)


class TestRedeemReward:
    @pytest.mark.asyncio
    async def test_unknown_reward(self):
        with patch.object(LoyaltyService, "get_reward", new_callable=AsyncMock) as mock_reward:
            mock_reward.return_value = None
            with pytest.raises(NotFoundError):
                await LoyaltyService.redeem_reward(MagicMock(), "user-1", "reward-1")

    @pytest.mark.asyncio
    async def test_inactive_reward(self):
        with patch.object(LoyaltyService, "get_reward", new_callable=AsyncMock) as mock_reward:
            mock_reward.return_value = _reward(is_active=False)
            with pytest.raises(ValidationFailedError, match="not active"):
                await LoyaltyService.redeem_reward(MagicMock(), "user-1", "reward-1")

    @pytest.mark.asyncio
    async def test_insufficient_points(self):
        with patch.object(LoyaltyService, "get_reward", new_callable=AsyncMock) as mock_reward, \
                patch.object(LoyaltyService, "get_account", new_callable=AsyncMock) as mock_acc:
            mock_reward.return_value = _reward(points_cost=5000)
            mock_acc.return_value = _account(points=100)
            with pytest.raises(ValidationFailedError, match="Insufficient"):
                await LoyaltyService.redeem_reward(MagicMock(), "user-1", "reward-1")

    @pytest.mark.asyncio
    async def test_redemption_limit_reached(self):
        with patch.object(LoyaltyService, "get_reward", new_callable=AsyncMock) as mock_reward, \
                patch.object(LoyaltyService, "get_account", new_callable=AsyncMock) as mock_acc, \
                patch.object(
                    LoyaltyService, "count_redemptions", new_callable=AsyncMock
                ) as mock_count:
            mock_reward.return_value = _reward(max_redemptions=2)
            mock_acc.return_value = _account()
            mock_count.return_value = 2
            with pytest.raises(ValidationFailedError, match="Maximum redemptions"):
                await LoyaltyService.redeem_reward(MagicMock(), "user-1", "reward-1")

    @pytest.mark.asyncio
    async def test_voucher_reward_gets_code_and_debits_points(self):
        db = _echo_db()
        with patch.object(LoyaltyService, "get_reward", new_callable=AsyncMock) as mock_reward, \
                patch.object(LoyaltyService, "get_account", new_callable=AsyncMock) as mock_acc, \
                patch.object(LoyaltyService, "add_transaction", new_callable=AsyncMock) as mock_tx:
            mock_reward.return_value = _reward()
            mock_acc.return_value = _account()

            redemption = await LoyaltyService.redeem_reward(db, "user-1", "reward-1")

        assert redemption.status == RedemptionStatus.active
        assert redemption.voucher_code.startswith("REWARD-")
        assert len(redemption.voucher_code) == len("REWARD-") + 10
        args = mock_tx.call_args[0]
        assert args[2] == TransactionType.redeem
        assert args[3] == -500

    @pytest.mark.asyncio
    async def test_upgrade_reward_has_no_code(self):
        db = _echo_db()
        with patch.object(LoyaltyService, "get_reward", new_callable=AsyncMock) as mock_reward, \
                patch.object(LoyaltyService, "get_account", new_callable=AsyncMock) as mock_acc, \
                patch.object(LoyaltyService, "add_transaction", new_callable=AsyncMock):
            mock_reward.return_value = _reward(reward_type="upgrade", valid_days=10)
            mock_acc.return_value = _account()

            redemption = await LoyaltyService.redeem_reward(db, "user-1", "reward-1")

        assert redemption.voucher_code is None
        remaining = redemption.expires_at - datetime.now(timezone.utc)
        assert timedelta(days=9) < remaining <= timedelta(days=10)


class TestValidateVoucher:
    @pytest.mark.asyncio
    async def test_unknown_code(self):
        with patch.object(
            LoyaltyService, "get_redemption_by_code", new_callable=AsyncMock
        ) as mock_red:
            mock_red.return_value = None
            result = await LoyaltyService.validate_voucher(
                MagicMock(), "REWARD-X", "user-1", "tour", 100
            )
        assert not result.valid
        assert result.final_price == 100

    @pytest.mark.asyncio
    async def test_someone_elses_voucher(self):
        with patch.object(
            LoyaltyService, "get_redemption_by_code", new_callable=AsyncMock
        ) as mock_red:
            mock_red.return_value = _redemption(user_id="user-2")
            result = await LoyaltyService.validate_voucher(
                MagicMock(), "REWARD-X", "user-1", "tour", 100
            )
        assert not result.valid
        assert "belong" in result.message

    @pytest.mark.asyncio
    async def test_used_voucher(self):
        with patch.object(
            LoyaltyService, "get_redemption_by_code", new_callable=AsyncMock
        ) as mock_red:
            mock_red.return_value = _redemption(status=RedemptionStatus.used)
            result = await LoyaltyService.validate_voucher(
                MagicMock(), "REWARD-X", "user-1", "tour", 100
            )
        assert "already been used" in result.message

    @pytest.mark.asyncio
    async def test_expired_voucher(self):
        with patch.object(
            LoyaltyService, "get_redemption_by_code", new_callable=AsyncMock
        ) as mock_red:
            mock_red.return_value = _redemption(
                expires_at=datetime.now(timezone.utc) - timedelta(days=1)
            )
            result = await LoyaltyService.validate_voucher(
                MagicMock(), "REWARD-X", "user-1", "tour", 100
            )
        assert "expired" in result.message

    @pytest.mark.asyncio
    async def test_not_applicable_to_booking_type(self):
        with patch.object(
            LoyaltyService, "get_redemption_by_code", new_callable=AsyncMock
        ) as mock_red, patch.object(
            LoyaltyService, "get_reward", new_callable=AsyncMock
        ) as mock_reward:
            mock_red.return_value = _redemption()
            mock_reward.return_value = _reward(applicable_to=["property"])
            result = await LoyaltyService.validate_voucher(
                MagicMock(), "REWARD-X", "user-1", "tour", 100
            )
        assert not result.valid
        assert "tour" in result.message

    @pytest.mark.asyncio
    async def test_minimum_purchase(self):
        with patch.object(
            LoyaltyService, "get_redemption_by_code", new_callable=AsyncMock
        ) as mock_red, patch.object(
            LoyaltyService, "get_reward", new_callable=AsyncMock
        ) as mock_reward:
            mock_red.return_value = _redemption()
            mock_reward.return_value = _reward(min_purchase=200)
            result = await LoyaltyService.validate_voucher(
                MagicMock(), "REWARD-X", "user-1", "tour", 100
            )
        assert not result.valid
        assert "Minimum purchase" in result.message

    @pytest.mark.asyncio
    async def test_percentage_discount_capped(self):
        reward = _reward(
            reward_type="discount", discount_type="percentage", discount_value=50, max_discount=30
        )
        with patch.object(
            LoyaltyService, "get_redemption_by_code", new_callable=AsyncMock
        ) as mock_red, patch.object(
            LoyaltyService, "get_reward", new_callable=AsyncMock
        ) as mock_reward:
            mock_red.return_value = _redemption()
            mock_reward.return_value = reward
            result = await LoyaltyService.validate_voucher(
                MagicMock(), "REWARD-X", "user-1", "tour", 100
            )
        assert result.valid
        assert result.discount == 30
        assert result.final_price == 70


class TestMarkVoucherUsed:
    @pytest.mark.asyncio
    async def test_someone_elses_voucher(self):
        with patch.object(
            LoyaltyService, "get_redemption_by_code", new_callable=AsyncMock
        ) as mock_red:
            mock_red.return_value = _redemption()
            with pytest.raises(PermissionDeniedError):
                await LoyaltyService.mark_voucher_used(
                    MagicMock(), "REWARD-X", "user-2", "booking-1"
                )

    @pytest.mark.asyncio
    async def test_second_use_conflicts(self):
        with patch.object(
            LoyaltyService, "get_redemption_by_code", new_callable=AsyncMock
        ) as mock_red:
            mock_red.return_value = _redemption(status=RedemptionStatus.used)
            with pytest.raises(ConflictError):
                await LoyaltyService.mark_voucher_used(
                    MagicMock(), "REWARD-X", "user-1", "booking-1"
                )

    @pytest.mark.asyncio
    async def test_lost_race_conflicts(self):
        db = MagicMock()
        chain = db.table.return_value.update.return_value.eq.return_value.eq.return_value
        chain.execute.return_value = MagicMock(data=[])
        with patch.object(
            LoyaltyService, "get_redemption_by_code", new_callable=AsyncMock
        ) as mock_red:
            mock_red.return_value = _redemption()
            with pytest.raises(ConflictError, match="concurrently"):
                await LoyaltyService.mark_voucher_used(db, "REWARD-X", "user-1", "booking-1")


class TestLedger:
    @pytest.mark.asyncio
    async def test_no_ledger_row_without_account(self):
        db = _echo_db()
        with patch.object(LoyaltyService, "get_account", new_callable=AsyncMock) as mock_acc:
            mock_acc.return_value = None
            with pytest.raises(NotFoundError):
                await LoyaltyService.add_transaction(
                    db, "user-1", TransactionType.bonus, 50, "Review bonus"
                )

        db.table.return_value.insert.assert_not_called()

    @pytest.mark.asyncio
    async def test_transaction_applies_to_fetched_account(self):
        db = _echo_db()
        with patch.object(LoyaltyService, "get_account", new_callable=AsyncMock) as mock_acc:
            mock_acc.return_value = _account(points=100, lifetime=100, tier=LoyaltyTier.bronze)
            tx = await LoyaltyService.add_transaction(
                db, "user-1", TransactionType.bonus, 50, "Review bonus"
            )

        assert tx.amount == 50
        assert mock_acc.await_count == 1
        update = db.table.return_value.update.call_args[0][0]
        assert update["points"] == 150

    @pytest.mark.asyncio
    async def test_spending_does_not_reduce_lifetime_points(self):
        db = MagicMock()
        with patch.object(LoyaltyService, "get_account", new_callable=AsyncMock) as mock_acc:
            mock_acc.return_value = _account(points=1200, lifetime=1200)
            account = await LoyaltyService.apply_points_change(db, "user-1", -500)

        assert account.points == 700
        assert account.lifetime_points == 1200
        assert account.tier == LoyaltyTier.silver

    @pytest.mark.asyncio
    async def test_earning_can_promote_tier(self):
        db = MagicMock()
        with patch.object(LoyaltyService, "get_account", new_callable=AsyncMock) as mock_acc:
            mock_acc.return_value = _account(points=900, lifetime=900, tier=LoyaltyTier.bronze)
            account = await LoyaltyService.apply_points_change(db, "user-1", 200)

        assert account.tier == LoyaltyTier.silver
        update = db.table.return_value.update.call_args[0][0]
        assert update["lifetime_points"] == 1100
        assert update["tier"] == "silver"

    @pytest.mark.asyncio
    async def test_first_booking_bonus_once(self):
        with patch.object(LoyaltyService, "get_account", new_callable=AsyncMock) as mock_acc, \
                patch.object(
                    LoyaltyService, "has_earned_before", new_callable=AsyncMock
                ) as mock_earned, \
                patch.object(LoyaltyService, "add_transaction", new_callable=AsyncMock) as mock_tx:
            mock_acc.return_value = _account(tier=LoyaltyTier.bronze)
            mock_earned.return_value = False

            await LoyaltyService.award_booking_points(MagicMock(), "user-1", "b-1", "tour", 10)

        amounts = [c[0][3] for c in mock_tx.call_args_list]
        assert amounts == [120, 200]

    @pytest.mark.asyncio
    async def test_repeat_booking_has_no_bonus(self):
        with patch.object(LoyaltyService, "get_account", new_callable=AsyncMock) as mock_acc, \
                patch.object(
                    LoyaltyService, "has_earned_before", new_callable=AsyncMock
                ) as mock_earned, \
                patch.object(LoyaltyService, "add_transaction", new_callable=AsyncMock) as mock_tx:
            mock_acc.return_value = _account(tier=LoyaltyTier.bronze)
            mock_earned.return_value = True

            await LoyaltyService.award_booking_points(MagicMock(), "user-1", "b-1", "tour", 10)

        assert mock_tx.call_count == 1


class TestDeleteReward:
    @pytest.mark.asyncio
    async def test_deletes_by_id(self):
        db = MagicMock()
        chain = db.table.return_value.delete.return_value.eq
        chain.return_value.execute.return_value = MagicMock(data=[{"id": "r1"}])

        await LoyaltyService.delete_reward(db, "r1")

        chain.assert_called_once_with("id", "r1")

    @pytest.mark.asyncio
    async def test_unknown_reward(self):
        db = MagicMock()
        chain = db.table.return_value.delete.return_value.eq
        chain.return_value.execute.return_value = MagicMock(data=[])

        with pytest.raises(NotFoundError):
            await LoyaltyService.delete_reward(db, "missing")


class TestCreateAccount:
    @pytest.mark.asyncio
    async def test_signup_bonus_and_referral_credit(self):
        db = _echo_db()
        referrer = _account()
        referrer = referrer.model_copy(update={"user_id": "referrer-1"})
        with patch.object(
            LoyaltyService, "get_account_by_referral_code", new_callable=AsyncMock
        ) as mock_ref, patch.object(
            LoyaltyService, "add_transaction", new_callable=AsyncMock
        ) as mock_tx, patch.object(
            LoyaltyService, "get_account", new_callable=AsyncMock
        ) as mock_acc:
            mock_ref.return_value = referrer
            mock_acc.return_value = None

            account = await LoyaltyService.create_account(db, "user-1", referral_code="abcd1234")

        assert account.referred_by == "referrer-1"
        assert len(account.referral_code) == 8
        credited = [(c[0][1], c[0][3]) for c in mock_tx.call_args_list]
        assert credited == [("user-1", 100), ("referrer-1", 500)]

    @pytest.mark.asyncio
    async def test_self_referral_ignored(self):
        db = _echo_db()
        own = _account().model_copy(update={"user_id": "user-1"})
        with patch.object(
            LoyaltyService, "get_account_by_referral_code", new_callable=AsyncMock
        ) as mock_ref, patch.object(
            LoyaltyService, "add_transaction", new_callable=AsyncMock
        ) as mock_tx, patch.object(
            LoyaltyService, "get_account", new_callable=AsyncMock
        ) as mock_acc:
            mock_ref.return_value = own
            mock_acc.return_value = None

            account = await LoyaltyService.create_account(db, "user-1", referral_code="ABCD1234")

        assert account.referred_by is None
        assert mock_tx.call_count == 1


class TestExpirePoints:
    NOW = datetime(2030, 6, 1, tzinfo=timezone.utc)

    def _db(self, due: list[dict], soon: list[dict], claims: list[list[dict]]) -> MagicMock:
        db = MagicMock()
        select = db.table.return_value.select.return_value.in_.return_value.eq.return_value
        select.lt.return_value.execute.return_value = MagicMock(data=due)
        select.gte.return_value.lt.return_value.execute.return_value = MagicMock(data=soon)
        claim = db.table.return_value.update.return_value.eq.return_value.eq.return_value
        claim.execute.side_effect = [MagicMock(data=rows) for rows in claims]
        return db

    def _credit(self, tx_id: str, amount: int) -> dict:
        return {"id": tx_id, "user_id": "user-1", "amount": amount, "related_booking_id": None}

    @pytest.mark.asyncio
    async def test_writes_negative_expire_rows(self):
        due = [self._credit("tx-1", 100), self._credit("tx-2", 40)]
        db = self._db(due, soon=[{"id": "tx-3"}, {"id": "tx-4"}], claims=[due[:1], due[1:]])

        with patch.object(LoyaltyService, "add_transaction", new_callable=AsyncMock) as mock_tx:
            result = await LoyaltyService.expire_points(db, now=self.NOW)

        assert result == {
            "expired_count": 2,
            "expired_points": 140,
            "warning_count": 2,
            "errors": 0,
        }
        db.table.return_value.update.assert_called_with({"expired": True})
        written = [(c.args[2], c.args[3]) for c in mock_tx.call_args_list]
        assert written == [(TransactionType.expire, -100), (TransactionType.expire, -40)]

    @pytest.mark.asyncio
    async def test_already_claimed_credit_is_skipped(self):
        due = [self._credit("tx-1", 100)]
        db = self._db(due, soon=[], claims=[[]])

        with patch.object(LoyaltyService, "add_transaction", new_callable=AsyncMock) as mock_tx:
            result = await LoyaltyService.expire_points(db, now=self.NOW)

        assert result["expired_count"] == 0
        mock_tx.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_batch(self):
        due = [self._credit("tx-1", 100), self._credit("tx-2", 40)]
        db = self._db(due, soon=[], claims=[due[:1], due[1:]])

        with patch.object(LoyaltyService, "add_transaction", new_callable=AsyncMock) as mock_tx:
            mock_tx.side_effect = [NotFoundError("Loyalty account not found"), None]
            result = await LoyaltyService.expire_points(db, now=self.NOW)

        assert result["errors"] == 1
        assert result["expired_count"] == 1
        assert result["expired_points"] == 40
