"""Vendor payout routes.

Vendors earn on delivered line items and request payouts against the
balance. An admin initiates each payout, which sends the money to the
vendor's mobile wallet through AzamPay.
"""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from ..auth import AdminUser, AuthContext, require_role_check
from ..checkout import vendor_earnings_from_orders
from ..config import Settings, get_settings
from ..database import PAYOUTS_TABLE, Database, new_id, utcnow
from ..logging_config import get_logger
from ..payments import MnoProvider, get_azampay_client
from ..rate_limit import limiter
from ..rbac import is_vendor
from .orders import list_orders

logger = get_logger("ajira.payouts")
router = APIRouter(prefix="/api/payouts", tags=["payouts"])

PayoutStatus = Literal["pending", "completed", "failed"]

VendorUser = Annotated[AuthContext, Depends(require_role_check(is_vendor))]


# =============================================================================
# Request/Response Models
# =============================================================================


class PayoutRequest(BaseModel):
    amount: float = Field(..., gt=0)
    phone_number: str = Field(..., pattern=r"^[0-9]{9,12}$")
    provider: MnoProvider = "Mpesa"


class FinanceSummary(BaseModel):
    total_earnings: float
    total_paid_out: float
    pending_payouts: float
    available_balance: float


# =============================================================================
# Database Operations
# =============================================================================


async def list_payouts(db, vendor_id: str | None = None) -> list[dict]:
    query = db.table(PAYOUTS_TABLE).select("*")
    if vendor_id:
        query = query.eq("vendor_id", vendor_id)
    result = query.order("requested_at", desc=True).execute()
    return result.data or []


async def get_payout(db, payout_id: str) -> dict | None:
    result = db.table(PAYOUTS_TABLE).select("*").eq("id", payout_id).execute()
    return result.data[0] if result.data else None


async def create_payout(db, vendor_id: str, body: PayoutRequest) -> dict | None:
    data = {
        "id": new_id(),
        "vendor_id": vendor_id,
        "amount": body.amount,
        "status": "pending",
        "method": "mobile_money",
        "provider": body.provider,
        "phone_number": body.phone_number,
        "requested_at": utcnow().isoformat(),
    }
    result = db.table(PAYOUTS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def finish_payout(db, payout_id: str, updates: dict) -> dict | None:
    """Move a payout out of ``pending``. Returns None if it already left that state."""
    result = (
        db.table(PAYOUTS_TABLE)
        .update(updates)
        .eq("id", payout_id)
        .eq("status", "pending")
        .execute()
    )
    return result.data[0] if result.data else None


def summarize_finances(orders: list[dict], payouts: list[dict], vendor_id: str) -> FinanceSummary:
    """Earnings from delivered items less what has been paid or is on its way."""
    total_earnings = vendor_earnings_from_orders(orders, vendor_id)
    paid = sum(float(p["amount"]) for p in payouts if p.get("status") == "completed")
    pending = sum(float(p["amount"]) for p in payouts if p.get("status") == "pending")
    return FinanceSummary(
        total_earnings=total_earnings,
        total_paid_out=round(paid, 2),
        pending_payouts=round(pending, 2),
        available_balance=round(max(0.0, total_earnings - paid - pending), 2),
    )


async def get_finance_summary(db, vendor_id: str) -> FinanceSummary:
    orders = await list_orders(db, vendor_id)
    payouts = await list_payouts(db, vendor_id)
    return summarize_finances(orders, payouts, vendor_id)


# =============================================================================
# Routes
# =============================================================================


@router.get("/summary", response_model=FinanceSummary)
async def finance_summary(auth: VendorUser, db: Database):
    return await get_finance_summary(db, auth.user_id)


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def request_payout(request: Request, body: PayoutRequest, auth: VendorUser, db: Database):
    logger.info(f"POST /payouts | vendor={auth.user_id} | amount={body.amount}")
    summary = await get_finance_summary(db, auth.user_id)
    if body.amount > summary.available_balance:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"Requested amount exceeds available balance of "
                f"{summary.available_balance:.2f}"
            ),
        )
    created = await create_payout(db, auth.user_id, body)
    if not created:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create payout request",
        )
    return created


@router.get("")
async def list_payouts_endpoint(auth: VendorUser, db: Database):
    """Admins see every payout, vendors see their own."""
    return await list_payouts(db, None if auth.is_admin else auth.user_id)


@router.post("/{payout_id}/initiate")
@limiter.limit("10/minute")
async def initiate_payout(
    request: Request,
    payout_id: str,
    auth: AdminUser,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Send a pending payout to the vendor's wallet."""
    logger.info(f"POST /payouts/{payout_id}/initiate | admin={auth.user_id}")
    payout = await get_payout(db, payout_id)
    if not payout:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payout not found")
    if payout["status"] != "pending":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Payout is '{payout['status']}', not 'pending'",
        )

    client = get_azampay_client(settings)
    result = await client.disburse(
        float(payout["amount"]),
        payout["phone_number"],
        payout_id,
        recipient_name=payout.get("recipient_name") or payout["vendor_id"],
        provider=payout.get("provider") or "Mpesa",
    )

    now = utcnow().isoformat()
    if not result.success:
        await finish_payout(db, payout_id, {"status": "failed", "failure_reason": result.message})
        logger.warning(f"Payout failed | id={payout_id} | reason={result.message}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.message)

    updated = await finish_payout(
        db,
        payout_id,
        {"status": "completed", "processed_at": now, "transaction_id": result.transaction_id},
    )
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Payout was processed concurrently",
        )
    logger.info(f"Payout completed | id={payout_id} | tx={result.transaction_id}")
    return updated
