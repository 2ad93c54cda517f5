"""AzamPay payment routes: the gateway callback and a generic checkout."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field

from ..auth import CurrentUser
from ..config import Settings, get_settings
from ..database import ORDERS_TABLE, Database, utcnow
from ..logging_config import get_logger
from ..payments import MnoProvider, get_azampay_client
from ..rate_limit import limiter
from .jobs import atomic_update_job

logger = get_logger("ajira.payments")
router = APIRouter(prefix="/api/payments/azampay", tags=["payments"])


# =============================================================================
# Request/Response Models
# =============================================================================


class AzamPayCallback(BaseModel):
    """Payment notification posted by AzamPay once the buyer acts on the prompt."""

    model_config = ConfigDict(extra="allow")

    utilityref: str = Field(..., min_length=1)
    message: str = ""
    transactionstatus: str | None = None
    reference: str | None = None
    msisdn: str | None = None
    amount: str | None = None


class CallbackResponse(BaseModel):
    received: bool = True
    updated: list[str] = Field(default_factory=list)
    message: str


class PaymentRequest(BaseModel):
    amount: float = Field(..., gt=0)
    phone_number: str = Field(..., pattern=r"^[0-9]{9,12}$")
    reference: str = Field(..., min_length=1, max_length=200)
    provider: MnoProvider = "Mpesa"


# =============================================================================
# Database Operations
# =============================================================================


async def mark_orders_paid(db, order_ids: list[str]) -> list[dict]:
    result = (
        db.table(ORDERS_TABLE)
        .update(
            {"status": "Pending", "payment_status": "paid", "updated_at": utcnow().isoformat()}
        )
        .in_("id", order_ids)
        .execute()
    )
    return result.data or []


def payment_succeeded(callback: AzamPayCallback) -> bool:
    return callback.message.strip().lower() == "success"


# =============================================================================
# Routes
# =============================================================================


@router.post("/callback", response_model=CallbackResponse)
async def azampay_callback(request: Request, body: AzamPayCallback, db: Database):
    """
    Apply a payment result.

    A checkout reference is its order ids joined by commas. A bare id is
    tried as a job being funded first, then as a single-vendor order.
    """
    ref = body.utilityref
    logger.info(f"POST /payments/azampay/callback | ref={ref} | message={body.message}")

    if not payment_succeeded(body):
        logger.warning(f"Payment not successful | ref={ref} | message={body.message}")
        return CallbackResponse(message="Payment not successful; no changes made")

    if "," not in ref:
        job, error = await atomic_update_job(
            db, ref, expected={"escrow_status": "unfunded"}, updates={"escrow_status": "funded"}
        )
        if error == "conflict":
            # Funded synchronously by the fund route already
            return CallbackResponse(message="Job escrow already settled")
        if error is None:
            logger.info(f"Escrow funded by callback | job={ref}")
            return CallbackResponse(updated=[job["id"]], message="Job escrow funded")

    order_ids = [oid.strip() for oid in ref.split(",") if oid.strip()]
    updated = await mark_orders_paid(db, order_ids)
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No order or job matches reference"
        )
    ids = [o["id"] for o in updated]
    logger.info(f"Orders paid | ids={ids}")
    return CallbackResponse(updated=ids, message="Orders marked as paid")


@router.post("/pay")
@limiter.limit("10/minute")
async def pay(
    request: Request,
    body: PaymentRequest,
    auth: CurrentUser,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Push a mobile money prompt for an arbitrary reference."""
    logger.info(
        f"POST /payments/azampay/pay | user={auth.user_id} | ref={body.reference} "
        f"| amount={body.amount}"
    )
    client = get_azampay_client(settings)
    result = await client.mno_checkout(
        body.amount, body.phone_number, body.reference, body.provider
    )
    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.message)
    return result.to_dict()
