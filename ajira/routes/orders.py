"""Checkout and order routes.

A checkout splits the cart into one order per vendor, then pushes a single
AzamPay payment for the combined total. The payment reference is the
comma-joined order ids, which the payment callback uses to find them.
"""

from datetime import datetime
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, EmailStr, Field

from ..auth import AuthContext, OptionalUser, require_role_check
from ..checkout import CartItem, base_product_id, build_order_record, split_cart_by_vendor
from ..config import Settings, get_settings
from ..database import (
    DELIVERIES_TABLE,
    ORDERS_TABLE,
    Database,
    get_platform_settings,
    new_id,
    utcnow,
)
from ..errors import PaymentGatewayError
from ..logging_config import get_logger
from ..payments import MnoProvider, get_azampay_client
from ..rate_limit import limiter
from ..rbac import is_vendor
from .products import get_products_by_ids

logger = get_logger("ajira.orders")
router = APIRouter(prefix="/api", tags=["orders"])

OrderStatus = Literal[
    "Pending", "Confirmed", "Preparing", "Ready for Pickup", "Completed", "Cancelled"
]
LineItemStatus = Literal["Pending", "Processing", "Shipped", "Delivered", "Cancelled", "Returned"]
OrderType = Literal["delivery", "pickup"]

VendorUser = Annotated[AuthContext, Depends(require_role_check(is_vendor))]


# =============================================================================
# Request/Response Models
# =============================================================================


class CustomerDetails(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    address: str = Field(..., min_length=1, max_length=500)


class CartItemRequest(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    description: str | None = Field(None, max_length=500)


class CheckoutRequest(BaseModel):
    customer_details: CustomerDetails
    phone_number: str = Field(..., pattern=r"^[0-9]{9,12}$")
    cart: list[CartItemRequest] = Field(..., min_length=1)
    order_type: OrderType = "delivery"
    fulfillment_time: datetime | None = None
    provider: MnoProvider = "Mpesa"


class CheckoutResponse(BaseModel):
    message: str
    transaction_id: str | None = None
    order_ids: list[str]
    total_amount: float


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class LineItemStatusUpdate(BaseModel):
    status: LineItemStatus


# =============================================================================
# Database Operations
# =============================================================================


async def insert_order(db, order: dict) -> dict | None:
    result = db.table(ORDERS_TABLE).insert(order).execute()
    return result.data[0] if result.data else None


async def create_delivery(db, order: dict) -> dict | None:
    data = {
        "id": new_id(),
        "order_id": order["id"],
        "vendor_id": order["vendor_id"],
        "customer_name": order["customer_name"],
        "delivery_address": order["shipping_address"],
        "status": "Pending",
        "created_at": utcnow().isoformat(),
    }
    result = db.table(DELIVERIES_TABLE).insert(data).execute()
    if not result.data:
        return None
    delivery = result.data[0]
    db.table(ORDERS_TABLE).update({"delivery_id": delivery["id"]}).eq("id", order["id"]).execute()
    return delivery


async def get_order(db, order_id: str) -> dict | None:
    result = db.table(ORDERS_TABLE).select("*").eq("id", order_id).execute()
    return result.data[0] if result.data else None


async def list_orders(
    db, vendor_id: str | None = None, status_filter: str | None = None
) -> list[dict]:
    query = db.table(ORDERS_TABLE).select("*")
    if vendor_id:
        query = query.eq("vendor_id", vendor_id)
    if status_filter:
        query = query.eq("status", status_filter)
    result = query.order("order_date", desc=True).execute()
    return result.data or []


async def update_order(db, order_id: str, updates: dict) -> dict | None:
    updates = {**updates, "updated_at": utcnow().isoformat()}
    result = db.table(ORDERS_TABLE).update(updates).eq("id", order_id).execute()
    return result.data[0] if result.data else None


async def cancel_orders(db, order_ids: list[str]) -> None:
    if not order_ids:
        return
    db.table(ORDERS_TABLE).update(
        {"status": "Cancelled", "payment_status": "failed", "updated_at": utcnow().isoformat()}
    ).in_("id", order_ids).execute()


async def create_orders_from_cart(
    db,
    customer: CustomerDetails,
    cart: list[CartItemRequest],
    order_type: str,
    fulfillment_time: datetime,
    commission_rate: float,
) -> list[dict]:
    """Split the cart per vendor and store one order (plus delivery) for each."""
    items = [CartItem(i.product_id, i.quantity, i.description) for i in cart]
    products = await get_products_by_ids(db, [base_product_id(i.product_id) for i in items])
    products_by_id = {p["id"]: p for p in products}

    now = utcnow()
    created = []
    for vendor_order in split_cart_by_vendor(items, products_by_id, commission_rate):
        record = build_order_record(
            vendor_order, customer.model_dump(), order_type, fulfillment_time, now
        )
        order = await insert_order(db, record)
        if not order:
            logger.error(f"Failed to store order for vendor {vendor_order.vendor_id}")
            continue
        if order_type == "delivery":
            delivery = await create_delivery(db, order)
            if delivery:
                order["delivery_id"] = delivery["id"]
        created.append(order)

    logger.info(f"Split cart into {len(created)} orders")
    return created


# =============================================================================
# Helper Functions
# =============================================================================


def _can_view(order: dict, auth: AuthContext) -> bool:
    return auth.is_admin or auth.owns(order, "vendor_id")


async def _get_visible_order(db, order_id: str, auth: AuthContext) -> dict:
    order = await get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    if not _can_view(order, auth):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only access your own orders",
        )
    return order


# =============================================================================
# Routes
# =============================================================================


@router.post("/checkout", response_model=CheckoutResponse)
@limiter.limit("10/minute")
async def checkout(
    request: Request,
    body: CheckoutRequest,
    auth: OptionalUser,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """
    Turn a cart into vendor orders and push a mobile money payment.

    If AzamPay rejects the payment every order created here is cancelled.
    """
    logger.info(
        f"POST /checkout | user={auth.user_id if auth else 'guest'} | items={len(body.cart)}"
    )
    platform = await get_platform_settings(db, settings)
    orders = await create_orders_from_cart(
        db,
        body.customer_details,
        body.cart,
        body.order_type,
        body.fulfillment_time or utcnow(),
        float(platform["commission_rate"]),
    )
    if not orders:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Could not create an order from the cart",
        )

    order_ids = [o["id"] for o in orders]
    total = round(sum(float(o["total_amount"]) for o in orders), 2)
    reference = ",".join(order_ids)

    client = get_azampay_client(settings)
    try:
        result = await client.mno_checkout(total, body.phone_number, reference, body.provider)
    except PaymentGatewayError as e:
        logger.warning(f"Checkout payment failed | ref={reference} | error={e.message}")
        await cancel_orders(db, order_ids)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    if not result.success:
        await cancel_orders(db, order_ids)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=result.message or "Payment initiation failed",
        )

    return CheckoutResponse(
        message=result.message,
        transaction_id=result.transaction_id,
        order_ids=order_ids,
        total_amount=total,
    )


@router.get("/orders")
async def list_orders_endpoint(
    auth: VendorUser,
    db: Database,
    status_filter: OrderStatus | None = Query(None, alias="status"),
):
    """Admins see every order, vendors see their own."""
    vendor_id = None if auth.is_admin else auth.user_id
    return await list_orders(db, vendor_id, status_filter)


@router.get("/orders/{order_id}")
async def get_order_endpoint(order_id: str, auth: VendorUser, db: Database):
    return await _get_visible_order(db, order_id, auth)


@router.put("/orders/{order_id}/status")
@limiter.limit("30/minute")
async def update_order_status(
    request: Request,
    order_id: str,
    body: OrderStatusUpdate,
    auth: VendorUser,
    db: Database,
):
    logger.info(f"PUT /orders/{order_id}/status | user={auth.user_id} | status={body.status}")
    await _get_visible_order(db, order_id, auth)
    updated = await update_order(db, order_id, {"status": body.status})
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update order",
        )
    return updated


@router.put("/orders/{order_id}/line-items/{item_id}/status")
@limiter.limit("30/minute")
async def update_line_item_status(
    request: Request,
    order_id: str,
    item_id: str,
    body: LineItemStatusUpdate,
    auth: VendorUser,
    db: Database,
):
    """Move one line item along. Delivered items count toward vendor earnings."""
    logger.info(
        f"PUT /orders/{order_id}/line-items/{item_id}/status | user={auth.user_id} "
        f"| status={body.status}"
    )
    order = await get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    if not auth.owns(order, "vendor_id"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the vendor can update line items",
        )

    line_items = order.get("line_items") or []
    if not any(item.get("id") == item_id for item in line_items):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Line item not found")

    line_items = [
        {**item, "status": body.status} if item.get("id") == item_id else item
        for item in line_items
    ]
    updated = await update_order(db, order_id, {"line_items": line_items})
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update line item",
        )
    return updated
