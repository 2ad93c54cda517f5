"""Cart splitting: one order per vendor, with commission on every line item."""

from dataclasses import dataclass, field
from datetime import datetime

from .database import new_id

PURCHASABLE_TYPES = ("creator", "restaurant-item")


@dataclass
class CartItem:
    product_id: str
    quantity: int
    description: str | None = None


@dataclass
class VendorOrder:
    """The slice of a cart that belongs to a single vendor."""

    vendor_id: str
    line_items: list[dict] = field(default_factory=list)

    @property
    def total_amount(self) -> float:
        return round(sum(item["price"] * item["quantity"] for item in self.line_items), 2)


def base_product_id(cart_product_id: str) -> str:
    """Cart ids may carry a customization suffix after the first dash."""
    return cart_product_id.split("-", 1)[0]


def build_line_item(product: dict, item: CartItem, commission_rate: float) -> dict:
    price = float(product.get("price") or 0)
    item_total = price * item.quantity
    commission = round(item_total * commission_rate, 2)
    return {
        "id": new_id(),
        "product_id": product["id"],
        "product_name": product["name"],
        "product_image_url": product.get("image_url"),
        "quantity": item.quantity,
        "price": price,
        "status": "Pending",
        "commission_rate": commission_rate,
        "commission_amount": commission,
        "vendor_earnings": round(item_total - commission, 2),
        "description": item.description,
    }


def split_cart_by_vendor(
    cart: list[CartItem], products_by_id: dict[str, dict], commission_rate: float
) -> list[VendorOrder]:
    """Group purchasable cart items by vendor.

    Items whose product is unknown or not purchasable (affiliate products)
    are skipped. Vendors keep the order in which they first appear in the cart.
    """
    orders: dict[str, VendorOrder] = {}
    for item in cart:
        product = products_by_id.get(base_product_id(item.product_id))
        if not product or product.get("product_type") not in PURCHASABLE_TYPES:
            continue
        vendor_id = product["vendor_id"]
        order = orders.setdefault(vendor_id, VendorOrder(vendor_id=vendor_id))
        order.line_items.append(build_line_item(product, item, commission_rate))
    return list(orders.values())


def build_order_record(
    vendor_order: VendorOrder,
    customer: dict,
    order_type: str,
    fulfillment_time: datetime,
    order_date: datetime,
) -> dict:
    """Order row for one vendor slice, awaiting payment."""
    return {
        "id": new_id(),
        "vendor_id": vendor_order.vendor_id,
        "customer_name": customer["name"],
        "customer_email": customer["email"],
        "shipping_address": customer["address"],
        "order_date": order_date.isoformat(),
        "status": "Pending",
        "payment_status": "awaiting_payment",
        "order_type": order_type,
        "fulfillment_time": fulfillment_time.isoformat(),
        "total_amount": vendor_order.total_amount,
        "line_items": vendor_order.line_items,
        "delivery_id": None,
    }


def vendor_earnings_from_orders(orders: list[dict], vendor_id: str) -> float:
    """Earnings from the vendor's delivered line items."""
    total = 0.0
    for order in orders:
        if order.get("vendor_id") != vendor_id:
            continue
        for item in order.get("line_items") or []:
            if item.get("status") == "Delivered":
                total += float(item.get("vendor_earnings") or 0)
    return round(total, 2)
