"""Tests for cart splitting and vendor earnings."""

from datetime import datetime, timezone

from ajira.checkout import (
    CartItem,
    base_product_id,
    build_order_record,
    split_cart_by_vendor,
    vendor_earnings_from_orders,
)

PRODUCTS = {
    "p1": {"id": "p1", "name": "Mug", "price": 10, "vendor_id": "v1", "product_type": "creator"},
    "p2": {"id": "p2", "name": "Chips", "price": 4, "vendor_id": "v2",
           "product_type": "restaurant-item"},
    "p3": {"id": "p3", "name": "Shirt", "price": 25, "vendor_id": "v1", "product_type": "creator"},
    "p4": {"id": "p4", "name": "Camera", "price": 500, "vendor_id": "v3",
           "product_type": "affiliate"},
}


def test_base_product_id_strips_customization():
    assert base_product_id("p1-large-red") == "p1"
    assert base_product_id("p1") == "p1"


def test_split_groups_by_vendor_in_cart_order():
    cart = [CartItem("p2", 1), CartItem("p1", 2), CartItem("p3-xl", 1)]

    orders = split_cart_by_vendor(cart, PRODUCTS, commission_rate=0.1)

    assert [o.vendor_id for o in orders] == ["v2", "v1"]
    assert [i["product_id"] for i in orders[1].line_items] == ["p1", "p3"]
    assert orders[1].total_amount == 45


def test_split_skips_affiliate_and_unknown_products():
    cart = [CartItem("p4", 1), CartItem("nope", 1), CartItem("p1", 1)]

    orders = split_cart_by_vendor(cart, PRODUCTS, commission_rate=0.1)

    assert len(orders) == 1
    assert orders[0].vendor_id == "v1"


def test_commission_on_line_items():
    orders = split_cart_by_vendor([CartItem("p3", 2)], PRODUCTS, commission_rate=0.15)
    item = orders[0].line_items[0]

    assert item["commission_amount"] == 7.5
    assert item["vendor_earnings"] == 42.5
    assert item["status"] == "Pending"


def test_order_record_awaits_payment():
    vendor_order = split_cart_by_vendor([CartItem("p1", 1)], PRODUCTS, 0.1)[0]
    now = datetime(2030, 1, 1, tzinfo=timezone.utc)
    customer = {"name": "Asha", "email": "asha@example.com", "address": "Dar es Salaam"}

    record = build_order_record(vendor_order, customer, "delivery", now, now)

    assert record["status"] == "Pending"
    assert record["payment_status"] == "awaiting_payment"
    assert record["total_amount"] == 10
    assert record["shipping_address"] == "Dar es Salaam"


def test_vendor_earnings_only_count_delivered():
    orders = [
        {
            "vendor_id": "v1",
            "line_items": [
                {"status": "Delivered", "vendor_earnings": 42.5},
                {"status": "Shipped", "vendor_earnings": 100},
            ],
        },
        {"vendor_id": "v2", "line_items": [{"status": "Delivered", "vendor_earnings": 9}]},
    ]

    assert vendor_earnings_from_orders(orders, "v1") == 42.5
