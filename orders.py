"""
Order pricing, numbering and status lifecycle
"""
import logging
import time
from typing import List, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException

from catalog import parse_price

logger = logging.getLogger(__name__)

FREE_DELIVERY_THRESHOLD = 150.0
DELIVERY_FEE = 15.0

ORDER_FLOW = ["pending", "confirmed", "preparing", "shipped", "delivered"]
ORDER_STATUSES = ORDER_FLOW + ["cancelled"]
TERMINAL_STATUSES = ("delivered", "cancelled")


def delivery_fee(subtotal: float) -> float:
    return 0.0 if subtotal > FREE_DELIVERY_THRESHOLD else DELIVERY_FEE


def can_transition(current: str, new: str) -> bool:
    """pending -> confirmed -> preparing -> shipped -> delivered, or cancelled before delivery."""
    if new not in ORDER_STATUSES or current not in ORDER_STATUSES:
        return False
    if current == new:
        return True
    if current in TERMINAL_STATUSES:
        return False
    if new == "cancelled":
        return True
    return ORDER_FLOW.index(new) == ORDER_FLOW.index(current) + 1


def build_order_items(db, items) -> Tuple[List[dict], float]:
    """Resolve requested line items against the catalog.

    Each item snapshots the product name and its price at order time. A
    missing or inactive product rejects the whole order.
    """
    lines = []
    subtotal = 0.0
    for item in items:
        try:
            oid = ObjectId(item.product_id)
        except (InvalidId, TypeError):
            raise HTTPException(400, f"Invalid product {item.product_id}")
        product = db["product"].find_one({"_id": oid, "is_active": True})
        if not product:
            raise HTTPException(400, f"Invalid product {item.product_id}")
        price = parse_price(product.get("price"))
        lines.append({
            "product_id": str(oid),
            "name": product.get("name"),
            "price": price,
            "quantity": item.quantity,
        })
        subtotal += price * item.quantity
    return lines, round(subtotal, 3)


def generate_order_number(db) -> str:
    count = db["order"].count_documents({})
    return f"VTB-{int(time.time() * 1000)}-{count + 1}"


def has_purchased(db, user_id: str, product_id: str) -> bool:
    return db["order"].find_one({
        "user_id": user_id,
        "items.product_id": product_id,
        "status": "delivered",
    }) is not None
