"""Checkout and order history.

``place_order`` turns an untrusted cart into an order. Prices and stock are
always re-read from the product collection; anything else the client sends
about a product is ignored.
"""

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from database import CENTS, collection, from_decimal128, next_id, to_decimal128, transaction
from errors import NotFoundError, PersistenceError, StockError, ValidationError
from schemas import Order, OrderItem

logger = logging.getLogger(__name__)


# Checkout payloads
class CheckoutItem(BaseModel):
    """One cart line. JSON integers only, no numeric strings or booleans."""
    model_config = ConfigDict(populate_by_name=True, strict=True)

    product_id: int = Field(..., gt=0, alias="productId")
    quantity: int = Field(..., ge=1)


class MemberCheckout(BaseModel):
    """Checkout with a valid session: email falls back to the account email."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    items: List[CheckoutItem] = Field(..., min_length=1)
    full_name: str = Field(..., min_length=2, alias="fullName")
    address: str = Field(..., min_length=3)
    city: str = Field(..., min_length=2)
    country: str = Field(..., min_length=2)
    postal_code: str = Field(..., min_length=3, alias="postalCode")
    email: Optional[EmailStr] = None


class GuestCheckout(MemberCheckout):
    email: EmailStr


def field_errors(exc: pydantic.ValidationError) -> dict[str, list[str]]:
    """Flatten pydantic errors into ``{"items.0.quantity": [msg, ...]}``."""
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        key = ".".join(str(part) for part in err["loc"]) or "payload"
        errors.setdefault(key, []).append(err["msg"])
    return errors


def parse_checkout(payload, user: Optional[dict]) -> MemberCheckout:
    schema = MemberCheckout if user else GuestCheckout
    try:
        return schema.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise ValidationError(field_errors(exc))


def place_order(payload, user: Optional[dict] = None) -> dict:
    """Validate, price and persist an order. Returns ``{"id", "total"}``.

    Either the order, all of its items and every stock decrement are
    persisted, or none of them are.
    """
    checkout = parse_checkout(payload, user)

    product_ids = list(dict.fromkeys(line.product_id for line in checkout.items))
    products = {p["_id"]: p for p in collection("product").find({"_id": {"$in": product_ids}})}

    missing = [pid for pid in product_ids if pid not in products]
    if missing:
        logger.info("Order rejected, unknown products %s", missing)
        raise NotFoundError("Product", missing)

    # repeated lines for one product draw on the same stock
    requested: dict[int, int] = {}
    for line in checkout.items:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
    for pid, quantity in requested.items():
        available = int(products[pid].get("stock", 0))
        if quantity > available:
            logger.info("Order rejected, product %s has %s of %s requested", pid, available, quantity)
            raise StockError(pid, products[pid]["name"], quantity, available)

    items = [
        OrderItem(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price=from_decimal128(products[line.product_id]["price"]),
        )
        for line in checkout.items
    ]
    total = sum((item.unit_price * item.quantity for item in items), Decimal("0"))
    total = total.quantize(CENTS, rounding=ROUND_HALF_UP)

    order = Order(
        user_id=user["id"] if user else None,
        email=checkout.email or user["email"],
        full_name=checkout.full_name,
        address=checkout.address,
        city=checkout.city,
        country=checkout.country,
        postal_code=checkout.postal_code,
        items=items,
        total=total,
    )
    order_id = commit_order(order, products)
    logger.info("Order %s placed: %d lines, total %s", order_id, len(items), total)
    return {"id": order_id, "total": total}


def commit_order(order: Order, products: dict[int, dict]) -> int:
    """Decrement stock and insert the order as one unit.

    Each decrement only matches while enough stock remains, so the final
    stock check happens in the same write that takes the units. Inside a
    transaction a concurrent checkout on the same product surfaces as a
    write conflict instead, which is reported as a stock shortfall.
    """
    order_id = next_id("order")
    doc = {
        "_id": order_id,
        "user_id": order.user_id,
        "email": order.email,
        "full_name": order.full_name,
        "address": order.address,
        "city": order.city,
        "country": order.country,
        "postal_code": order.postal_code,
        "total": to_decimal128(order.total),
        "items": [
            {
                "id": next_id("order_item"),
                "product_id": item.product_id,
                "quantity": item.quantity,
                "unit_price": to_decimal128(item.unit_price),
            }
            for item in order.items
        ],
        "created_at": datetime.now(timezone.utc),
    }

    product_coll = collection("product")
    pending: Optional[OrderItem] = None
    try:
        with transaction() as session:
            opts = {"session": session} if session is not None else {}
            applied: list[OrderItem] = []
            try:
                for item in order.items:
                    pending = item
                    result = product_coll.update_one(
                        {"_id": item.product_id, "stock": {"$gte": item.quantity}},
                        {"$inc": {"stock": -item.quantity}},
                        **opts,
                    )
                    if result.matched_count != 1:
                        current = product_coll.find_one({"_id": item.product_id}, **opts)
                        available = int(current.get("stock", 0)) if current else 0
                        raise StockError(item.product_id, products[item.product_id]["name"], item.quantity, available)
                    applied.append(item)
                pending = None
                collection("order").insert_one(doc, **opts)
            except Exception:
                if session is None:
                    restore_stock(applied)
                raise
    except PyMongoError as exc:
        if pending is not None and exc.has_error_label("TransientTransactionError"):
            # lost the race for this product to another open transaction
            current = product_coll.find_one({"_id": pending.product_id})
            available = int(current.get("stock", 0)) if current else 0
            logger.info("Order %s lost a write conflict on product %s", order_id, pending.product_id)
            raise StockError(pending.product_id, products[pending.product_id]["name"], pending.quantity, available) from exc
        logger.exception("Order %s could not be committed", order_id)
        raise PersistenceError(f"Failed to create order: {exc}") from exc
    return order_id


def restore_stock(items: List[OrderItem]) -> None:
    """Give back units taken by a commit that did not complete."""
    product_coll = collection("product")
    for item in items:
        try:
            product_coll.update_one({"_id": item.product_id}, {"$inc": {"stock": item.quantity}})
        except PyMongoError:
            logger.exception("Failed to restore %d units of product %s", item.quantity, item.product_id)


# Order history

def _product_map(orders: list[dict]) -> dict[int, dict]:
    ids = {item["product_id"] for o in orders for item in o.get("items", [])}
    if not ids:
        return {}
    return {p["_id"]: p for p in collection("product").find({"_id": {"$in": list(ids)}})}


def order_out(doc: dict, products: dict[int, dict]) -> dict:
    items = []
    for item in doc.get("items", []):
        product = products.get(item["product_id"])
        items.append({
            "id": item["id"],
            "productId": item["product_id"],
            "quantity": item["quantity"],
            "unitPrice": from_decimal128(item["unit_price"]),
            "product": {
                "id": product["_id"],
                "name": product["name"],
                "imageUrl": product.get("image_url"),
            } if product else None,
        })
    return {
        "id": doc["_id"],
        "createdAt": doc.get("created_at"),
        "email": doc.get("email"),
        "fullName": doc.get("full_name"),
        "address": doc.get("address"),
        "city": doc.get("city"),
        "country": doc.get("country"),
        "postalCode": doc.get("postal_code"),
        "total": from_decimal128(doc.get("total")),
        "items": items,
    }


def list_orders(user: Optional[dict]) -> list[dict]:
    """The user's orders, newest first. Anonymous callers have none."""
    if not user:
        return []
    docs = list(
        collection("order")
        .find({"user_id": user["id"]})
        .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
    )
    products = _product_map(docs)
    return [order_out(d, products) for d in docs]


def get_order(order_id: int, user: Optional[dict] = None) -> dict:
    doc = collection("order").find_one({"_id": order_id})
    # other users' orders are indistinguishable from missing ones
    if not doc or (doc.get("user_id") and (not user or user["id"] != doc["user_id"])):
        raise NotFoundError("Order", [order_id])
    return order_out(doc, _product_map([doc]))
