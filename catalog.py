"""Product and category listing."""

import re
from decimal import Decimal
from typing import Optional

from pymongo import ASCENDING, DESCENDING

from database import collection, from_decimal128, to_decimal128
from errors import NotFoundError

DEFAULT_PAGE_SIZE = 8
MAX_PAGE_SIZE = 50

SORTS = {
    "price_asc": [("price", ASCENDING), ("_id", ASCENDING)],
    "price_desc": [("price", DESCENDING), ("_id", ASCENDING)],
    "name": [("name", ASCENDING), ("_id", ASCENDING)],
    "newest": [("_id", DESCENDING)],
}


def category_out(doc: dict) -> dict:
    return {"id": doc["_id"], "name": doc["name"], "slug": doc["slug"]}


def product_out(doc: dict, category: Optional[dict] = None) -> dict:
    out = {
        "id": doc["_id"],
        "name": doc["name"],
        "slug": doc["slug"],
        "description": doc.get("description"),
        "price": from_decimal128(doc.get("price")),
        "imageUrl": doc.get("image_url"),
        "stock": int(doc.get("stock", 0)),
        "categoryId": doc.get("category_id"),
    }
    if category is not None:
        out["category"] = category
    return out


def build_product_filter(
    category_id: Optional[int] = None,
    q: Optional[str] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
) -> dict:
    where: dict = {}
    if category_id is not None:
        where["category_id"] = category_id
    if q:
        where["name"] = {"$regex": re.escape(q), "$options": "i"}
    if min_price is not None or max_price is not None:
        price = {}
        if min_price is not None:
            price["$gte"] = to_decimal128(min_price)
        if max_price is not None:
            price["$lte"] = to_decimal128(max_price)
        where["price"] = price
    return where


def list_categories() -> list[dict]:
    return [category_out(c) for c in collection("category").find({}).sort("name", ASCENDING)]


def list_products(
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    category: Optional[str] = None,
    q: Optional[str] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    sort: Optional[str] = None,
) -> dict:
    """Return one page of products plus the total match count and all categories.

    ``category`` is a category slug. An unknown slug matches nothing.
    """
    page = max(page, 1)
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
    categories = list_categories()
    by_id = {c["id"]: c for c in categories}

    category_id = None
    if category:
        match = next((c for c in categories if c["slug"] == category), None)
        # -1 never matches an allocated id
        category_id = match["id"] if match else -1

    where = build_product_filter(category_id, q, min_price, max_price)
    products = collection("product")
    total = products.count_documents(where)
    cursor = (
        products.find(where)
        .sort(SORTS.get(sort, [("_id", ASCENDING)]))
        .skip((page - 1) * page_size)
        .limit(page_size)
    )
    items = []
    for doc in cursor:
        items.append(product_out(doc, by_id.get(doc.get("category_id"))))
    return {
        "items": items,
        "total": total,
        "page": page,
        "pageSize": page_size,
        "categories": categories,
    }


def get_product(product_id: int) -> dict:
    doc = collection("product").find_one({"_id": product_id})
    if not doc:
        raise NotFoundError("Product", [product_id])
    category = collection("category").find_one({"_id": doc.get("category_id")})
    return product_out(doc, category_out(category) if category else None)
