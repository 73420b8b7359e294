"""Reset the catalog to the demo categories and products.

Usage: python seed.py  (needs DATABASE_URL and DATABASE_NAME)
"""

import logging
from decimal import Decimal

from database import collection, ensure_indexes, next_id, reset_sequence, to_decimal128
from schemas import Category, Product

logger = logging.getLogger(__name__)

CATEGORIES = [
    Category(name="Electronics", slug="electronics"),
    Category(name="Books", slug="books"),
    Category(name="Fashion", slug="fashion"),
]

# (category slug, product)
PRODUCTS = [
    ("electronics", dict(
        name="Wireless Headphones",
        slug="wireless-headphones",
        description="Comfortable over-ear wireless headphones with noise cancelling.",
        price=Decimal("99.99"),
        image_url="/vercel.svg",
        stock=50,
    )),
    ("electronics", dict(
        name="Smartphone Case",
        slug="smartphone-case",
        description="Durable protective case for your smartphone.",
        price=Decimal("19.99"),
        image_url="/next.svg",
        stock=200,
    )),
    ("books", dict(
        name="Novel: The Journey",
        slug="novel-the-journey",
        description="An inspiring adventure story.",
        price=Decimal("12.50"),
        image_url="/globe.svg",
        stock=100,
    )),
    ("fashion", dict(
        name="T-Shirt",
        slug="t-shirt",
        description="Comfortable cotton t-shirt.",
        price=Decimal("15.00"),
        image_url="/window.svg",
        stock=150,
    )),
]


def insert_category(category: Category) -> int:
    cid = next_id("category")
    collection("category").insert_one({"_id": cid, **category.model_dump()})
    return cid


def insert_product(product: Product) -> int:
    pid = next_id("product")
    doc = product.model_dump()
    doc["price"] = to_decimal128(product.price)
    collection("product").insert_one({"_id": pid, **doc})
    return pid


def seed() -> dict[str, int]:
    """Clear orders and catalog, then insert the demo data. Returns slug -> product id."""
    for name in ("order", "product", "category"):
        collection(name).delete_many({})
    for sequence in ("order", "order_item", "product", "category"):
        reset_sequence(sequence)
    ensure_indexes()

    category_ids = {c.slug: insert_category(c) for c in CATEGORIES}
    product_ids = {}
    for slug, fields in PRODUCTS:
        product = Product(category_id=category_ids[slug], **fields)
        product_ids[product.slug] = insert_product(product)
    logger.info("Seed completed: %d categories, %d products", len(category_ids), len(product_ids))
    return product_ids


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed()
