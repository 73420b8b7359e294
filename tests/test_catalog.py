"""Tests for catalog listing."""

from decimal import Decimal

import pytest
from bson.decimal128 import Decimal128

from catalog import build_product_filter, get_product, list_categories, list_products
from errors import NotFoundError


def test_categories_sorted_by_name(catalog):
    assert [c["slug"] for c in list_categories()] == ["books", "electronics", "fashion"]


def test_default_listing(catalog):
    page = list_products()
    assert page["total"] == 4
    assert page["page"] == 1
    assert page["pageSize"] == 8
    assert [p["slug"] for p in page["items"]] == [
        "wireless-headphones",
        "smartphone-case",
        "novel-the-journey",
        "t-shirt",
    ]
    first = page["items"][0]
    assert first["price"] == Decimal("99.99")
    assert first["stock"] == 50
    assert first["category"]["slug"] == "electronics"
    assert len(page["categories"]) == 3


def test_pagination(catalog):
    page = list_products(page=2, page_size=3)
    assert page["total"] == 4
    assert [p["slug"] for p in page["items"]] == ["t-shirt"]


def test_page_size_is_clamped(catalog):
    assert list_products(page_size=500)["pageSize"] == 50
    assert list_products(page=0)["page"] == 1


def test_filter_by_category(catalog):
    page = list_products(category="electronics")
    assert page["total"] == 2
    assert {p["slug"] for p in page["items"]} == {"wireless-headphones", "smartphone-case"}


def test_unknown_category_matches_nothing(catalog):
    page = list_products(category="garden")
    assert page["total"] == 0
    assert page["items"] == []


def test_search_is_case_insensitive(catalog):
    page = list_products(q="SHIRT")
    assert [p["slug"] for p in page["items"]] == ["t-shirt"]


def test_search_treats_input_literally(catalog):
    assert list_products(q="Novel: The")["total"] == 1
    assert list_products(q=".*")["total"] == 0


def test_sort_by_name(catalog):
    page = list_products(sort="name")
    assert [p["name"] for p in page["items"]] == [
        "Novel: The Journey",
        "Smartphone Case",
        "T-Shirt",
        "Wireless Headphones",
    ]


def test_newest_first(catalog):
    page = list_products(sort="newest")
    assert page["items"][0]["slug"] == "t-shirt"


def test_price_filter_query():
    where = build_product_filter(min_price=Decimal("10"), max_price=Decimal("20.5"))
    assert where == {"price": {"$gte": Decimal128("10.00"), "$lte": Decimal128("20.50")}}


def test_combined_filter_query():
    where = build_product_filter(category_id=3, q="a+b")
    assert where == {"category_id": 3, "name": {"$regex": r"a\+b", "$options": "i"}}


def test_get_product(catalog):
    product = get_product(catalog["t-shirt"])
    assert product["name"] == "T-Shirt"
    assert product["price"] == Decimal("15.00")
    assert product["category"]["slug"] == "fashion"


def test_get_missing_product(catalog):
    with pytest.raises(NotFoundError):
        get_product(999)
