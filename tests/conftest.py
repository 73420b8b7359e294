"""Pytest fixtures for storefront tests."""

from decimal import Decimal

import mongomock
import pytest
from fastapi.testclient import TestClient

import database


@pytest.fixture
def mongo(monkeypatch):
    """Point the database helpers at a fresh in-memory MongoDB."""
    client = mongomock.MongoClient()
    monkeypatch.setattr(database, "client", client)
    monkeypatch.setattr(database, "db", client["storefront_test"])
    # mongomock has no sessions; checkout runs the compensating path
    monkeypatch.setenv("DATABASE_TRANSACTIONS", "0")
    monkeypatch.delenv("APP_ENV", raising=False)
    database.ensure_indexes()
    yield database.db


@pytest.fixture
def catalog(mongo):
    """Seed the demo catalog. Returns product slug -> product id."""
    from seed import seed

    return seed()


@pytest.fixture
def add_product(mongo):
    """Factory for products with a chosen price and stock."""
    from schemas import Category, Product
    from seed import insert_category, insert_product

    category_id = insert_category(Category(name="Test", slug="test"))
    counter = {"n": 0}

    def _add(price="10.00", stock=2, name=None):
        counter["n"] += 1
        name = name or f"Product {counter['n']}"
        return insert_product(Product(
            name=name,
            slug=f"test-product-{counter['n']}",
            price=Decimal(price),
            stock=stock,
            category_id=category_id,
        ))

    return _add


@pytest.fixture
def api_client(mongo):
    from main import app

    return TestClient(app)


def shipping(**overrides):
    """A valid shipping block for checkout payloads."""
    data = {
        "fullName": "Ada Lovelace",
        "address": "12 Analytical Way",
        "city": "London",
        "country": "UK",
        "postalCode": "N1 9GU",
        "email": "ada@example.com",
    }
    data.update(overrides)
    return data


def checkout(items, **overrides):
    payload = shipping(**overrides)
    payload["items"] = [{"productId": pid, "quantity": qty} for pid, qty in items]
    return payload


def stock_of(mongo, product_id):
    return mongo["product"].find_one({"_id": product_id})["stock"]
