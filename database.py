"""
Database Helper Functions

MongoDB helper functions used by the storefront modules. Import the helpers
instead of touching the client directly so tests can swap the database.
"""

import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterator, Optional, Union

from bson.decimal128 import Decimal128
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.client_session import ClientSession
from pymongo.errors import PyMongoError

from errors import PersistenceError

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    client = MongoClient(database_url)
    db = client[database_name]

CENTS = Decimal("0.01")


# (client, supported) for the last client checked
_transaction_support: Optional[tuple] = None


def detect_transaction_support(mongo_client) -> bool:
    """Replica sets and sharded clusters run multi-document transactions, standalone servers don't."""
    try:
        hello = mongo_client.admin.command("hello")
    except PyMongoError as e:
        logger.warning("Could not determine transaction support, assuming none: %s", e)
        return False
    return "setName" in hello or hello.get("msg") == "isdbgrid"


def transactions_enabled() -> bool:
    """DATABASE_TRANSACTIONS overrides, otherwise ask the server once per client."""
    global _transaction_support
    override = os.getenv("DATABASE_TRANSACTIONS", "").strip().lower()
    if override in ("1", "true", "yes"):
        return True
    if override in ("0", "false", "no"):
        return False
    if client is None:
        return False
    if _transaction_support is None or _transaction_support[0] is not client:
        supported = detect_transaction_support(client)
        if not supported:
            logger.warning("MongoDB deployment has no transactions, checkout falls back to compensation")
        _transaction_support = (client, supported)
    return _transaction_support[1]


def collection(name: str):
    """Return a collection handle, failing loudly when the database is not configured."""
    if db is None:
        raise PersistenceError(
            "Database not available. Check DATABASE_URL and DATABASE_NAME environment variables."
        )
    return db[name]


# Helper functions for common database operations
def create_document(collection_name: str, data: Union[BaseModel, dict]):
    """Insert a single document with timestamps and return its id as a string"""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    now = datetime.now(timezone.utc)
    data_dict["created_at"] = now
    data_dict["updated_at"] = now

    result = collection(collection_name).insert_one(data_dict)
    return str(result.inserted_id)


def next_id(sequence: str) -> int:
    """Allocate the next integer id for a sequence (products, orders, ...)."""
    doc = collection("counter").find_one_and_update(
        {"_id": sequence},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(doc["seq"])


def reset_sequence(sequence: str, value: int = 0) -> None:
    collection("counter").update_one({"_id": sequence}, {"$set": {"seq": value}}, upsert=True)


@contextmanager
def transaction() -> Iterator[Optional[ClientSession]]:
    """Run a block inside a MongoDB transaction when the deployment supports it.

    Yields the session to pass to every write, or None when transactions are
    disabled (standalone servers). Callers must compensate their own writes
    in the None case.
    """
    if client is None or not transactions_enabled():
        yield None
        return
    with client.start_session() as session:
        with session.start_transaction():
            yield session


def ensure_indexes() -> None:
    """Create the unique indexes the storefront relies on."""
    collection("user").create_index([("email", ASCENDING)], unique=True)
    collection("session").create_index([("token", ASCENDING)], unique=True)
    collection("category").create_index([("slug", ASCENDING)], unique=True)
    collection("product").create_index([("slug", ASCENDING)], unique=True)
    collection("order").create_index([("user_id", ASCENDING), ("created_at", ASCENDING)])


# Money helpers. Prices live in MongoDB as Decimal128 and in Python as Decimal.

def to_decimal128(value: Union[Decimal, int, float, str]) -> Decimal128:
    return Decimal128(Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP))


def from_decimal128(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    if isinstance(value, Decimal128):
        value = value.to_decimal()
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def as_utc(value: datetime) -> datetime:
    """MongoDB hands back naive UTC datetimes; make them comparable with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
