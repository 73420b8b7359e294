"""
Database Schemas for the Storefront

Each Pydantic model represents a collection in MongoDB. The collection name is the
lowercase of the class name (e.g., User -> "user"). OrderItem is embedded in
Order documents rather than stored on its own.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    email: EmailStr = Field(..., description="Email address, unique")
    name: Optional[str] = Field(None, description="Display name")
    password_hash: str = Field(..., description="Hashed password")


class Session(BaseModel):
    """
    Sessions collection schema
    Collection name: "session"
    """
    token: str = Field(..., description="Opaque bearer token, unique")
    user_id: str = Field(..., description="Owning user id")
    expires_at: datetime = Field(..., description="UTC expiry")


class Category(BaseModel):
    """
    Categories collection schema
    Collection name: "category"
    """
    name: str
    slug: str = Field(..., description="Unique URL slug")


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    name: str = Field(..., description="Product name")
    slug: str = Field(..., description="Unique URL slug")
    description: Optional[str] = Field(None, description="Product description")
    price: Decimal = Field(..., ge=0, decimal_places=2, description="Unit price")
    image_url: Optional[str] = Field(None, description="Image reference")
    stock: int = Field(0, ge=0, description="Units on hand")
    category_id: int = Field(..., description="Category reference")


class OrderItem(BaseModel):
    product_id: int
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0, description="Price charged, captured at purchase")


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    user_id: Optional[str] = Field(None, description="Owner, null for guest checkout")
    email: EmailStr
    full_name: str
    address: str
    city: str
    country: str
    postal_code: str
    items: List[OrderItem]
    total: Decimal = Field(..., ge=0, description="Sum of quantity x unit_price")
