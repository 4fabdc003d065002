"""Product models for the checkout service"""

from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum


class ProductCategory(str, Enum):
    ELECTRONICS = "electronics"
    CLOTHING = "clothing"
    HOME = "home"
    SPORTS = "sports"
    BOOKS = "books"


class Product(BaseModel):
    """Catalog read projection of a product"""
    id: str
    title: str
    brand: str
    description: str = ""
    price: float = Field(gt=0)
    currency: str = "USD"
    category: ProductCategory
    image_url: Optional[str] = None
    in_stock: bool = True
    quantity: int = Field(ge=0, default=100)
    sold: int = Field(ge=0, default=0)

    class Config:
        from_attributes = True


class ProductListResponse(BaseModel):
    """Response from product listing"""
    products: list[Product]
    total: int
    limit: int
    offset: int
