"""Inventory reservation models"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ReservationStatus(str, Enum):
    ACTIVE = "active"
    RELEASED = "released"


class StockShortage(BaseModel):
    """A product that could not cover the requested count"""
    product_id: str
    requested: int
    available: int


class ReservedItem(BaseModel):
    """Quantity taken from one product by a reservation"""
    product_id: str
    count: int

    class Config:
        frozen = True


class Reservation(BaseModel):
    """Record of a successful decrement, used to drive a compensating release"""
    reservation_id: str
    items: tuple[ReservedItem, ...]
    # Products whose stock has already gone back to the catalog
    restored: list[str] = []
    status: ReservationStatus = ReservationStatus.ACTIVE
    created_at: datetime
    released_at: Optional[datetime] = None
