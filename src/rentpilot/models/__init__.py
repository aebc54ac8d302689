"""Database models."""

from rentpilot.models.product import Product, ProductPricingTier
from rentpilot.models.reservation import Reservation, ReservationItem
from rentpilot.models.store import Store

__all__ = [
    "Product",
    "ProductPricingTier",
    "Reservation",
    "ReservationItem",
    "Store",
]
