"""Tiered rental pricing."""

from rentpilot.modules.pricing.engine import (
    ItemInput,
    PricingEngine,
    ProductPricing,
    calculate_duration,
    calculate_rental_price,
    compute_item_price,
    generate_pricing_breakdown,
)
from rentpilot.modules.pricing.errors import PricingError
from rentpilot.modules.pricing.tiers import PricingMode, select_applicable_tier

__all__ = [
    "ItemInput",
    "PricingEngine",
    "PricingError",
    "PricingMode",
    "ProductPricing",
    "calculate_duration",
    "calculate_rental_price",
    "compute_item_price",
    "generate_pricing_breakdown",
    "select_applicable_tier",
]
