"""Storefront views of a product's pricing: tier table, duration previews, badges."""

from __future__ import annotations

from dataclasses import dataclass, field

from rentpilot.modules.pricing.engine import ProductPricing, calculate_effective_price, calculate_rental_price
from rentpilot.modules.pricing.format import (
    format_currency,
    format_discount,
    format_duration,
    format_price_per_unit,
    format_tier_label,
    get_unit_label,
)
from rentpilot.modules.pricing.tiers import PricingMode, is_well_formed_tier, sort_tiers_by_duration, to_number

DEFAULT_PREVIEW_DURATIONS: dict[PricingMode, list[int]] = {
    PricingMode.HOUR: [1, 2, 4, 8, 24],
    PricingMode.DAY: [1, 3, 7, 14, 30],
    PricingMode.WEEK: [1, 2, 4, 8, 12],
}


@dataclass
class TierDisplay:
    min_duration: int
    label: str
    price: str
    discount: str


@dataclass
class PriceDisplayInfo:
    base_price: str
    has_tiers: bool
    tier_summary: str | None
    max_discount: float | None
    tiers: list[TierDisplay] = field(default_factory=list)


@dataclass
class DurationPreview:
    duration: int
    label: str
    price: float
    price_formatted: str
    savings: float
    savings_formatted: str
    discount_percent: float | None
    is_highlighted: bool


def get_price_display_info(pricing: ProductPricing) -> PriceDisplayInfo:
    tiers = sort_tiers_by_duration(t for t in pricing.tiers if is_well_formed_tier(t))
    mode = pricing.pricing_mode

    max_discount = None
    tier_summary = None
    if tiers:
        best = max(tiers, key=lambda t: to_number(t.discount_percent))
        max_discount = to_number(best.discount_percent)
        tier_summary = f"Up to {format_discount(max_discount)} from {format_tier_label(int(best.min_duration), mode)}"

    return PriceDisplayInfo(
        base_price=format_price_per_unit(pricing.base_price, mode),
        has_tiers=bool(tiers),
        tier_summary=tier_summary,
        max_discount=max_discount,
        tiers=[
            TierDisplay(
                min_duration=int(tier.min_duration),
                label=format_tier_label(int(tier.min_duration), mode),
                price=format_price_per_unit(calculate_effective_price(pricing.base_price, tier), mode),
                discount=format_discount(to_number(tier.discount_percent)),
            )
            for tier in tiers
        ],
    )


def generate_duration_previews(pricing: ProductPricing, durations: list[int] | None = None) -> list[DurationPreview]:
    """Single-unit price at a handful of durations, highlighting tier thresholds."""
    durations = durations if durations is not None else DEFAULT_PREVIEW_DURATIONS[pricing.pricing_mode]
    thresholds = {int(t.min_duration) for t in pricing.tiers if is_well_formed_tier(t)}

    previews = []
    for duration in durations:
        if duration <= 0:
            continue
        result = calculate_rental_price(pricing, duration, 1)
        previews.append(DurationPreview(
            duration=duration,
            label=format_duration(duration, pricing.pricing_mode),
            price=result.subtotal,
            price_formatted=format_currency(result.subtotal),
            savings=result.savings,
            savings_formatted=format_currency(result.savings) if result.savings > 0 else "-",
            discount_percent=result.discount_percent,
            is_highlighted=duration in thresholds,
        ))
    return previews


def format_tier_badge(pricing: ProductPricing) -> str | None:
    """Product card badge, 'Up to -30% from 3d'."""
    tiers = [t for t in pricing.tiers if is_well_formed_tier(t)]
    if not tiers:
        return None
    max_discount = max(to_number(t.discount_percent) for t in tiers)
    shortest = min(int(t.min_duration) for t in tiers)
    return f"Up to {format_discount(max_discount)} from {shortest}{get_unit_label(pricing.pricing_mode, 'short')}"
