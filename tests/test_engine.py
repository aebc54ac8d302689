"""Tests for the pure pricing functions."""

from datetime import datetime
from types import SimpleNamespace

import pytest

from rentpilot.modules.pricing.engine import (
    ProductPricing,
    apply_manual_override,
    calculate_duration,
    calculate_duration_minutes,
    calculate_effective_price,
    calculate_rental_price,
    clear_manual_override,
    compute_item_price,
    generate_pricing_breakdown,
    get_available_durations,
    snap_to_nearest_tier,
)
from rentpilot.modules.pricing.errors import InvalidRentalPeriodError, PricingError
from rentpilot.modules.pricing.tax import apply_tax
from rentpilot.modules.pricing.tiers import PricingMode, Tier

TIERS = [Tier(3, 10), Tier(7, 20), Tier(14, 30)]


def _product(price=100.0, tiers=None):
    return SimpleNamespace(price=price, pricing_tiers=list(TIERS if tiers is None else tiers))


def _item(product=None, quantity=1, unit_price=0.0, manual=False):
    return SimpleNamespace(
        product=product,
        quantity=quantity,
        unit_price=unit_price,
        total_price=0.0,
        is_manual_override=manual,
        original_price=None,
        tier_label=None,
        pricing_breakdown=None,
    )


# --- Durations ---


def test_day_boundary_is_exact():
    assert calculate_duration("2024-01-01T00:00", "2024-01-02T00:00", "day") == 1
    assert calculate_duration("2024-01-01T00:00", "2024-01-02T00:01", "day") == 2


def test_partial_day_rounds_up():
    # 23h59m is one started day
    assert calculate_duration(datetime(2024, 1, 1, 10), datetime(2024, 1, 2, 9, 59), PricingMode.DAY) == 1
    assert calculate_duration(datetime(2024, 1, 1, 10), datetime(2024, 1, 3, 10), PricingMode.DAY) == 2
    assert calculate_duration(datetime(2024, 1, 1, 10), datetime(2024, 1, 1, 10, 1), PricingMode.DAY) == 1


def test_hour_and_week_durations():
    assert calculate_duration(datetime(2024, 1, 1, 9), datetime(2024, 1, 1, 12, 30), "hour") == 4
    assert calculate_duration(datetime(2024, 1, 1), datetime(2024, 1, 15), "week") == 2
    assert calculate_duration(datetime(2024, 1, 1), datetime(2024, 1, 15, 0, 1), "week") == 3


def test_duration_requires_end_after_start():
    with pytest.raises(InvalidRentalPeriodError):
        calculate_duration(datetime(2024, 1, 2), datetime(2024, 1, 2), "day")
    with pytest.raises(InvalidRentalPeriodError):
        calculate_duration(datetime(2024, 1, 2), datetime(2024, 1, 1), "day")


def test_duration_minutes():
    assert calculate_duration_minutes("2024-01-01T10:00", "2024-01-01T11:30") == 90
    assert calculate_duration_minutes("2024-01-01T10:00:00", "2024-01-01T10:00:30") == 1


# --- Item pricing ---


def test_seven_day_tier_price():
    priced = compute_item_price(_item(_product(tiers=[Tier(7, 20)])), 7, "day")
    assert priced.unit_price == 80.0
    assert priced.total_price == 560.0
    assert priced.tier_label == "-20% (7+ d)"
    assert priced.discount_percent == 20


def test_item_without_qualifying_tier_uses_base_price():
    priced = compute_item_price(_item(_product(), quantity=2), 2, "day")
    assert priced.unit_price == 100.0
    assert priced.total_price == 400.0
    assert priced.tier_label is None


def test_manual_item_keeps_entered_price():
    priced = compute_item_price(_item(_product(), quantity=2, unit_price=42.5, manual=True), 10, "day")
    assert priced.unit_price == 42.5
    assert priced.total_price == 850.0
    assert priced.tier_label == "manual"


def test_custom_item_priced_from_unit_price():
    priced = compute_item_price(_item(None, quantity=3, unit_price=15.0), 4, "hour")
    assert priced.unit_price == 15.0
    assert priced.total_price == 180.0
    assert priced.tier_label is None


def test_fractional_effective_price_rounds_to_cents():
    priced = compute_item_price(_item(_product(price=9.99, tiers=[Tier(3, 15)])), 3, "day")
    # 9.99 * 0.85 = 8.4915
    assert priced.unit_price == 8.49
    assert priced.total_price == 25.47


def test_line_total_follows_rounded_unit_price():
    priced = compute_item_price(_item(_product(price=33.33, tiers=[Tier(3, 15)])), 100, "day")
    # 33.33 * 0.85 = 28.3305
    assert priced.unit_price == 28.33
    assert priced.total_price == 2833.0


# --- Rental price and breakdown ---


def test_calculate_rental_price():
    pricing = ProductPricing(base_price=100.0, pricing_mode=PricingMode.DAY, tiers=TIERS, deposit=50.0)
    result = calculate_rental_price(pricing, 10, 2)

    assert result.effective_price_per_unit == 80.0
    assert result.subtotal == 1600.0
    assert result.deposit == 100.0
    assert result.total == 1700.0
    assert result.original_subtotal == 2000.0
    assert result.savings == 400.0
    assert result.savings_percent == 20
    assert result.discount_percent == 20
    assert result.tier_applied.min_duration == 7


def test_calculate_rental_price_without_tier():
    pricing = ProductPricing(base_price=25.0, tiers=TIERS)
    result = calculate_rental_price(pricing, 1, 1)
    assert result.subtotal == 25.0
    assert result.tier_applied is None
    assert result.discount_percent is None
    assert result.savings == 0
    assert result.savings_percent == 0


def test_effective_price():
    assert calculate_effective_price(100.0, None) == 100.0
    assert calculate_effective_price(100.0, Tier(3, 25)) == 75.0


def test_breakdown_from_result():
    pricing = ProductPricing(base_price=100.0, tiers=TIERS)
    result = calculate_rental_price(pricing, 14, 1)
    breakdown = generate_pricing_breakdown(result, PricingMode.DAY)

    assert breakdown.base_price == 100.0
    assert breakdown.effective_price == 70.0
    assert breakdown.duration == 14
    assert breakdown.pricing_mode == "day"
    assert breakdown.discount_percent == 30
    assert breakdown.discount_amount == 420.0
    assert breakdown.tier_applied == "14+ days"
    assert breakdown.is_manual_override is False
    assert breakdown.tax_rate is None
    assert breakdown.to_dict()["tier_applied"] == "14+ days"


def test_breakdown_embeds_tax():
    pricing = ProductPricing(base_price=100.0)
    result = calculate_rental_price(pricing, 1, 1)
    tax = apply_tax(result.subtotal, result.deposit, 20.0, "exclusive")
    breakdown = generate_pricing_breakdown(result, "hour", tax)

    assert breakdown.pricing_mode == "hour"
    assert breakdown.tax_rate == 20.0
    assert breakdown.tax_amount == 20.0
    assert breakdown.subtotal_excl_tax == 100.0
    assert breakdown.subtotal_incl_tax == 120.0


# --- Manual overrides ---


def test_override_snapshots_original_price():
    product = _product(tiers=[Tier(7, 20)])
    item = _item(product, quantity=1, unit_price=80.0)

    apply_manual_override(item, 70.0, 7)
    assert item.is_manual_override is True
    assert item.original_price == 80.0
    assert item.unit_price == 70.0
    assert item.total_price == 490.0
    assert item.tier_label == "manual"
    assert item.pricing_breakdown["original_price"] == 80.0

    # A second manual edit keeps the first engine price
    apply_manual_override(item, 65.0, 7)
    assert item.original_price == 80.0
    assert item.unit_price == 65.0


def test_clearing_override_recomputes_from_current_catalog():
    product = _product(tiers=[Tier(7, 20)])
    item = _item(product, unit_price=80.0)
    apply_manual_override(item, 70.0, 7)

    # Catalog price changed while the override was active
    product.price = 120.0
    priced = clear_manual_override(item, 7, "day")

    assert item.is_manual_override is False
    assert item.original_price is None
    assert priced.unit_price == 96.0
    assert item.unit_price == 96.0
    assert item.total_price == 672.0
    assert item.tier_label == "-20% (7+ d)"


def test_negative_override_rejected():
    with pytest.raises(PricingError):
        apply_manual_override(_item(_product(), unit_price=100.0), -1.0, 1)


def test_custom_item_cannot_return_to_auto():
    item = _item(None, unit_price=10.0, manual=True)
    with pytest.raises(PricingError):
        clear_manual_override(item, 1, "day")


# --- Strict tiers ---


def test_available_durations():
    assert get_available_durations(TIERS, True) == [1, 3, 7, 14]
    assert get_available_durations(TIERS, False) is None
    assert get_available_durations([], True) is None


def test_snap_to_nearest_tier():
    available = [1, 3, 7, 14]
    assert snap_to_nearest_tier(1, available) == 1
    assert snap_to_nearest_tier(4, available) == 7
    assert snap_to_nearest_tier(7, available) == 7
    assert snap_to_nearest_tier(30, available) == 14


def test_product_pricing_from_product_falls_back_to_day():
    product = SimpleNamespace(
        price=10, pricing_mode="monthly", pricing_tiers=[], deposit=None, enforce_strict_tiers=None
    )
    pricing = ProductPricing.from_product(product)
    assert pricing.pricing_mode is PricingMode.DAY
    assert pricing.deposit == 0.0
    assert pricing.enforce_strict_tiers is False
