"""Check that backfilled rates price every duration the same as the legacy tiers did."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from rentpilot.models.product import Product
from rentpilot.modules.migration.backfill import has_legacy_fields, has_rate_fields
from rentpilot.modules.migration.storage import PricingRowReader, ScanFilters
from rentpilot.modules.pricing.engine import calculate_effective_price
from rentpilot.modules.pricing.rates import Rate, calculate_best_rate
from rentpilot.modules.pricing.tiers import (
    PERIOD_MINUTES,
    PricingMode,
    Tier,
    compute_tier_rate,
    round_currency,
    select_applicable_tier,
    to_number,
    to_pricing_mode,
)

logger = logging.getLogger(__name__)

# Longest duration compared, in base periods
PARITY_CAPS: dict[PricingMode, int] = {
    PricingMode.HOUR: 24 * 30,
    PricingMode.DAY: 365,
    PricingMode.WEEK: 52,
}


@dataclass
class ParityMismatch:
    product_id: str
    mode: str
    duration_units: int
    legacy_subtotal: float
    rate_subtotal: float
    diff: float


@dataclass
class ParityReport:
    threshold: float
    products_scanned: int = 0
    products_checked: int = 0
    products_skipped_base_period: int = 0
    products_skipped_non_legacy: int = 0
    max_diff: float = 0.0
    mismatches: list[ParityMismatch] = field(default_factory=list)

    @property
    def mismatched_products(self) -> int:
        return len({m.product_id for m in self.mismatches})


def legacy_subtotal(base_price: float, tiers: list[Tier], duration_units: int) -> float:
    tier = select_applicable_tier(tiers, duration_units)
    return round_currency(calculate_effective_price(base_price, tier) * duration_units)


def rate_subtotal(base_price: float, base_period_minutes: int, rates: list[Rate], duration_minutes: int) -> float:
    base_rate = Rate(period=base_period_minutes, price=base_price)
    return calculate_best_rate(duration_minutes, [base_rate, *rates]).total_cost


def is_legacy_equivalent(product: Product, base_price: float, mode_minutes: int) -> bool:
    """True when every tier carrying both representations agrees, and no tier is rate-only."""
    for tier in product.pricing_tiers:
        legacy = has_legacy_fields(tier)
        rate = has_rate_fields(tier)
        if rate and not legacy:
            return False
        if not (rate and legacy):
            continue
        expected_period, expected_price = compute_tier_rate(
            base_price, mode_minutes, int(tier.min_duration), to_number(tier.discount_percent)
        )
        if tier.period != expected_period or abs(to_number(tier.price) - expected_price) > 0.01:
            return False
    return True


def check_product_parity(product: Product, threshold: float, report: ParityReport) -> None:
    mode = to_pricing_mode(product.pricing_mode) or PricingMode.DAY
    mode_minutes = PERIOD_MINUTES[mode]
    base_period = product.base_period_minutes or mode_minutes
    if base_period != mode_minutes:
        report.products_skipped_base_period += 1
        return

    base_price = to_number(product.price)
    if not is_legacy_equivalent(product, base_price, mode_minutes):
        report.products_skipped_non_legacy += 1
        return

    legacy_tiers = [
        Tier(min_duration=int(t.min_duration), discount_percent=to_number(t.discount_percent),
             id=t.id, display_order=t.display_order or 0)
        for t in product.pricing_tiers
        if has_legacy_fields(t)
    ]
    rates = [
        Rate(period=t.period, price=to_number(t.price), id=t.id)
        for t in product.pricing_tiers
        if has_rate_fields(t)
    ]

    report.products_checked += 1
    for units in range(1, PARITY_CAPS[mode] + 1):
        legacy = legacy_subtotal(base_price, legacy_tiers, units)
        rate = rate_subtotal(base_price, base_period, rates, units * mode_minutes)
        diff = round_currency(abs(legacy - rate))
        report.max_diff = max(report.max_diff, diff)
        if diff > threshold:
            report.mismatches.append(ParityMismatch(
                product_id=product.id,
                mode=mode.value,
                duration_units=units,
                legacy_subtotal=legacy,
                rate_subtotal=rate,
                diff=diff,
            ))


def run_parity_report(reader: PricingRowReader, filters: ScanFilters, threshold: float = 0.01) -> ParityReport:
    report = ParityReport(threshold=threshold)
    for product in reader.fetch_products_with_tiers(filters):
        report.products_scanned += 1
        check_product_parity(product, threshold, report)
    return report
