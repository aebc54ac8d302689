"""Write rate fields (period, price) computed from legacy tiers onto the catalog."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from rentpilot.modules.migration.storage import PricingRowReader, ScanFilters
from rentpilot.modules.pricing.tiers import (
    compute_tier_rate,
    is_valid_discount,
    is_valid_min_duration,
    pricing_mode_to_minutes,
    to_number,
)

logger = logging.getLogger(__name__)


@dataclass
class BackfillReport:
    products_scanned: int = 0
    products_updated_base_period: int = 0
    products_skipped_invalid: int = 0
    tiers_scanned: int = 0
    tiers_updated: int = 0
    tiers_already_backfilled: int = 0
    tiers_skipped_missing_legacy_data: int = 0


def has_rate_fields(tier) -> bool:
    return isinstance(tier.period, int) and tier.period > 0 and tier.price is not None


def has_legacy_fields(tier) -> bool:
    return is_valid_min_duration(tier.min_duration) and is_valid_discount(tier.discount_percent)


def run_backfill(reader: PricingRowReader, filters: ScanFilters, apply: bool = False) -> BackfillReport:
    """Fill ``base_period_minutes`` and tier rates; only writes when ``apply`` is set.

    Products whose pricing mode or base price is invalid are skipped; run the
    fix-pricing-mode tool and the preflight scan first.
    """
    report = BackfillReport()

    for product in reader.fetch_products_with_tiers(filters):
        report.products_scanned += 1
        mode_minutes = pricing_mode_to_minutes(product.pricing_mode)
        base_price = to_number(product.price)
        if mode_minutes is None or not base_price >= 0:
            report.products_skipped_invalid += 1
            logger.warning(
                "[pricing-backfill] product skipped (invalid mode %r or price %r) product=%s",
                product.pricing_mode, product.price, product.id,
            )
            continue

        base_period = product.base_period_minutes or mode_minutes
        if not product.base_period_minutes:
            report.products_updated_base_period += 1
            if apply:
                product.base_period_minutes = base_period

        for tier in product.pricing_tiers:
            report.tiers_scanned += 1
            if has_rate_fields(tier):
                report.tiers_already_backfilled += 1
                continue
            if not has_legacy_fields(tier):
                report.tiers_skipped_missing_legacy_data += 1
                logger.warning(
                    "[pricing-backfill] tier skipped (missing legacy fields) product=%s tier=%s",
                    product.id, tier.id,
                )
                continue

            period, price = compute_tier_rate(
                base_price, base_period, int(tier.min_duration), to_number(tier.discount_percent)
            )
            report.tiers_updated += 1
            if apply:
                tier.period = period
                tier.price = price

    if apply:
        reader.commit()
    return report
