"""Backfill missing or invalid product pricing modes from the owning store."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError

from rentpilot.events import Event, EventType, event_bus
from rentpilot.modules.migration.storage import PricingRowReader, ProductModeRow, ScanFilters
from rentpilot.modules.pricing.tiers import PricingMode, to_pricing_mode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FixPricingModeOptions:
    apply: bool = False
    fallback_pricing_mode: PricingMode = PricingMode.DAY
    filters: ScanFilters = field(default_factory=ScanFilters)


@dataclass
class FixReport:
    products_scanned: int = 0
    products_already_valid: int = 0
    products_fixable_from_store: int = 0
    products_fixable_from_default: int = 0
    products_updated: int = 0
    products_failed: int = 0


@dataclass
class FixCandidate:
    product_id: str
    current_pricing_mode: str | None
    resolved_pricing_mode: PricingMode
    source: str  # store, default

    def to_dict(self) -> dict:
        data = asdict(self)
        data["resolved_pricing_mode"] = self.resolved_pricing_mode.value
        return data


@dataclass
class FixResult:
    report: FixReport
    candidates: list[FixCandidate] = field(default_factory=list)


def plan_pricing_mode_fixes(
    rows: Iterable[ProductModeRow], fallback_pricing_mode: PricingMode = PricingMode.DAY
) -> FixResult:
    """Work out the pricing mode every invalid product should get. Touches nothing."""
    result = FixResult(report=FixReport())
    report = result.report

    for row in rows:
        report.products_scanned += 1
        if to_pricing_mode(row.current_pricing_mode):
            report.products_already_valid += 1
            continue

        store_mode = to_pricing_mode(row.store_pricing_mode)
        if store_mode:
            report.products_fixable_from_store += 1
        else:
            report.products_fixable_from_default += 1

        result.candidates.append(FixCandidate(
            product_id=row.product_id,
            current_pricing_mode=row.current_pricing_mode,
            resolved_pricing_mode=store_mode or fallback_pricing_mode,
            source="store" if store_mode else "default",
        ))

    return result


def run_fix_pricing_mode(reader: PricingRowReader, options: FixPricingModeOptions) -> FixResult:
    """Plan and, in apply mode, write the pricing-mode fixes one product at a time.

    A failed update is rolled back and counted in ``products_failed``; the
    remaining products are still processed. Re-running is safe since fixed
    products scan as already valid.
    """
    rows = reader.fetch_product_modes(options.filters)
    result = plan_pricing_mode_fixes(rows, options.fallback_pricing_mode)

    if not options.apply:
        return result

    for candidate in result.candidates:
        try:
            reader.update_pricing_mode(candidate.product_id, candidate.resolved_pricing_mode.value)
        except SQLAlchemyError:
            reader.rollback()
            result.report.products_failed += 1
            logger.exception("Failed to update pricing_mode for product %s", candidate.product_id)
            continue
        result.report.products_updated += 1

    if result.report.products_updated:
        event_bus.publish(Event(
            event_type=EventType.PRICING_MODE_FIXED,
            data={"products_updated": result.report.products_updated},
        ))
    return result
