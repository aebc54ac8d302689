"""Tier-to-rate data migration: preflight scan, pricing-mode fix, backfill and parity check."""

from rentpilot.modules.migration.backfill import BackfillReport, run_backfill
from rentpilot.modules.migration.fix_pricing_mode import FixPricingModeOptions, run_fix_pricing_mode
from rentpilot.modules.migration.parity import ParityReport, run_parity_report
from rentpilot.modules.migration.preflight import (
    IssueCode,
    IssueSeverity,
    PreflightConfig,
    PreflightResult,
    ProductRow,
    TierRow,
    run_preflight,
)
from rentpilot.modules.migration.scan import run_preflight_scan
from rentpilot.modules.migration.storage import PricingRowReader, ScanFilters

__all__ = [
    "BackfillReport",
    "FixPricingModeOptions",
    "IssueCode",
    "IssueSeverity",
    "ParityReport",
    "PreflightConfig",
    "PreflightResult",
    "PricingRowReader",
    "ProductRow",
    "ScanFilters",
    "TierRow",
    "run_backfill",
    "run_fix_pricing_mode",
    "run_parity_report",
    "run_preflight",
    "run_preflight_scan",
]
