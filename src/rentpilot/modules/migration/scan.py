"""Wire the preflight core to the database and the pricing settings."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from rentpilot.config import get_section
from rentpilot.modules.migration.preflight import PreflightConfig, PreflightResult, run_preflight
from rentpilot.modules.migration.storage import DEFAULT_CHUNK_SIZE, PricingRowReader, ScanFilters

logger = logging.getLogger(__name__)


def pricing_settings() -> dict[str, Any]:
    return get_section("pricing")


def preflight_config_from_settings() -> PreflightConfig:
    return PreflightConfig(rate_tolerance=float(pricing_settings().get("rate_tolerance", 1e-8)))


def tier_chunk_size_from_settings() -> int:
    return int(pricing_settings().get("tier_chunk_size", DEFAULT_CHUNK_SIZE))


def run_preflight_scan(
    session: Session,
    filters: ScanFilters,
    config: PreflightConfig,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> PreflightResult:
    """One bulk product read, chunked tier reads, then the in-memory scan."""
    reader = PricingRowReader(session, chunk_size=chunk_size)
    products = reader.fetch_products(filters)
    tiers = reader.fetch_tiers([product.id for product in products])
    logger.info("Loaded %d products and %d tiers for preflight", len(products), len(tiers))
    return run_preflight(products, tiers, config)
