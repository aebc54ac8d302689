"""Tests for the pricing data maintenance tools against a database."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from rentpilot.events import EventType
from rentpilot.models.product import Product, ProductPricingTier
from rentpilot.models.store import Store
from rentpilot.modules.migration.backfill import run_backfill
from rentpilot.modules.migration.fix_pricing_mode import (
    FixPricingModeOptions,
    plan_pricing_mode_fixes,
    run_fix_pricing_mode,
)
from rentpilot.modules.migration.parity import run_parity_report
from rentpilot.modules.migration.preflight import IssueCode, PreflightConfig
from rentpilot.modules.migration.scan import run_preflight_scan
from rentpilot.modules.migration.storage import PricingRowReader, ProductModeRow, ScanFilters, chunked
from rentpilot.modules.pricing.tiers import PricingMode


def _add_product(session: Session, store: Store, name: str, mode="day", price=100.0, tiers=()) -> Product:
    product = Product(
        store_id=store.id,
        name=name,
        price=price,
        pricing_mode=mode,
        pricing_tiers=[
            ProductPricingTier(min_duration=m, discount_percent=d, display_order=i)
            for i, (m, d) in enumerate(tiers)
        ],
    )
    session.add(product)
    session.commit()
    return product


# --- Storage ---


def test_chunked():
    assert [list(c) for c in chunked([1, 2, 3, 4, 5], 2)] == [[1, 2], [3, 4], [5]]
    assert list(chunked([], 3)) == []


def test_reader_rejects_bad_chunk_size(db_session):
    with pytest.raises(ValueError):
        PricingRowReader(db_session, chunk_size=0)


def test_tiers_read_across_chunks(db_session, sample_store):
    products = [
        _add_product(db_session, sample_store, f"Item {i}", tiers=[(3, 10), (7, 20)]) for i in range(5)
    ]
    reader = PricingRowReader(db_session, chunk_size=2)

    rows = reader.fetch_tiers([p.id for p in products])
    assert len(rows) == 10
    assert {row.product_id for row in rows} == {p.id for p in products}


def test_product_filters(db_session, sample_store):
    other_store = Store(name="Other", slug="other", settings={})
    db_session.add(other_store)
    db_session.commit()
    first = _add_product(db_session, sample_store, "A")
    _add_product(db_session, sample_store, "B")
    _add_product(db_session, other_store, "C")
    reader = PricingRowReader(db_session)

    assert len(reader.fetch_products(ScanFilters())) == 3
    assert len(reader.fetch_products(ScanFilters(store_id=sample_store.id))) == 2
    assert [p.id for p in reader.fetch_products(ScanFilters(product_id=first.id))] == [first.id]
    assert len(reader.fetch_products(ScanFilters(limit=1))) == 1


def test_scan_against_database(db_session, sample_product):
    broken = _add_product(db_session, sample_product.store, "Broken", mode="monthly", tiers=[(2, 100)])
    result = run_preflight_scan(db_session, ScanFilters(), PreflightConfig(), chunk_size=1)

    assert result.report.products_scanned == 2
    assert result.report.tiers_scanned == 4
    assert result.report.products_ready == 1
    assert {i.product_id for i in result.issues} == {broken.id}
    assert {i.code for i in result.issues} == {
        IssueCode.INVALID_PRICING_MODE,
        IssueCode.INVALID_TIER_DISCOUNT_PERCENT,
    }


# --- Fix pricing mode ---


def test_plan_prefers_store_mode():
    rows = [
        ProductModeRow("p1", "s1", "day", "week"),
        ProductModeRow("p2", "s1", None, "week"),
        ProductModeRow("p3", "s2", "monthly", None),
        ProductModeRow("p4", "s2", "", "yearly"),
    ]
    result = plan_pricing_mode_fixes(rows, PricingMode.HOUR)
    report = result.report

    assert report.products_scanned == 4
    assert report.products_already_valid == 1
    assert report.products_fixable_from_store == 1
    assert report.products_fixable_from_default == 2
    assert [(c.product_id, c.resolved_pricing_mode, c.source) for c in result.candidates] == [
        ("p2", PricingMode.WEEK, "store"),
        ("p3", PricingMode.HOUR, "default"),
        ("p4", PricingMode.HOUR, "default"),
    ]
    assert result.candidates[0].to_dict()["resolved_pricing_mode"] == "week"


def test_dry_run_writes_nothing(db_session, sample_store):
    product = _add_product(db_session, sample_store, "Legacy", mode=None)
    result = run_fix_pricing_mode(PricingRowReader(db_session), FixPricingModeOptions())

    assert len(result.candidates) == 1
    assert result.report.products_updated == 0
    db_session.refresh(product)
    assert product.pricing_mode is None


def test_apply_is_idempotent(db_session, sample_store):
    invalid = _add_product(db_session, sample_store, "Legacy", mode="monthly")
    _add_product(db_session, sample_store, "Valid", mode="hour")
    options = FixPricingModeOptions(apply=True)

    first = run_fix_pricing_mode(PricingRowReader(db_session), options)
    assert first.report.products_updated == 1
    assert first.report.products_fixable_from_store == 1
    db_session.refresh(invalid)
    assert invalid.pricing_mode == "day"

    second = run_fix_pricing_mode(PricingRowReader(db_session), options)
    assert second.report.products_updated == 0
    assert second.report.products_already_valid == 2
    assert second.candidates == []


def test_apply_continues_after_failed_update():
    reader = MagicMock()
    reader.fetch_product_modes.return_value = [
        ProductModeRow("p1", "s1", None, "day"),
        ProductModeRow("p2", "s1", None, "day"),
    ]
    reader.update_pricing_mode.side_effect = [OperationalError("UPDATE", {}, Exception("locked")), None]

    result = run_fix_pricing_mode(reader, FixPricingModeOptions(apply=True))

    assert result.report.products_failed == 1
    assert result.report.products_updated == 1
    reader.rollback.assert_called_once()


def test_apply_publishes_event(db_session, sample_store, monkeypatch, event_bus):
    monkeypatch.setattr("rentpilot.modules.migration.fix_pricing_mode.event_bus", event_bus)
    received = []
    event_bus.subscribe(EventType.PRICING_MODE_FIXED, received.append)
    _add_product(db_session, sample_store, "Legacy", mode="?")

    run_fix_pricing_mode(PricingRowReader(db_session), FixPricingModeOptions(apply=True))

    assert len(received) == 1
    assert received[0].data["products_updated"] == 1


# --- Backfill ---


def test_backfill_dry_run(db_session, sample_product):
    report = run_backfill(PricingRowReader(db_session), ScanFilters())

    assert report.products_scanned == 1
    assert report.products_updated_base_period == 1
    assert report.tiers_updated == 3
    db_session.expire_all()
    assert sample_product.base_period_minutes is None
    assert all(t.period is None for t in sample_product.pricing_tiers)


def test_backfill_apply_writes_rates(db_session, sample_product):
    report = run_backfill(PricingRowReader(db_session), ScanFilters(), apply=True)
    assert report.tiers_updated == 3

    db_session.expire_all()
    assert sample_product.base_period_minutes == 1440
    rates = sorted((t.period, t.price) for t in sample_product.pricing_tiers)
    assert rates == [(4320, 270.0), (10080, 560.0), (20160, 980.0)]

    again = run_backfill(PricingRowReader(db_session), ScanFilters(), apply=True)
    assert again.tiers_updated == 0
    assert again.tiers_already_backfilled == 3
    assert again.products_updated_base_period == 0


def test_backfill_skips_invalid_rows(db_session, sample_store):
    _add_product(db_session, sample_store, "No mode", mode=None, tiers=[(3, 10)])
    _add_product(db_session, sample_store, "Half tier", tiers=[(3, None)])

    report = run_backfill(PricingRowReader(db_session), ScanFilters(), apply=True)

    assert report.products_skipped_invalid == 1
    assert report.tiers_skipped_missing_legacy_data == 1
    assert report.tiers_updated == 0


# --- Parity ---


def test_parity_after_backfill(db_session, sample_product):
    run_backfill(PricingRowReader(db_session), ScanFilters(), apply=True)
    report = run_parity_report(PricingRowReader(db_session), ScanFilters(), threshold=0.01)

    assert report.products_checked == 1
    mismatched_units = {m.duration_units for m in report.mismatches}
    # Tier thresholds price identically
    assert not mismatched_units & {1, 2, 3, 7, 14}
    # 8 days: legacy 8 x 80 = 640, cheapest rate cover is week + day = 660
    eight = next(m for m in report.mismatches if m.duration_units == 8)
    assert eight.legacy_subtotal == 640.0
    assert eight.rate_subtotal == 660.0
    assert eight.product_id == sample_product.id
    assert report.max_diff >= eight.diff


def test_parity_without_tiers_matches(db_session, sample_store):
    product = _add_product(db_session, sample_store, "Plain", mode="week", price=300.0)
    product.base_period_minutes = 10080
    db_session.commit()

    report = run_parity_report(PricingRowReader(db_session), ScanFilters(), threshold=0.01)
    assert report.products_checked == 1
    assert report.mismatches == []
    assert report.max_diff == 0


def test_parity_skips_custom_base_period(db_session, sample_store):
    product = _add_product(db_session, sample_store, "Odd", mode="day")
    product.base_period_minutes = 720
    db_session.commit()

    report = run_parity_report(PricingRowReader(db_session), ScanFilters())
    assert report.products_skipped_base_period == 1
    assert report.products_checked == 0
