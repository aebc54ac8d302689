"""Command-line entry points for the pricing maintenance tools.

Each ``*_main`` returns the process exit code so console scripts and tests can
call it directly.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError

from rentpilot.database import get_session
from rentpilot.modules.migration.backfill import run_backfill
from rentpilot.modules.migration.fix_pricing_mode import FixPricingModeOptions, run_fix_pricing_mode
from rentpilot.modules.migration.parity import run_parity_report
from rentpilot.modules.migration.reporting import (
    format_counters,
    format_table,
    log_preflight_result,
    write_json_report,
)
from rentpilot.modules.migration.scan import (
    preflight_config_from_settings,
    pricing_settings,
    run_preflight_scan,
    tier_chunk_size_from_settings,
)
from rentpilot.modules.migration.storage import PricingRowReader, ScanFilters
from rentpilot.modules.pricing.tiers import PricingMode, to_pricing_mode

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 30


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _positive_int(raw: str | None, flag: str) -> int | None:
    """Parse a count flag; invalid or non-positive values are ignored."""
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value > 0:
        return value
    logger.warning("Ignoring invalid %s value %r", flag, raw)
    return None


def _positive_float(raw: str | None, flag: str) -> float | None:
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        value = -1.0
    if value >= 0:
        return value
    logger.warning("Ignoring invalid %s value %r", flag, raw)
    return None


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--store-id", help="Only scan products of this store")
    parser.add_argument("--product-id", help="Only scan this product")
    parser.add_argument("--limit", metavar="N", help="Scan at most N products")


def _add_mode_arguments(parser: argparse.ArgumentParser) -> None:
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--apply", action="store_true", help="Write the changes")
    mode.add_argument("--dry-run", action="store_true", help="Report only (default)")


def _parse(parser: argparse.ArgumentParser, argv: Sequence[str] | None) -> argparse.Namespace:
    args, unknown = parser.parse_known_args(argv)
    for arg in unknown:
        if arg != "--":
            logger.warning("Unknown argument ignored: %s", arg)
    return args


def _filters(args: argparse.Namespace) -> ScanFilters:
    return ScanFilters(
        store_id=args.store_id,
        product_id=args.product_id,
        limit=_positive_int(args.limit, "--limit"),
    )


def build_preflight_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rentpilot-preflight",
        description="Recompute legacy pricing tiers into rates and report blockers and warnings.",
    )
    _add_filter_arguments(parser)
    parser.add_argument("--preview-products", metavar="N", help="Products to show in the preview (default 10)")
    parser.add_argument("--output-json", metavar="PATH", help="Write the full report as JSON")
    parser.add_argument("--fail-on-blockers", action="store_true", help="Exit 1 when any blocker is found")
    return parser


def preflight_main(argv: Sequence[str] | None = None) -> int:
    _configure_logging()
    args = _parse(build_preflight_parser(), argv)
    filters = _filters(args)
    preview_products = _positive_int(args.preview_products, "--preview-products") or int(
        pricing_settings().get("preview_products", 10)
    )

    session = get_session()
    try:
        result = run_preflight_scan(
            session,
            filters,
            preflight_config_from_settings(),
            chunk_size=tier_chunk_size_from_settings(),
        )
        log_preflight_result(result, preview_products)

        if args.output_json:
            payload = {
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "options": {
                    **asdict(filters),
                    "preview_products": preview_products,
                    "fail_on_blockers": args.fail_on_blockers,
                },
                **result.to_dict(),
            }
            target = write_json_report(args.output_json, payload)
            logger.info("[pricing-preflight] wrote report to %s", target)
    except (SQLAlchemyError, OSError):
        logger.exception("[pricing-preflight] failed")
        return 1
    finally:
        session.close()

    if args.fail_on_blockers and result.has_blockers:
        return 1
    return 0


def build_fix_pricing_mode_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rentpilot-fix-pricing-mode",
        description="Backfill invalid product pricing modes from the store default.",
    )
    _add_mode_arguments(parser)
    _add_filter_arguments(parser)
    return parser


def fix_pricing_mode_main(argv: Sequence[str] | None = None) -> int:
    _configure_logging()
    args = _parse(build_fix_pricing_mode_parser(), argv)
    fallback = to_pricing_mode(pricing_settings().get("default_pricing_mode")) or PricingMode.DAY
    options = FixPricingModeOptions(apply=args.apply, fallback_pricing_mode=fallback, filters=_filters(args))

    session = get_session()
    try:
        result = run_fix_pricing_mode(PricingRowReader(session), options)
    except SQLAlchemyError:
        logger.exception("[pricing-fix-pricing-mode] failed")
        return 1
    finally:
        session.close()

    report = result.report
    logger.info(
        "[pricing-fix-pricing-mode] mode=%s products=%d",
        "apply" if options.apply else "dry-run",
        report.products_scanned,
    )
    logger.info("[pricing-fix-pricing-mode] report\n%s", format_counters(report))
    if result.candidates:
        logger.info(
            "[pricing-fix-pricing-mode] update sample (first %d)\n%s",
            SAMPLE_SIZE,
            format_table(c.to_dict() for c in result.candidates[:SAMPLE_SIZE]),
        )
    else:
        logger.info("[pricing-fix-pricing-mode] no updates needed")

    return 1 if report.products_failed else 0


def build_backfill_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rentpilot-backfill",
        description="Write computed rate periods and prices onto legacy pricing tiers.",
    )
    _add_mode_arguments(parser)
    _add_filter_arguments(parser)
    return parser


def backfill_main(argv: Sequence[str] | None = None) -> int:
    _configure_logging()
    args = _parse(build_backfill_parser(), argv)

    session = get_session()
    try:
        logger.info("[pricing-backfill] mode=%s", "apply" if args.apply else "dry-run")
        report = run_backfill(PricingRowReader(session), _filters(args), apply=args.apply)
    except SQLAlchemyError:
        logger.exception("[pricing-backfill] failed")
        return 1
    finally:
        session.close()

    logger.info("[pricing-backfill] done\n%s", format_counters(report))
    return 0


def build_parity_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rentpilot-parity",
        description="Compare legacy tier pricing with rate-based pricing over every duration.",
    )
    _add_filter_arguments(parser)
    parser.add_argument("--threshold", help="Allowed subtotal difference (default 0.01)")
    parser.add_argument("--no-fail", action="store_true", help="Exit 0 even when mismatches are found")
    return parser


def parity_main(argv: Sequence[str] | None = None) -> int:
    _configure_logging()
    args = _parse(build_parity_parser(), argv)
    threshold = _positive_float(args.threshold, "--threshold")
    if threshold is None:
        threshold = float(pricing_settings().get("parity_threshold", 0.01))

    session = get_session()
    try:
        report = run_parity_report(PricingRowReader(session), _filters(args), threshold)
    except SQLAlchemyError:
        logger.exception("[pricing-parity] failed")
        return 1
    finally:
        session.close()

    summary = {
        "products_scanned": report.products_scanned,
        "products_checked": report.products_checked,
        "products_skipped_base_period": report.products_skipped_base_period,
        "products_skipped_non_legacy": report.products_skipped_non_legacy,
        "mismatched_products": report.mismatched_products,
        "mismatched_points": len(report.mismatches),
        "threshold": report.threshold,
        "max_diff": report.max_diff,
    }
    logger.info("[pricing-parity] threshold=%s\n%s", threshold, format_counters(summary))
    if report.mismatches:
        logger.info(
            "[pricing-parity] mismatch sample (first 20)\n%s",
            format_table(asdict(m) for m in report.mismatches[:20]),
        )
    else:
        logger.info("[pricing-parity] no mismatches above threshold")

    if report.mismatches and not args.no_fail:
        return 1
    return 0
