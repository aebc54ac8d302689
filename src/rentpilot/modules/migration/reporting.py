"""Plain-text tables and report logging for the maintenance tools."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping

from rentpilot.modules.migration.preflight import PreflightResult

logger = logging.getLogger(__name__)

ISSUE_SAMPLE_SIZE = 30


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return f"{value:.2f}" if abs(value) >= 0.01 or value == 0 else f"{value:g}"
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def format_table(rows: Iterable[Mapping[str, Any]]) -> str:
    """Render dict rows as an aligned text table."""
    rows = list(rows)
    if not rows:
        return ""
    columns = list(rows[0].keys())
    cells = [[_cell(row.get(col)) for col in columns] for row in rows]
    widths = [max(len(col), *(len(r[i]) for r in cells)) for i, col in enumerate(columns)]
    lines = [
        "  ".join(col.ljust(widths[i]) for i, col in enumerate(columns)),
        "  ".join("-" * w for w in widths),
    ]
    lines.extend("  ".join(r[i].ljust(widths[i]) for i in range(len(columns))) for r in cells)
    return "\n".join(lines)


def format_counters(counters: Any) -> str:
    """Two-column table of a counters dataclass or mapping."""
    data = asdict(counters) if is_dataclass(counters) else dict(counters)
    return format_table({"counter": key, "value": value} for key, value in data.items())


def log_preflight_result(result: PreflightResult, preview_products: int, prefix: str = "[pricing-preflight]") -> None:
    report = result.report
    logger.info("%s checked products=%d tiers=%d", prefix, report.products_scanned, report.tiers_scanned)
    logger.info("%s report\n%s", prefix, format_counters(report))

    if result.issues:
        logger.info(
            "%s issue sample (first %d)\n%s",
            prefix,
            ISSUE_SAMPLE_SIZE,
            format_table(issue.to_dict() for issue in result.issues[:ISSUE_SAMPLE_SIZE]),
        )
    else:
        logger.info("%s no issues found", prefix)

    if not result.products:
        logger.info("%s no products matched selection", prefix)
        return

    shown = result.products[:preview_products]
    lines = [f"{prefix} preview of computed migration values (first {len(shown)} products)"]
    for preview in shown:
        base = f"{preview.base_price:.2f}" if preview.base_price == preview.base_price else "n/a"
        period = preview.base_period_minutes if preview.base_period_minutes is not None else "n/a"
        lines.append(
            f"- product={preview.product_id} store={preview.store_id} "
            f"mode={preview.pricing_mode} base={base} period={period}m"
        )
        for tier in preview.computed_tiers:
            lines.append(
                f"  tier={tier.tier_id} => {tier.price:.2f} / {tier.period}m "
                f"(legacy: min_duration={tier.min_duration}, discount={tier.discount_percent:g}%)"
            )
    logger.info("\n".join(lines))


def write_json_report(output_path: str | Path, payload: dict[str, Any]) -> Path:
    target = Path(output_path).resolve()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
    return target
