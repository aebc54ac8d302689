"""Preflight scan of legacy discount tiers before the switch to rate-based pricing.

Every legacy tier ("N+ periods at X% off") is recomputed into the rate form
(period in minutes, absolute price) and each product is classified: blockers
must be fixed before the migration, warnings are economically suspicious data
surfaced for review. Problems are collected, never raised.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Iterable

from rentpilot.modules.pricing.tiers import (
    compute_tier_rate,
    is_valid_min_duration,
    pricing_mode_to_minutes,
    to_number,
    to_pricing_mode,
)

logger = logging.getLogger(__name__)


class IssueSeverity(str, Enum):
    WARNING = "warning"
    BLOCKER = "blocker"


class IssueCode(str, Enum):
    INVALID_PRICING_MODE = "invalid_pricing_mode"
    INVALID_BASE_PRICE = "invalid_base_price"
    MISSING_TIER_LEGACY_FIELDS = "missing_tier_legacy_fields"
    INVALID_TIER_MIN_DURATION = "invalid_tier_min_duration"
    INVALID_TIER_DISCOUNT_PERCENT = "invalid_tier_discount_percent"
    DUPLICATE_COMPUTED_PERIOD = "duplicate_computed_period"
    TIER_MORE_EXPENSIVE_THAN_BASE = "tier_more_expensive_than_base"
    NON_PROGRESSIVE_RATE = "non_progressive_rate"


@dataclass
class ProductRow:
    id: str
    store_id: str
    pricing_mode: Any
    price: Any


@dataclass
class TierRow:
    id: str
    product_id: str
    min_duration: Any
    discount_percent: Any
    display_order: Any = 0


@dataclass
class Issue:
    severity: IssueSeverity
    code: IssueCode
    product_id: str
    message: str
    tier_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "code": self.code.value,
            "product_id": self.product_id,
            "tier_id": self.tier_id,
            "message": self.message,
        }


@dataclass
class ComputedTier:
    tier_id: str
    min_duration: int
    discount_percent: float
    display_order: int
    period: int
    price: float

    @property
    def price_per_minute(self) -> float:
        return self.price / self.period


@dataclass
class ProductPreview:
    product_id: str
    store_id: str
    pricing_mode: str
    base_price: float
    base_period_minutes: int | None
    computed_tiers: list[ComputedTier] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if not math.isfinite(self.base_price):
            data["base_price"] = None
        return data


@dataclass
class PreflightReport:
    products_scanned: int = 0
    products_ready: int = 0
    products_with_warnings: int = 0
    products_with_blockers: int = 0
    tiers_scanned: int = 0
    tiers_computed: int = 0
    tiers_skipped: int = 0
    warning_count: int = 0
    blocker_count: int = 0


@dataclass(frozen=True)
class PreflightConfig:
    rate_tolerance: float = 1e-8


@dataclass
class PreflightResult:
    report: PreflightReport = field(default_factory=PreflightReport)
    issues: list[Issue] = field(default_factory=list)
    products: list[ProductPreview] = field(default_factory=list)

    @property
    def has_blockers(self) -> bool:
        return self.report.blocker_count > 0

    def add_issue(self, issue: Issue) -> None:
        self.issues.append(issue)
        if issue.severity is IssueSeverity.BLOCKER:
            self.report.blocker_count += 1
        else:
            self.report.warning_count += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "report": asdict(self.report),
            "issues": [issue.to_dict() for issue in self.issues],
            "products": [preview.to_dict() for preview in self.products],
        }


def group_tiers_by_product(tiers: Iterable[TierRow]) -> dict[str, list[TierRow]]:
    grouped: dict[str, list[TierRow]] = defaultdict(list)
    for tier in tiers:
        grouped[tier.product_id].append(tier)
    return grouped


def run_preflight(
    products: Iterable[ProductRow],
    tiers: Iterable[TierRow],
    config: PreflightConfig | None = None,
) -> PreflightResult:
    """Scan products and their legacy tiers, returning counters, issues and previews."""
    config = config or PreflightConfig()
    tiers_by_product = group_tiers_by_product(tiers)
    result = PreflightResult()

    for product in products:
        _check_product(product, tiers_by_product.get(product.id, []), result, config)

    logger.debug(
        "Preflight scanned %d products, %d blockers, %d warnings",
        result.report.products_scanned,
        result.report.blocker_count,
        result.report.warning_count,
    )
    return result


def _check_product(
    product: ProductRow,
    product_tiers: list[TierRow],
    result: PreflightResult,
    config: PreflightConfig,
) -> None:
    report = result.report
    report.products_scanned += 1
    report.tiers_scanned += len(product_tiers)
    issues_at_start = len(result.issues)

    pricing_mode = to_pricing_mode(product.pricing_mode)
    base_period_minutes = pricing_mode_to_minutes(pricing_mode) if pricing_mode else None
    base_price = to_number(product.price)
    base_price_valid = math.isfinite(base_price) and base_price >= 0

    if base_period_minutes is None:
        result.add_issue(Issue(
            severity=IssueSeverity.BLOCKER,
            code=IssueCode.INVALID_PRICING_MODE,
            product_id=product.id,
            message=f'Unknown pricing_mode "{product.pricing_mode}"',
        ))

    if not base_price_valid:
        result.add_issue(Issue(
            severity=IssueSeverity.BLOCKER,
            code=IssueCode.INVALID_BASE_PRICE,
            product_id=product.id,
            message=f'Invalid base price "{product.price}"',
        ))

    computed: list[ComputedTier] = []
    for tier in product_tiers:
        computed_tier = _compute_tier(product, tier, base_price, base_price_valid, base_period_minutes, result)
        if computed_tier is None:
            report.tiers_skipped += 1
            continue
        report.tiers_computed += 1
        computed.append(computed_tier)

    by_period: dict[int, list[str]] = defaultdict(list)
    for computed_tier in computed:
        by_period[computed_tier.period].append(computed_tier.tier_id)
    for period, tier_ids in by_period.items():
        if len(tier_ids) < 2:
            continue
        result.add_issue(Issue(
            severity=IssueSeverity.BLOCKER,
            code=IssueCode.DUPLICATE_COMPUTED_PERIOD,
            product_id=product.id,
            message=f"Multiple tiers compute to period={period}m: {', '.join(tier_ids)}",
        ))

    sorted_by_period = sorted(computed, key=lambda t: t.period)
    if base_price_valid and base_price > 0 and base_period_minutes and sorted_by_period:
        _check_rates(product, base_price, base_period_minutes, sorted_by_period, result, config)

    product_issues = result.issues[issues_at_start:]
    if any(issue.severity is IssueSeverity.BLOCKER for issue in product_issues):
        report.products_with_blockers += 1
    else:
        report.products_ready += 1
    if any(issue.severity is IssueSeverity.WARNING for issue in product_issues):
        report.products_with_warnings += 1

    result.products.append(ProductPreview(
        product_id=product.id,
        store_id=product.store_id,
        pricing_mode=pricing_mode.value if pricing_mode else str(product.pricing_mode),
        base_price=base_price,
        base_period_minutes=base_period_minutes,
        computed_tiers=sorted_by_period,
    ))


def _compute_tier(
    product: ProductRow,
    tier: TierRow,
    base_price: float,
    base_price_valid: bool,
    base_period_minutes: int | None,
    result: PreflightResult,
) -> ComputedTier | None:
    """Return the tier in rate form, or None (after recording why) when it cannot be computed."""
    if not is_valid_min_duration(tier.min_duration):
        result.add_issue(Issue(
            severity=IssueSeverity.BLOCKER,
            code=IssueCode.INVALID_TIER_MIN_DURATION,
            product_id=product.id,
            tier_id=tier.id,
            message=f'Invalid min_duration "{tier.min_duration}"',
        ))
        return None

    if tier.discount_percent is None:
        result.add_issue(Issue(
            severity=IssueSeverity.BLOCKER,
            code=IssueCode.MISSING_TIER_LEGACY_FIELDS,
            product_id=product.id,
            tier_id=tier.id,
            message="discount_percent is required to compute migrated tier price",
        ))
        return None

    discount = to_number(tier.discount_percent)
    if not math.isfinite(discount) or discount < 0 or discount >= 100:
        result.add_issue(Issue(
            severity=IssueSeverity.BLOCKER,
            code=IssueCode.INVALID_TIER_DISCOUNT_PERCENT,
            product_id=product.id,
            tier_id=tier.id,
            message=f'Invalid discount_percent "{tier.discount_percent}"',
        ))
        return None

    # Product-level problem already reported
    if not base_price_valid or not base_period_minutes:
        return None

    min_duration = int(tier.min_duration)
    period, price = compute_tier_rate(base_price, base_period_minutes, min_duration, discount)
    if not math.isfinite(price) or price < 0 or period <= 0:
        result.add_issue(Issue(
            severity=IssueSeverity.BLOCKER,
            code=IssueCode.INVALID_TIER_DISCOUNT_PERCENT,
            product_id=product.id,
            tier_id=tier.id,
            message="Computed tier values are invalid",
        ))
        return None

    return ComputedTier(
        tier_id=tier.id,
        min_duration=min_duration,
        discount_percent=discount,
        display_order=int(tier.display_order or 0),
        period=period,
        price=price,
    )


def _check_rates(
    product: ProductRow,
    base_price: float,
    base_period_minutes: int,
    sorted_by_period: list[ComputedTier],
    result: PreflightResult,
    config: PreflightConfig,
) -> None:
    base_per_minute = base_price / base_period_minutes
    tolerance = config.rate_tolerance

    for tier in sorted_by_period:
        if tier.price_per_minute > base_per_minute + tolerance:
            result.add_issue(Issue(
                severity=IssueSeverity.WARNING,
                code=IssueCode.TIER_MORE_EXPENSIVE_THAN_BASE,
                product_id=product.id,
                tier_id=tier.tier_id,
                message=f"Tier is more expensive per minute than base rate (period={tier.period}m)",
            ))

    for previous, current in zip(sorted_by_period, sorted_by_period[1:]):
        if current.price_per_minute > previous.price_per_minute + tolerance:
            result.add_issue(Issue(
                severity=IssueSeverity.WARNING,
                code=IssueCode.NON_PROGRESSIVE_RATE,
                product_id=product.id,
                tier_id=current.tier_id,
                message=f"Tier {current.tier_id} is less discounted per minute than previous period tier",
            ))
