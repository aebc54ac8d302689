"""Pricing modes, currency rounding and the shared tier-selection rule.

Both the live pricing engine and the batch migration tools pick tiers through
``select_applicable_tier`` so the two paths cannot drift apart. Tiers are read
by attribute (``min_duration``, ``discount_percent``, ``display_order``), which
covers ORM rows, the ``Tier`` dataclass and preflight ``TierRow`` records.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Protocol, Sequence, TypeVar


class PricingMode(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"


PERIOD_MINUTES: dict[PricingMode, int] = {
    PricingMode.HOUR: 60,
    PricingMode.DAY: 1440,
    PricingMode.WEEK: 10080,
}


class TierLike(Protocol):
    min_duration: Any
    discount_percent: Any


@dataclass(frozen=True)
class Tier:
    min_duration: int
    discount_percent: float
    id: str | None = None
    display_order: int = 0


@dataclass
class TierValidation:
    valid: bool
    error: str | None = None


T = TypeVar("T")


def to_pricing_mode(value: Any) -> PricingMode | None:
    """Return the pricing mode for a raw value, or None if it is not one."""
    if isinstance(value, PricingMode):
        return value
    try:
        return PricingMode(value)
    except ValueError:
        return None


def pricing_mode_to_minutes(mode: Any) -> int | None:
    """Base period length in minutes, None for an unknown mode."""
    resolved = to_pricing_mode(mode)
    if resolved is None:
        return None
    return PERIOD_MINUTES[resolved]


def round_currency(value: float) -> float:
    """Round half-up to cents."""
    return math.floor(value * 100 + 0.5) / 100


def to_number(value: Any) -> float:
    """Coerce a stored numeric value to float; NaN when missing or unparseable."""
    if isinstance(value, bool) or value is None:
        return math.nan
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return math.nan
    else:
        return math.nan
    return number if math.isfinite(number) else math.nan


def is_valid_min_duration(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return value.is_integer() and value > 0
    return isinstance(value, int) and value > 0


def is_valid_discount(value: Any) -> bool:
    discount = to_number(value)
    return math.isfinite(discount) and 0 <= discount < 100


def is_well_formed_tier(tier: TierLike) -> bool:
    """A tier the engine can price with: positive integer threshold, discount in [0, 100)."""
    return is_valid_min_duration(getattr(tier, "min_duration", None)) and is_valid_discount(
        getattr(tier, "discount_percent", None)
    )


def select_applicable_tier(tiers: Iterable[T], duration: int) -> T | None:
    """Return the tier with the greatest ``min_duration`` not above ``duration``.

    Malformed tiers are skipped. When several tiers share a threshold the one
    with the lowest ``display_order`` wins, then the earliest in input order.
    """
    candidates = [tier for tier in tiers if is_well_formed_tier(tier)]
    if not candidates:
        return None
    ordered = sorted(
        candidates,
        key=lambda tier: (-tier.min_duration, getattr(tier, "display_order", None) or 0),
    )
    for tier in ordered:
        if tier.min_duration <= duration:
            return tier
    return None


def sort_tiers_by_duration(tiers: Iterable[T]) -> list[T]:
    """Tiers ordered by threshold ascending, for display."""
    return sorted(tiers, key=lambda tier: getattr(tier, "min_duration", None) or 0)


def validate_pricing_tiers(tiers: Sequence[TierLike]) -> TierValidation:
    """Catalog-side check run before tiers are saved."""
    durations = [tier.min_duration for tier in tiers]
    if len(durations) != len(set(durations)):
        return TierValidation(False, "Each tier must have a unique minimum duration")

    for tier in tiers:
        if not is_valid_min_duration(tier.min_duration):
            return TierValidation(False, "Minimum duration must be at least 1")
        if not is_valid_discount(tier.discount_percent):
            return TierValidation(False, "Discount must be between 0 and 100% (exclusive)")

    return TierValidation(True)


def compute_tier_rate(
    base_price: float,
    base_period_minutes: int,
    min_duration: int,
    discount_percent: float,
) -> tuple[int, float]:
    """Convert a legacy tier to its (period in minutes, absolute price) rate."""
    period = min_duration * base_period_minutes
    price = round_currency(base_price * (1 - discount_percent / 100) * min_duration)
    return period, price
