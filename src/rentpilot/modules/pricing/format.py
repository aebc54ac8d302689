"""Human-readable labels for durations, prices and tiers."""

from __future__ import annotations

from rentpilot.modules.pricing.tiers import PricingMode, to_pricing_mode

# singular, plural, short
UNIT_LABELS: dict[PricingMode, tuple[str, str, str]] = {
    PricingMode.HOUR: ("hour", "hours", "h"),
    PricingMode.DAY: ("day", "days", "d"),
    PricingMode.WEEK: ("week", "weeks", "wk"),
}

MANUAL_TIER_LABEL = "manual"


def _labels(mode: PricingMode | str) -> tuple[str, str, str]:
    return UNIT_LABELS[to_pricing_mode(mode) or PricingMode.DAY]


def get_unit_label(mode: PricingMode | str, variant: str = "singular") -> str:
    singular, plural, short = _labels(mode)
    return {"singular": singular, "plural": plural, "short": short}[variant]


def format_currency(amount: float, symbol: str = "$") -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


def format_percent(value: float) -> str:
    """20.0 -> '20', 12.5 -> '12.5'."""
    return f"{value:g}"


def format_duration(duration: int, mode: PricingMode | str, short: bool = False) -> str:
    singular, plural, abbrev = _labels(mode)
    if short:
        return f"{duration}{abbrev}"
    return f"{duration} {singular if duration == 1 else plural}"


def format_price_per_unit(price: float, mode: PricingMode | str, short: bool = True) -> str:
    singular, _, abbrev = _labels(mode)
    return f"{format_currency(price)}/{abbrev if short else singular}"


def format_tier_label(min_duration: int, mode: PricingMode | str) -> str:
    """'7+ days', '1+ hour'."""
    singular, plural, _ = _labels(mode)
    return f"{min_duration}+ {singular if min_duration == 1 else plural}"


def format_discount(percent: float) -> str:
    """Whole-number discount badge, '-20%'."""
    return f"-{int(percent)}%"


def format_item_tier_label(discount_percent: float, min_duration: int, mode: PricingMode | str) -> str:
    """Line item tier note, '-20% (7+ d)'."""
    return f"-{format_percent(discount_percent)}% ({min_duration}+ {get_unit_label(mode, 'short')})"


def format_savings_badge(savings: float, discount_percent: float | None) -> str:
    if discount_percent:
        return f"{format_discount(discount_percent)} ({format_currency(savings)} saved)"
    return f"{format_currency(savings)} saved"
