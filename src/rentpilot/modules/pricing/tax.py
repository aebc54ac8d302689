"""Sales tax on rental subtotals. Deposits are refundable and never taxed."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from rentpilot.modules.pricing.tiers import round_currency


@dataclass(frozen=True)
class TaxConfig:
    enabled: bool
    rate: float
    display_mode: str = "inclusive"  # inclusive: catalog prices include tax

    @classmethod
    def from_store_settings(cls, store_settings: dict[str, Any] | None) -> TaxConfig | None:
        tax = (store_settings or {}).get("tax") or {}
        if not tax.get("enabled"):
            return None
        return cls(
            enabled=True,
            rate=float(tax.get("rate", 0.0)),
            display_mode=tax.get("displayMode", "inclusive"),
        )


@dataclass(frozen=True)
class TaxBreakdown:
    tax_rate: float | None
    subtotal_excl_tax: float
    subtotal_tax: float
    subtotal_incl_tax: float
    deposit: float
    total_excl_tax: float
    total_incl_tax: float

    @property
    def tax_enabled(self) -> bool:
        return self.tax_rate is not None


def calculate_tax_from_exclusive(amount_excl_tax: float, rate: float) -> float:
    return round_currency(amount_excl_tax * (rate / 100))


def extract_exclusive_from_inclusive(amount_incl_tax: float, rate: float) -> float:
    return round_currency(amount_incl_tax / (1 + rate / 100))


def extract_tax_from_inclusive(amount_incl_tax: float, rate: float) -> float:
    return round_currency(amount_incl_tax - extract_exclusive_from_inclusive(amount_incl_tax, rate))


def get_effective_tax_rate(
    store_tax: TaxConfig | None, product_tax_settings: dict[str, Any] | None
) -> float | None:
    """Store rate unless the product opts out of inheriting it. None when tax is off."""
    if store_tax is None or not store_tax.enabled:
        return None
    product_tax_settings = product_tax_settings or {}
    if product_tax_settings.get("inheritFromStore") is False and "customRate" in product_tax_settings:
        return float(product_tax_settings["customRate"])
    return store_tax.rate


def apply_tax(
    subtotal: float,
    deposit: float,
    rate: float | None,
    display_mode: str = "inclusive",
) -> TaxBreakdown:
    if rate is None:
        return TaxBreakdown(
            tax_rate=None,
            subtotal_excl_tax=subtotal,
            subtotal_tax=0.0,
            subtotal_incl_tax=subtotal,
            deposit=deposit,
            total_excl_tax=round_currency(subtotal + deposit),
            total_incl_tax=round_currency(subtotal + deposit),
        )

    if display_mode == "exclusive":
        excl = subtotal
        tax = calculate_tax_from_exclusive(excl, rate)
        incl = round_currency(excl + tax)
    else:
        incl = subtotal
        excl = extract_exclusive_from_inclusive(incl, rate)
        tax = round_currency(incl - excl)

    return TaxBreakdown(
        tax_rate=rate,
        subtotal_excl_tax=excl,
        subtotal_tax=tax,
        subtotal_incl_tax=incl,
        deposit=deposit,
        total_excl_tax=round_currency(excl + deposit),
        total_incl_tax=round_currency(incl + deposit),
    )
