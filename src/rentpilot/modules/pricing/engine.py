"""Tiered rental pricing engine.

The module-level functions are pure: they never touch the database and never
mutate products or tiers. ``PricingEngine`` wraps them with the catalog lookup
and the reservation persistence the live booking flows need.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Sequence

from rentpilot.database import get_session
from rentpilot.events import Event, EventType, event_bus
from rentpilot.models.product import Product
from rentpilot.models.reservation import Reservation, ReservationItem
from rentpilot.models.store import Store
from rentpilot.modules.pricing.errors import (
    InvalidQuantityError,
    InvalidRentalPeriodError,
    PricingError,
)
from rentpilot.modules.pricing.format import (
    MANUAL_TIER_LABEL,
    format_item_tier_label,
    format_tier_label,
)
from rentpilot.modules.pricing.tax import TaxBreakdown, TaxConfig, apply_tax, get_effective_tax_rate
from rentpilot.modules.pricing.tiers import (
    PERIOD_MINUTES,
    PricingMode,
    TierLike,
    round_currency,
    select_applicable_tier,
    to_number,
    to_pricing_mode,
)

logger = logging.getLogger(__name__)


@dataclass
class ProductPricing:
    base_price: float
    pricing_mode: PricingMode = PricingMode.DAY
    tiers: list[Any] = field(default_factory=list)
    deposit: float = 0.0
    enforce_strict_tiers: bool = False

    @classmethod
    def from_product(cls, product: Product) -> ProductPricing:
        # Unknown modes price as daily rentals until the fix-pricing-mode tool repairs them
        return cls(
            base_price=float(product.price),
            pricing_mode=to_pricing_mode(product.pricing_mode) or PricingMode.DAY,
            tiers=list(product.pricing_tiers),
            deposit=float(product.deposit or 0.0),
            enforce_strict_tiers=bool(product.enforce_strict_tiers),
        )


@dataclass
class PriceCalculationResult:
    subtotal: float
    deposit: float
    total: float
    effective_price_per_unit: float
    base_price: float
    duration: int
    quantity: int
    discount_percent: float | None
    tier_applied: Any | None
    original_subtotal: float
    savings: float
    savings_percent: int


@dataclass
class ItemPrice:
    unit_price: float
    total_price: float
    tier_label: str | None
    discount_percent: float | None = None


@dataclass
class PricingBreakdown:
    """Snapshot persisted with a reservation line item."""

    base_price: float
    effective_price: float
    duration: int
    pricing_mode: str
    discount_percent: float | None
    discount_amount: float
    tier_applied: str | None
    is_manual_override: bool = False
    original_price: float | None = None
    tax_rate: float | None = None
    tax_amount: float | None = None
    subtotal_excl_tax: float | None = None
    subtotal_incl_tax: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ItemInput:
    """A line item as submitted by the reservation form."""

    product_id: str | None = None
    quantity: int = 1
    unit_price: float | None = None  # Required for custom items, forces an override otherwise
    custom_name: str | None = None
    deposit_per_unit: float | None = None


@dataclass
class Quote:
    product_id: str
    pricing_mode: PricingMode
    duration: int
    result: PriceCalculationResult
    breakdown: PricingBreakdown


@dataclass
class ItemPriceChange:
    item_id: str
    old_unit_price: float
    new_unit_price: float
    old_total_price: float
    new_total_price: float

    @property
    def changed(self) -> bool:
        return (
            abs(self.new_unit_price - self.old_unit_price) > 0.005
            or abs(self.new_total_price - self.old_total_price) > 0.005
        )


@dataclass
class ReservationPricingDiff:
    reservation_id: str
    old_subtotal: float
    new_subtotal: float
    items: list[ItemPriceChange] = field(default_factory=list)

    @property
    def difference(self) -> float:
        return round_currency(self.new_subtotal - self.old_subtotal)


# --- Durations ---


def _to_datetime(value: datetime | str) -> datetime:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


def calculate_duration(
    start_date: datetime | str, end_date: datetime | str, pricing_mode: PricingMode | str
) -> int:
    """Number of billable periods; any started period is billed in full."""
    start = _to_datetime(start_date)
    end = _to_datetime(end_date)
    if end <= start:
        raise InvalidRentalPeriodError(f"Rental must end after it starts ({start} -> {end})")

    mode = to_pricing_mode(pricing_mode) or PricingMode.DAY
    period = timedelta(minutes=PERIOD_MINUTES[mode])
    return max(1, -((start - end) // period))


def calculate_duration_minutes(start_date: datetime | str, end_date: datetime | str) -> int:
    start = _to_datetime(start_date)
    end = _to_datetime(end_date)
    if end <= start:
        raise InvalidRentalPeriodError(f"Rental must end after it starts ({start} -> {end})")
    return max(1, -((start - end) // timedelta(minutes=1)))


# --- Tier pricing ---


def calculate_effective_price(base_price: float, tier: TierLike | None) -> float:
    """Per-period price after the tier discount."""
    if tier is None:
        return base_price
    return base_price * (1 - to_number(tier.discount_percent) / 100)


def calculate_rental_price(pricing: ProductPricing, duration: int, quantity: int) -> PriceCalculationResult:
    tier = select_applicable_tier(pricing.tiers, duration)
    effective = calculate_effective_price(pricing.base_price, tier)

    original_subtotal = pricing.base_price * duration * quantity
    subtotal = effective * duration * quantity
    deposit = pricing.deposit * quantity
    savings = original_subtotal - subtotal
    savings_percent = round(savings / original_subtotal * 100) if original_subtotal > 0 else 0

    return PriceCalculationResult(
        subtotal=round_currency(subtotal),
        deposit=round_currency(deposit),
        total=round_currency(subtotal + deposit),
        effective_price_per_unit=round_currency(effective),
        base_price=pricing.base_price,
        duration=duration,
        quantity=quantity,
        discount_percent=to_number(tier.discount_percent) if tier is not None else None,
        tier_applied=tier,
        original_subtotal=round_currency(original_subtotal),
        savings=round_currency(savings),
        savings_percent=savings_percent,
    )


def compute_item_price(item: Any, duration: int, pricing_mode: PricingMode | str) -> ItemPrice:
    """Price one reservation line for ``duration`` periods.

    Manual overrides and custom (non-catalog) items keep their entered unit
    price; catalog items are priced from the product's base price and tiers.
    """
    quantity = item.quantity
    product = getattr(item, "product", None)

    if item.is_manual_override or product is None:
        unit_price = float(item.unit_price or 0.0)
        return ItemPrice(
            unit_price=unit_price,
            total_price=round_currency(unit_price * duration * quantity),
            tier_label=MANUAL_TIER_LABEL if item.is_manual_override else None,
        )

    base_price = float(product.price)
    tier = select_applicable_tier(product.pricing_tiers, duration)
    if tier is None:
        return ItemPrice(
            unit_price=base_price,
            total_price=round_currency(base_price * duration * quantity),
            tier_label=None,
        )

    discount = to_number(tier.discount_percent)
    unit_price = round_currency(calculate_effective_price(base_price, tier))
    return ItemPrice(
        unit_price=unit_price,
        total_price=round_currency(unit_price * duration * quantity),
        tier_label=format_item_tier_label(discount, int(tier.min_duration), pricing_mode),
        discount_percent=discount,
    )


def generate_pricing_breakdown(
    result: PriceCalculationResult,
    pricing_mode: PricingMode | str,
    tax: TaxBreakdown | None = None,
) -> PricingBreakdown:
    """Package an auto-computed result as the snapshot stored on the line item."""
    mode = to_pricing_mode(pricing_mode) or PricingMode.DAY
    tier = result.tier_applied
    return PricingBreakdown(
        base_price=result.base_price,
        effective_price=result.effective_price_per_unit,
        duration=result.duration,
        pricing_mode=mode.value,
        discount_percent=result.discount_percent,
        discount_amount=result.savings,
        tier_applied=format_tier_label(int(tier.min_duration), mode) if tier is not None else None,
        is_manual_override=False,
        original_price=None,
        tax_rate=tax.tax_rate if tax and tax.tax_enabled else None,
        tax_amount=tax.subtotal_tax if tax and tax.tax_enabled else None,
        subtotal_excl_tax=tax.subtotal_excl_tax if tax and tax.tax_enabled else None,
        subtotal_incl_tax=tax.subtotal_incl_tax if tax and tax.tax_enabled else None,
    )


# --- Manual overrides ---


def apply_manual_override(item: Any, unit_price: float, duration: int) -> None:
    """Replace the computed price with a hand-entered one.

    The engine price is kept in ``original_price`` on the first override only,
    so editing an already-manual price keeps the original audit value.
    """
    if unit_price < 0:
        raise PricingError("Unit price cannot be negative")
    if not item.is_manual_override:
        item.original_price = item.unit_price
        item.is_manual_override = True

    item.unit_price = round_currency(unit_price)
    item.total_price = round_currency(item.unit_price * duration * item.quantity)
    item.tier_label = MANUAL_TIER_LABEL

    breakdown = dict(item.pricing_breakdown or {})
    breakdown.update(
        effective_price=item.unit_price,
        duration=duration,
        discount_percent=None,
        discount_amount=0.0,
        tier_applied=None,
        is_manual_override=True,
        original_price=item.original_price,
        tax_rate=None,
        tax_amount=None,
        subtotal_excl_tax=None,
        subtotal_incl_tax=None,
    )
    item.pricing_breakdown = breakdown


def clear_manual_override(item: Any, duration: int, pricing_mode: PricingMode | str) -> ItemPrice:
    """Return a catalog item to computed pricing using the product's current price and tiers."""
    if getattr(item, "product", None) is None:
        raise PricingError("Custom items have no catalog price to restore")
    item.is_manual_override = False
    item.original_price = None
    priced = compute_item_price(item, duration, pricing_mode)
    item.unit_price = priced.unit_price
    item.total_price = priced.total_price
    item.tier_label = priced.tier_label
    return priced


# --- Strict (package) tiers ---


def get_available_durations(tiers: Sequence[TierLike], enforce_strict_tiers: bool) -> list[int] | None:
    """Bookable durations for package pricing; None when any duration is allowed."""
    if not enforce_strict_tiers or not tiers:
        return None
    durations = {1}
    durations.update(int(tier.min_duration) for tier in tiers if tier.min_duration)
    return sorted(durations)


def snap_to_nearest_tier(duration: int, available_durations: Sequence[int]) -> int:
    """Round a duration up to the next bookable package, capped at the longest."""
    for candidate in available_durations:
        if candidate >= duration:
            return candidate
    return available_durations[-1]


class PricingEngine:
    """Prices reservations against the catalog and keeps their snapshots current."""

    def quote(
        self,
        product_id: str,
        start_date: datetime | str,
        end_date: datetime | str,
        quantity: int = 1,
    ) -> Quote | None:
        """Price a prospective rental without persisting anything."""
        _check_quantity(quantity)
        session = get_session()
        try:
            product = session.get(Product, product_id)
            if not product:
                return None

            pricing = ProductPricing.from_product(product)
            duration = calculate_duration(start_date, end_date, pricing.pricing_mode)
            available = get_available_durations(pricing.tiers, pricing.enforce_strict_tiers)
            if available:
                duration = snap_to_nearest_tier(duration, available)

            result = calculate_rental_price(pricing, duration, quantity)
            tax = self._tax_for(product.store, product, result)
            return Quote(
                product_id=product.id,
                pricing_mode=pricing.pricing_mode,
                duration=duration,
                result=result,
                breakdown=generate_pricing_breakdown(result, pricing.pricing_mode, tax),
            )
        finally:
            session.close()

    def create_reservation(
        self,
        store_id: str,
        start_date: datetime | str,
        end_date: datetime | str,
        items: list[ItemInput],
        customer_name: str | None = None,
        customer_email: str | None = None,
    ) -> Reservation:
        """Create a reservation and persist a pricing snapshot for each line."""
        start = _to_datetime(start_date)
        end = _to_datetime(end_date)
        if end <= start:
            raise InvalidRentalPeriodError(f"Rental must end after it starts ({start} -> {end})")
        if not items:
            raise PricingError("A reservation needs at least one item")

        session = get_session()
        try:
            store = session.get(Store, store_id)
            if not store:
                raise LookupError(f"Store {store_id} not found")

            reservation = Reservation(
                store_id=store.id,
                start_date=start,
                end_date=end,
                customer_name=customer_name,
                customer_email=customer_email,
            )
            session.add(reservation)

            for item_input in items:
                item = self._build_item(session, store, item_input)
                reservation.items.append(item)
                self._refresh_snapshot(item, start, end, store)
                # Entered prices on catalog lines override the computed snapshot
                if item.product is not None and item_input.unit_price is not None:
                    duration = calculate_duration(start, end, item.pricing_mode)
                    apply_manual_override(item, item_input.unit_price, duration)
            self._update_totals(reservation)
            session.commit()

            logger.info(
                "Created reservation %s with %d items, subtotal $%.2f",
                reservation.id,
                len(reservation.items),
                reservation.subtotal_amount,
            )
            event_bus.publish(Event(
                event_type=EventType.PRICING_SNAPSHOT_COMPUTED,
                data={"reservation_id": reservation.id, "subtotal": reservation.subtotal_amount},
            ))
            return reservation
        finally:
            session.close()

    def edit_reservation_dates(
        self,
        reservation_id: str,
        start_date: datetime | str,
        end_date: datetime | str,
    ) -> ReservationPricingDiff | None:
        """Move a reservation and reprice every line, returning the diff against the old snapshot."""
        start = _to_datetime(start_date)
        end = _to_datetime(end_date)
        if end <= start:
            raise InvalidRentalPeriodError(f"Rental must end after it starts ({start} -> {end})")

        session = get_session()
        try:
            reservation = session.get(Reservation, reservation_id)
            if not reservation:
                return None
            if reservation.is_finalized:
                raise PricingError(f"Reservation {reservation_id} is {reservation.status} and cannot be repriced")

            diff = ReservationPricingDiff(
                reservation_id=reservation.id,
                old_subtotal=reservation.subtotal_amount,
                new_subtotal=reservation.subtotal_amount,
            )
            reservation.start_date = start
            reservation.end_date = end

            for item in reservation.items:
                old_unit, old_total = item.unit_price, item.total_price
                self._refresh_snapshot(item, start, end, reservation.store)
                diff.items.append(ItemPriceChange(
                    item_id=item.id,
                    old_unit_price=old_unit,
                    new_unit_price=item.unit_price,
                    old_total_price=old_total,
                    new_total_price=item.total_price,
                ))

            self._update_totals(reservation)
            diff.new_subtotal = reservation.subtotal_amount
            session.commit()

            logger.info(
                "Repriced reservation %s: $%.2f -> $%.2f",
                reservation.id, diff.old_subtotal, diff.new_subtotal,
            )
            event_bus.publish(Event(
                event_type=EventType.RESERVATION_REPRICED,
                data={"reservation_id": reservation.id, "difference": diff.difference},
            ))
            return diff
        finally:
            session.close()

    def override_item_price(self, reservation_id: str, item_id: str, unit_price: float) -> ReservationItem | None:
        session = get_session()
        try:
            item = self._get_item(session, reservation_id, item_id)
            if not item:
                return None
            reservation = item.reservation
            duration = calculate_duration(reservation.start_date, reservation.end_date, item.pricing_mode)
            apply_manual_override(item, unit_price, duration)
            self._update_totals(reservation)
            session.commit()

            logger.info(
                "Manual price on item %s: $%.2f (engine price $%.2f)",
                item.id, item.unit_price, item.original_price or 0.0,
            )
            event_bus.publish(Event(
                event_type=EventType.PRICE_OVERRIDDEN,
                data={
                    "reservation_id": reservation.id,
                    "item_id": item.id,
                    "unit_price": item.unit_price,
                    "original_price": item.original_price,
                },
            ))
            return item
        finally:
            session.close()

    def clear_item_override(self, reservation_id: str, item_id: str) -> ReservationItem | None:
        session = get_session()
        try:
            item = self._get_item(session, reservation_id, item_id)
            if not item:
                return None
            reservation = item.reservation
            duration = calculate_duration(reservation.start_date, reservation.end_date, item.pricing_mode)
            clear_manual_override(item, duration, item.pricing_mode)
            self._refresh_snapshot(item, reservation.start_date, reservation.end_date, reservation.store)
            self._update_totals(reservation)
            session.commit()

            event_bus.publish(Event(
                event_type=EventType.PRICE_OVERRIDE_CLEARED,
                data={"reservation_id": reservation.id, "item_id": item.id, "unit_price": item.unit_price},
            ))
            return item
        finally:
            session.close()

    # --- internals ---

    def _build_item(self, session, store: Store, item_input: ItemInput) -> ReservationItem:
        _check_quantity(item_input.quantity)

        if item_input.product_id is None:
            if item_input.unit_price is None:
                raise PricingError("Custom items need a unit price")
            return ReservationItem(
                custom_name=item_input.custom_name,
                quantity=item_input.quantity,
                is_manual_override=False,
                pricing_mode=(store.default_pricing_mode or PricingMode.DAY.value),
                unit_price=round_currency(item_input.unit_price),
                deposit_per_unit=item_input.deposit_per_unit or 0.0,
            )

        product = session.get(Product, item_input.product_id)
        if not product or product.store_id != store.id:
            raise LookupError(f"Product {item_input.product_id} not found in store {store.id}")

        item = ReservationItem(
            product_id=product.id,
            product=product,
            quantity=item_input.quantity,
            is_manual_override=False,
            pricing_mode=(to_pricing_mode(product.pricing_mode) or PricingMode.DAY).value,
            deposit_per_unit=(
                item_input.deposit_per_unit if item_input.deposit_per_unit is not None else product.deposit or 0.0
            ),
        )
        return item

    def _refresh_snapshot(self, item: ReservationItem, start: datetime, end: datetime, store: Store) -> None:
        mode = to_pricing_mode(item.pricing_mode) or PricingMode.DAY
        duration = calculate_duration(start, end, mode)
        product = item.product

        if product is not None and not item.is_manual_override:
            pricing = ProductPricing.from_product(product)
            result = calculate_rental_price(pricing, duration, item.quantity)
            tax = self._tax_for(store, product, result)
            breakdown = generate_pricing_breakdown(result, mode, tax)
        else:
            breakdown = PricingBreakdown(
                base_price=float(product.price) if product is not None else float(item.unit_price),
                effective_price=float(item.unit_price),
                duration=duration,
                pricing_mode=mode.value,
                discount_percent=None,
                discount_amount=0.0,
                tier_applied=None,
                is_manual_override=item.is_manual_override,
                original_price=item.original_price,
            )

        priced = compute_item_price(item, duration, mode)
        item.unit_price = priced.unit_price
        item.total_price = priced.total_price
        item.tier_label = priced.tier_label
        item.pricing_breakdown = breakdown.to_dict()

    def _update_totals(self, reservation: Reservation) -> None:
        subtotal = sum(item.total_price for item in reservation.items)
        deposit = sum((item.deposit_per_unit or 0.0) * item.quantity for item in reservation.items)
        reservation.subtotal_amount = round_currency(subtotal)
        reservation.deposit_amount = round_currency(deposit)
        reservation.total_amount = round_currency(subtotal + deposit)

    def _tax_for(self, store: Store | None, product: Product, result: PriceCalculationResult) -> TaxBreakdown | None:
        store_tax = TaxConfig.from_store_settings(store.settings if store else None)
        rate = get_effective_tax_rate(store_tax, product.tax_settings)
        if rate is None:
            return None
        return apply_tax(result.subtotal, result.deposit, rate, store_tax.display_mode)

    def _get_item(self, session, reservation_id: str, item_id: str) -> ReservationItem | None:
        item = session.get(ReservationItem, item_id)
        if not item or item.reservation_id != reservation_id:
            return None
        return item


def _check_quantity(quantity: int) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise InvalidQuantityError(f"Quantity must be a positive integer, got {quantity!r}")
