"""Rate-based pricing: products priced by (period, price) rates instead of discount tiers."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from functools import reduce

from rentpilot.modules.pricing.tiers import round_currency

_EPSILON = 1e-9


@dataclass(frozen=True)
class Rate:
    period: int  # minutes
    price: float
    id: str | None = None
    display_order: int = 0


@dataclass
class RatePlanEntry:
    rate: Rate
    quantity: int


@dataclass
class BestRatePlan:
    total_cost: float
    covered_minutes: int
    plan: list[RatePlanEntry] = field(default_factory=list)

    @property
    def periods_used(self) -> int:
        return sum(entry.quantity for entry in self.plan)


@dataclass
class RateBasedPricing:
    base_price: float
    base_period_minutes: int
    rates: list[Rate] = field(default_factory=list)
    deposit: float = 0.0


@dataclass
class RateCalculationResult:
    subtotal: float
    deposit: float
    total: float
    applied_rate: Rate | None
    periods_used: int
    savings: float
    reduction_percent: float | None
    duration_minutes: int
    quantity: int
    original_subtotal: float


def calculate_best_rate(duration_minutes: float, rates: list[Rate]) -> BestRatePlan:
    """Cheapest combination of rates covering at least ``duration_minutes``.

    Rates may be combined freely (e.g. one week plus two days). Among plans of
    equal cost the one with fewer segments wins.
    """
    normalized = sorted(
        (rate for rate in rates if rate.period > 0 and rate.price >= 0),
        key=lambda rate: rate.period,
    )
    if not normalized:
        return BestRatePlan(total_cost=0.0, covered_minutes=int(math.ceil(duration_minutes)))

    target_minutes = max(1, math.ceil(duration_minutes))
    scale = reduce(math.gcd, (rate.period for rate in normalized)) or 1
    rate_steps = [max(1, rate.period // scale) for rate in normalized]
    target_steps = max(1, -(-target_minutes // scale))
    max_steps = target_steps + max(rate_steps)

    cost = [math.inf] * (max_steps + 1)
    segments = [math.inf] * (max_steps + 1)
    prev_step = [-1] * (max_steps + 1)
    prev_rate = [-1] * (max_steps + 1)
    cost[0] = 0.0
    segments[0] = 0

    for step in range(1, max_steps + 1):
        for index, rate_step in enumerate(rate_steps):
            if step < rate_step:
                continue
            source = step - rate_step
            if math.isinf(cost[source]):
                continue
            candidate = cost[source] + normalized[index].price
            candidate_segments = segments[source] + 1
            if candidate < cost[step] - _EPSILON or (
                abs(candidate - cost[step]) < _EPSILON and candidate_segments < segments[step]
            ):
                cost[step] = candidate
                segments[step] = candidate_segments
                prev_step[step] = source
                prev_rate[step] = index

    best = -1
    for step in range(target_steps, max_steps + 1):
        if math.isinf(cost[step]):
            continue
        if best == -1 or cost[step] < cost[best] - _EPSILON:
            best = step
        elif abs(cost[step] - cost[best]) < _EPSILON and segments[step] < segments[best]:
            best = step

    if best == -1:
        fallback = normalized[0]
        count = -(-target_minutes // fallback.period)
        return BestRatePlan(
            total_cost=round_currency(count * fallback.price),
            covered_minutes=count * fallback.period,
            plan=[RatePlanEntry(fallback, count)],
        )

    quantities = [0] * len(normalized)
    cursor = best
    while cursor > 0 and prev_rate[cursor] >= 0:
        quantities[prev_rate[cursor]] += 1
        cursor = prev_step[cursor]

    plan = [
        RatePlanEntry(rate, quantity)
        for rate, quantity in zip(normalized, quantities)
        if quantity > 0
    ]
    return BestRatePlan(
        total_cost=round_currency(cost[best]),
        covered_minutes=best * scale,
        plan=plan,
    )


def calculate_rental_price_v2(
    pricing: RateBasedPricing, duration_minutes: float, quantity: int
) -> RateCalculationResult:
    """Price a rental from the base rate plus any extra rates."""
    base_rate = Rate(period=pricing.base_period_minutes, price=pricing.base_price, id="__base__", display_order=-1)
    best = calculate_best_rate(duration_minutes, [base_rate, *pricing.rates])

    subtotal = best.total_cost * quantity
    deposit = pricing.deposit * quantity
    base_periods = math.ceil(duration_minutes / pricing.base_period_minutes)
    original_subtotal = base_periods * pricing.base_price * quantity
    savings = original_subtotal - subtotal
    reduction_percent = round_currency(savings / original_subtotal * 100) if original_subtotal > 0 else None

    dominant = max(best.plan, key=lambda entry: entry.quantity).rate if best.plan else None

    return RateCalculationResult(
        subtotal=round_currency(subtotal),
        deposit=round_currency(deposit),
        total=round_currency(subtotal + deposit),
        applied_rate=dominant,
        periods_used=best.periods_used,
        savings=round_currency(savings),
        reduction_percent=reduction_percent,
        duration_minutes=max(1, math.ceil(duration_minutes)),
        quantity=quantity,
        original_subtotal=round_currency(original_subtotal),
    )
