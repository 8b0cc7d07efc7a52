from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Iterable, Literal, Optional

from .cadence import pro_rate_factor
from .domain import Allocation, BudgetItem, CalcType, Cadence, to_money
from .errors import NegativeRemaining

CENT = Decimal("0.01")
HUNDRED = Decimal(100)
ZERO = Decimal(0)

HealthStatus = Literal["excellent", "good", "warning", "danger"]


@dataclass
class AllocationPlan:
    allocations: list[Allocation]
    net_income: Decimal
    remaining: Decimal
    signals: list[NegativeRemaining] = field(default_factory=list)

    @property
    def total_allocated(self) -> Decimal:
        return sum((line.expected_amount for line in self.allocations), ZERO)

    @property
    def over_allocated(self) -> bool:
        return self.remaining < 0 or bool(self.signals)


@dataclass
class BudgetSummary:
    total_allocated: Decimal
    remaining: Decimal
    percent_allocated: Decimal
    health_score: int
    status: HealthStatus


def round_cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_EVEN)


def compute_allocations(
    ordered_items: Iterable[BudgetItem],
    gross_income: Decimal | float | int | str,
    net_income: Decimal | float | int | str,
    *,
    cap_fixed: bool = False,
    income_cadence: Optional[Cadence] = None,
    pro_rate: bool = False,
) -> AllocationPlan:
    """Compute each item's share of one pay period, in the given order.

    The remaining pool starts at net income and shrinks by every rounded
    amount; it may end negative, which is reported through ``signals``
    instead of being clamped. FIXED items are capped at what is left only
    when ``cap_fixed`` is set, and scaled from their own cadence to
    ``income_cadence`` only when ``pro_rate`` is set.
    """

    gross = to_money(gross_income)
    net = to_money(net_income)
    remaining = net
    allocations: list[Allocation] = []
    signals: list[NegativeRemaining] = []

    for item in ordered_items:
        if item.id is None:
            raise ValueError(f"budget item {item.name!r} has no id")
        amount = _raw_amount(item, gross, net, remaining, income_cadence if pro_rate else None)
        if item.calc_type is CalcType.FIXED and cap_fixed:
            amount = min(amount, max(remaining, ZERO))
        amount = round_cents(amount)

        was_negative = remaining < 0
        remaining -= amount
        if remaining < 0 and not was_negative:
            signals.append(NegativeRemaining(item_id=item.id, remaining=remaining))

        allocations.append(
            Allocation(
                id=None,
                pay_period_id=None,
                budget_item_id=item.id,
                item_name=item.name,
                item_category=item.category,
                calc_type=item.calc_type,
                expected_amount=amount,
            )
        )

    return AllocationPlan(
        allocations=allocations,
        net_income=net,
        remaining=remaining,
        signals=signals,
    )


def summarize(plan: AllocationPlan) -> BudgetSummary:
    total = plan.total_allocated
    net = plan.net_income
    percent = (total / net * HUNDRED) if net > 0 else ZERO

    score = 100
    status: HealthStatus = "excellent"
    if percent > 100:
        score = max(0, int(100 - (percent - 100) * 2))
        status = "danger"
    elif percent > 95:
        score = 85
        status = "warning"
    elif percent > 85:
        score = 95
        status = "good"
    elif percent < 70:
        score = max(70, int(100 - (70 - percent)))
        status = "good"

    return BudgetSummary(
        total_allocated=round_cents(total),
        remaining=round_cents(net - total),
        percent_allocated=round_cents(percent),
        health_score=score,
        status=status,
    )


# --- Internal helpers --------------------------------------------------------

def _raw_amount(
    item: BudgetItem,
    gross: Decimal,
    net: Decimal,
    remaining: Decimal,
    income_cadence: Optional[Cadence],
) -> Decimal:
    if item.calc_type is CalcType.FIXED:
        if income_cadence is not None:
            return item.value * pro_rate_factor(item.cadence, income_cadence)
        return item.value
    if item.calc_type is CalcType.GROSS_PERCENT:
        return gross * item.value / HUNDRED
    if item.calc_type is CalcType.NET_PERCENT:
        return net * item.value / HUNDRED
    # REMAINING_PERCENT follows the pool below zero; the deficit stays visible
    return remaining * item.value / HUNDRED
