from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

from .domain import Allocation, Cadence, CalcType, PayPeriod

_CADENCE_LABELS = {
    Cadence.WEEKLY: "Weekly",
    Cadence.BI_WEEKLY: "Bi-weekly",
    Cadence.SEMI_MONTHLY: "Semi-monthly",
    Cadence.MONTHLY: "Monthly",
    Cadence.QUARTERLY: "Quarterly",
    Cadence.ANNUAL: "Annual",
}

_CALC_LABELS = {
    CalcType.FIXED: "fixed",
    CalcType.GROSS_PERCENT: "% of gross",
    CalcType.NET_PERCENT: "% of net",
    CalcType.REMAINING_PERCENT: "% of remaining",
}


def fmt_amount(value: Decimal | float, precision: int = 2) -> str:
    """Format monetary amounts with a comma as thousands separator."""
    return f"{value:,.{precision}f}"


def fmt_signed(value: Decimal | float, precision: int = 2) -> str:
    if value == 0:
        return fmt_amount(0, precision=precision)
    sign = "+" if value > 0 else "-"
    return f"{sign}{fmt_amount(abs(value), precision=precision)}"


def format_cadence(cadence: Cadence | str) -> str:
    try:
        return _CADENCE_LABELS[Cadence.parse(cadence)]
    except ValueError:
        return "Unknown"


def format_pay_period(
    period: PayPeriod,
    allocations: Iterable[Allocation],
    source_name: Optional[str] = None,
) -> str:
    """Render a period and its allocations in evaluation order."""

    header = f"{period.start_date.isoformat()} – {period.end_date.isoformat()}"
    if source_name:
        header = f"{source_name}: {header}"
    lines = [f"{header} ({period.status.value.lower()})", f"Expected net: {fmt_amount(period.expected_net)}"]

    remaining = period.expected_net
    for line in allocations:
        remaining -= line.expected_amount
        text = (
            f"- {line.item_name} [{line.item_category.value}, {_CALC_LABELS[line.calc_type]}]: "
            f"{fmt_amount(line.expected_amount)}"
        )
        if line.actual_amount is not None:
            text += f" (spent {fmt_amount(line.actual_amount)}, {line.status.value.lower()})"
        lines.append(text)

    lines.append(f"Remaining: {fmt_signed(remaining)}")
    if remaining < 0:
        lines.append("Budget is over-allocated for this period.")
    return "\n".join(lines)
