from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Literal, Optional

from .allocation import compute_allocations, summarize
from .config import settings
from .domain import BudgetItem, IncomeSource
from .errors import CycleError, InvalidBudgetItem
from .graph import resolve_order

Severity = Literal["error", "warning", "info"]

HIGH_PERCENT_THRESHOLD = 50
UNDER_ALLOCATION_THRESHOLD = 80
_BLOCKING = {"cycle", "self_dependency", "invalid_value"}


@dataclass(slots=True)
class ValidationIssue:
    code: str
    severity: Severity
    message: str
    item_ids: list[int] = field(default_factory=list)


@dataclass
class ValidationResult:
    issues: list[ValidationIssue]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]

    def codes(self) -> set[str]:
        return {issue.code for issue in self.issues}


def validate_budget(
    items: Iterable[BudgetItem],
    income_source: Optional[IncomeSource] = None,
    *,
    pro_rate: Optional[bool] = None,
) -> ValidationResult:
    """Collect everything worth telling the user about a set of budget items.

    Allocation findings use the same pro-rating as generation
    (``PRO_RATE_FIXED_ITEMS`` unless ``pro_rate`` is given).
    """

    active = [item for item in items if item.is_active]
    issues: list[ValidationIssue] = []

    for item in active:
        _check_item(item, issues)
    _check_dependencies(active, issues)
    _check_conflicts(active, issues)

    if income_source is not None and active and not any(
        issue.code in _BLOCKING for issue in issues
    ):
        if pro_rate is None:
            pro_rate = settings.PRO_RATE_FIXED_ITEMS
        _check_allocations(active, income_source, pro_rate, issues)

    return ValidationResult(issues=issues)


# --- Internal helpers --------------------------------------------------------

def _check_item(item: BudgetItem, issues: list[ValidationIssue]) -> None:
    try:
        item.check()
    except InvalidBudgetItem as exc:
        issues.append(ValidationIssue("invalid_value", "error", str(exc), [item.id]))
        return

    if item.calc_type.is_percent and item.value > HIGH_PERCENT_THRESHOLD:
        issues.append(
            ValidationIssue(
                "high_percentage",
                "warning",
                f"'{item.name}' allocates {item.value}% which is quite high",
                [item.id],
            )
        )


def _check_dependencies(items: list[BudgetItem], issues: list[ValidationIssue]) -> None:
    by_id = {item.id: item for item in items}
    for item in items:
        for dep_id in item.depends_on:
            if dep_id == item.id:
                issues.append(
                    ValidationIssue(
                        "self_dependency", "error", f"'{item.name}' depends on itself", [item.id]
                    )
                )
                continue
            dependency = by_id.get(dep_id)
            if dependency is None:
                issues.append(
                    ValidationIssue(
                        "missing_dependency",
                        "error",
                        f"'{item.name}' depends on a missing or inactive budget item ({dep_id})",
                        [item.id],
                    )
                )
            elif dependency.priority >= item.priority:
                issues.append(
                    ValidationIssue(
                        "priority_conflict",
                        "warning",
                        f"'{dependency.name}' should have a lower priority than '{item.name}'",
                        [item.id, dependency.id],
                    )
                )

    try:
        resolve_order(items)
    except CycleError as exc:
        if not any(issue.code == "self_dependency" for issue in issues):
            issues.append(ValidationIssue("cycle", "error", str(exc), list(dict.fromkeys(exc.cycle))))


def _check_conflicts(items: list[BudgetItem], issues: list[ValidationIssue]) -> None:
    names: dict[str, list[BudgetItem]] = defaultdict(list)
    priorities: dict[int, list[BudgetItem]] = defaultdict(list)
    for item in items:
        names[item.name.strip().lower()].append(item)
        priorities[item.priority].append(item)

    for same in names.values():
        if len(same) > 1:
            issues.append(
                ValidationIssue(
                    "duplicate_name",
                    "warning",
                    f"Multiple budget items are named '{same[0].name}'",
                    [item.id for item in same],
                )
            )
    for priority, same in sorted(priorities.items()):
        if len(same) > 1:
            labels = ", ".join(item.name for item in same)
            issues.append(
                ValidationIssue(
                    "same_priority",
                    "info",
                    f"Multiple items share priority {priority}: {labels}",
                    [item.id for item in same],
                )
            )


def _check_allocations(
    items: list[BudgetItem],
    source: IncomeSource,
    pro_rate: bool,
    issues: list[ValidationIssue],
) -> None:
    plan = compute_allocations(
        resolve_order(items),
        source.gross_amount,
        source.net_amount,
        cap_fixed=source.cap_fixed_allocations,
        income_cadence=source.cadence,
        pro_rate=pro_rate,
    )
    summary = summarize(plan)

    if plan.over_allocated:
        issues.append(
            ValidationIssue(
                "over_allocation",
                "warning",
                f"Budget items allocate {summary.percent_allocated}% of income "
                f"({summary.total_allocated} of {source.net_amount})",
                [item.id for item in items],
            )
        )
    elif summary.percent_allocated < UNDER_ALLOCATION_THRESHOLD:
        issues.append(
            ValidationIssue(
                "under_allocation",
                "info",
                f"Only {summary.percent_allocated}% of income is allocated; "
                f"{summary.remaining} remains unallocated",
            )
        )

    for line in plan.allocations:
        if line.expected_amount == 0:
            issues.append(
                ValidationIssue(
                    "zero_allocation",
                    "warning",
                    f"'{line.item_name}' results in a zero allocation",
                    [line.budget_item_id],
                )
            )
