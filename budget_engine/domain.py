from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from .errors import InvalidBudgetItem, InvalidCadence, InvalidIncomeSource


class Cadence(str, Enum):
    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    SEMI_MONTHLY = "semi-monthly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"

    @classmethod
    def parse(cls, value: "Cadence | str") -> "Cadence":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower().replace("_", "-").replace(" ", "-")
            if key == "biweekly":
                key = "bi-weekly"
            elif key == "semimonthly":
                key = "semi-monthly"
            try:
                return cls(key)
            except ValueError:
                pass
        raise InvalidCadence(value)


class Category(str, Enum):
    BILLS = "Bills"
    SAVINGS = "Savings"
    DEBT = "Debt"
    GIVING = "Giving"
    DISCRETIONARY = "Discretionary"
    OTHER = "Other"


class CalcType(str, Enum):
    FIXED = "FIXED"
    GROSS_PERCENT = "GROSS_PERCENT"
    NET_PERCENT = "NET_PERCENT"
    REMAINING_PERCENT = "REMAINING_PERCENT"

    @property
    def is_percent(self) -> bool:
        return self is not CalcType.FIXED


class PayPeriodStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class AllocationStatus(str, Enum):
    PAID = "PAID"
    UNPAID = "UNPAID"


def to_money(value: Decimal | float | int | str) -> Decimal:
    """Convert to Decimal without binary float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _member(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidBudgetItem(f"unknown {enum_cls.__name__}: {value!r}") from None


def _unique_ids(values: Optional[Iterable[int]]) -> tuple[int, ...]:
    seen: dict[int, None] = {}
    for value in values or ():
        seen.setdefault(int(value), None)
    return tuple(seen)


@dataclass(slots=True)
class IncomeSource:
    id: Optional[int]
    user_id: int
    name: str
    gross_amount: Decimal
    net_amount: Decimal
    cadence: Cadence
    start_date: date
    is_active: bool = True
    cap_fixed_allocations: bool = False

    def __post_init__(self) -> None:
        self.gross_amount = to_money(self.gross_amount)
        self.net_amount = to_money(self.net_amount)
        self.cadence = Cadence.parse(self.cadence)

    def check(self) -> None:
        if self.gross_amount <= 0:
            raise InvalidIncomeSource(f"{self.name}: gross amount must be positive")
        if not 0 < self.net_amount <= self.gross_amount:
            raise InvalidIncomeSource(
                f"{self.name}: net amount must be positive and not exceed gross"
            )


@dataclass(slots=True)
class BudgetItem:
    id: Optional[int]
    user_id: int
    name: str
    category: Category
    calc_type: CalcType
    value: Decimal
    cadence: Cadence = Cadence.MONTHLY
    depends_on: tuple[int, ...] = ()
    priority: int = 0
    is_active: bool = True

    def __post_init__(self) -> None:
        self.value = to_money(self.value)
        self.category = _member(Category, self.category)
        self.calc_type = _member(CalcType, self.calc_type)
        self.cadence = Cadence.parse(self.cadence)
        self.depends_on = _unique_ids(self.depends_on)

    def check(self) -> None:
        """Raise InvalidBudgetItem when value is out of range for calc_type."""
        if not self.name or not self.name.strip():
            raise InvalidBudgetItem("budget item name must not be empty")
        if self.value < 0:
            raise InvalidBudgetItem(f"{self.name}: value must not be negative, got {self.value}")
        if self.calc_type.is_percent and self.value > 100:
            raise InvalidBudgetItem(
                f"{self.name}: {self.calc_type.value} value must be within 0..100, got {self.value}"
            )


@dataclass(slots=True)
class PayPeriod:
    id: Optional[int]
    income_source_id: int
    user_id: int
    start_date: date
    end_date: date
    expected_net: Decimal
    status: PayPeriodStatus = PayPeriodStatus.ACTIVE
    generated_at: datetime = field(default_factory=utcnow)

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1


@dataclass(slots=True)
class Allocation:
    id: Optional[int]
    pay_period_id: Optional[int]
    budget_item_id: int
    item_name: str
    item_category: Category
    calc_type: CalcType
    expected_amount: Decimal
    actual_amount: Optional[Decimal] = None
    status: AllocationStatus = AllocationStatus.UNPAID
