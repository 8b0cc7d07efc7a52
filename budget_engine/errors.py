from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence


class BudgetEngineError(Exception):
    """Base class for every error raised by the engine."""


class InvalidCadence(BudgetEngineError, ValueError):
    """Raised when a cadence value is not one of the supported intervals."""

    def __init__(self, value: object) -> None:
        super().__init__(f"unsupported cadence: {value!r}")
        self.value = value


class CycleError(BudgetEngineError):
    """Raised when budget item dependencies form a cycle."""

    def __init__(self, item_id: int, cycle: Optional[Sequence[int]] = None) -> None:
        self.item_id = item_id
        self.cycle = list(cycle or [item_id])
        path = " -> ".join(str(node) for node in self.cycle)
        super().__init__(
            f"budget item {item_id} is part of a dependency cycle ({path}); "
            "fix your budget item dependencies"
        )


class InvalidDependency(BudgetEngineError, ValueError):
    """Raised when depends_on names an item the owner does not have."""


class InvalidBudgetItem(BudgetEngineError, ValueError):
    """Raised when a budget item definition is out of range."""


class InvalidIncomeSource(BudgetEngineError, ValueError):
    """Raised when income source amounts violate gross >= net > 0."""


class ImmutableRecordError(BudgetEngineError):
    """Raised when a referenced record is edited beyond what is allowed."""


class StoreError(BudgetEngineError, RuntimeError):
    """Raised when the backing store fails; callers may retry."""


@dataclass(frozen=True, slots=True)
class NegativeRemaining:
    """Over-allocation signal returned next to a plan, never raised."""

    item_id: int
    remaining: Decimal

    @property
    def shortfall(self) -> Decimal:
        return -self.remaining
