from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Iterator, Optional, Protocol, Sequence

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .db import SessionLocal
from .domain import (
    Allocation,
    AllocationStatus,
    BudgetItem,
    IncomeSource,
    PayPeriod,
    PayPeriodStatus,
    to_money,
)
from .errors import BudgetEngineError, ImmutableRecordError, StoreError
from .graph import check_dependencies
from .models import AllocationRow, BudgetItemRow, IncomeSourceRow, PayPeriodRow


class BudgetStore(Protocol):
    """Reads and writes the generator needs from the surrounding application."""

    def get_active_budget_items(self, user_id: int) -> list[BudgetItem]:
        ...

    def get_latest_pay_period(self, income_source_id: int) -> Optional[PayPeriod]:
        ...

    def create_pay_period_with_allocations(
        self, period: PayPeriod, allocations: Sequence[Allocation]
    ) -> PayPeriod:
        ...

    def update_allocation_actual(self, allocation_id: int, amount: Decimal) -> Allocation:
        ...

    def list_active_income_sources(self, user_id: int) -> list[IncomeSource]:
        ...

    def complete_expired_periods(self, income_source_id: int, today: date) -> int:
        ...

    def list_user_ids(self) -> list[int]:
        ...


class SqlAlchemyStore:
    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    # --- Collaborator operations ---------------------------------------------

    def get_active_budget_items(self, user_id: int) -> list[BudgetItem]:
        with self._read() as s:
            rows = s.scalars(
                select(BudgetItemRow)
                .where(BudgetItemRow.user_id == user_id, BudgetItemRow.is_active.is_(True))
                .order_by(BudgetItemRow.id)
            ).all()
            return [_item_from_row(row) for row in rows]

    def get_latest_pay_period(self, income_source_id: int) -> Optional[PayPeriod]:
        with self._read() as s:
            row = s.scalars(
                select(PayPeriodRow)
                .where(PayPeriodRow.income_source_id == income_source_id)
                .order_by(PayPeriodRow.end_date.desc())
                .limit(1)
            ).first()
            return _period_from_row(row) if row is not None else None

    def create_pay_period_with_allocations(
        self, period: PayPeriod, allocations: Sequence[Allocation]
    ) -> PayPeriod:
        """Insert the period and all its allocations in one transaction."""
        with self._write() as s:
            row = PayPeriodRow(
                income_source_id=period.income_source_id,
                user_id=period.user_id,
                start_date=period.start_date,
                end_date=period.end_date,
                expected_net=period.expected_net,
                status=period.status,
                generated_at=period.generated_at,
            )
            s.add(row)
            s.flush()
            for position, line in enumerate(allocations):
                s.add(
                    AllocationRow(
                        pay_period_id=row.id,
                        budget_item_id=line.budget_item_id,
                        position=position,
                        item_name=line.item_name,
                        item_category=line.item_category,
                        calc_type=line.calc_type,
                        expected_amount=line.expected_amount,
                        actual_amount=line.actual_amount,
                        status=line.status,
                    )
                )
            s.flush()
            return _period_from_row(row)

    def update_allocation_actual(self, allocation_id: int, amount: Decimal) -> Allocation:
        amount = to_money(amount)
        if amount < 0:
            raise ValueError(f"actual amount must not be negative, got {amount}")
        with self._write() as s:
            row = s.get(AllocationRow, allocation_id)
            if row is None:
                raise StoreError(f"allocation {allocation_id} not found")
            row.actual_amount = amount
            row.status = (
                AllocationStatus.PAID if amount >= row.expected_amount else AllocationStatus.UNPAID
            )
            s.flush()
            return _allocation_from_row(row)

    def list_active_income_sources(self, user_id: int) -> list[IncomeSource]:
        with self._read() as s:
            rows = s.scalars(
                select(IncomeSourceRow)
                .where(IncomeSourceRow.user_id == user_id, IncomeSourceRow.is_active.is_(True))
                .order_by(IncomeSourceRow.id)
            ).all()
            return [_source_from_row(row) for row in rows]

    def complete_expired_periods(self, income_source_id: int, today: date) -> int:
        with self._write() as s:
            result = s.execute(
                update(PayPeriodRow)
                .where(
                    PayPeriodRow.income_source_id == income_source_id,
                    PayPeriodRow.status == PayPeriodStatus.ACTIVE,
                    PayPeriodRow.end_date < today,
                )
                .values(status=PayPeriodStatus.COMPLETED)
            )
            return result.rowcount or 0

    def list_user_ids(self) -> list[int]:
        with self._read() as s:
            return list(
                s.scalars(
                    select(IncomeSourceRow.user_id)
                    .where(IncomeSourceRow.is_active.is_(True))
                    .distinct()
                    .order_by(IncomeSourceRow.user_id)
                ).all()
            )

    # --- Write side used by the application and scripts ---------------------

    def save_income_source(self, source: IncomeSource) -> IncomeSource:
        """Insert or update an income source.

        Once a pay period references the source only ``is_active`` may change.
        """
        source.check()
        with self._write() as s:
            if source.id is None:
                row = IncomeSourceRow()
                s.add(row)
            else:
                row = s.get(IncomeSourceRow, source.id)
                if row is None:
                    raise StoreError(f"income source {source.id} not found")
                if self._is_referenced(s, source.id) and _source_changed(row, source):
                    raise ImmutableRecordError(
                        f"income source {source.id} already has pay periods; only deactivation is allowed"
                    )
            _fill_source_row(row, source)
            s.flush()
            return _source_from_row(row)

    def deactivate_income_source(self, income_source_id: int) -> None:
        with self._write() as s:
            row = s.get(IncomeSourceRow, income_source_id)
            if row is None:
                raise StoreError(f"income source {income_source_id} not found")
            row.is_active = False

    def get_income_source(self, income_source_id: int) -> Optional[IncomeSource]:
        with self._read() as s:
            row = s.get(IncomeSourceRow, income_source_id)
            return _source_from_row(row) if row is not None else None

    def list_income_sources(self, user_id: int) -> list[IncomeSource]:
        with self._read() as s:
            rows = s.scalars(
                select(IncomeSourceRow).where(IncomeSourceRow.user_id == user_id).order_by(IncomeSourceRow.id)
            ).all()
            return [_source_from_row(row) for row in rows]

    def save_budget_item(self, item: BudgetItem) -> BudgetItem:
        """Insert or update a budget item after validating its dependencies.

        The dependency check runs against the owner's current items inside the
        same transaction, so a write that would create a cycle never lands.
        """
        item.check()
        with self._write() as s:
            existing = [
                _item_from_row(row)
                for row in s.scalars(
                    select(BudgetItemRow).where(BudgetItemRow.user_id == item.user_id)
                ).all()
            ]
            check_dependencies(existing, item)
            if item.id is None:
                row = BudgetItemRow()
                s.add(row)
            else:
                row = s.get(BudgetItemRow, item.id)
                if row is None or row.user_id != item.user_id:
                    raise StoreError(f"budget item {item.id} not found for user {item.user_id}")
            _fill_item_row(row, item)
            s.flush()
            return _item_from_row(row)

    def add_dependency(self, item_id: int, depends_on_id: int) -> BudgetItem:
        item = self.get_budget_item(item_id)
        if item is None:
            raise StoreError(f"budget item {item_id} not found")
        if depends_on_id in item.depends_on:
            return item
        return self.save_budget_item(replace(item, depends_on=(*item.depends_on, depends_on_id)))

    def get_budget_item(self, item_id: int) -> Optional[BudgetItem]:
        with self._read() as s:
            row = s.get(BudgetItemRow, item_id)
            return _item_from_row(row) if row is not None else None

    def list_budget_items(self, user_id: int) -> list[BudgetItem]:
        with self._read() as s:
            rows = s.scalars(
                select(BudgetItemRow).where(BudgetItemRow.user_id == user_id).order_by(BudgetItemRow.id)
            ).all()
            return [_item_from_row(row) for row in rows]

    def list_pay_periods(self, income_source_id: int) -> list[PayPeriod]:
        with self._read() as s:
            rows = s.scalars(
                select(PayPeriodRow)
                .where(PayPeriodRow.income_source_id == income_source_id)
                .order_by(PayPeriodRow.start_date)
            ).all()
            return [_period_from_row(row) for row in rows]

    def get_allocations(self, pay_period_id: int) -> list[Allocation]:
        with self._read() as s:
            rows = s.scalars(
                select(AllocationRow)
                .where(AllocationRow.pay_period_id == pay_period_id)
                .order_by(AllocationRow.position)
            ).all()
            return [_allocation_from_row(row) for row in rows]

    # --- Sessions ------------------------------------------------------------

    @contextmanager
    def _read(self) -> Iterator[Session]:
        try:
            with self._session_factory() as s:
                yield s
        except SQLAlchemyError as exc:
            logger.warning("Store read failed: {exc}", exc=exc)
            raise StoreError(str(exc)) from exc

    @contextmanager
    def _write(self) -> Iterator[Session]:
        try:
            with self._session_factory.begin() as s:
                yield s
        except BudgetEngineError:
            raise
        except SQLAlchemyError as exc:
            logger.warning("Store write rolled back: {exc}", exc=exc)
            raise StoreError(str(exc)) from exc

    @staticmethod
    def _is_referenced(s: Session, income_source_id: int) -> bool:
        return (
            s.scalars(
                select(PayPeriodRow.id).where(PayPeriodRow.income_source_id == income_source_id).limit(1)
            ).first()
            is not None
        )


# --- Row conversion ----------------------------------------------------------

def _source_from_row(row: IncomeSourceRow) -> IncomeSource:
    return IncomeSource(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        gross_amount=row.gross_amount,
        net_amount=row.net_amount,
        cadence=row.cadence,
        start_date=row.start_date,
        is_active=row.is_active,
        cap_fixed_allocations=row.cap_fixed_allocations,
    )


def _fill_source_row(row: IncomeSourceRow, source: IncomeSource) -> None:
    row.user_id = source.user_id
    row.name = source.name
    row.gross_amount = source.gross_amount
    row.net_amount = source.net_amount
    row.cadence = source.cadence
    row.start_date = source.start_date
    row.is_active = source.is_active
    row.cap_fixed_allocations = source.cap_fixed_allocations


def _source_changed(row: IncomeSourceRow, source: IncomeSource) -> bool:
    current = _source_from_row(row)
    return replace(current, is_active=source.is_active) != source


def _item_from_row(row: BudgetItemRow) -> BudgetItem:
    return BudgetItem(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        category=row.category,
        calc_type=row.calc_type,
        value=row.value,
        cadence=row.cadence,
        depends_on=tuple(row.depends_on or ()),
        priority=row.priority,
        is_active=row.is_active,
    )


def _fill_item_row(row: BudgetItemRow, item: BudgetItem) -> None:
    row.user_id = item.user_id
    row.name = item.name
    row.category = item.category
    row.calc_type = item.calc_type
    row.value = item.value
    row.cadence = item.cadence
    row.depends_on = list(item.depends_on)
    row.priority = item.priority
    row.is_active = item.is_active


def _period_from_row(row: PayPeriodRow) -> PayPeriod:
    return PayPeriod(
        id=row.id,
        income_source_id=row.income_source_id,
        user_id=row.user_id,
        start_date=row.start_date,
        end_date=row.end_date,
        expected_net=row.expected_net,
        status=row.status,
        generated_at=row.generated_at,
    )


def _allocation_from_row(row: AllocationRow) -> Allocation:
    return Allocation(
        id=row.id,
        pay_period_id=row.pay_period_id,
        budget_item_id=row.budget_item_id,
        item_name=row.item_name,
        item_category=row.item_category,
        calc_type=row.calc_type,
        expected_amount=row.expected_amount,
        actual_amount=row.actual_amount,
        status=row.status,
    )
