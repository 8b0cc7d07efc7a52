from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from budget_engine.domain import (
    Allocation,
    AllocationStatus,
    BudgetItem,
    CalcType,
    Category,
    PayPeriod,
    PayPeriodStatus,
)
from budget_engine.errors import (
    CycleError,
    ImmutableRecordError,
    InvalidBudgetItem,
    InvalidDependency,
    InvalidIncomeSource,
    StoreError,
)

from conftest import make_item


def _period(source, start=date(2024, 1, 1), end=date(2024, 1, 7), status=PayPeriodStatus.ACTIVE):
    return PayPeriod(
        id=None,
        income_source_id=source.id,
        user_id=source.user_id,
        start_date=start,
        end_date=end,
        expected_net=source.net_amount,
        status=status,
    )


def _line(item_id, amount, name="Rent"):
    return Allocation(
        id=None,
        pay_period_id=None,
        budget_item_id=item_id,
        item_name=name,
        item_category=Category.BILLS,
        calc_type=CalcType.FIXED,
        expected_amount=Decimal(amount),
    )


def test_saved_income_source_round_trips(store, salary):
    assert salary.id is not None
    assert store.list_active_income_sources(1) == [salary]
    assert store.list_user_ids() == [1]


def test_income_source_amounts_are_validated(store, salary):
    with pytest.raises(InvalidIncomeSource):
        store.save_income_source(replace(salary, id=None, net_amount=Decimal("6000")))


def test_referenced_income_source_only_allows_deactivation(store, salary):
    rent = store.save_budget_item(make_item(None, "FIXED", 500))
    store.create_pay_period_with_allocations(_period(salary), [_line(rent.id, "500")])

    with pytest.raises(ImmutableRecordError):
        store.save_income_source(replace(salary, net_amount=Decimal("4000")))

    store.save_income_source(replace(salary, is_active=False))
    assert store.list_active_income_sources(1) == []
    assert store.get_income_source(salary.id).net_amount == Decimal("3800")


def test_budget_item_write_rejects_cycle(store):
    a = store.save_budget_item(make_item(None, name="A"))
    b = store.save_budget_item(make_item(None, name="B", depends_on=[a.id]))

    with pytest.raises(CycleError):
        store.add_dependency(a.id, b.id)

    assert store.get_budget_item(a.id).depends_on == ()


def test_budget_item_write_rejects_implicit_cycle(store):
    remaining = store.save_budget_item(make_item(None, "REMAINING_PERCENT", 100, priority=5))
    fixed = store.save_budget_item(make_item(None, "FIXED", 100, priority=1))

    with pytest.raises(CycleError):
        store.add_dependency(fixed.id, remaining.id)


def test_budget_item_write_rejects_other_users_items(store):
    theirs = store.save_budget_item(make_item(None, user_id=2))

    with pytest.raises(InvalidDependency):
        store.save_budget_item(make_item(None, depends_on=[theirs.id]))


def test_budget_item_value_is_validated(store):
    with pytest.raises(InvalidBudgetItem):
        store.save_budget_item(make_item(None, "NET_PERCENT", 150))
    assert store.list_budget_items(1) == []


def test_active_items_excludes_inactive(store):
    kept = store.save_budget_item(make_item(None, name="kept"))
    store.save_budget_item(make_item(None, name="gone", is_active=False))

    assert [item.id for item in store.get_active_budget_items(1)] == [kept.id]


def test_period_and_allocations_are_written_together(store, salary):
    rent = store.save_budget_item(make_item(None, "FIXED", 500, name="Rent"))
    food = store.save_budget_item(make_item(None, "FIXED", 300, name="Food"))

    period = store.create_pay_period_with_allocations(
        _period(salary), [_line(food.id, "300", "Food"), _line(rent.id, "500")]
    )

    assert store.get_latest_pay_period(salary.id) == period
    assert [line.item_name for line in store.get_allocations(period.id)] == ["Food", "Rent"]


def test_failed_write_leaves_no_partial_period(store, salary):
    rent = store.save_budget_item(make_item(None, "FIXED", 500))

    with pytest.raises(StoreError):
        store.create_pay_period_with_allocations(
            _period(salary), [_line(rent.id, "500"), _line(rent.id, "500")]
        )

    assert store.get_latest_pay_period(salary.id) is None


def test_duplicate_period_is_rejected(store, salary):
    store.create_pay_period_with_allocations(_period(salary), [])

    with pytest.raises(StoreError):
        store.create_pay_period_with_allocations(_period(salary), [])


def test_update_allocation_actual_marks_paid(store, salary):
    rent = store.save_budget_item(make_item(None, "FIXED", 500))
    period = store.create_pay_period_with_allocations(_period(salary), [_line(rent.id, "500")])
    allocation = store.get_allocations(period.id)[0]

    partial = store.update_allocation_actual(allocation.id, Decimal("200"))
    full = store.update_allocation_actual(allocation.id, Decimal("500"))

    assert partial.status is AllocationStatus.UNPAID
    assert full.status is AllocationStatus.PAID
    assert full.actual_amount == Decimal("500")
    assert full.expected_amount == Decimal("500")


def test_update_allocation_actual_errors(store):
    with pytest.raises(StoreError):
        store.update_allocation_actual(999, Decimal("1"))
    with pytest.raises(ValueError):
        store.update_allocation_actual(1, Decimal("-1"))


def test_complete_expired_periods(store, salary):
    store.create_pay_period_with_allocations(_period(salary), [])
    store.create_pay_period_with_allocations(
        _period(salary, date(2024, 1, 8), date(2024, 1, 14)), []
    )

    assert store.complete_expired_periods(salary.id, date(2024, 1, 10)) == 1
    statuses = [period.status for period in store.list_pay_periods(salary.id)]
    assert statuses == [PayPeriodStatus.COMPLETED, PayPeriodStatus.ACTIVE]


def test_budget_item_round_trip_keeps_dependency_order(store):
    a = store.save_budget_item(make_item(None, name="A"))
    b = store.save_budget_item(make_item(None, name="B"))
    c = store.save_budget_item(make_item(None, name="C", depends_on=[b.id, a.id]))

    loaded = store.get_budget_item(c.id)

    assert isinstance(loaded, BudgetItem)
    assert loaded.depends_on == (b.id, a.id)
    assert loaded.value == Decimal("100")


def test_deactivate_income_source(store, salary):
    store.deactivate_income_source(salary.id)

    assert store.list_active_income_sources(1) == []
    assert store.list_user_ids() == []
    with pytest.raises(StoreError):
        store.deactivate_income_source(999)
