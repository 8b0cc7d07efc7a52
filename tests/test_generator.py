import threading
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from budget_engine.domain import BudgetItem, PayPeriodStatus
from budget_engine.errors import CycleError, StoreError
from budget_engine.generator import PayPeriodGenerator

from conftest import make_item


@pytest.fixture
def budget(store):
    rent = store.save_budget_item(make_item(None, "FIXED", 500, name="Rent", priority=1))
    giving = store.save_budget_item(make_item(None, "NET_PERCENT", 10, name="Giving", priority=2))
    rest = store.save_budget_item(
        make_item(None, "REMAINING_PERCENT", 50, name="Savings", priority=5, category="Savings")
    )
    return rent, giving, rest


def test_first_period_starts_on_source_start_date(store, salary, budget):
    generator = PayPeriodGenerator(store)

    created = generator.generate_due(salary, date(2024, 1, 3))

    assert len(created) == 1
    period = created[0]
    assert (period.start_date, period.end_date) == (date(2024, 1, 1), date(2024, 1, 7))
    assert period.status is PayPeriodStatus.ACTIVE
    assert period.expected_net == Decimal("3800")

    lines = store.get_allocations(period.id)
    assert [line.item_name for line in lines] == ["Rent", "Giving", "Savings"]
    assert [line.expected_amount for line in lines] == [
        Decimal("500.00"),
        Decimal("380.00"),
        Decimal("1460.00"),
    ]


def test_generation_is_idempotent(store, salary, budget):
    generator = PayPeriodGenerator(store)

    generator.generate_due(salary, date(2024, 1, 3))
    again = generator.generate_due(salary, date(2024, 1, 3))

    assert again == []
    assert len(store.list_pay_periods(salary.id)) == 1


def test_gap_is_backfilled_with_contiguous_periods(store, salary, budget):
    generator = PayPeriodGenerator(store)
    generator.generate_due(salary, date(2024, 1, 3))

    created = generator.generate_due(salary, date(2024, 1, 28))

    assert [(p.start_date, p.end_date) for p in created] == [
        (date(2024, 1, 8), date(2024, 1, 14)),
        (date(2024, 1, 15), date(2024, 1, 21)),
        (date(2024, 1, 22), date(2024, 1, 28)),
    ]
    periods = store.list_pay_periods(salary.id)
    for previous, current in zip(periods, periods[1:]):
        assert (current.start_date - previous.end_date).days == 1
    assert [p.status for p in periods] == [
        PayPeriodStatus.COMPLETED,
        PayPeriodStatus.COMPLETED,
        PayPeriodStatus.COMPLETED,
        PayPeriodStatus.ACTIVE,
    ]
    assert all(len(store.get_allocations(p.id)) == 3 for p in periods)


def test_cycle_aborts_before_any_write(store, salary, monkeypatch):
    looped = [
        make_item(1, name="A", depends_on=[2]),
        make_item(2, name="B", depends_on=[1]),
    ]
    monkeypatch.setattr(store, "get_active_budget_items", lambda user_id: looped)

    with pytest.raises(CycleError):
        PayPeriodGenerator(store).generate_due(salary, date(2024, 1, 20))

    assert store.list_pay_periods(salary.id) == []


def test_store_failure_on_one_source_does_not_stop_others(store, salary, budget, monkeypatch):
    bonus = store.save_income_source(replace(salary, id=None, name="Side job", cadence="monthly"))
    original = store.create_pay_period_with_allocations

    def flaky(period, allocations):
        if period.income_source_id == salary.id:
            raise StoreError("database is locked")
        return original(period, allocations)

    monkeypatch.setattr(store, "create_pay_period_with_allocations", flaky)

    report = PayPeriodGenerator(store).generate_for_user(1, date(2024, 1, 3))

    assert set(report.store_failures) == {salary.id}
    assert [(p.start_date, p.end_date) for p in report.created[bonus.id]] == [
        (date(2024, 1, 1), date(2024, 1, 31))
    ]
    assert store.list_pay_periods(salary.id) == []


def test_inactive_or_future_sources_generate_nothing(store, salary, budget):
    generator = PayPeriodGenerator(store)

    assert generator.generate_due(replace(salary, is_active=False), date(2024, 1, 3)) == []
    assert generator.generate_due(salary, date(2023, 12, 31)) == []
    assert store.list_pay_periods(salary.id) == []


def test_concurrent_calls_create_a_single_period(store, salary, budget):
    generator = PayPeriodGenerator(store)
    barrier = threading.Barrier(4)
    errors = []

    def run():
        barrier.wait()
        try:
            generator.generate_due(salary, date(2024, 1, 3))
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=run) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(store.list_pay_periods(salary.id)) == 1


def test_preview_does_not_write(store, salary, budget):
    plan = PayPeriodGenerator(store).preview(salary)

    assert plan.total_allocated == Decimal("2340.00")
    assert plan.remaining == Decimal("1460.00")
    assert store.list_pay_periods(salary.id) == []


def test_over_allocated_period_is_still_persisted(store, salary):
    store.save_budget_item(make_item(None, "FIXED", 3000, name="Rent"))
    store.save_budget_item(make_item(None, "FIXED", 1000, name="Car", priority=1))
    store.save_budget_item(
        make_item(None, "REMAINING_PERCENT", 100, name="Fun", priority=2, category="Discretionary")
    )

    created = PayPeriodGenerator(store).generate_due(salary, date(2024, 1, 3))

    lines = store.get_allocations(created[0].id)
    assert [line.expected_amount for line in lines] == [
        Decimal("3000.00"),
        Decimal("1000.00"),
        Decimal("-200.00"),
    ]


def test_capped_fixed_items_never_exceed_net(store, salary):
    capped = store.save_income_source(replace(salary, id=None, cap_fixed_allocations=True))
    store.save_budget_item(make_item(None, "FIXED", 3000, name="Rent"))
    store.save_budget_item(make_item(None, "FIXED", 1000, name="Car", priority=1))

    created = PayPeriodGenerator(store).generate_due(capped, date(2024, 1, 3))

    lines = store.get_allocations(created[0].id)
    assert [line.expected_amount for line in lines] == [Decimal("3000.00"), Decimal("800.00")]


def test_pro_rating_scales_monthly_fixed_items_to_the_period(store, salary):
    store.save_budget_item(make_item(None, "FIXED", Decimal("3043.75"), name="Rent"))

    plan = PayPeriodGenerator(store, pro_rate=True).preview(salary)

    # 7 days out of an average 30.4375 day month
    assert plan.allocations[0].expected_amount == Decimal("700.00")


def test_items_are_ordered_by_dependencies_not_insertion(store, salary):
    late = store.save_budget_item(make_item(None, "FIXED", 100, name="Late", priority=0))
    early = store.save_budget_item(make_item(None, "FIXED", 200, name="Early", priority=9))
    store.save_budget_item(replace(late, depends_on=(early.id,)))

    plan = PayPeriodGenerator(store).preview(salary)

    assert [line.item_name for line in plan.allocations] == ["Early", "Late"]
    assert isinstance(store.get_budget_item(late.id), BudgetItem)
