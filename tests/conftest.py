from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from budget_engine.db import create_tables
from budget_engine.domain import BudgetItem, IncomeSource
from budget_engine.store import SqlAlchemyStore


@pytest.fixture
def store(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'budget.db'}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    create_tables(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    yield SqlAlchemyStore(factory)
    engine.dispose()


@pytest.fixture
def salary(store) -> IncomeSource:
    return store.save_income_source(
        IncomeSource(
            id=None,
            user_id=1,
            name="Salary",
            gross_amount=Decimal("5000"),
            net_amount=Decimal("3800"),
            cadence="weekly",
            start_date=date(2024, 1, 1),
        )
    )


def make_item(item_id, calc_type="FIXED", value=100, priority=0, depends_on=(), **kwargs) -> BudgetItem:
    return BudgetItem(
        id=item_id,
        user_id=kwargs.pop("user_id", 1),
        name=kwargs.pop("name", f"item-{item_id}"),
        category=kwargs.pop("category", "Bills"),
        calc_type=calc_type,
        value=value,
        priority=priority,
        depends_on=depends_on,
        **kwargs,
    )
