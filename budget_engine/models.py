from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)

from .db import Base
from .domain import (
    AllocationStatus,
    Cadence,
    CalcType,
    Category,
    PayPeriodStatus,
    utcnow,
)


def _values(enum_cls):
    return [member.value for member in enum_cls]


class IncomeSourceRow(Base):
    __tablename__ = "income_sources"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, index=True, nullable=False)
    name = Column(String, nullable=False)
    gross_amount = Column(Numeric(10, 2), nullable=False)
    net_amount = Column(Numeric(10, 2), nullable=False)
    cadence = Column(Enum(Cadence, values_callable=_values, name="income_cadence"), nullable=False)
    start_date = Column(Date, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    cap_fixed_allocations = Column(Boolean, default=False, nullable=False)


class BudgetItemRow(Base):
    __tablename__ = "budget_items"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, index=True, nullable=False)
    name = Column(String, nullable=False)
    category = Column(Enum(Category, values_callable=_values, name="budget_category"), nullable=False)
    calc_type = Column(Enum(CalcType, values_callable=_values, name="calc_type"), nullable=False)
    value = Column(Numeric(10, 2), nullable=False)
    cadence = Column(Enum(Cadence, values_callable=_values, name="item_cadence"), nullable=False)
    depends_on = Column(JSON, default=list, nullable=False)  # ordered list of budget_items.id
    priority = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class PayPeriodRow(Base):
    __tablename__ = "pay_periods"
    __table_args__ = (UniqueConstraint("income_source_id", "start_date"),)
    id = Column(Integer, primary_key=True)
    income_source_id = Column(Integer, ForeignKey("income_sources.id"), index=True, nullable=False)
    user_id = Column(Integer, index=True, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    expected_net = Column(Numeric(10, 2), nullable=False)
    status = Column(
        Enum(PayPeriodStatus, values_callable=_values, name="pay_period_status"),
        default=PayPeriodStatus.ACTIVE,
        nullable=False,
    )
    generated_at = Column(DateTime, default=utcnow, nullable=False)


class AllocationRow(Base):
    __tablename__ = "allocations"
    __table_args__ = (UniqueConstraint("pay_period_id", "budget_item_id"),)
    id = Column(Integer, primary_key=True)
    pay_period_id = Column(Integer, ForeignKey("pay_periods.id"), index=True, nullable=False)
    budget_item_id = Column(Integer, ForeignKey("budget_items.id"), index=True, nullable=False)
    position = Column(Integer, nullable=False)  # evaluation order within the period
    item_name = Column(String, nullable=False)
    item_category = Column(Enum(Category, values_callable=_values, name="allocation_category"), nullable=False)
    calc_type = Column(Enum(CalcType, values_callable=_values, name="allocation_calc_type"), nullable=False)
    expected_amount = Column(Numeric(10, 2), nullable=False)
    actual_amount = Column(Numeric(10, 2), nullable=True)
    status = Column(
        Enum(AllocationStatus, values_callable=_values, name="allocation_status"),
        default=AllocationStatus.UNPAID,
        nullable=False,
    )
