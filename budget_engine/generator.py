from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from threading import Lock
from typing import Optional

from loguru import logger

from .allocation import AllocationPlan, compute_allocations
from .cadence import boundaries_through, next_boundary
from .config import settings
from .domain import BudgetItem, IncomeSource, PayPeriod, PayPeriodStatus, utcnow
from .errors import CycleError, StoreError
from .formatting import fmt_amount
from .graph import resolve_order
from .store import BudgetStore


@dataclass
class GenerationReport:
    user_id: int
    created: dict[int, list[PayPeriod]] = field(default_factory=dict)
    failures: dict[int, Exception] = field(default_factory=dict)

    @property
    def periods(self) -> list[PayPeriod]:
        return [period for periods in self.created.values() for period in periods]

    @property
    def store_failures(self) -> dict[int, StoreError]:
        return {
            source_id: exc for source_id, exc in self.failures.items() if isinstance(exc, StoreError)
        }


class PayPeriodGenerator:
    """Materializes due pay periods and their allocations for income sources.

    Each income source is processed under its own lock: the read of the last
    persisted period and the backfill that follows must not interleave with
    another call for the same source. Different sources never wait on each
    other.
    """

    def __init__(self, store: BudgetStore, *, pro_rate: Optional[bool] = None) -> None:
        self._store = store
        self._pro_rate = settings.PRO_RATE_FIXED_ITEMS if pro_rate is None else pro_rate
        self._locks: dict[int, Lock] = {}
        self._locks_guard = Lock()

    def generate_due(self, source: IncomeSource, today: date) -> list[PayPeriod]:
        if not source.is_active or source.id is None:
            return []
        if source.start_date > today:
            logger.debug(
                "Income source {source} starts on {start}; nothing due",
                source=source.id,
                start=source.start_date,
            )
            return []

        with self._lock_for(source.id):
            latest = self._store.get_latest_pay_period(source.id)
            since = latest.end_date if latest is not None else None
            due = boundaries_through(source.cadence, source.start_date, since, today)
            if latest is not None and latest.status is PayPeriodStatus.ACTIVE and latest.end_date < today:
                self._store.complete_expired_periods(source.id, today)
            if not due:
                return []

            # Resolve once up front so a cycle aborts before anything is written.
            ordered = resolve_order(self._store.get_active_budget_items(source.user_id))

            created: list[PayPeriod] = []
            for start, end in due:
                period, plan = self._materialize(source, ordered, start, end, today)
                saved = self._store.create_pay_period_with_allocations(period, plan.allocations)
                created.append(saved)
                logger.info(
                    "Generated pay period {start}..{end} for income source {source}: "
                    "{count} allocations, {total} of {net} allocated",
                    start=start,
                    end=end,
                    source=source.id,
                    count=len(plan.allocations),
                    total=fmt_amount(plan.total_allocated),
                    net=fmt_amount(plan.net_income),
                )
                for signal in plan.signals:
                    logger.warning(
                        "Pay period {start}..{end} of income source {source} is over-allocated "
                        "by {shortfall} starting at budget item {item}",
                        start=start,
                        end=end,
                        source=source.id,
                        shortfall=fmt_amount(signal.shortfall),
                        item=signal.item_id,
                    )
            return created

    def generate_for_user(self, user_id: int, today: date) -> GenerationReport:
        """Run generate_due for every active income source of a user.

        A cycle or a store failure on one source is recorded and the remaining
        sources still run.
        """
        report = GenerationReport(user_id=user_id)
        for source in self._store.list_active_income_sources(user_id):
            try:
                report.created[source.id] = self.generate_due(source, today)
            except CycleError as exc:
                logger.warning(
                    "Skipping income source {source} of user {user}: {exc}",
                    source=source.id,
                    user=user_id,
                    exc=exc,
                )
                report.failures[source.id] = exc
            except StoreError as exc:
                logger.warning(
                    "Store failure while generating for income source {source}: {exc}",
                    source=source.id,
                    exc=exc,
                )
                report.failures[source.id] = exc
        return report

    def preview(self, source: IncomeSource, today: Optional[date] = None) -> AllocationPlan:
        """Plan the next period would receive, without writing anything."""
        latest = self._store.get_latest_pay_period(source.id) if source.id is not None else None
        since = latest.end_date if latest is not None else None
        start, end = next_boundary(source.cadence, source.start_date, since)
        ordered = resolve_order(self._store.get_active_budget_items(source.user_id))
        _, plan = self._materialize(source, ordered, start, end, today or start)
        return plan

    # --- Internal helpers ----------------------------------------------------

    def _materialize(
        self,
        source: IncomeSource,
        ordered: list[BudgetItem],
        start: date,
        end: date,
        today: date,
    ) -> tuple[PayPeriod, AllocationPlan]:
        plan = compute_allocations(
            ordered,
            source.gross_amount,
            source.net_amount,
            cap_fixed=source.cap_fixed_allocations,
            income_cadence=source.cadence,
            pro_rate=self._pro_rate,
        )
        period = PayPeriod(
            id=None,
            income_source_id=source.id,
            user_id=source.user_id,
            start_date=start,
            end_date=end,
            expected_net=source.net_amount,
            status=PayPeriodStatus.ACTIVE if end >= today else PayPeriodStatus.COMPLETED,
            generated_at=utcnow(),
        )
        return period, plan

    def _lock_for(self, source_id: int) -> Lock:
        with self._locks_guard:
            lock = self._locks.get(source_id)
            if lock is None:
                lock = self._locks[source_id] = Lock()
            return lock
