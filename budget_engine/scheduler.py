from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import settings
from .errors import StoreError
from .generator import GenerationReport, PayPeriodGenerator
from .store import SqlAlchemyStore


def generate_user_with_retry(
    generator: PayPeriodGenerator,
    user_id: int,
    today: date,
    attempts: Optional[int] = None,
) -> GenerationReport:
    """Run generation for one user, retrying while the store keeps failing.

    Re-running is safe: every attempt starts from the last persisted period.
    """

    @retry(
        stop=stop_after_attempt(attempts or settings.STORE_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=0.5, max=5),
        retry=retry_if_exception_type(StoreError),
        reraise=True,
    )
    def _attempt() -> GenerationReport:
        report = generator.generate_for_user(user_id, today)
        failures = report.store_failures
        if failures:
            raise StoreError(f"user {user_id}: store failed for income sources {sorted(failures)}")
        return report

    return _attempt()


def run_generation(
    store: SqlAlchemyStore,
    generator: PayPeriodGenerator,
    today: date,
) -> dict[int, GenerationReport]:
    reports: dict[int, GenerationReport] = {}
    for user_id in store.list_user_ids():
        try:
            reports[user_id] = generate_user_with_retry(generator, user_id, today)
        except StoreError as exc:
            logger.error("Giving up on user {user} for {today}: {exc}", user=user_id, today=today, exc=exc)
    created = sum(len(report.periods) for report in reports.values())
    logger.info("Generation for {today} created {count} pay periods", today=today, count=created)
    return reports


def setup_jobs(
    store: SqlAlchemyStore,
    tz: str,
    generator: Optional[PayPeriodGenerator] = None,
) -> BlockingScheduler:
    sch = BlockingScheduler(timezone=tz)
    generator = generator or PayPeriodGenerator(store)

    @sch.scheduled_job(
        CronTrigger(hour=settings.GENERATION_HOUR, minute=settings.GENERATION_MINUTE, timezone=tz),
        id="generate_pay_periods",
        max_instances=1,
        coalesce=True,
    )
    def generate_pay_periods():
        run_generation(store, generator, datetime.now(sch.timezone).date())

    return sch
