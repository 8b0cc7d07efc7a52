from datetime import datetime
from zoneinfo import ZoneInfo

from .config import settings
from .db import create_tables
from .generator import PayPeriodGenerator
from .logging_setup import configure_logging
from .scheduler import run_generation, setup_jobs
from .store import SqlAlchemyStore


def main():
    configure_logging()
    create_tables()
    store = SqlAlchemyStore()
    generator = PayPeriodGenerator(store)
    # Catch up once at start-up, then keep to the daily schedule.
    run_generation(store, generator, datetime.now(ZoneInfo(settings.TZ)).date())
    sch = setup_jobs(store, settings.TZ, generator)
    sch.start()


if __name__ == "__main__":
    main()
