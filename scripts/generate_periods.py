from __future__ import annotations

import argparse
from datetime import date

from budget_engine.db import create_tables
from budget_engine.formatting import format_pay_period
from budget_engine.generator import PayPeriodGenerator
from budget_engine.logging_setup import configure_logging
from budget_engine.store import SqlAlchemyStore


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Generate due pay periods for one user")
    parser.add_argument("--user", type=int, required=True, help="User id")
    parser.add_argument(
        "--today",
        type=date.fromisoformat,
        default=date.today(),
        help="Reference date (YYYY-MM-DD, default: today)",
    )
    args = parser.parse_args(argv)

    configure_logging()
    create_tables()
    store = SqlAlchemyStore()
    report = PayPeriodGenerator(store).generate_for_user(args.user, args.today)

    names = {source.id: source.name for source in store.list_active_income_sources(args.user)}
    for source_id, periods in report.created.items():
        for period in periods:
            print(format_pay_period(period, store.get_allocations(period.id), names.get(source_id)))
            print()
    for source_id, exc in report.failures.items():
        print(f"{names.get(source_id, source_id)}: {exc}")
    return 1 if report.failures else 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
