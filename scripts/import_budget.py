from __future__ import annotations

import argparse
from pathlib import Path

from budget_engine.budget_file import import_definition, load_budget_file
from budget_engine.db import create_tables
from budget_engine.logging_setup import configure_logging
from budget_engine.store import SqlAlchemyStore
from budget_engine.validation import validate_budget


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Import income sources and budget items from YAML")
    parser.add_argument("input", type=Path, help="YAML file with income_sources and budget_items")
    parser.add_argument("--user", type=int, required=True, help="Owning user id")
    args = parser.parse_args(argv)

    configure_logging()
    create_tables()
    store = SqlAlchemyStore()
    definition = load_budget_file(args.input, args.user)
    ids = import_definition(store, definition)

    sources = store.list_active_income_sources(args.user)
    result = validate_budget(store.list_budget_items(args.user), sources[0] if sources else None)
    print(
        f"Processed {len(definition.income_sources)} income sources and {len(ids)} budget items"
        " (names that already existed were kept as they are)"
    )
    for issue in result.issues:
        print(f"[{issue.severity}] {issue.message}")
    return 0 if result.is_valid else 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
