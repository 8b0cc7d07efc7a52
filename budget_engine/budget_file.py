from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from .domain import BudgetItem, IncomeSource
from .errors import InvalidBudgetItem, InvalidDependency
from .store import SqlAlchemyStore


@dataclass(slots=True)
class ItemDefinition:
    item: BudgetItem
    depends_on: tuple[str, ...] = ()


@dataclass
class BudgetDefinition:
    income_sources: list[IncomeSource] = field(default_factory=list)
    budget_items: list[ItemDefinition] = field(default_factory=list)


def load_budget_file(path: str | Path, user_id: int) -> BudgetDefinition:
    """Parse a YAML budget definition.

    Budget items name their dependencies (``depends_on: [Rent]``) since ids
    only exist once the items are stored.
    """

    p = Path(path)
    with p.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise InvalidBudgetItem(f"{p}: expected a mapping at the top level")

    definition = BudgetDefinition()
    for raw in _as_list(data.get("income_sources")):
        source = IncomeSource(
            id=None,
            user_id=user_id,
            name=str(_require(raw, "name")),
            gross_amount=_require(raw, "gross"),
            net_amount=_require(raw, "net"),
            cadence=_require(raw, "cadence"),
            start_date=_as_date(_require(raw, "start_date")),
            is_active=bool(raw.get("active", True)),
            cap_fixed_allocations=bool(raw.get("cap_fixed_allocations", False)),
        )
        source.check()
        definition.income_sources.append(source)

    for raw in _as_list(data.get("budget_items")):
        item = BudgetItem(
            id=None,
            user_id=user_id,
            name=str(_require(raw, "name")),
            category=raw.get("category", "Other"),
            calc_type=_require(raw, "calc_type"),
            value=_require(raw, "value"),
            cadence=raw.get("cadence", "monthly"),
            priority=int(raw.get("priority", 0)),
            is_active=bool(raw.get("active", True)),
        )
        item.check()
        deps = tuple(str(name) for name in _as_list(raw.get("depends_on")))
        definition.budget_items.append(ItemDefinition(item=item, depends_on=deps))

    logger.debug(
        "Loaded {sources} income sources and {items} budget items from {path}",
        sources=len(definition.income_sources),
        items=len(definition.budget_items),
        path=p,
    )
    return definition


def import_definition(store: SqlAlchemyStore, definition: BudgetDefinition) -> dict[str, int]:
    """Write a definition through the store; returns budget item ids by name.

    Income sources and budget items whose name the user already has are left
    untouched, so importing the same file twice adds nothing. Items are
    written once everything they name exists, so each write passes the
    store's dependency validation on its own.
    """

    user_id = _owner(definition)
    have_sources = {source.name for source in store.list_income_sources(user_id)}
    for source in definition.income_sources:
        if source.name in have_sources:
            logger.info("Income source {source!r} already exists; skipped", source=source.name)
            continue
        store.save_income_source(source)
        have_sources.add(source.name)

    ids = {item.name: item.id for item in store.list_budget_items(user_id) if item.id}
    known = {d.item.name for d in definition.budget_items} | set(ids)
    for d in definition.budget_items:
        unknown = [name for name in d.depends_on if name not in known]
        if unknown:
            raise InvalidDependency(f"{d.item.name}: depends_on names unknown items {unknown}")

    pending = [d for d in definition.budget_items if d.item.name not in ids]
    skipped = len(definition.budget_items) - len(pending)
    if skipped:
        logger.info("{count} budget items already exist; skipped", count=skipped)
    while pending:
        ready = [d for d in pending if all(name in ids for name in d.depends_on)]
        if not ready:
            names = ", ".join(d.item.name for d in pending)
            raise InvalidDependency(f"circular dependencies between budget items: {names}")
        for d in ready:
            item = replace(d.item, depends_on=tuple(ids[name] for name in d.depends_on))
            ids[item.name] = store.save_budget_item(item).id
            pending.remove(d)
    return {d.item.name: ids[d.item.name] for d in definition.budget_items}


# --- Internal helpers --------------------------------------------------------

def _owner(definition: BudgetDefinition) -> int:
    for source in definition.income_sources:
        return source.user_id
    for d in definition.budget_items:
        return d.item.user_id
    return 0


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _require(raw: Any, key: str) -> Any:
    if not isinstance(raw, dict) or raw.get(key) is None:
        raise InvalidBudgetItem(f"missing required field {key!r} in {raw!r}")
    return raw[key]


def _as_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise InvalidBudgetItem(f"invalid date: {value!r}") from None
