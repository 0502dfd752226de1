"""Normalise backend JSON into the canonical record and page types.

The backend is not consistent across endpoints: goals arrive under
``budgetGoals`` or nested as ``data.goals``, identifiers as ``_id`` or ``id``,
and ``category_id`` is sometimes a populated category document. Everything
past this module sees only ``Expense``/``BudgetGoal``/``Payment`` and ``Page``.
"""
from datetime import date, datetime
from typing import Any, Callable, Iterable, Optional

from xpensemate.domain import BudgetGoal, Expense, Page, Payment, Record
from xpensemate.errors import ResponseShapeError


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
    raise ResponseShapeError(f"Unrecognised date: {value!r}")


def record_id(raw: dict) -> str:
    value = raw.get("_id", raw.get("id"))
    if value is None:
        raise ResponseShapeError(f"Record without identifier: {raw!r}")
    return str(value)


def _category(raw: dict) -> tuple[str, Optional[str]]:
    category = raw.get("category")
    category_id = raw.get("category_id")
    if isinstance(category_id, dict):
        category = category or category_id.get("name")
        category_id = category_id.get("_id", category_id.get("id"))
    return (category or "", str(category_id) if category_id is not None else None)


def _amount(raw: dict, field: str = "amount") -> float:
    try:
        return float(raw[field])
    except (KeyError, TypeError, ValueError):
        raise ResponseShapeError(f"Missing or invalid {field}: {raw!r}")


def _require(raw: Any) -> dict:
    if not isinstance(raw, dict):
        raise ResponseShapeError(f"Expected an object, got {type(raw).__name__}")
    return raw


def parse_expense(raw: Any) -> Expense:
    raw = _require(raw)
    category, category_id = _category(raw)
    budget_goal_id = raw.get("budget_goal_id")
    if isinstance(budget_goal_id, dict):
        budget_goal_id = budget_goal_id.get("_id", budget_goal_id.get("id"))
    return Expense(
        id=record_id(raw),
        name=raw.get("name", ""),
        amount=_amount(raw),
        date=parse_date(raw.get("date")),
        category=category,
        category_id=category_id,
        detail=raw.get("detail") or "",
        time=raw.get("time") or "",
        location=raw.get("location") or "",
        payment_method=raw.get("payment_method") or "cash",
        budget_goal_id=str(budget_goal_id) if budget_goal_id else None,
    )


def parse_budget_goal(raw: Any) -> BudgetGoal:
    raw = _require(raw)
    category, category_id = _category(raw)
    return BudgetGoal(
        id=record_id(raw),
        name=raw.get("name", ""),
        amount=_amount(raw),
        date=parse_date(raw.get("date")),
        category=category,
        category_id=category_id,
        detail=raw.get("detail") or "",
        duration=raw.get("duration") or "monthly",
        priority=raw.get("priority") or "medium",
        status=raw.get("status") or "active",
        progress=float(raw.get("progress") or 0),
    )


def parse_payment(raw: Any) -> Payment:
    raw = _require(raw)
    return Payment(
        id=record_id(raw),
        name=raw.get("name", ""),
        amount=_amount(raw),
        date=parse_date(raw.get("date")),
        payment_type=raw.get("payment_type") or "one_time",
        custom_payment_type=raw.get("custom_payment_type") or "",
        detail=raw.get("detail") or "",
    )


def _find_list(body: dict, keys: Iterable[str]) -> Optional[list]:
    for container in (body, body.get("data")):
        if not isinstance(container, dict):
            continue
        for key in keys:
            value = container.get(key)
            if isinstance(value, list):
                return value
    return None


class PageAdapter:
    """Turns a list response of one resource into a ``Page``."""

    def __init__(self, list_keys: Iterable[str], parse_record: Callable[[Any], Record]):
        self.list_keys = tuple(list_keys)
        self.parse_record = parse_record

    def parse_page(self, body: Any, requested_page: int = 1) -> Page:
        if isinstance(body, list):
            items = body
            meta: dict = {}
        else:
            meta = _require(body)
            items = _find_list(meta, self.list_keys)
            if items is None:
                raise ResponseShapeError(
                    f"None of {', '.join(self.list_keys)} found in list response"
                )
            if isinstance(meta.get("data"), dict) and "total" not in meta:
                meta = meta["data"]
        records = tuple(self.parse_record(item) for item in items)
        total = meta.get("total")
        page = meta.get("page")
        return Page(
            records=records,
            total=int(total) if total is not None else len(records),
            page=int(page) if page else (requested_page or 1),
        )


EXPENSE_PAGES = PageAdapter(("expenses",), parse_expense)
BUDGET_GOAL_PAGES = PageAdapter(("budgetGoals", "goals", "budget_goals"), parse_budget_goal)
PAYMENT_PAGES = PageAdapter(("payments",), parse_payment)


def unwrap_record(body: Any, keys: Iterable[str] = ()) -> Optional[dict]:
    """The record document inside a create/update response, or None if there is none."""
    if not isinstance(body, dict):
        return None
    if "_id" in body or "id" in body:
        return body
    for key in ("data", *keys):
        inner = body.get(key)
        if isinstance(inner, dict) and ("_id" in inner or "id" in inner):
            return inner
    return None
