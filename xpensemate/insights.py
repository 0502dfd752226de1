import asyncio
import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from xpensemate.domain import BudgetGoal, Expense, Record
from xpensemate.events import BUDGET_GOAL_UPDATED, EXPENSE_UPDATED, Event, EventBus

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"weekly": 7, "monthly": 30, "quarterly": 90, "yearly": 365}


def records_frame(records: Iterable[Record]) -> pd.DataFrame:
    rows = [
        {
            "key": r.key,
            "name": r.name,
            "amount": float(r.amount),
            "date": pd.Timestamp(r.date),
            "category": r.category or "Uncategorized",
        }
        for r in records
    ]
    return pd.DataFrame(rows, columns=["key", "name", "amount", "date", "category"])


def category_breakdown(records: Iterable[Record]) -> List[Tuple[str, float]]:
    df = records_frame(records)
    if df.empty:
        return []
    totals = df.groupby("category")["amount"].sum().sort_values(ascending=False)
    return [(name, round(float(total), 2)) for name, total in totals.items()]


def weekly_stats(records: Iterable[Record], today: Optional[date] = None) -> Dict[date, float]:
    """Total per day for the seven days ending ``today``, zero-filled."""
    today = today or date.today()
    days = pd.date_range(end=pd.Timestamp(today), periods=7, freq="D")
    df = records_frame(records)
    if df.empty:
        daily = pd.Series(0.0, index=days)
    else:
        daily = df.groupby(df["date"].dt.normalize())["amount"].sum().reindex(days, fill_value=0.0)
    return {ts.date(): round(float(v), 2) for ts, v in daily.items()}


def _window_total(df: pd.DataFrame, start: date, end: date) -> float:
    mask = (df["date"] >= pd.Timestamp(start)) & (df["date"] <= pd.Timestamp(end))
    return float(df.loc[mask, "amount"].sum())


def period_growth(records: Iterable[Record], period: str = "weekly", today: Optional[date] = None) -> dict:
    """Current period total against the one before it.

    ``growth`` is a percentage, and 0 when the previous period spent nothing.
    """
    if period not in PERIOD_DAYS:
        raise ValueError(f"Invalid period. Must be one of: {', '.join(PERIOD_DAYS)}")
    today = today or date.today()
    span = PERIOD_DAYS[period]
    current_start = today - timedelta(days=span - 1)
    previous_end = current_start - timedelta(days=1)
    previous_start = previous_end - timedelta(days=span - 1)

    df = records_frame(records)
    current = _window_total(df, current_start, today) if not df.empty else 0.0
    previous = _window_total(df, previous_start, previous_end) if not df.empty else 0.0
    growth = ((current - previous) / previous * 100) if previous else 0.0
    return {
        "period": period,
        "current": round(current, 2),
        "previous": round(previous, 2),
        "growth": round(growth, 2),
    }


def goal_progress(goals: Iterable[BudgetGoal], expenses: Iterable[Expense]) -> Dict[str, dict]:
    spent_by_goal: Dict[str, float] = {}
    for e in expenses:
        if e.budget_goal_id:
            spent_by_goal[e.budget_goal_id] = spent_by_goal.get(e.budget_goal_id, 0.0) + float(e.amount)

    progress = {}
    for g in goals:
        spent = round(spent_by_goal.get(g.key, 0.0), 2)
        target = float(g.amount)
        progress[g.key] = {
            "name": g.name,
            "target": target,
            "spent": spent,
            "remaining": round(target - spent, 2),
            "percent": round(min(100.0, spent / target * 100), 2) if target > 0 else 0.0,
        }
    return progress


class InsightsPanel:
    """Budget-insights widget that refreshes when expenses or goals change."""

    EVENTS = (EXPENSE_UPDATED, BUDGET_GOAL_UPDATED)

    def __init__(self, bus: EventBus):
        self.bus = bus
        self.stale = True
        self.summary: dict = {}
        self.expenses: tuple = ()
        for name in self.EVENTS:
            bus.subscribe(name, self.on_event)

    def on_event(self, event: Event, payload: dict) -> dict:
        logger.debug("Insights stale after %s", event.name)
        self.stale = True
        return {"stale": True}

    def refresh(self, expenses: Iterable[Expense], goals: Iterable[BudgetGoal] = (),
                period: str = "weekly", today: Optional[date] = None) -> dict:
        expenses = tuple(expenses)
        goals = tuple(goals)
        self.expenses = expenses
        self.summary = {
            "categories": category_breakdown(expenses),
            "weekly": weekly_stats(expenses, today),
            "growth": period_growth(expenses, period, today),
            "goals": goal_progress(goals, expenses),
        }
        self.stale = False
        return self.summary

    async def reload(self, expense_api, goal_api, period: str = "weekly",
                     today: Optional[date] = None) -> dict:
        """Recompute over every expense and goal the user has, not one page."""
        expenses, goals = await asyncio.gather(expense_api.list_all(), goal_api.list_all())
        logger.info("Insights over %d expenses and %d goals", len(expenses), len(goals))
        return self.refresh(expenses, goals, period, today)

    def close(self) -> None:
        for name in self.EVENTS:
            self.bus.unsubscribe(name, self.on_event)
