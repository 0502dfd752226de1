from datetime import date, timedelta

import pytest

from conftest import FakeApi, make_expense, make_goal
from xpensemate.domain import Page
from xpensemate.events import EventBus
from xpensemate.insights import InsightsPanel, category_breakdown, goal_progress, period_growth, weekly_stats
from xpensemate.resources import BUDGET_GOALS, EXPENSES

TODAY = date(2025, 3, 10)


def spent(days_ago, amount, category="Food", **kw):
    key = f"e-{days_ago}-{amount}"
    return make_expense(key, amount=amount, day=TODAY - timedelta(days=days_ago), category=category, **kw)


def test_category_breakdown_sorted_descending():
    records = [spent(0, 10, "Food"), spent(1, 50, "Rent"), spent(2, 15, "Food"), spent(3, 5, "")]
    assert category_breakdown(records) == [("Rent", 50.0), ("Food", 25.0), ("Uncategorized", 5.0)]


def test_category_breakdown_empty():
    assert category_breakdown([]) == []


def test_weekly_stats_zero_fills_last_seven_days():
    stats = weekly_stats([spent(0, 10), spent(0, 2.5), spent(6, 4), spent(7, 100)], today=TODAY)
    assert list(stats) == [TODAY - timedelta(days=d) for d in range(6, -1, -1)]
    assert stats[TODAY] == 12.5
    assert stats[TODAY - timedelta(days=6)] == 4.0
    assert stats[TODAY - timedelta(days=3)] == 0.0


def test_weekly_growth_against_previous_week():
    records = [spent(0, 30), spent(6, 30), spent(7, 20), spent(13, 20), spent(14, 999)]
    growth = period_growth(records, "weekly", today=TODAY)
    assert growth == {"period": "weekly", "current": 60.0, "previous": 40.0, "growth": 50.0}


def test_growth_is_zero_without_previous_spending():
    assert period_growth([spent(1, 10)], "monthly", today=TODAY)["growth"] == 0.0


def test_unknown_period_is_rejected():
    with pytest.raises(ValueError):
        period_growth([], "fortnightly", today=TODAY)


def test_goal_progress_counts_linked_expenses_only():
    goals = [make_goal("g1", amount=200.0), make_goal("g2", name="Fuel", amount=50.0)]
    expenses = [
        spent(1, 120, budget_goal_id="g1"),
        spent(2, 30, budget_goal_id="g1"),
        spent(3, 80, budget_goal_id="g2"),
        spent(4, 999),
    ]
    progress = goal_progress(goals, expenses)
    assert progress["g1"]["spent"] == 150.0
    assert progress["g1"]["remaining"] == 50.0
    assert progress["g1"]["percent"] == 75.0
    assert progress["g2"]["percent"] == 100.0
    assert progress["g2"]["remaining"] == -30.0


@pytest.mark.asyncio
async def test_reload_aggregates_every_page():
    expense_api = FakeApi(EXPENSES, pages={
        1: Page(records=(spent(0, 10, budget_goal_id="g1"), spent(1, 20, "Rent")), total=3, page=1),
        2: Page(records=(spent(2, 30, budget_goal_id="g1"),), total=3, page=2),
    })
    goal_api = FakeApi(BUDGET_GOALS, pages={1: Page(records=(make_goal("g1", amount=80.0),), total=1, page=1)})
    panel = InsightsPanel(EventBus())

    summary = await panel.reload(expense_api, goal_api, period="weekly", today=TODAY)

    assert len(panel.expenses) == 3
    assert summary["categories"] == [("Food", 40.0), ("Rent", 20.0)]
    assert summary["goals"]["g1"]["spent"] == 40.0
    assert panel.stale is False
