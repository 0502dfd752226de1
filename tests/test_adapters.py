from datetime import date

import pytest

from xpensemate.adapters import (
    BUDGET_GOAL_PAGES,
    EXPENSE_PAGES,
    PAYMENT_PAGES,
    parse_date,
    parse_expense,
    unwrap_record,
)
from xpensemate.errors import ResponseShapeError


def raw_expense(**kw):
    data = {
        "_id": "665f1c",
        "name": "Groceries",
        "amount": 42.5,
        "date": "2025-01-05T00:00:00.000Z",
        "category": "Food",
        "payment_method": "debit_card",
    }
    data.update(kw)
    return data


def test_expense_page_from_list_response():
    body = {"expenses": [raw_expense()], "total": 31, "page": 4, "totalPages": 4}
    page = EXPENSE_PAGES.parse_page(body, requested_page=4)
    assert page.total == 31
    assert page.page == 4
    expense = page.records[0]
    assert expense.id == "665f1c"
    assert expense.date == date(2025, 1, 5)
    assert expense.payment_method == "debit_card"


def test_budget_goals_under_either_shape():
    goal = {"id": 7, "name": "Holiday", "amount": "800", "date": "2025-06-01", "category": "Travel"}
    flat = BUDGET_GOAL_PAGES.parse_page({"budgetGoals": [goal], "total": 1, "page": 1})
    nested = BUDGET_GOAL_PAGES.parse_page({"data": {"goals": [goal], "total": 1, "page": 1}})
    assert flat == nested
    assert flat.records[0].id == "7"
    assert flat.records[0].amount == 800.0
    assert flat.records[0].status == "active"


def test_missing_metadata_falls_back():
    page = PAYMENT_PAGES.parse_page(
        {"payments": [{"_id": "p1", "name": "Acme", "amount": 10, "date": "2025-02-01"}]},
        requested_page=3,
    )
    assert page.total == 1
    assert page.page == 3


def test_populated_category_document():
    expense = parse_expense(raw_expense(category=None, category_id={"_id": "c9", "name": "Transport"}))
    assert expense.category == "Transport"
    assert expense.category_id == "c9"


def test_list_key_missing_is_a_shape_error():
    with pytest.raises(ResponseShapeError):
        EXPENSE_PAGES.parse_page({"items": []})


def test_record_without_id_is_a_shape_error():
    with pytest.raises(ResponseShapeError):
        parse_expense({"name": "x", "amount": 1, "date": "2025-01-01"})


@pytest.mark.parametrize("value", ["2025-03-09", "2025-03-09T18:30:00Z", "2025-03-09T18:30:00.123+02:00"])
def test_parse_date_formats(value):
    assert parse_date(value) == date(2025, 3, 9)


def test_parse_date_rejects_garbage():
    with pytest.raises(ResponseShapeError):
        parse_date("yesterday")


def test_unwrap_record():
    assert unwrap_record({"_id": "a"}) == {"_id": "a"}
    assert unwrap_record({"data": {"id": "b"}}) == {"id": "b"}
    assert unwrap_record({"message": "Expense deleted successfully"}) is None
    assert unwrap_record(None) is None
