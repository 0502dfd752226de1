from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional, Sequence

from xpensemate.adapters import (
    BUDGET_GOAL_PAGES,
    EXPENSE_PAGES,
    PAYMENT_PAGES,
    PageAdapter,
    parse_budget_goal,
    parse_expense,
    parse_payment,
)
from xpensemate.domain import (
    GOAL_DURATIONS,
    GOAL_PRIORITIES,
    GOAL_STATUSES,
    PAYMENT_METHODS,
    PAYMENT_TYPES,
    Record,
)
from xpensemate.errors import ValidationError
from xpensemate.events import BUDGET_GOAL_UPDATED, EXPENSE_UPDATED, PAYMENT_UPDATED


@dataclass(frozen=True)
class Messages:
    added: str
    add_failed: str
    updated: str
    update_failed: str
    deleted: str
    delete_failed: str
    batch_deleted: str
    batch_delete_failed: str
    fetch_failed: str
    status_updated: str = "Status updated successfully!"
    status_failed: str = "Failed to update status."


@dataclass(frozen=True)
class Resource:
    singular: str          # path segment for one record, e.g. "budget-goal"
    plural: str            # path segment for the list, e.g. "budget-goals"
    pages: PageAdapter
    parse_record: Callable[[object], Record]
    event: str
    messages: Messages
    validators: Sequence[Callable[[Record], List[str]]] = ()

    @property
    def list_path(self) -> str:
        return f"/{self.plural}"

    @property
    def create_path(self) -> str:
        return f"/create-{self.singular}"

    def item_path(self, key: str) -> str:
        return f"/{self.singular}/{key}"

    def validate(self, record: Record) -> None:
        """Raise ``ValidationError`` listing every problem found, if any."""
        errors: List[str] = []
        for check in self.validators:
            errors.extend(check(record))
        if errors:
            raise ValidationError(errors)


def check_name(record: Record) -> List[str]:
    name = (record.name or "").strip()
    if not 2 <= len(name) <= 100:
        return ["Name must be between 2 and 100 characters"]
    return []


def check_amount(record: Record) -> List[str]:
    try:
        ok = float(record.amount) > 0
    except (TypeError, ValueError):
        ok = False
    return [] if ok else ["Amount must be greater than 0"]


def check_not_future(record: Record, today: Optional[date] = None) -> List[str]:
    today = today or date.today()
    if not isinstance(record.date, date):
        return ["Date is required"]
    if record.date > today:
        return ["Date cannot be in the future"]
    return []


def check_category(record: Record) -> List[str]:
    return [] if (record.category or "").strip() else ["Category is required"]


def check_payment_method(record: Record) -> List[str]:
    if record.payment_method not in PAYMENT_METHODS:
        return [f"Invalid payment method: {record.payment_method}"]
    return []


def check_goal_fields(record: Record) -> List[str]:
    errors = []
    if record.status not in GOAL_STATUSES:
        errors.append(f"Invalid status: {record.status}")
    if record.duration not in GOAL_DURATIONS:
        errors.append(f"Invalid duration: {record.duration}")
    if record.priority not in GOAL_PRIORITIES:
        errors.append(f"Invalid priority: {record.priority}")
    return errors


def check_payment_type(record: Record) -> List[str]:
    if record.payment_type not in PAYMENT_TYPES:
        return [f"Invalid payment type: {record.payment_type}"]
    if record.payment_type == "custom" and not record.custom_payment_type.strip():
        return ["Custom payment type is required"]
    return []


EXPENSES = Resource(
    singular="expense",
    plural="expenses",
    pages=EXPENSE_PAGES,
    parse_record=parse_expense,
    event=EXPENSE_UPDATED,
    messages=Messages(
        added="Expense added successfully!",
        add_failed="Failed to add the expense!",
        updated="Expense updated successfully!",
        update_failed="Failed to update the expense!",
        deleted="Expense deleted successfully!",
        delete_failed="Failed to delete expense.",
        batch_deleted="Selected expenses deleted successfully!",
        batch_delete_failed="Failed to delete selected expenses.",
        fetch_failed="Failed to fetch expenses.",
    ),
    validators=(check_name, check_amount, check_not_future, check_category, check_payment_method),
)

# Goals may target a future date, so no date check here.
BUDGET_GOALS = Resource(
    singular="budget-goal",
    plural="budget-goals",
    pages=BUDGET_GOAL_PAGES,
    parse_record=parse_budget_goal,
    event=BUDGET_GOAL_UPDATED,
    messages=Messages(
        added="Goal added successfully!",
        add_failed="Failed to add the goal!",
        updated="Goal updated successfully!",
        update_failed="Failed to update the goal!",
        deleted="Goal deleted successfully!",
        delete_failed="Failed to delete goal.",
        batch_deleted="Selected goals deleted successfully!",
        batch_delete_failed="Failed to delete selected goals.",
        fetch_failed="Failed to fetch budget goals.",
    ),
    validators=(check_name, check_amount, check_category, check_goal_fields),
)

PAYMENTS = Resource(
    singular="payment",
    plural="payments",
    pages=PAYMENT_PAGES,
    parse_record=parse_payment,
    event=PAYMENT_UPDATED,
    messages=Messages(
        added="Payment added successfully!",
        add_failed="Failed to add payment",
        updated="Payment updated successfully!",
        update_failed="Failed to update payment",
        deleted="Payment deleted successfully!",
        delete_failed="Failed to delete payment",
        batch_deleted="Selected payments deleted successfully!",
        batch_delete_failed="Failed to delete selected payments.",
        fetch_failed="Failed to load payments",
    ),
    validators=(check_name, check_amount, check_not_future, check_payment_type),
)
