from dataclasses import dataclass, fields
from datetime import date
from typing import Optional, Union

TEMP_PREFIX = "temp-"

PAYMENT_METHODS = ("cash", "credit_card", "debit_card", "bank_transfer", "other")
GOAL_STATUSES = ("active", "achieved", "failed", "terminated", "other")
GOAL_DURATIONS = ("weekly", "monthly", "yearly")
GOAL_PRIORITIES = ("low", "medium", "high", "critical")
PAYMENT_TYPES = (
    "salary", "subscription", "one_time", "installment", "advance", "bonus",
    "commission", "donation", "refund", "reimbursement", "penalty", "tax",
    "royalty", "loan_repayment", "custom", "other",
)


def is_temporary(key: str) -> bool:
    return key.startswith(TEMP_PREFIX)


class _RecordMixin:
    """Shared behaviour of the three record kinds.

    ``id`` is the server identifier, or a ``temp-`` key while a create is in
    flight. ``to_payload`` never carries ``id``: the server assigns it and
    temporary keys stay on the client.
    """

    @property
    def key(self) -> str:
        return self.id

    def to_payload(self) -> dict:
        payload = {}
        for f in fields(self):
            if f.name == "id":
                continue
            value = getattr(self, f.name)
            payload[f.name] = value.isoformat() if isinstance(value, date) else value
        return payload


@dataclass(frozen=True)
class Expense(_RecordMixin):
    id: str
    name: str
    amount: float
    date: date
    category: str
    category_id: Optional[str] = None
    detail: str = ""
    time: str = ""            # "HH:MM" or empty
    location: str = ""
    payment_method: str = "cash"
    budget_goal_id: Optional[str] = None


@dataclass(frozen=True)
class BudgetGoal(_RecordMixin):
    id: str
    name: str
    amount: float            # target amount
    date: date
    category: str
    category_id: Optional[str] = None
    detail: str = ""
    duration: str = "monthly"
    priority: str = "medium"
    status: str = "active"
    progress: float = 0.0


@dataclass(frozen=True)
class Payment(_RecordMixin):
    id: str
    name: str
    amount: float
    date: date
    payment_type: str = "one_time"
    custom_payment_type: str = ""
    detail: str = ""

    @property
    def category(self) -> str:
        if self.payment_type == "custom" and self.custom_payment_type:
            return self.custom_payment_type
        return self.payment_type


Record = Union[Expense, BudgetGoal, Payment]


@dataclass(frozen=True)
class Page:
    records: tuple
    total: int
    page: int


@dataclass(frozen=True)
class PendingMutation:
    """A record being created, keyed by a client-only identifier."""
    local_id: str
    record: Record
