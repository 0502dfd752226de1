import asyncio
from datetime import date
from itertools import count

import pytest

from xpensemate.domain import BudgetGoal, Expense, Page, Payment
from xpensemate.errors import ApiError, TransportError
from xpensemate.events import EventBus
from xpensemate.notifications import Notifier
from xpensemate.store import RecordListStore


class FakeApi:
    """In-memory stand-in for ResourceApi.

    ``errors`` maps an operation ("create", "update", "delete", "list") or an
    (operation, key) pair to the exception it should raise. ``gates`` maps an
    operation to an asyncio.Event the call waits on before answering.
    """

    def __init__(self, resource, pages=None):
        self.resource = resource
        self.pages = pages or {}
        self.errors = {}
        self.gates = {}
        self.calls = []
        self._ids = count(100)

    async def _answer(self, op, key=None):
        gate = self.gates.get(op)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        error = self.errors.get((op, key)) or self.errors.get(op)
        if error is not None:
            raise error

    async def list_page(self, page, limit):
        self.calls.append(("list", page, limit))
        await self._answer("list")
        return self.pages.get(page, Page(records=(), total=0, page=page))

    async def list_all(self, limit=100):
        self.calls.append(("list_all", limit))
        await self._answer("list")
        return tuple(r for _, p in sorted(self.pages.items()) for r in p.records)

    async def create(self, payload):
        self.calls.append(("create", payload))
        await self._answer("create")
        return self.resource.parse_record(dict(payload, _id=f"srv-{next(self._ids)}"))

    async def update(self, key, payload):
        self.calls.append(("update", key, payload))
        await self._answer("update", key)
        return self.resource.parse_record(dict(payload, _id=key))

    async def delete(self, key, params=None):
        self.calls.append(("delete", key, params))
        await self._answer("delete", key)


def make_expense(id, name="Coffee", amount=4.5, day=date(2025, 1, 2), category="Food", **kw):
    return Expense(id=id, name=name, amount=amount, date=day, category=category, **kw)


def make_goal(id, name="Groceries budget", amount=300.0, status="active", **kw):
    return BudgetGoal(id=id, name=name, amount=amount, date=date(2025, 1, 1), category="Food", status=status, **kw)


def make_payment(id, name="Acme Ltd", amount=1200.0, **kw):
    return Payment(id=id, name=name, amount=amount, date=date(2025, 1, 3), **kw)


def server_error(message="Failed on server"):
    return ApiError(500, {"error": message})


def offline():
    return TransportError()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def notifier():
    return Notifier(duration=60)


@pytest.fixture
def store():
    return RecordListStore(per_page=10)
