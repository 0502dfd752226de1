from typing import Callable, Dict, List, NamedTuple
from datetime import datetime

__all__ = ['EXPENSE_UPDATED', 'BUDGET_GOAL_UPDATED', 'PAYMENT_UPDATED', 'Event', 'EventBus', 'Handler']

EXPENSE_UPDATED = "expenseUpdated"
BUDGET_GOAL_UPDATED = "budgetGoalUpdated"
PAYMENT_UPDATED = "paymentUpdated"


class Event(NamedTuple):
    name: str
    ts: str
    payload: dict


Handler = Callable[[Event, dict], object]


class EventBus:
    """Cross-view refresh signals.

    Built once by the application and handed to every controller and widget
    that produces or consumes ``*Updated`` events.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        handlers = self._subscribers.setdefault(name, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        if handler in self._subscribers.get(name, []):
            self._subscribers[name].remove(handler)

    def subscribers(self, name: str) -> List[Handler]:
        return list(self._subscribers.get(name, []))

    def publish(self, name: str, payload: dict | None = None) -> List[object]:
        handlers = self.subscribers(name)
        if not handlers:
            return []

        payload = dict(payload or {})
        event = Event(name=name, ts=datetime.now().isoformat(), payload=payload)
        return [handler(event, payload) for handler in handlers]
