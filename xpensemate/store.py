import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from xpensemate.domain import Page, Record
from xpensemate.errors import RecordNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Insert:
    record: Record


@dataclass(frozen=True)
class Replace:
    key: str
    record: Record


@dataclass(frozen=True)
class Remove:
    key: str


Change = Union[Insert, Replace, Remove]


@dataclass(frozen=True)
class StoreState:
    records: tuple
    total: int
    page: int


@dataclass(frozen=True)
class Snapshot:
    """Pre-mutation state plus what it takes to undo just this change.

    ``version`` is the store version right after the change was applied;
    ``index`` and ``previous`` locate the record that was replaced or removed.
    """
    state: StoreState
    change: Change
    version: int
    index: int = -1
    previous: Optional[Record] = None


Listener = Callable[["RecordListStore"], None]


class RecordListStore:
    """The records a list view renders: one page plus its metadata."""

    def __init__(self, per_page: int = 10):
        self.records: tuple = ()
        self.total = 0
        self.page = 1
        self.per_page = per_page
        self.version = 0
        self._listeners: List[Listener] = []
        # display order since the last page load, pending removals included
        self._order: tuple = ()

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def state(self) -> StoreState:
        return StoreState(records=self.records, total=self.total, page=self.page)

    def index_of(self, key: str) -> int:
        for i, record in enumerate(self.records):
            if record.key == key:
                return i
        return -1

    def find(self, key: str) -> Optional[Record]:
        i = self.index_of(key)
        return self.records[i] if i >= 0 else None

    def set_page(self, payload: Page, per_page: Optional[int] = None) -> None:
        self.records = tuple(payload.records)
        self._order = tuple(r.key for r in self.records)
        self.total = payload.total
        self.page = payload.page
        if per_page is not None:
            self.per_page = per_page
        self._changed()

    def apply_optimistic(self, change: Change) -> Snapshot:
        before = self.state()
        index, previous = -1, None

        if isinstance(change, Insert):
            rest = tuple(r for r in self.records if r.key != change.record.key)
            self.records = (change.record,) + rest
            self._order = (change.record.key,) + tuple(k for k in self._order if k != change.record.key)
            self.total += 1
            self.page = 1
        elif isinstance(change, Replace):
            index = self._require(change.key)
            previous = self.records[index]
            self.records = self.records[:index] + (change.record,) + self.records[index + 1:]
        elif isinstance(change, Remove):
            index = self._require(change.key)
            previous = self.records[index]
            self.records = self.records[:index] + self.records[index + 1:]
            self.total = max(0, self.total - 1)
        else:
            raise TypeError(f"Unsupported change: {change!r}")

        self._changed()
        return Snapshot(state=before, change=change, version=self.version, index=index, previous=previous)

    def commit(self, server_record: Record, local_key: str) -> bool:
        i = self.index_of(local_key)
        if i < 0:
            logger.debug("Nothing to commit for %s, record left the list", local_key)
            return False
        records = list(self.records)
        records[i] = server_record
        self.records = tuple(
            r for j, r in enumerate(records) if j == i or r.key != server_record.key
        )
        if server_record.key != local_key:
            self._order = tuple(
                server_record.key if k == local_key else k
                for k in self._order if k != server_record.key
            )
        self._changed()
        return True

    def rollback(self, snapshot: Snapshot) -> None:
        if self.version == snapshot.version:
            self.records = snapshot.state.records
            self.total = snapshot.state.total
            self.page = snapshot.state.page
            self._changed()
            return

        # Other changes landed after this one; undo only our own.
        change = snapshot.change
        if isinstance(change, Insert):
            if self.index_of(change.record.key) >= 0:
                self.records = tuple(r for r in self.records if r.key != change.record.key)
                self.total = max(0, self.total - 1)
        elif isinstance(change, Replace):
            i = self.index_of(change.key)
            if i >= 0:
                self.records = self.records[:i] + (snapshot.previous,) + self.records[i + 1:]
        elif isinstance(change, Remove):
            if self.index_of(change.key) < 0:
                at = self._restore_position(change.key, snapshot.index)
                self.records = self.records[:at] + (snapshot.previous,) + self.records[at:]
                self.total += 1
        self._changed()

    def _restore_position(self, key: str, fallback: int) -> int:
        """Slot for a removed record: right after the closest record that
        preceded it on screen and is still there."""
        if key not in self._order:
            return min(fallback, len(self.records))
        present = {r.key: i for i, r in enumerate(self.records)}
        for earlier in reversed(self._order[:self._order.index(key)]):
            if earlier in present:
                return present[earlier] + 1
        return 0

    def _require(self, key: str) -> int:
        i = self.index_of(key)
        if i < 0:
            raise RecordNotFound(key)
        return i

    def _changed(self) -> None:
        self.version += 1
        for listener in list(self._listeners):
            listener(self)
