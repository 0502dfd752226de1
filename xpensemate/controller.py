"""
Optimistic mutations for one list view.

Every create, update and delete runs the same machine:

    IDLE -> APPLYING -> AWAITING_SERVER -> COMMITTED | ROLLED_BACK | CANCELLED

APPLYING writes the change into the ``RecordListStore`` synchronously, so the
view shows the outcome before the server answers. On success the server's
record replaces the optimistic one; on failure the store goes back to its
snapshot and the user gets one notification. Mutations that target the same
record are serialised; mutations on different records overlap freely.
"""

import asyncio
import itertools
import logging
from collections import Counter
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional
from uuid import uuid4

from xpensemate.cache import PageCache
from xpensemate.domain import TEMP_PREFIX, Page, PendingMutation, Record
from xpensemate.errors import (
    MutationCancelled,
    RecordNotFound,
    ValidationError,
    XpenseMateError,
    user_message,
)
from xpensemate.events import EventBus
from xpensemate.functional import Either, Left, Right
from xpensemate.notifications import Notifier
from xpensemate.resources import Resource
from xpensemate.store import Change, Insert, RecordListStore, Remove, Replace, Snapshot

logger = logging.getLogger(__name__)


class MutationState(Enum):
    IDLE = "idle"
    APPLYING = "applying"
    AWAITING_SERVER = "awaiting_server"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    CANCELLED = "cancelled"
    REJECTED = "rejected"    # never applied: invalid input or target gone


TERMINAL = (MutationState.COMMITTED, MutationState.ROLLED_BACK,
            MutationState.CANCELLED, MutationState.REJECTED)


@dataclass
class Mutation:
    kind: str
    key: str
    state: MutationState = MutationState.IDLE
    outcome: Optional[Either] = None
    snapshot: Optional[Snapshot] = None
    history: List[MutationState] = field(default_factory=lambda: [MutationState.IDLE])

    def advance(self, state: MutationState) -> None:
        logger.debug("%s %s: %s -> %s", self.kind, self.key, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    @property
    def committed(self) -> bool:
        return self.state is MutationState.COMMITTED

    @property
    def failed(self) -> bool:
        return self.state in (MutationState.ROLLED_BACK, MutationState.REJECTED)

    @property
    def error(self) -> Optional[BaseException]:
        if self.outcome is not None and self.outcome.is_left():
            return self.outcome.get_error()
        return None

    @property
    def record(self) -> Optional[Record]:
        if self.outcome is not None and self.outcome.is_right():
            return self.outcome.get_or_else(None)
        return None


class CancellationToken:
    """Set when the owning view goes away; late responses are then ignored."""

    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class OptimisticMutationController:

    def __init__(
        self,
        resource: Resource,
        api,
        store: Optional[RecordListStore] = None,
        cache: Optional[PageCache] = None,
        notifier: Optional[Notifier] = None,
        bus: Optional[EventBus] = None,
        token: Optional[CancellationToken] = None,
    ):
        self.resource = resource
        self.api = api
        self.store = store or RecordListStore()
        self.cache = cache or PageCache()
        self.notifier = notifier or Notifier()
        self.bus = bus or EventBus()
        self.token = token or CancellationToken()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._aliases: Dict[str, str] = {}
        self._holders: Counter = Counter()
        self._refs: Counter = Counter()
        self._seq = itertools.count(1)

    @property
    def messages(self):
        return self.resource.messages

    def close(self) -> None:
        self.token.cancel()

    # -- reads ---------------------------------------------------------------

    async def load_page(self, page: int, per_page: Optional[int] = None) -> Either[Exception, Page]:
        """Show ``page``, from the cache when it was fetched before.

        A failed fetch leaves whatever the store held before on screen.
        """
        per_page = per_page or self.store.per_page
        if per_page != self.store.per_page:
            self.cache.invalidate_all()

        cached = self.cache.get(page)
        if cached.is_some():
            payload = cached.get_or_else(None)
            self.store.set_page(payload, per_page)
            return Right(payload)

        try:
            payload = await self.api.list_page(page, per_page)
        except Exception as e:
            if self.token.cancelled:
                return Left(MutationCancelled(f"page {page}"))
            self._log_failure(f"fetch page {page}", e)
            self.notifier.error(user_message(e, self.messages.fetch_failed))
            return Left(e)

        if self.token.cancelled:
            return Left(MutationCancelled(f"page {page}"))
        self.cache.put(payload.page, payload)
        self.store.set_page(payload, per_page)
        return Right(payload)

    async def refresh(self) -> Either[Exception, Page]:
        self.cache.invalidate_all()
        return await self.load_page(self.store.page)

    # -- mutations -----------------------------------------------------------

    async def create(self, record: Record) -> Mutation:
        local_id = f"{TEMP_PREFIX}{next(self._seq)}-{uuid4().hex[:8]}"
        pending = PendingMutation(local_id=local_id, record=replace(record, id=local_id))
        mutation = Mutation(kind="create", key=local_id)

        try:
            self.resource.validate(pending.record)
        except ValidationError as e:
            return self._reject(mutation, e, self.messages.add_failed)

        def on_commit(created: Record, snapshot: Snapshot) -> Record:
            self.store.commit(created, local_id)
            self._aliases[local_id] = created.key
            self.cache.invalidate_all()
            return created

        async with self._serialized(local_id):
            return await self._execute(
                mutation,
                Insert(pending.record),
                lambda: self.api.create(pending.record.to_payload()),
                on_commit,
                self.messages.added,
                self.messages.add_failed,
            )

    async def update(self, key: str, **changes: Any) -> Mutation:
        return await self._update(key, changes, self.messages.updated, self.messages.update_failed)

    async def set_status(self, key: str, status: str) -> Mutation:
        return await self._update(
            key, {"status": status}, self.messages.status_updated, self.messages.status_failed
        )

    async def delete(self, key: str, **params: Any) -> Mutation:
        return await self._delete(key, params)

    async def delete_many(self, keys: Iterable[str], **params: Any) -> List[Mutation]:
        """Delete several records at once.

        Each delete is its own state machine; some may commit while others
        roll back. The batch raises a single notification either way.
        """
        keys = list(dict.fromkeys(keys))
        if not keys:
            return []
        mutations = await asyncio.gather(
            *(self._delete(key, params, notify=False, publish=False) for key in keys)
        )

        failed = [m for m in mutations if m.failed]
        if any(m.committed for m in mutations):
            self.bus.publish(self.resource.event, {
                "action": "delete",
                "keys": [m.key for m in mutations if m.committed],
            })
        if failed:
            logger.warning("%d of %d %s deletes failed", len(failed), len(mutations), self.resource.singular)
            self.notifier.error(user_message(failed[0].error, self.messages.batch_delete_failed))
        elif not any(m.state is MutationState.CANCELLED for m in mutations):
            self.notifier.success(self.messages.batch_deleted)
        return list(mutations)

    # -- internals -----------------------------------------------------------

    async def _update(self, key: str, changes: dict, success: str, failure: str) -> Mutation:
        mutation = Mutation(kind="update", key=key)
        async with self._serialized(key) as target:
            mutation.key = target
            current = self.store.find(target)
            if current is None:
                return self._reject(mutation, RecordNotFound(target), failure)
            updated = replace(current, **changes)
            try:
                self.resource.validate(updated)
            except ValidationError as e:
                return self._reject(mutation, e, failure)

            def on_commit(server: Optional[Record], snapshot: Snapshot) -> Record:
                record = server or updated
                self.store.commit(record, target)
                self.cache.replace_record(record)
                return record

            return await self._execute(
                mutation,
                Replace(target, updated),
                lambda: self.api.update(target, updated.to_payload()),
                on_commit,
                success,
                failure,
            )

    async def _delete(self, key: str, params: dict, notify: bool = True, publish: bool = True) -> Mutation:
        mutation = Mutation(kind="delete", key=key)
        async with self._serialized(key) as target:
            mutation.key = target
            if self.store.find(target) is None:
                return self._reject(mutation, RecordNotFound(target), self.messages.delete_failed, notify)

            def on_commit(_: Any, snapshot: Snapshot) -> Record:
                self.cache.invalidate_all()
                return snapshot.previous

            return await self._execute(
                mutation,
                Remove(target),
                lambda: self.api.delete(target, params),
                on_commit,
                self.messages.deleted,
                self.messages.delete_failed,
                notify=notify,
                publish=publish,
            )

    async def _execute(
        self,
        mutation: Mutation,
        change: Change,
        request: Callable[[], Awaitable[Any]],
        on_commit: Callable[[Any, Snapshot], Record],
        success: str,
        failure: str,
        notify: bool = True,
        publish: bool = True,
    ) -> Mutation:
        mutation.advance(MutationState.APPLYING)
        snapshot = self.store.apply_optimistic(change)
        mutation.snapshot = snapshot
        mutation.advance(MutationState.AWAITING_SERVER)

        try:
            result = await request()
        except asyncio.CancelledError:
            if not self.token.cancelled:
                self.store.rollback(snapshot)
            mutation.outcome = Left(MutationCancelled(mutation.key))
            mutation.advance(MutationState.CANCELLED)
            raise
        except Exception as e:
            if self._cancelled(mutation):
                return mutation
            self.store.rollback(snapshot)
            self._log_failure(f"{mutation.kind} {mutation.key}", e)
            logger.warning("Rolled back %s of %s %s", mutation.kind, self.resource.singular, mutation.key)
            mutation.outcome = Left(e)
            mutation.advance(MutationState.ROLLED_BACK)
            if notify:
                self.notifier.error(user_message(e, failure))
            return mutation

        if self._cancelled(mutation):
            return mutation
        record = on_commit(result, snapshot)
        mutation.outcome = Right(record)
        mutation.advance(MutationState.COMMITTED)
        if notify:
            self.notifier.success(success)
        if publish:
            self.bus.publish(self.resource.event, {"action": mutation.kind, "key": record.key})
        return mutation

    def _reject(self, mutation: Mutation, error: XpenseMateError, failure: str, notify: bool = True) -> Mutation:
        logger.info("Rejected %s of %s %s: %s", mutation.kind, self.resource.singular, mutation.key, error)
        mutation.outcome = Left(error)
        mutation.advance(MutationState.REJECTED)
        if notify:
            self.notifier.error(user_message(error, failure))
        return mutation

    def _cancelled(self, mutation: Mutation) -> bool:
        if not self.token.cancelled:
            return False
        logger.debug("View closed, dropping response for %s %s", mutation.kind, mutation.key)
        mutation.outcome = Left(MutationCancelled(mutation.key))
        mutation.advance(MutationState.CANCELLED)
        return True

    def _resolve(self, key: str) -> str:
        while key in self._aliases:
            key = self._aliases[key]
        return key

    @asynccontextmanager
    async def _serialized(self, key: str):
        """Hold the per-record lock; yields the key the record is known by now.

        A key issued against a pending create resolves to the server id once
        that create commits, so the lock is re-taken under the new key. Locks
        and aliases nobody refers to any more are dropped on the way out.
        """
        self._refs[key] += 1
        try:
            while True:
                resolved = self._resolve(key)
                lock = self._locks.setdefault(resolved, asyncio.Lock())
                self._holders[resolved] += 1
                try:
                    await lock.acquire()
                except BaseException:
                    self._forget_lock(resolved)
                    raise
                if self._resolve(key) == resolved:
                    break
                lock.release()
                self._forget_lock(resolved)
            try:
                yield resolved
            finally:
                lock.release()
                self._forget_lock(resolved)
        finally:
            self._refs[key] -= 1
            if not self._refs[key]:
                del self._refs[key]
                self._aliases.pop(key, None)

    def _forget_lock(self, key: str) -> None:
        self._holders[key] -= 1
        if not self._holders[key]:
            del self._holders[key]
            del self._locks[key]

    def _log_failure(self, what: str, error: Exception) -> None:
        if isinstance(error, XpenseMateError):
            logger.warning("%s %s failed: %s", self.resource.singular, what, error)
        else:
            logger.error("%s %s failed unexpectedly", self.resource.singular, what, exc_info=error)
