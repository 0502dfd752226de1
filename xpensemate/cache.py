import logging
from dataclasses import replace
from typing import Dict

from xpensemate.domain import Page, Record
from xpensemate.functional import Maybe, maybe

logger = logging.getLogger(__name__)


class PageCache:
    """Pages already fetched in this session, keyed by page number.

    Memory only, no TTL. Creates and deletes shift page boundaries, so the
    controller calls ``invalidate_all`` after each successful one.
    """

    def __init__(self):
        self._pages: Dict[int, Page] = {}

    def get(self, page: int) -> Maybe[Page]:
        return maybe(self._pages.get(page))

    def put(self, page: int, payload: Page) -> None:
        self._pages[page] = payload

    def invalidate_all(self) -> None:
        if self._pages:
            logger.debug("Evicting %d cached page(s)", len(self._pages))
        self._pages.clear()

    def replace_record(self, record: Record) -> int:
        """Swap every cached copy of ``record`` for the new value; returns pages touched."""
        touched = 0
        for number, cached in list(self._pages.items()):
            if not any(r.key == record.key for r in cached.records):
                continue
            records = tuple(record if r.key == record.key else r for r in cached.records)
            self._pages[number] = replace(cached, records=records)
            touched += 1
        return touched

    def __contains__(self, page: int) -> bool:
        return page in self._pages

    def __len__(self) -> int:
        return len(self._pages)
