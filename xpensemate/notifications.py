import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

SUCCESS = "success"
ERROR = "error"


@dataclass(frozen=True)
class Notification:
    kind: str
    message: str
    created_at: float


class Notifier:
    """One transient message per view; a new one replaces the old, nothing queues."""

    def __init__(self, duration: float = 3.0, clock: Callable[[], float] = time.monotonic):
        self.duration = duration
        self._clock = clock
        self._active: Optional[Notification] = None
        self.shown = 0

    def success(self, message: str) -> Notification:
        logger.info(message)
        return self._show(SUCCESS, message)

    def error(self, message: str) -> Notification:
        logger.warning(message)
        return self._show(ERROR, message)

    @property
    def current(self) -> Optional[Notification]:
        if self._active is None:
            return None
        if self._clock() - self._active.created_at >= self.duration:
            self._active = None
        return self._active

    def dismiss(self) -> None:
        self._active = None

    def _show(self, kind: str, message: str) -> Notification:
        self._active = Notification(kind=kind, message=message, created_at=self._clock())
        self.shown += 1
        return self._active
