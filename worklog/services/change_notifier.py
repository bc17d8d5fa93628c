"""
In-process fan-out of time entry change notifications.

A notification only says "something under this scope changed"; subscribers
re-fetch. Notifications may be duplicated, dropped when a subscriber already
has enough pending (they coalesce), or arrive before a slow read sees the
write.
"""
from __future__ import annotations

import asyncio
import logging
import os
import threading
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional, Set

logger = logging.getLogger(__name__)

SCOPE_KINDS = ("user", "task", "project")


@dataclass(frozen=True)
class Scope:
    kind: str
    id: str

    def __post_init__(self):
        if self.kind not in SCOPE_KINDS:
            raise ValueError(f"Unknown scope kind: {self.kind}")
        if not self.id:
            raise ValueError("Scope id is required")

    @classmethod
    def parse(cls, raw: str) -> "Scope":
        kind, sep, ref = str(raw).partition(":")
        if not sep:
            raise ValueError("Scope must look like '<kind>:<id>'")
        return cls(kind.strip(), ref.strip())

    def __str__(self) -> str:
        return f"{self.kind}:{self.id}"


@dataclass(frozen=True)
class ChangeNotification:
    scope: Scope
    entry_id: str
    event_type: str


def _queue_size() -> int:
    v = os.getenv("NOTIFY_QUEUE_SIZE")
    if v is None or v == "":
        return 100
    try:
        return max(1, int(v))
    except ValueError:
        return 100


class Subscription:
    def __init__(self, notifier: "ChangeNotifier", scope: Scope, maxsize: int):
        self._notifier = notifier
        self.scope = scope
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    def _offer(self, notification: ChangeNotification) -> None:
        try:
            self.queue.put_nowait(notification)
        except asyncio.QueueFull:
            self.dropped += 1

    def deliver(self, notification: ChangeNotification) -> None:
        loop = self._loop
        if loop is not None and loop.is_running():
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is not loop:
                loop.call_soon_threadsafe(self._offer, notification)
                return
        self._offer(notification)

    async def get(self) -> ChangeNotification:
        return await self.queue.get()

    def get_nowait(self) -> ChangeNotification:
        return self.queue.get_nowait()

    def close(self) -> None:
        self._notifier.unsubscribe(self)

    def __aiter__(self) -> AsyncIterator[ChangeNotification]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ChangeNotification]:
        while True:
            yield await self.queue.get()


class ChangeNotifier:
    def __init__(self, queue_size: Optional[int] = None):
        self._queue_size = queue_size or _queue_size()
        self._subscriptions: Dict[Scope, Set[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, scope: Scope) -> Subscription:
        sub = Subscription(self, scope, self._queue_size)
        with self._lock:
            self._subscriptions.setdefault(scope, set()).add(sub)
        logger.debug("Change subscription opened", extra={"scope": str(scope)})
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscriptions.get(sub.scope)
            if subs is None:
                return
            subs.discard(sub)
            if not subs:
                del self._subscriptions[sub.scope]

    def subscriber_count(self, scope: Scope) -> int:
        with self._lock:
            return len(self._subscriptions.get(scope, ()))

    def publish(self, notification: ChangeNotification) -> int:
        """Deliver to every subscriber of the notification's scope. Returns how many."""
        with self._lock:
            subs = list(self._subscriptions.get(notification.scope, ()))
        for sub in subs:
            sub.deliver(notification)
        return len(subs)


notifier = ChangeNotifier()
