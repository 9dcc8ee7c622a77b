"""Snapshot publication boundary consumed by the presentation layer."""

import itertools
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger

from .types import Snapshot

SnapshotCallback = Callable[[Snapshot], None]


@dataclass(frozen=True)
class SubscriptionHandle:
    """Token returned by ``subscribe``; pass it to ``unsubscribe``."""

    subscription_id: int
    publisher: "SnapshotPublisher" = field(repr=False, compare=False)

    def unsubscribe(self) -> bool:
        return self.publisher.unsubscribe(self)


class SnapshotPublisher:
    """Holds the latest Snapshot and fans it out to subscribers.

    The lock only guards the subscriber table and the snapshot reference;
    callbacks run outside it on a copy of the table, so a callback may
    subscribe or unsubscribe (itself or others) without deadlocking or
    causing other subscribers to be skipped.
    """

    def __init__(self, initial: Optional[Snapshot] = None):
        self._lock = threading.Lock()
        self._snapshot = initial if initial is not None else Snapshot()
        self._subscribers: Dict[int, SnapshotCallback] = {}
        self._ids = itertools.count(1)

    def current_snapshot(self) -> Snapshot:
        with self._lock:
            return self._snapshot

    def subscribe(self, callback: SnapshotCallback) -> SubscriptionHandle:
        """Register ``callback`` and invoke it right away with the current snapshot."""
        if not callable(callback):
            raise TypeError("callback must be callable")
        with self._lock:
            subscription_id = next(self._ids)
            self._subscribers[subscription_id] = callback
            snapshot = self._snapshot
        handle = SubscriptionHandle(subscription_id=subscription_id, publisher=self)
        self._deliver(subscription_id, callback, snapshot)
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        with self._lock:
            return self._subscribers.pop(handle.subscription_id, None) is not None

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._snapshot = snapshot
            targets: List[Tuple[int, SnapshotCallback]] = list(
                self._subscribers.items()
            )
        for subscription_id, callback in targets:
            # Removed by an earlier callback in this round
            with self._lock:
                if subscription_id not in self._subscribers:
                    continue
            self._deliver(subscription_id, callback, snapshot)

    def _deliver(
        self, subscription_id: int, callback: SnapshotCallback, snapshot: Snapshot
    ) -> None:
        try:
            callback(snapshot)
        except Exception:
            logger.exception(
                "Subscriber {} failed on snapshot #{}",
                subscription_id,
                snapshot.sequence,
            )
