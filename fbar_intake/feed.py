"""Live view of the submission collection for the review console."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Sequence

from .console import sort_submissions
from .database import SUBMISSIONS, SQLiteRepository
from .exceptions import PersistError
from .models import Submission

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[Sequence[Submission]], None]


class Subscription:
    """Handle returned by :meth:`SubmissionFeed.subscribe`.

    Call :meth:`unsubscribe` (or leave the ``with`` block) when the consumer
    goes away; no snapshot is delivered afterwards. Snapshots carry the feed
    version they were read at, and one older than the last delivered snapshot
    is dropped, so the consumer's latest view is never replaced by a stale one.
    """

    def __init__(self, feed: "SubmissionFeed", callback: SnapshotCallback) -> None:
        self._feed = feed
        self._callback = callback
        self._active = True
        self._lock = threading.RLock()
        self._version = -1

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._feed._discard(self)

    def deliver(self, snapshot: Sequence[Submission], version: int) -> bool:
        """Hand ``snapshot`` to the callback. Returns ``False`` when it was dropped."""

        with self._lock:
            if not self._active or version < self._version:
                return False
            self._version = version
            try:
                self._callback(snapshot)
            except Exception:
                logger.exception("Submission subscriber failed")
            return True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()


class SubmissionFeed:
    """Push full, newest-first snapshots of ``fbar_submissions`` to subscribers.

    A snapshot is sent as soon as a consumer subscribes and again after every
    committed change to the collection.
    """

    def __init__(self, repository: SQLiteRepository) -> None:
        self._repository = repository
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []
        self._version = 0
        self._detach = repository.add_listener(self._on_change)

    def snapshot(self) -> tuple[Submission, ...]:
        return tuple(sort_submissions(self._repository.list_submissions()))

    def subscribe(self, callback: SnapshotCallback) -> Subscription:
        subscription = Subscription(self, callback)
        with self._lock:
            self._subscriptions.append(subscription)
            version = self._version
        subscription.deliver(self.snapshot(), version)
        return subscription

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def close(self) -> None:
        self._detach()
        with self._lock:
            subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.unsubscribe()

    def _discard(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def _on_change(self, collection: str) -> None:
        if collection != SUBMISSIONS:
            return
        # The version is taken after the commit and before the read, so a
        # snapshot always reflects every change up to its version.
        with self._lock:
            self._version += 1
            version = self._version
            subscriptions = list(self._subscriptions)
        if not subscriptions:
            return
        try:
            snapshot = self.snapshot()
        except PersistError:
            logger.error("Could not refresh submission snapshot for %d subscriber(s)", len(subscriptions))
            return
        for subscription in subscriptions:
            subscription.deliver(snapshot, version)
