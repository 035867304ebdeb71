"""In-process fan-out of committed changes to live subscriptions."""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

    from shared.dal.document_store import Subscription

logger = structlog.get_logger()


class SubscriptionHub:
    """Registry of document and query watchers, keyed by collection.

    Each watcher carries a ``deliver`` closure that reads the current value and
    hands it to the subscriber. Stores call ``notify`` after every commit; any
    exception raised while delivering fails that one subscription and leaves
    the others untouched.
    """

    def __init__(self) -> None:
        self._documents: dict[tuple[str, str], dict[int, tuple[Subscription, Callable[[], None]]]] = defaultdict(dict)
        self._queries: dict[str, dict[int, tuple[Subscription, Callable[[], None]]]] = defaultdict(dict)

    def watch_document(
        self,
        collection: str,
        doc_id: str,
        subscription: Subscription,
        deliver: Callable[[], None],
    ) -> None:
        self._documents[(collection, doc_id)][id(subscription)] = (subscription, deliver)
        self._deliver(subscription, deliver)

    def watch_query(self, collection: str, subscription: Subscription, deliver: Callable[[], None]) -> None:
        self._queries[collection][id(subscription)] = (subscription, deliver)
        self._deliver(subscription, deliver)

    def unwatch(self, subscription: Subscription) -> None:
        key = id(subscription)
        for watchers in (*self._documents.values(), *self._queries.values()):
            watchers.pop(key, None)

    def notify(self, collection: str, doc_id: str) -> None:
        """Re-deliver to every watcher affected by a change to collection/doc_id."""
        # Snapshot the watcher lists: a callback may subscribe or unsubscribe.
        targets = [
            *self._documents.get((collection, doc_id), {}).values(),
            *self._queries.get(collection, {}).values(),
        ]
        for subscription, deliver in list(targets):
            self._deliver(subscription, deliver)

    @property
    def watcher_count(self) -> int:
        return sum(len(w) for w in self._documents.values()) + sum(len(w) for w in self._queries.values())

    @staticmethod
    def _deliver(subscription: Subscription, deliver: Callable[[], None]) -> None:
        if not subscription.active:
            return
        try:
            deliver()
        except Exception as exc:
            logger.exception("subscription delivery failed", subscription=subscription.key)
            subscription.fail(exc)
