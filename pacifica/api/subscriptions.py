"""
Reference-counted stream subscriptions.

Many callers may subscribe to the same stream; only the first subscriber
causes an upstream subscribe command and only the last one to leave causes
an upstream unsubscribe.

Locking:
- `_lock` guards the group map, the id counter and each group's subscriber
  map. It is never held during network I/O.
- Each group has a transition lock held across the 0->1 / 1->0 change and
  the matching upstream command, so transitions on one key never interleave.
- Each subscriber has its own RLock held while its callback runs; closing a
  handle takes it, so a callback never starts after close() returned.
"""

import itertools
import threading
from typing import Any, Callable, Dict, List, Optional
import logging

from ..exceptions import PacificaError
from ..utils.validators import validate_callback

logger = logging.getLogger(__name__)

Sender = Callable[[Dict[str, Any]], None]
ChangeHook = Callable[[int], None]


class _Subscriber:
    """One registered callback."""

    __slots__ = ("id", "callback", "lock", "active")

    def __init__(self, subscription_id: int, callback: Callable[[Any], None]):
        self.id = subscription_id
        self.callback = callback
        self.lock = threading.RLock()
        self.active = True

    def deactivate(self) -> None:
        with self.lock:
            self.active = False


class SubscriberGroup:
    """All subscribers of one StreamKey plus the params used upstream."""

    def __init__(self, key: str, params: Dict[str, Any]):
        self.key = key
        self.params = params
        self.subscribers: Dict[int, _Subscriber] = {}
        self.transition_lock = threading.Lock()
        # Set once the group has left the registry; late arrivals must make a new one
        self.retired = False

    def __len__(self) -> int:
        return len(self.subscribers)

    def __repr__(self) -> str:
        return f"SubscriberGroup(key={self.key}, subscribers={len(self.subscribers)})"


class Subscription:
    """
    Handle returned by subscribe().

    close() is idempotent and safe to call from inside the callback.
    """

    def __init__(self, registry: "SubscriptionRegistry", key: str, subscriber: _Subscriber,
                 params: Dict[str, Any]):
        self._registry = registry
        self._subscriber = subscriber
        self.key = key
        self.params = params

    @property
    def id(self) -> int:
        return self._subscriber.id

    @property
    def active(self) -> bool:
        return self._subscriber.active

    def close(self) -> None:
        """Stop delivery to this subscriber and release its interest."""
        self._subscriber.deactivate()
        self._registry.unsubscribe(self.key, self._subscriber.id)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, key={self.key}, active={self.active})"


class SubscriptionRegistry:
    """
    Maps StreamKey to a reference-counted SubscriberGroup.

    The registry does no I/O itself: `send_subscribe` and `send_unsubscribe`
    are called with the group's params on 0->1 and 1->0 transitions (and by
    resubscribe_all / clear). They may raise. `on_change`, when given, is
    called with the number of live streams after a stream is added or removed.

    Example:
        >>> registry = SubscriptionRegistry(ws.send_subscribe, ws.send_unsubscribe)
        >>> sub = registry.subscribe("book:BTC", {"source": "book", "symbol": "BTC"}, print)
        >>> sub.close()
    """

    def __init__(
        self,
        send_subscribe: Sender,
        send_unsubscribe: Sender,
        on_change: Optional[ChangeHook] = None
    ):
        self._send_subscribe = send_subscribe
        self._send_unsubscribe = send_unsubscribe
        self._on_change = on_change
        self._groups: Dict[str, SubscriberGroup] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(
        self,
        key: str,
        params: Dict[str, Any],
        callback: Callable[[Any], None]
    ) -> Subscription:
        """
        Register callback for key.

        The upstream subscribe command is sent only when this is the first
        subscriber of the key. A failed send is logged; the group stays
        registered and is replayed by resubscribe_all() on the next connect.

        Args:
            key: StreamKey
            params: Upstream subscribe params (kept from the first subscriber)
            callback: Called with every message delivered under key

        Returns:
            Subscription handle

        Raises:
            ValidationError: If callback is not callable
        """
        validate_callback(callback)

        while True:
            with self._lock:
                group = self._groups.get(key)
                if group is None:
                    group = SubscriberGroup(key, dict(params))
                    self._groups[key] = group

            with group.transition_lock:
                if group.retired:
                    # Lost a race with the last unsubscribe of this key
                    continue

                with self._lock:
                    subscriber = _Subscriber(next(self._ids), callback)
                    group.subscribers[subscriber.id] = subscriber
                    first = len(group.subscribers) == 1

                if first:
                    logger.debug(f"Subscribing upstream: {key}")
                    try:
                        self._send_subscribe(group.params)
                    except PacificaError as e:
                        logger.warning(f"Subscribe for {key} not sent ({e}); will replay on connect")

            if first:
                self._notify_change()
            return Subscription(self, key, subscriber, group.params)

    def unsubscribe(self, key: str, subscription_id: int) -> bool:
        """
        Remove one subscriber.

        On the last removal the group is dropped and the upstream unsubscribe
        command is sent (a failed send is logged).

        Returns:
            True if the subscriber was registered
        """
        with self._lock:
            group = self._groups.get(key)
        if group is None:
            return False

        with group.transition_lock:
            with self._lock:
                subscriber = group.subscribers.pop(subscription_id, None)
                if subscriber is None:
                    return False
                last = not group.subscribers
                if last:
                    group.retired = True

            if last:
                logger.debug(f"Unsubscribing upstream: {key}")
                try:
                    self._send_unsubscribe(group.params)
                except PacificaError as e:
                    logger.warning(f"Unsubscribe for {key} not sent: {e}")
                # Removed only after the command is out, so a new group's
                # subscribe can never overtake this unsubscribe
                with self._lock:
                    if self._groups.get(key) is group:
                        del self._groups[key]

        # Outside the transition lock: waits for an in-flight callback
        subscriber.deactivate()
        if last:
            self._notify_change()
        return True

    def resubscribe_all(self) -> int:
        """
        Re-send the subscribe command of every live group.

        Errors propagate to the caller (the connection manager treats them
        as a failed connect attempt).

        Returns:
            Number of groups resubscribed
        """
        with self._lock:
            groups = list(self._groups.values())

        count = 0
        for group in groups:
            with group.transition_lock:
                if group.retired:
                    continue
                self._send_subscribe(group.params)
                count += 1

        if count:
            logger.info(f"Resubscribed {count} stream(s)")
        return count

    def deliver(self, key: str, message: Any) -> int:
        """
        Fan message out to the subscribers of key.

        Subscribers are snapshotted at call time. Callback exceptions are
        logged and do not affect other subscribers.

        Returns:
            Number of callbacks invoked
        """
        with self._lock:
            group = self._groups.get(key)
            if group is None:
                return 0
            subscribers = list(group.subscribers.values())

        delivered = 0
        for subscriber in subscribers:
            with subscriber.lock:
                if not subscriber.active:
                    continue
                try:
                    subscriber.callback(message)
                except Exception as e:
                    logger.error(f"Callback error for {key} (subscription {subscriber.id}): {e}",
                                 exc_info=True)
                delivered += 1

        return delivered

    def clear(self) -> None:
        """
        Drop every group and deactivate every subscriber.

        The unsubscribe hook still runs once per group; errors are logged.
        """
        with self._lock:
            groups = list(self._groups.values())
            self._groups.clear()

        for group in groups:
            with group.transition_lock:
                group.retired = True
                with self._lock:
                    subscribers = list(group.subscribers.values())
                    group.subscribers.clear()
            for subscriber in subscribers:
                subscriber.deactivate()
            with group.transition_lock:
                try:
                    self._send_unsubscribe(group.params)
                except PacificaError as e:
                    logger.debug(f"Unsubscribe hook for {group.key} failed: {e}")

        if groups:
            self._notify_change()
            logger.info(f"Cleared {len(groups)} stream subscription(s)")

    def _notify_change(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(len(self))
        except Exception as e:
            logger.error(f"Stream change hook failed: {e}", exc_info=True)

    def keys(self) -> List[str]:
        """StreamKeys with at least one subscriber."""
        with self._lock:
            return list(self._groups)

    def subscriber_count(self, key: Optional[str] = None) -> int:
        """Number of subscribers of key, or of all keys."""
        with self._lock:
            if key is not None:
                group = self._groups.get(key)
                return len(group) if group else 0
            return sum(len(group) for group in self._groups.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._groups)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._groups
