"""
Realtime push notifier - "something changed" notifications for shared routines.

Notifications carry no payload; subscribers re-fetch the routine themselves.
InMemoryPushNotifier is the in-process hub the API publishes to whenever a
shared routine is updated.
"""
import logging
import threading
from typing import Callable, Dict, List, Protocol

logger = logging.getLogger(__name__)

# Channel status values reported to subscribers
SUBSCRIBED = "SUBSCRIBED"
CLOSED = "CLOSED"
CHANNEL_ERROR = "CHANNEL_ERROR"
TIMED_OUT = "TIMED_OUT"


def routine_topic(short_code: str) -> str:
    return f"shared-routine:{short_code}"


class Subscription(Protocol):
    def unsubscribe(self) -> None:
        ...


class PushNotifier(Protocol):
    def subscribe(
        self,
        topic: str,
        on_change: Callable[[], None],
        on_status: Callable[[str], None],
    ) -> Subscription:
        ...


class _HubSubscription:
    def __init__(self, hub: "InMemoryPushNotifier", topic: str, on_change: Callable[[], None], on_status: Callable[[str], None]):
        self.hub = hub
        self.topic = topic
        self.on_change = on_change
        self.on_status = on_status
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self.hub._remove(self)


class InMemoryPushNotifier:
    """Process-local publish/subscribe hub."""

    def __init__(self, confirm_subscriptions: bool = True):
        self.confirm_subscriptions = confirm_subscriptions
        self._subscribers: Dict[str, List[_HubSubscription]] = {}
        self._lock = threading.Lock()

    def subscribe(
        self,
        topic: str,
        on_change: Callable[[], None],
        on_status: Callable[[str], None],
    ) -> Subscription:
        subscription = _HubSubscription(self, topic, on_change, on_status)
        with self._lock:
            self._subscribers.setdefault(topic, []).append(subscription)
        logger.debug(f"[Realtime] Subscribed to {topic}")
        if self.confirm_subscriptions:
            on_status(SUBSCRIBED)
        return subscription

    def _remove(self, subscription: _HubSubscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.topic, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscribers.pop(subscription.topic, None)
        logger.debug(f"[Realtime] Unsubscribed from {subscription.topic}")

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, []))

    def publish(self, topic: str) -> int:
        """Notify every subscriber of `topic`. Returns the number notified."""
        with self._lock:
            subscribers = list(self._subscribers.get(topic, []))
        for subscription in subscribers:
            if not subscription.active:
                continue
            try:
                subscription.on_change()
            except Exception as e:
                logger.error(f"[Realtime] Subscriber on {topic} failed: {e}")
        return len(subscribers)


# Shared hub used by the API process
push_hub = InMemoryPushNotifier()
