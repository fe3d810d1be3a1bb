from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Callable, List

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceChange:
    """
    "Something changed" signal for the crawl sources collection. Consumers
    must re-read the store; the fields are hints only.
    """

    source_id: str
    kind: str


Listener = Callable[[SourceChange], None]


class ChangeNotifier:
    """
    Fan-out of source change events to subscribed listeners. Listeners are
    invoked on the thread that performed the write (or the Redis relay
    thread), so they must be quick and thread-safe (e.g. hand the event to
    an event loop).
    """

    def __init__(self):
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, change: SourceChange) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(change)
            except Exception:  # noqa: BLE001
                logger.exception("Change listener failed for %s", change)


CHANGES_CHANNEL = "crawl-sources:changes"


class RedisChangeNotifier(ChangeNotifier):
    """
    Change notifier shared across processes through Redis pub/sub.

    ``publish`` only writes to the channel. Local listeners are fed by the
    relay thread started with ``start_relay``, so a process sees its own
    changes and those of RQ workers exactly once, in channel order.
    """

    def __init__(self, redis_client: Redis, channel: str = CHANGES_CHANNEL):
        super().__init__()
        self.redis = redis_client
        self.channel = channel
        self._relay = None

    def publish(self, change: SourceChange) -> None:
        payload = json.dumps({"source_id": change.source_id, "kind": change.kind})
        try:
            self.redis.publish(self.channel, payload)
        except RedisError as exc:
            logger.warning("Failed to publish source change %s: %s", change, exc)

    def dispatch(self, message: dict) -> None:
        """Deliver one pub/sub message to the local listeners."""
        if message.get("type") != "message":
            return
        data = message.get("data")
        if isinstance(data, bytes):
            data = data.decode("utf-8", errors="replace")
        try:
            fields = json.loads(data)
            change = SourceChange(source_id=fields["source_id"], kind=fields["kind"])
        except (TypeError, ValueError, KeyError):
            logger.warning("Ignoring malformed source change message: %r", data)
            return
        super().publish(change)

    def start_relay(self, sleep_time: float = 1.0):
        if self._relay is None:
            pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
            pubsub.subscribe(**{self.channel: self.dispatch})
            self._relay = pubsub.run_in_thread(sleep_time=sleep_time, daemon=True)
            logger.info("Relaying source changes from Redis channel %s", self.channel)
        return self._relay

    def stop_relay(self) -> None:
        if self._relay is not None:
            self._relay.stop()
            self._relay = None
