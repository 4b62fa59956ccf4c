"""Real-time event publishing for dashboards.

Publishing is fire-and-forget: callers never wait on delivery, nothing is
retried, and having no subscribers is normal. Events carry identifiers only;
listeners re-fetch whatever state they need.
"""
import json
import logging
import threading
from queue import Empty, Full, Queue
from typing import Any, Dict, List, Optional

import redis

from edutend.utils.helpers import utcnow, isoformat

logger = logging.getLogger(__name__)

SESSION_CREATED = 'session-created'
SESSION_SCANNED = 'session-scanned'
SESSION_EXPIRED = 'session-expired'
SESSION_CANCELLED = 'session-cancelled'
ATTENDANCE_MARKED = 'attendance-marked'


def build_message(event: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'event': event,
        'payload': payload,
        'published_at': isoformat(utcnow())
    }


class Broadcaster:
    """Publish interface the services depend on."""

    def publish(self, event: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Release any background resources."""


class InMemoryBroadcaster(Broadcaster):
    """Fans events out to in-process subscriber queues."""

    def __init__(self, maxsize: int = 1000):
        self.maxsize = maxsize
        self._subscribers: List[Queue] = []
        self._lock = threading.Lock()

    def subscribe(self) -> Queue:
        """Register a new independent consumer and return its queue."""
        subscriber = Queue(maxsize=self.maxsize)
        with self._lock:
            self._subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: Queue) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    def publish(self, event: str, payload: Dict[str, Any]) -> None:
        message = build_message(event, payload)
        with self._lock:
            subscribers = list(self._subscribers)

        for subscriber in subscribers:
            try:
                subscriber.put_nowait(message)
            except Full:
                logger.warning(f"Dropping {event} event for a full subscriber queue")


class RedisBroadcaster(Broadcaster):
    """Publishes events to a Redis channel from a background worker thread."""

    def __init__(self, client: redis.Redis, channel: str, maxsize: int = 10000):
        self.client = client
        self.channel = channel
        self._queue: Queue = Queue(maxsize=maxsize)
        self._stopped = threading.Event()

        self._worker = threading.Thread(
            target=self._process_events,
            name='edutend-broadcast',
            daemon=True
        )
        self._worker.start()

        logger.info(f"Redis broadcaster publishing to '{channel}'")

    @classmethod
    def from_url(cls, url: str, channel: str) -> 'RedisBroadcaster':
        return cls(redis.Redis.from_url(url, socket_timeout=2), channel)

    def publish(self, event: str, payload: Dict[str, Any]) -> None:
        try:
            self._queue.put_nowait(build_message(event, payload))
        except Full:
            logger.warning(f"Broadcast queue full, dropping {event} event")

    def _process_events(self) -> None:
        while not self._stopped.is_set():
            try:
                message = self._queue.get(timeout=0.5)
            except Empty:
                continue

            try:
                self.client.publish(self.channel, json.dumps(message))
            except redis.RedisError as e:
                logger.warning(f"Failed to publish {message['event']} event: {str(e)}")
            finally:
                self._queue.task_done()

    def close(self) -> None:
        self._stopped.set()
        self._worker.join(timeout=2)


def create_broadcaster(config: Dict[str, Any]) -> Broadcaster:
    """Pick the broadcaster for the configured environment."""
    redis_url: Optional[str] = config.get('REDIS_URL')
    if redis_url:
        return RedisBroadcaster.from_url(redis_url, config.get('BROADCAST_CHANNEL', 'edutend:events'))
    return InMemoryBroadcaster()
