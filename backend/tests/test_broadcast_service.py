"""Event fan-out through the in-memory and Redis broadcasters."""
import json

import redis

from conftest import drain
from edutend.services.broadcast_service import (
    InMemoryBroadcaster, RedisBroadcaster, SESSION_CREATED, create_broadcaster
)


class RecordingRedis:
    def __init__(self, fail=False):
        self.fail = fail
        self.published = []

    def publish(self, channel, message):
        if self.fail:
            raise redis.ConnectionError('connection refused')
        self.published.append((channel, message))
        return 1


def test_every_subscriber_gets_its_own_copy():
    broadcaster = InMemoryBroadcaster()
    first = broadcaster.subscribe()
    second = broadcaster.subscribe()

    broadcaster.publish(SESSION_CREATED, {'sessionId': 'abc', 'courseId': 1})

    for queue in (first, second):
        messages = drain(queue)
        assert len(messages) == 1
        assert messages[0]['event'] == SESSION_CREATED
        assert messages[0]['payload'] == {'sessionId': 'abc', 'courseId': 1}
        assert messages[0]['published_at'].endswith('Z')


def test_publish_without_subscribers():
    InMemoryBroadcaster().publish(SESSION_CREATED, {'sessionId': 'abc'})


def test_unsubscribed_queue_stops_receiving():
    broadcaster = InMemoryBroadcaster()
    queue = broadcaster.subscribe()
    broadcaster.unsubscribe(queue)

    broadcaster.publish(SESSION_CREATED, {'sessionId': 'abc'})

    assert drain(queue) == []


def test_full_subscriber_queue_drops_events():
    broadcaster = InMemoryBroadcaster(maxsize=1)
    queue = broadcaster.subscribe()

    broadcaster.publish(SESSION_CREATED, {'sessionId': 'one'})
    broadcaster.publish(SESSION_CREATED, {'sessionId': 'two'})

    assert [m['payload']['sessionId'] for m in drain(queue)] == ['one']


def test_redis_broadcaster_publishes_json():
    client = RecordingRedis()
    broadcaster = RedisBroadcaster(client, 'edutend:test')
    try:
        broadcaster.publish(SESSION_CREATED, {'sessionId': 'abc', 'courseId': 1})
        broadcaster._queue.join()
    finally:
        broadcaster.close()

    assert len(client.published) == 1
    channel, raw = client.published[0]
    assert channel == 'edutend:test'
    message = json.loads(raw)
    assert message['event'] == SESSION_CREATED
    assert message['payload'] == {'sessionId': 'abc', 'courseId': 1}


def test_redis_failures_do_not_reach_the_caller():
    client = RecordingRedis(fail=True)
    broadcaster = RedisBroadcaster(client, 'edutend:test')
    try:
        broadcaster.publish(SESSION_CREATED, {'sessionId': 'abc'})
        broadcaster._queue.join()
    finally:
        broadcaster.close()

    assert client.published == []


def test_create_broadcaster_without_redis_url():
    assert isinstance(create_broadcaster({'REDIS_URL': None}), InMemoryBroadcaster)
