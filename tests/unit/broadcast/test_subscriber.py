"""Tests for Subscriber: bounded queue, sender loop and one-shot teardown."""

from __future__ import annotations

import threading
import time

import pytest

from outstream.broadcast.subscriber import Subscriber
from outstream.errors import SubscriberLostError
from tests.helpers.fakes import FakeConnection
from tests.helpers.waiting import wait_until


def _start(subscriber: Subscriber) -> threading.Thread:
    thread = threading.Thread(target=subscriber.run, daemon=True)
    thread.start()
    return thread


class TestSubscriberQueue:
    def test_rejects_non_positive_queue_size(self):
        with pytest.raises(ValueError, match="queue_size"):
            Subscriber(1, FakeConnection(), queue_size=0)

    def test_offer_accepts_until_full(self):
        subscriber = Subscriber(1, FakeConnection(), queue_size=3)
        assert [subscriber.offer(b"x") for _ in range(4)] == [True, True, True, False]
        assert subscriber.pending == 3

    def test_offer_after_close_is_rejected(self):
        subscriber = Subscriber(1, FakeConnection(), queue_size=3)
        subscriber.close()
        assert subscriber.offer(b"x") is False


class TestSenderLoop:
    def test_sends_payloads_in_order(self):
        connection = FakeConnection()
        subscriber = Subscriber(1, connection, queue_size=10)
        for payload in (b"a", b"bb", b"ccc"):
            assert subscriber.offer(payload)
        thread = _start(subscriber)

        assert wait_until(lambda: subscriber.sent == 3)
        assert connection.received == [b"a", b"bb", b"ccc"]

        subscriber.close()
        thread.join(timeout=5.0)
        assert not thread.is_alive()
        assert subscriber.wait(0)

    def test_send_failure_closes_with_reason(self):
        connection = FakeConnection(fail_with=BrokenPipeError("gone"))
        closed: list[Subscriber] = []
        subscriber = Subscriber(7, connection, on_close=closed.append)
        subscriber.offer(b"payload")
        thread = _start(subscriber)
        thread.join(timeout=5.0)

        assert not subscriber.alive
        assert closed == [subscriber]
        reason = subscriber.close_reason
        assert isinstance(reason, SubscriberLostError)
        assert reason.reason == "send_failed"
        assert reason.subscriber_id == 7
        assert connection.closed.is_set()

    def test_drop_interrupts_blocked_send(self):
        connection = FakeConnection(block=True)
        subscriber = Subscriber(1, connection)
        subscriber.offer(b"stuck")
        thread = _start(subscriber)
        assert connection.sending.wait(5.0)

        subscriber.close(SubscriberLostError(1, "queue_full"))
        thread.join(timeout=5.0)
        assert not thread.is_alive()
        assert connection.received == []

    def test_drop_with_full_queue_still_stops_sender(self):
        connection = FakeConnection(block=True)
        subscriber = Subscriber(1, connection, queue_size=2)
        subscriber.offer(b"in-flight")
        thread = _start(subscriber)
        assert connection.sending.wait(5.0)
        assert subscriber.offer(b"1")
        assert subscriber.offer(b"2")
        assert not subscriber.offer(b"3")

        subscriber.close(SubscriberLostError(1, "queue_full"))
        thread.join(timeout=5.0)
        assert not thread.is_alive()


class TestOfferTimeout:
    def test_waits_for_a_sender_that_is_keeping_up(self):
        connection = FakeConnection()
        subscriber = Subscriber(1, connection, queue_size=2)
        assert subscriber.offer(b"1")
        assert subscriber.offer(b"2")
        assert not subscriber.offer(b"3")

        thread = _start(subscriber)
        assert subscriber.offer(b"3", timeout=5.0)
        assert wait_until(lambda: connection.received == [b"1", b"2", b"3"])

        subscriber.close()
        thread.join(timeout=5.0)

    def test_gives_up_on_a_stalled_sender(self):
        connection = FakeConnection(block=True)
        subscriber = Subscriber(1, connection, queue_size=1)
        subscriber.offer(b"in-flight")
        thread = _start(subscriber)
        assert connection.sending.wait(5.0)
        assert subscriber.offer(b"queued")

        started = time.monotonic()
        assert subscriber.offer(b"overflow", timeout=0.1) is False
        assert 0.05 < time.monotonic() - started < 2.0

        subscriber.close(SubscriberLostError(1, "queue_full"))
        thread.join(timeout=5.0)
        assert not thread.is_alive()


class TestOrderlyClose:
    def test_queued_payloads_are_delivered_before_the_loop_returns(self):
        connection = FakeConnection(block=True)
        subscriber = Subscriber(1, connection, queue_size=3)
        thread = _start(subscriber)
        for payload in (b"a", b"bb", b"ccc"):
            assert subscriber.offer(payload)
        assert connection.sending.wait(5.0)

        # One payload in flight and a full queue when close() arrives
        assert subscriber.offer(b"d")
        assert subscriber.close() is True
        assert subscriber.offer(b"late") is False

        connection.released.set()
        thread.join(timeout=5.0)
        assert not thread.is_alive()
        assert connection.received == [b"a", b"bb", b"ccc", b"d"]
        # The transport ends the stream when the handler returns
        assert connection.close_calls == 0
        assert subscriber.close_reason is None

    def test_idle_sender_stops_on_close(self):
        connection = FakeConnection()
        subscriber = Subscriber(1, connection)
        thread = _start(subscriber)

        subscriber.close()
        thread.join(timeout=5.0)
        assert not thread.is_alive()
        assert subscriber.wait(0)

    def test_abort_interrupts_a_stalled_drain(self):
        connection = FakeConnection(block=True)
        subscriber = Subscriber(1, connection)
        subscriber.offer(b"stuck")
        subscriber.offer(b"never sent")
        thread = _start(subscriber)
        assert connection.sending.wait(5.0)

        subscriber.close()
        assert not subscriber.wait(0.1)
        subscriber.abort()
        thread.join(timeout=5.0)
        assert not thread.is_alive()
        assert connection.received == []
        assert connection.close_calls == 1


class TestTeardown:
    def test_close_is_one_shot(self):
        connection = FakeConnection()
        closed: list[Subscriber] = []
        subscriber = Subscriber(1, connection, on_close=closed.append)
        reason = SubscriberLostError(1, "queue_full")

        assert subscriber.close(reason) is True
        assert subscriber.close() is False
        assert subscriber.close(SubscriberLostError(1, "send_failed")) is False

        assert connection.close_calls == 1
        assert closed == [subscriber]
        # Later calls do not overwrite the first reason
        assert subscriber.close_reason is reason

    def test_abort_after_drop_releases_connection_once(self):
        connection = FakeConnection()
        subscriber = Subscriber(1, connection)
        subscriber.close(SubscriberLostError(1, "queue_full"))
        subscriber.abort()
        assert connection.close_calls == 1

    def test_concurrent_closes_release_connection_once(self):
        connection = FakeConnection()
        closed: list[Subscriber] = []
        subscriber = Subscriber(1, connection, on_close=closed.append)
        barrier = threading.Barrier(8)
        results: list[bool] = []
        lock = threading.Lock()

        def closer() -> None:
            barrier.wait()
            result = subscriber.close(SubscriberLostError(1, "send_failed"))
            with lock:
                results.append(result)

        threads = [threading.Thread(target=closer) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5.0)

        assert results.count(True) == 1
        assert connection.close_calls == 1
        assert closed == [subscriber]
