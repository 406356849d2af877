"""Property tests for broadcast ordering and resolution string splitting."""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from outstream.broadcast.broadcaster import Broadcaster
from outstream.core.config import SinkSettings
from outstream.registry import split_spec
from tests.helpers.fakes import FakeConnection, FakeListener
from tests.helpers.waiting import wait_until

payload_lists = st.lists(st.binary(min_size=0, max_size=64), min_size=1, max_size=30)


@settings(max_examples=25)
@given(payloads=payload_lists, subscribers=st.integers(min_value=1, max_value=4))
def test_every_subscriber_sees_writes_in_submission_order(payloads: list[bytes], subscribers: int):
    listener = FakeListener()
    with Broadcaster(listener, settings=SinkSettings(queue_size=64, shutdown_timeout=3.0)) as sink:
        connections = [FakeConnection(f"fake:{i}") for i in range(subscribers)]
        for connection in connections:
            listener.connect(connection)
        assert wait_until(lambda: sink.subscriber_count == subscribers)

        for payload in payloads:
            assert sink.write(payload) == len(payload)

        for connection in connections:
            assert wait_until(lambda c=connection: len(c.received) == len(payloads))
            assert connection.received == payloads


@given(
    scheme=st.from_regex(r"[a-z][a-z0-9+.-]{0,15}", fullmatch=True),
    argument=st.text(max_size=40),
)
def test_split_spec_takes_first_separator_only(scheme: str, argument: str):
    assert split_spec(f"{scheme}://{argument}") == (scheme, argument)
