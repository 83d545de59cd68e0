import queue
import threading
import time

import pytest

from common.messages import ChatMessage, encode
from shouter.receiver import Handoff, LoopState, ReceiveLoop, drain, select

ADDR = ("10.0.0.7", 16413)


class FakeChannel:
    def __init__(self):
        self.inbox = queue.Queue()

    def feed(self, nick, text, addr=ADDR):
        self.inbox.put((encode(ChatMessage(nick, text)), addr))

    def feed_raw(self, data, addr=ADDR):
        self.inbox.put((data, addr))

    def fail(self, err):
        self.inbox.put(err)

    def receive(self):
        item = self.inbox.get()
        if isinstance(item, Exception):
            raise item
        return item


def wait_until(pred, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if pred():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def loop(channel):
    loop = ReceiveLoop(channel, node_id="test")
    yield loop
    loop.cancel()
    # unblock a pending receive() so the thread can notice
    channel.fail(OSError("test teardown"))
    loop.join(2.0)


def test_line_is_formatted_with_sender_and_nick(channel, loop):
    channel.feed("alice@box", "hi there")
    assert loop.lines.get(timeout=2.0) == "10.0.0.7 <alice@box> hi there"
    assert loop.state is LoopState.LISTENING


def test_ipv6_zone_is_dropped_from_sender(channel, loop):
    channel.feed("bob", "yo", addr=("fe80::1%eth0", 16413, 0, 2))
    assert loop.lines.get(timeout=2.0) == "fe80::1 <bob> yo"


def test_malformed_datagrams_are_skipped(channel, loop):
    channel.feed_raw(b"\xff\xff garbage")
    channel.feed_raw(b"")
    channel.feed("carol", "still here")

    assert loop.lines.get(timeout=2.0) == "10.0.0.7 <carol> still here"
    assert loop.is_alive()


def test_receive_error_is_published_once_and_stops_loop(channel, loop):
    err = OSError("network is down")
    channel.fail(err)

    assert loop.errors.get(timeout=2.0) is err
    assert loop.join(2.0)
    assert loop.state is LoopState.STOPPED

    # both sinks closed, nothing more will come
    assert loop.lines.get(timeout=1.0) is None
    assert loop.errors.get(timeout=1.0) is None


def test_loop_waits_for_consumer_before_reading_more(channel, loop):
    channel.feed("a", "one")
    channel.feed("a", "two")

    # first datagram taken off the socket, second left there
    assert wait_until(lambda: channel.inbox.qsize() == 1)
    time.sleep(0.2)
    assert channel.inbox.qsize() == 1

    assert loop.lines.get(timeout=2.0).endswith("<a> one")
    assert loop.lines.get(timeout=2.0).endswith("<a> two")


def test_cancel_while_handing_off(channel, loop):
    channel.feed("a", "nobody reads this")
    assert wait_until(lambda: channel.inbox.qsize() == 0)

    loop.cancel()
    assert loop.join(2.0)
    assert loop.state is LoopState.STOPPED

    channel.feed("a", "after cancel")
    time.sleep(0.1)
    assert channel.inbox.qsize() == 1
    assert loop.lines.get(timeout=1.0) is None


def test_cancel_between_datagrams(channel, loop):
    # loop is parked in receive(); it notices the cancel on the next datagram
    time.sleep(0.1)
    loop.cancel()
    assert loop.is_alive()

    channel.feed("a", "wakes the loop")
    channel.feed("a", "never consumed")

    assert loop.join(2.0)
    assert channel.inbox.qsize() >= 1
    assert loop.lines.get(timeout=1.0) is None


def test_drain_pumps_lines_then_error(channel, loop):
    lines, errors = [], []
    t = threading.Thread(target=drain, args=(loop, lines.append, errors.append), daemon=True)
    t.start()

    channel.feed("a", "first")
    channel.feed("b", "second")
    err = OSError("gone")
    channel.fail(err)

    t.join(2.0)
    assert not t.is_alive()
    assert lines == ["10.0.0.7 <a> first", "10.0.0.7 <b> second"]
    assert errors == [err]


def test_select_times_out():
    h = Handoff()
    with pytest.raises(TimeoutError):
        select(h, timeout=0.05)


def test_select_requires_shared_condition():
    with pytest.raises(ValueError):
        select(Handoff(), Handoff(), timeout=0.01)


def test_put_on_closed_handoff_is_refused():
    h = Handoff()
    h.close()
    assert h.closed
    assert h.put("x", threading.Event()) is False
    assert h.get(timeout=0.1) is None


def test_put_returns_once_taken():
    h = Handoff()
    got = []
    t = threading.Thread(target=lambda: got.append(h.get(timeout=2.0)))
    t.start()
    assert h.put("payload", threading.Event()) is True
    t.join(2.0)
    assert got == ["payload"]
