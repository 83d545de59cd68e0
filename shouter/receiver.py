"""
shouter.receiver

Background receive loop for one multicast channel.

Design:
- One daemon thread owns the receiving side of the socket
- Each datagram is decoded once; undecodable datagrams are dropped silently
- Decoded lines and receive errors are handed to the consumer through
  unbuffered handoffs (the loop waits until the line is taken)
- A receive error is published once and stops the loop for good
- cancel() is cooperative: seen after each handoff, never interrupts recvfrom
"""

from __future__ import annotations

import threading
import time
from enum import Enum, unique
from typing import Callable, Optional, Tuple

from common.errors import Malformed
from common.messages import ChatMessage, decode
from common.syslog import LOG_ERROR, LOG_INFO
from shouter.channel import sender_ip


@unique
class LoopState(Enum):
    LISTENING = 1
    STOPPED = 2


class Handoff:
    """
    Zero-capacity rendezvous between one producer and one consumer.
    Handoffs that a consumer waits on together must share one Condition.
    """

    def __init__(self, cond: Optional[threading.Condition] = None):
        self._cond = cond if cond is not None else threading.Condition()
        self._item = None
        self._full = False
        self._closed = False

    def put(self, item, cancelled: threading.Event) -> bool:
        """Offer item; block until taken (True) or cancelled is set (False)."""
        with self._cond:
            if self._closed:
                return False
            self._item = item
            self._full = True
            self._cond.notify_all()
            while self._full and not cancelled.is_set():
                self._cond.wait()
            if self._full:
                # withdrawn, nobody took it
                self._item = None
                self._full = False
                return False
            return True

    def get(self, timeout: Optional[float] = None):
        """Take the next item; None once closed."""
        _, item = select(self, timeout=timeout)
        return item

    def close(self):
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed


def select(*handoffs: Handoff, timeout: Optional[float] = None) -> Tuple[Optional[Handoff], object]:
    """
    Wait until one of the handoffs carries an item and take it.
    Returns (handoff, item), or (None, None) once every handoff is closed.
    Raises TimeoutError if timeout elapses first.
    """
    cond = handoffs[0]._cond
    if any(h._cond is not cond for h in handoffs):
        raise ValueError("handoffs passed to select() must share one Condition")

    deadline = None if timeout is None else time.monotonic() + timeout
    with cond:
        while True:
            for h in handoffs:
                if h._full:
                    item = h._item
                    h._item = None
                    h._full = False
                    cond.notify_all()
                    return h, item

            if all(h._closed for h in handoffs):
                return None, None

            if deadline is None:
                cond.wait()
            else:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError("nothing handed off before timeout")
                cond.wait(remaining)


def format_line(addr, msg: ChatMessage) -> str:
    return f"{sender_ip(addr)} <{msg.nickname}> {msg.text}"


class ReceiveLoop:
    """
    channel must provide:
      - channel.receive() -> (bytes, addr), raising OSError on failure
    Starts listening as soon as it is constructed.
    """

    def __init__(self, channel, node_id: str = "-"):
        self.channel = channel
        self.node_id = node_id

        self._cond = threading.Condition()
        self.lines = Handoff(self._cond)
        self.errors = Handoff(self._cond)

        self._cancelled = threading.Event()
        self.state = LoopState.LISTENING

        self._thread = threading.Thread(target=self._run, name="receive-loop", daemon=True)
        self._thread.start()

    def _run(self):
        LOG_INFO("RECV_LOOP_START", node_id=self.node_id, event="RECV_LOOP_START")
        try:
            while not self._cancelled.is_set():
                try:
                    data, addr = self.channel.receive()
                except OSError as e:
                    LOG_ERROR(
                        "RECV_LOOP_IO_ERROR",
                        node_id=self.node_id,
                        event="RECV_LOOP_IO_ERROR",
                        error=e,
                    )
                    self.errors.put(e, self._cancelled)
                    return

                try:
                    msg = decode(data)
                except Malformed:
                    # foreign or corrupt traffic on our group
                    continue

                if not self.lines.put(format_line(addr, msg), self._cancelled):
                    return
        finally:
            self.state = LoopState.STOPPED
            self.lines.close()
            self.errors.close()
            LOG_INFO("RECV_LOOP_STOP", node_id=self.node_id, event="RECV_LOOP_STOP")

    def cancel(self):
        self._cancelled.set()
        with self._cond:
            self._cond.notify_all()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the loop thread; True if it has stopped."""
        self._thread.join(timeout)
        return not self._thread.is_alive()


def drain(loop: ReceiveLoop, on_line: Callable[[str], None], on_error: Callable[[Exception], None]):
    """Pump a loop's lines and errors to callbacks until both sinks close."""
    while True:
        src, item = select(loop.lines, loop.errors)
        if src is None:
            return
        if src is loop.errors:
            on_error(item)
        else:
            on_line(item)
