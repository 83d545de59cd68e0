import socket
from pathlib import Path

import pytest

from common.errors import ShoutError
from shouter.channel import MulticastChannel

GROUP = "239.255.64.29"


def free_udp_port():
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.bind(("", 0))
        return s.getsockname()[1]
    finally:
        s.close()


def multicast_loops_back(address, timeout=1.0):
    """Can two sockets on this host hear each other on address?"""
    a = b = None
    try:
        a = MulticastChannel.open(address, loopback=True)
        b = MulticastChannel.open(address, loopback=True)
        b.sock.settimeout(timeout)
        a.send(b"probe")
        data, _ = b.receive()
        return data == b"probe"
    except (ShoutError, OSError):
        return False
    finally:
        for ch in (a, b):
            if ch is not None:
                ch.close()


@pytest.fixture(scope="session")
def project_root():
    return Path(__file__).resolve().parents[1]


@pytest.fixture
def group_address():
    """A fresh IPv4 group address; skips when the host can't loop multicast."""
    if not multicast_loops_back(f"{GROUP}:{free_udp_port()}"):
        pytest.skip("IPv4 multicast loopback not available on this host")
    return f"{GROUP}:{free_udp_port()}"
