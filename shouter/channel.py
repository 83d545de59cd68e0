import ipaddress
import socket
import struct
from dataclasses import dataclass
from typing import Optional, Tuple

from common.config import MTU
from common.errors import InterfaceNotFound, JoinError, ResolveError
from common.syslog import LOG_INFO, LOG_WARN


@dataclass(frozen=True)
class Endpoint:
    ip: bytes
    port: int
    scope_id: int = 0

    @property
    def family(self) -> int:
        return socket.AF_INET6 if len(self.ip) == 16 else socket.AF_INET

    @property
    def host(self) -> str:
        return socket.inet_ntop(self.family, self.ip)

    def sockaddr(self) -> tuple:
        if self.family == socket.AF_INET6:
            return (self.host, self.port, 0, self.scope_id)
        return (self.host, self.port)

    def __str__(self):
        if self.family == socket.AF_INET6:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def _split_host_port(address: str) -> Tuple[str, str]:
    host, sep, port = address.rpartition(":")
    if not sep or not host:
        raise ResolveError(f"{address!r}: missing port (want host:port)")
    if host.startswith("["):
        if not host.endswith("]"):
            raise ResolveError(f"{address!r}: unbalanced brackets")
        host = host[1:-1]
    elif ":" in host:
        raise ResolveError(f"{address!r}: IPv6 hosts must be written as [addr]:port")
    return host, port


def resolve_endpoint(address: str) -> Endpoint:
    """Resolve "host:port" (or "[v6host%zone]:port") to a multicast Endpoint."""
    host, port_s = _split_host_port(address)
    try:
        port = int(port_s)
    except ValueError:
        raise ResolveError(f"{address!r}: bad port {port_s!r}") from None
    if not 0 <= port <= 0xFFFF:
        raise ResolveError(f"{address!r}: port out of range")

    try:
        infos = socket.getaddrinfo(host, port, 0, socket.SOCK_DGRAM)
    except (socket.gaierror, UnicodeError) as e:
        raise ResolveError(f"{address!r}: {e}") from e

    family, _, _, _, sockaddr = infos[0]
    ip = sockaddr[0].split("%", 1)[0]
    if not ipaddress.ip_address(ip).is_multicast:
        raise ResolveError(f"{address!r}: {ip} is not a multicast address")

    scope_id = sockaddr[3] if family == socket.AF_INET6 else 0
    return Endpoint(socket.inet_pton(family, ip), port, scope_id)


def sender_ip(addr) -> str:
    """Textual source address of a datagram, without any IPv6 zone."""
    return str(addr[0]).split("%", 1)[0]


class MulticastChannel:
    """
    One UDP socket joined to a multicast group.
    - receive(): blocking read of one datagram (<= MTU bytes)
    - send(): one datagram to the group
    The socket is shared by one sender and one receiver thread.
    """

    def __init__(self, sock: socket.socket, endpoint: Endpoint, ifindex: int = 0):
        self.sock = sock
        self.endpoint = endpoint
        self.ifindex = ifindex
        self._closed = False

    @classmethod
    def open(cls, address: str, interface: Optional[str] = None, loopback: bool = False):
        endpoint = resolve_endpoint(address)

        ifindex = 0
        if interface:
            try:
                ifindex = socket.if_nametoindex(interface)
            except OSError as e:
                raise InterfaceNotFound(f"no such network interface: {interface}") from e
        elif endpoint.scope_id:
            ifindex = endpoint.scope_id

        if ifindex and endpoint.family == socket.AF_INET6:
            endpoint = Endpoint(endpoint.ip, endpoint.port, ifindex)

        sock = socket.socket(endpoint.family, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                try:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
                except OSError:
                    pass

            if endpoint.family == socket.AF_INET6:
                sock.bind(("::", endpoint.port))
                _join_v6(sock, endpoint, ifindex, loopback)
            else:
                sock.bind(("", endpoint.port))
                _join_v4(sock, endpoint, ifindex, loopback)
        except OSError as e:
            sock.close()
            LOG_WARN(
                "CHANNEL_JOIN_FAIL",
                event="CHANNEL_JOIN_FAIL",
                addr=str(endpoint),
                iface=interface,
                error=e,
            )
            raise JoinError(f"joining {endpoint}: {e}") from e

        LOG_INFO(
            "CHANNEL_OPEN",
            event="CHANNEL_OPEN",
            addr=str(endpoint),
            iface=interface,
            loopback=loopback,
        )
        return cls(sock, endpoint, ifindex)

    def send(self, data: bytes):
        try:
            self.sock.sendto(data, self.endpoint.sockaddr())
        except OSError as e:
            LOG_WARN(
                "CHANNEL_TX_FAIL",
                event="CHANNEL_TX_FAIL",
                addr=str(self.endpoint),
                size=len(data),
                error=e,
            )
            raise

    def receive(self):
        """Block until one datagram arrives; returns (data, sender_addr)."""
        return self.sock.recvfrom(MTU)

    def close(self):
        if self._closed:
            return
        self._closed = True
        LOG_INFO("CHANNEL_CLOSE", event="CHANNEL_CLOSE", addr=str(self.endpoint))
        try:
            self.sock.close()
        except OSError:
            pass


def _join_v4(sock, endpoint: Endpoint, ifindex: int, loopback: bool):
    any_addr = socket.inet_aton("0.0.0.0")
    if ifindex:
        # struct ip_mreqn { imr_multiaddr; imr_address; imr_ifindex; }
        mreq = struct.pack("=4s4si", endpoint.ip, any_addr, ifindex)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, mreq)
    else:
        mreq = struct.pack("=4s4s", endpoint.ip, any_addr)
    sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
    sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, int(loopback))


def _join_v6(sock, endpoint: Endpoint, ifindex: int, loopback: bool):
    # struct ipv6_mreq { ipv6mr_multiaddr; ipv6mr_interface; }
    mreq = endpoint.ip + struct.pack("@I", ifindex)
    sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_JOIN_GROUP, mreq)
    if ifindex:
        sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_IF, ifindex)
    sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_LOOP, int(loopback))
