import os
import socket
from dataclasses import dataclass
from typing import Optional

# largest envelope we put in one datagram
MTU = 400

DEFAULT_PORT = 16413
DEFAULT_ADDRESS = f"[ff02::401d]:{DEFAULT_PORT}"

# Syslog export (off unless LANSHOUT_SYSLOG=1)
SYSLOG_ENABLED = os.getenv("LANSHOUT_SYSLOG") == "1"
# "auto" -> our LAN address
SYSLOG_HOST = os.getenv("LANSHOUT_SYSLOG_HOST", "127.0.0.1")
SYSLOG_PORT = int(os.getenv("LANSHOUT_SYSLOG_PORT", "5514"))
# local0
SYSLOG_FACILITY = int(os.getenv("LANSHOUT_SYSLOG_FACILITY", "16"))


@dataclass(frozen=True)
class ShoutConfig:
    address: str = DEFAULT_ADDRESS
    interface: Optional[str] = None
    nickname: str = "nobody@localhost"
    loopback: bool = False


def default_nickname(nick: str = "") -> str:
    """
    Nickname shown to everyone else: <nick>@<hostname>.
    Falls back to $USER, then "nobody".
    """
    if not nick:
        nick = os.getenv("USER", "")
    if not nick:
        nick = "nobody"

    try:
        host = socket.gethostname()
    except OSError:
        host = ""
    if not host:
        host = "localhost"

    return f"{nick}@{host}"
