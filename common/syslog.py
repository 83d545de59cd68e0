# common/syslog.py
import socket
from datetime import datetime, timezone

from common import config

# ------------------------------
# UDP socket (reused)
# ------------------------------
_sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)


# ------------------------------
# Helpers
# ------------------------------
def _ts():
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _get_lan_ip():
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(("8.8.8.8", 80))
        return s.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        s.close()


def _pri(severity: int):
    # PRI = facility * 8 + severity
    return (config.SYSLOG_FACILITY * 8) + severity


def _fmt(v):
    if v is None:
        return "-"
    return str(v)


def _hostname():
    try:
        return socket.gethostname() or "-"
    except OSError:
        return "-"


def format_message(
    *,
    level: str,
    severity: int,
    message: str,
    node_id: str,
    event=None,
    addr=None,
    **extra
) -> str:
    if isinstance(addr, tuple) and len(addr) >= 2:
        addr = f"{addr[0]}:{addr[1]}"

    payload_parts = [
        f"event={_fmt(event)}",
        f"level={level}",
        f"node_id={node_id}",
        f'msg="{message}"',
    ]
    if addr is not None:
        payload_parts.append(f"addr={_fmt(addr)}")

    for k in sorted(extra.keys()):
        payload_parts.append(f"{k}={_fmt(extra[k])}")

    payload = " ".join(payload_parts)

    # RFC5424 header
    return (
        f"<{_pri(severity)}>1 "
        f"{_ts()} "
        f"{_hostname()} "
        f"lanshout "
        f"- - - "
        f"{payload}"
    )


# ------------------------------
# Core syslog sender
# ------------------------------
def _send_syslog(*, node_id: str = "-", **fields):
    if not config.SYSLOG_ENABLED:
        return

    host = config.SYSLOG_HOST
    if host == "auto":
        host = _get_lan_ip()

    syslog_msg = format_message(node_id=node_id, **fields)

    try:
        _sock.sendto(
            syslog_msg.encode("utf-8", errors="replace"),
            (host, config.SYSLOG_PORT),
        )
    except OSError:
        # diagnostics never take the chat down
        pass


# ------------------------------
# PUBLIC API
# ------------------------------
def LOG_INFO(message: str, **fields):
    _send_syslog(
        level="INFO",
        severity=6,
        message=message,
        **fields,
    )


def LOG_WARN(message: str, **fields):
    _send_syslog(
        level="WARN",
        severity=4,
        message=message,
        **fields,
    )


def LOG_ERROR(message: str, **fields):
    _send_syslog(
        level="ERROR",
        severity=3,
        message=message,
        **fields,
    )
