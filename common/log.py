import os
import sys
import threading
import time

NO_COLOR = os.getenv("NO_COLOR") == "1"

COL = {
    "RESET": "\033[0m",
    "RED": "\033[31m",
    "GREEN": "\033[32m",
    "YELLOW": "\033[33m",
    "CYAN": "\033[36m",
}

_out = None
_lock = threading.Lock()


def set_output(stream):
    """Send log() and chat() output to stream (None -> sys.stdout)."""
    global _out
    _out = stream


def _stream():
    return _out if _out is not None else sys.stdout


def _isatty(stream) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


def _color(s: str, c: str) -> str:
    if NO_COLOR or not _isatty(_stream()):
        return s
    return f"{COL[c]}{s}{COL['RESET']}"


def _emit(line: str):
    stream = _stream()
    with _lock:
        stream.write(line + "\n")
        stream.flush()


def log(role: str, node_id: str, event: str, level: str = "INFO", **fields):
    ts = f"{time.time():.3f}"
    base = f"ts={ts} role={role} id={node_id} lvl={level} event={event}"

    if fields:
        parts = []
        for k in sorted(fields.keys()):
            v = fields[k]
            if isinstance(v, tuple):
                v = f"{v[0]}:{v[1]}"
            if v is None:
                v = "-"
            parts.append(f"{k}={v}")
        base += " " + " ".join(parts)

    if level == "ERROR":
        _emit(_color(base, "RED"))
    elif level == "WARN":
        _emit(_color(base, "YELLOW"))
    elif level == "OK":
        _emit(_color(base, "GREEN"))
    else:
        _emit(_color(base, "CYAN"))


def chat(line: str):
    _emit(f"{time.strftime('%Y/%m/%d %H:%M:%S')} {line}")
