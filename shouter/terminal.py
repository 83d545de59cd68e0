"""
shouter.terminal

Prints lines above the row the user is typing on (VT220 terminals).

Only correct while the input row hasn't wrapped; handling wrapped input
would need readline-style tracking of the edit buffer.
"""

import threading

SAVE_CUR = "\x1b7"
RESTORE_CUR = "\x1b8"

MODE_INSERT = "\x1b[4h"
MODE_REPLACE = "\x1b[4l"

CURSOR_UP = "\x1b[A"
CURSOR_DOWN = "\x1b[B"

INDEX_UP = "\x1bM"
INDEX_DOWN = "\x1bD"

INSERT_LINE = "\x1b[L"
DELETE_LINE = "\x1b[M"


def render(payload: str) -> str:
    nl = ""
    if payload and not payload.endswith("\n"):
        nl = "\n"
    # INDEX_DOWN + INDEX_UP makes room at the bottom of the screen;
    # a scroll-up (CSI S) would leave the saved cursor on the wrong row.
    return (
        MODE_INSERT + SAVE_CUR + INDEX_DOWN + INDEX_UP + INSERT_LINE
        + payload + nl
        + RESTORE_CUR + CURSOR_DOWN + MODE_REPLACE
    )


def sanitize(text: str) -> str:
    """Drop non-printable characters (control codes, escapes, separators)."""
    return "".join(ch for ch in text if ch.isprintable())


class InsertWriter:
    """File-like wrapper: every write() lands on a new row above the cursor."""

    def __init__(self, stream):
        self.stream = stream
        self._lock = threading.Lock()

    def write(self, s: str) -> int:
        with self._lock:
            self.stream.write(render(s))
            self.stream.flush()
        return len(s)

    def clear_prompt(self):
        """Remove the row of a prompt the user just submitted."""
        with self._lock:
            self.stream.write(INDEX_UP + DELETE_LINE)
            self.stream.flush()

    def flush(self):
        self.stream.flush()

    def isatty(self) -> bool:
        try:
            return self.stream.isatty()
        except (AttributeError, ValueError):
            return False
