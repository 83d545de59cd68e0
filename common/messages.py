"""
common.messages

Wire envelope for one chat message. One envelope per datagram:

  +----------+-----------------+----------+-----------------+----------
  | u16 len  | nickname (utf8) | u16 len  | text (utf8)     | padding..
  +----------+-----------------+----------+-----------------+----------

Lengths are big-endian byte counts. Whatever follows the text is ignored.
"""

import struct
from dataclasses import dataclass

from common.config import MTU
from common.errors import Malformed, TooLarge

_LEN = struct.Struct("!H")


@dataclass(frozen=True)
class ChatMessage:
    nickname: str
    text: str


def encoded_size(msg: ChatMessage) -> int:
    return (
        2 * _LEN.size
        + len(msg.nickname.encode("utf-8"))
        + len(msg.text.encode("utf-8"))
    )


def encode(msg: ChatMessage) -> bytes:
    size = encoded_size(msg)
    if size > MTU:
        raise TooLarge(size, MTU)

    nick = msg.nickname.encode("utf-8")
    text = msg.text.encode("utf-8")
    return _LEN.pack(len(nick)) + nick + _LEN.pack(len(text)) + text


def _read_field(data: bytes, offset: int):
    if offset + _LEN.size > len(data):
        raise Malformed(f"truncated length prefix at offset {offset}")
    (n,) = _LEN.unpack_from(data, offset)
    start = offset + _LEN.size
    end = start + n
    if end > len(data):
        raise Malformed(f"field of {n} bytes overruns buffer of {len(data)}")
    try:
        return data[start:end].decode("utf-8"), end
    except UnicodeDecodeError as e:
        raise Malformed(f"invalid utf-8: {e}") from e


def decode(data: bytes) -> ChatMessage:
    """Decode the single envelope at the front of a datagram."""
    data = bytes(data)
    nick, offset = _read_field(data, 0)
    text, _ = _read_field(data, offset)
    return ChatMessage(nick, text)
