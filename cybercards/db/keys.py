"""KV keys: order-preserving encoding, parsing and key builders.

A key is a tuple of parts. Each part is bytes, str, a number (int or float)
or a bool. Keys are stored as BLOBs whose bytewise order equals tuple order,
so a prefix scan is a plain range query:

    bytes < str < number < bool

Encoding per part:
- bytes / str: type tag, content with 0x00 escaped as 0x00 0xFF, 0x00 terminator
- number: type tag, IEEE-754 big-endian double with the sign bit flipped
  (all bits inverted for negatives)
- bool: a single tag byte

No part encoding starts with 0xFF, so every key that extends a prefix P sorts
in [P, P + b"\\xff").
"""

import math
import struct
from typing import TypeAlias

from cybercards.constants import CARDS_NAMESPACE, SESSIONS_NAMESPACE, USERS_NAMESPACE

KeyPart: TypeAlias = bytes | str | int | float | bool
KvKey: TypeAlias = tuple[KeyPart, ...]

_TAG_BYTES = 0x01
_TAG_STRING = 0x02
_TAG_NUMBER = 0x21
_TAG_FALSE = 0x26
_TAG_TRUE = 0x27

PREFIX_END = b"\xff"

# Largest integer a double represents exactly
_MAX_SAFE_INTEGER = 2**53


class InvalidKeyError(ValueError):
    """Raised for keys that cannot be encoded or decoded."""


def _escape(raw: bytes) -> bytes:
    return raw.replace(b"\x00", b"\x00\xff") + b"\x00"


def _encode_number(value: float) -> bytes:
    if math.isnan(value):
        raise InvalidKeyError("NaN is not a valid key part")
    packed = bytearray(struct.pack(">d", value))
    if packed[0] & 0x80:
        packed = bytearray(b ^ 0xFF for b in packed)
    else:
        packed[0] ^= 0x80
    return bytes(packed)


def _decode_number(raw: bytes) -> int | float:
    packed = bytearray(raw)
    if packed[0] & 0x80:
        packed[0] ^= 0x80
    else:
        packed = bytearray(b ^ 0xFF for b in packed)
    value: float = struct.unpack(">d", bytes(packed))[0]
    if value.is_integer() and abs(value) <= _MAX_SAFE_INTEGER:
        return int(value)
    return value


def encode_key(key: KvKey) -> bytes:
    """Encode a key tuple into its ordered byte form."""
    if not isinstance(key, tuple):
        raise InvalidKeyError(f"Key must be a tuple, got {type(key).__name__}")
    out = bytearray()
    for part in key:
        # bool before int: bool is a subclass of int
        if isinstance(part, bool):
            out.append(_TAG_TRUE if part else _TAG_FALSE)
        elif isinstance(part, bytes):
            out.append(_TAG_BYTES)
            out += _escape(part)
        elif isinstance(part, str):
            out.append(_TAG_STRING)
            out += _escape(part.encode("utf-8"))
        elif isinstance(part, int):
            if abs(part) > _MAX_SAFE_INTEGER:
                raise InvalidKeyError(f"Integer key part out of range: {part}")
            out.append(_TAG_NUMBER)
            out += _encode_number(float(part))
        elif isinstance(part, float):
            out.append(_TAG_NUMBER)
            out += _encode_number(part)
        else:
            raise InvalidKeyError(f"Unsupported key part type: {type(part).__name__}")
    return bytes(out)


def _read_escaped(raw: bytes, pos: int) -> tuple[bytes, int]:
    out = bytearray()
    while pos < len(raw):
        byte = raw[pos]
        if byte == 0x00:
            if pos + 1 < len(raw) and raw[pos + 1] == 0xFF:
                out.append(0x00)
                pos += 2
                continue
            return bytes(out), pos + 1
        out.append(byte)
        pos += 1
    raise InvalidKeyError("Unterminated key part")


def decode_key(raw: bytes) -> KvKey:
    """Decode an encoded key back into a tuple."""
    parts: list[KeyPart] = []
    pos = 0
    while pos < len(raw):
        tag = raw[pos]
        pos += 1
        if tag == _TAG_BYTES:
            value, pos = _read_escaped(raw, pos)
            parts.append(value)
        elif tag == _TAG_STRING:
            value, pos = _read_escaped(raw, pos)
            parts.append(value.decode("utf-8"))
        elif tag == _TAG_NUMBER:
            if pos + 8 > len(raw):
                raise InvalidKeyError("Truncated number key part")
            parts.append(_decode_number(raw[pos : pos + 8]))
            pos += 8
        elif tag == _TAG_FALSE:
            parts.append(False)
        elif tag == _TAG_TRUE:
            parts.append(True)
        else:
            raise InvalidKeyError(f"Unknown key part tag: {tag:#x}")
    return tuple(parts)


def parse_key(key_str: str) -> KvKey:
    """Parse a comma-separated key string. Every part stays a string.

    >>> parse_key("cards,info,meta,42")
    ('cards', 'info', 'meta', '42')
    """
    return tuple(key_str.split(","))


def key_to_json(key: KvKey) -> list[str | int | float | bool]:
    """JSON-friendly form of a key (bytes parts become lists of ints)."""
    return [list(part) if isinstance(part, bytes) else part for part in key]  # type: ignore[misc]


# -----------------------------------------------------------------------------
# Key builders
# -----------------------------------------------------------------------------


def card_meta_key(card_type: str, card_id: str) -> KvKey:
    return (CARDS_NAMESPACE, card_type, "meta", card_id)


def card_data_key(card_type: str, card_id: str) -> KvKey:
    return (CARDS_NAMESPACE, card_type, "data", card_id)


def card_meta_prefix(card_type: str) -> KvKey:
    return (CARDS_NAMESPACE, card_type, "meta")


def card_list_key(card_type: str, user_id: str) -> KvKey:
    """Legacy per-user listing: ids of the cards a user created."""
    return (CARDS_NAMESPACE, card_type, "list", user_id)


def user_key(user_id: str) -> KvKey:
    return (USERS_NAMESPACE, user_id)


def session_key(session_id: str) -> KvKey:
    return (SESSIONS_NAMESPACE, session_id)


SESSIONS_PREFIX: KvKey = (SESSIONS_NAMESPACE,)
