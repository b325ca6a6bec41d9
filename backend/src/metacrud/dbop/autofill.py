"""Values generated for annotated fields on create and update."""

from __future__ import annotations

import random
import string
import time
from collections.abc import Sequence
from datetime import date
from ipaddress import IPv4Address, IPv4Network, IPv6Address, IPv6Network
from typing import Any

from metacrud.models.registry import UNSIGNED_TYPES, FieldDefinition, ModelTag

_random = random.SystemRandom()

UINT32_MAX = 2**32
# Signed 64-bit columns are the widest every supported engine stores
UINT64_MAX = 2**63

RANDSTR_LENGTH = 16
RANDSTR_ALPHABET = string.ascii_letters + string.digits

SHOWINDEX_INSERT = "insert"
SHOWINDEX_APPEND = "append"


def timestamp() -> int:
    """Current unix time in seconds."""
    return int(time.time())


def random_uint(upper: int, lo: int = 0, hi: int = 0) -> int:
    """Random integer in [lo, hi), or in [0, upper) when no valid bounds."""
    if hi > lo:
        return _random.randrange(lo, hi)
    return _random.randrange(upper)


def random_date_prefix() -> int:
    """Random integer prefixed with today's date, e.g. 20260101xxxxxxxxxx."""
    suffix = _random.randrange(10**10)
    return int(f"{date.today():%Y%m%d}{suffix:010d}")


def random_string(length: int = RANDSTR_LENGTH, case: str = "") -> str:
    value = "".join(_random.choice(RANDSTR_ALPHABET) for _ in range(length))
    if case == "upper":
        return value.upper()
    if case == "lower":
        return value.lower()
    return value


def parse_rand_tag(tag: ModelTag, field_type: str = "") -> tuple[str, int, int]:
    """Split ``rand[:<type>[:<lo>-<hi>]]`` into (type, lo, hi).

    Bounds where hi <= lo (or unparseable) are returned as (0, 0).
    """
    if field_type in UNSIGNED_TYPES:
        rand_type = "uint64" if field_type == "uint64" else "uint32"
    else:
        rand_type = "uint32"
    lo = hi = 0

    if tag.params and tag.params[0]:
        rand_type, _, bounds = tag.params[0].partition(":")
        left, sep, right = bounds.partition("-")
        if sep:
            try:
                lo, hi = int(left), int(right)
            except ValueError:
                lo = hi = 0
            if hi <= lo:
                lo = hi = 0
    return rand_type, lo, hi


def random_value(tag: ModelTag, field_type: str = "") -> Any:
    """Generate a value for a ``rand`` or ``randstr`` annotation.

    Returns None for unknown rand types, which leaves the field unset.
    """
    if tag.name == "randstr":
        length = RANDSTR_LENGTH
        case = ""
        if tag.params:
            try:
                length = int(tag.params[0])
            except ValueError:
                length = RANDSTR_LENGTH
            if len(tag.params) > 1:
                case = tag.params[1]
        return random_string(length, case)

    rand_type, lo, hi = parse_rand_tag(tag, field_type)
    if rand_type == "uint32":
        return random_uint(UINT32_MAX, lo, hi)
    if rand_type in ("uint", "uint64"):
        return random_uint(UINT64_MAX, lo, hi)
    if rand_type == "dateprefix":
        return random_date_prefix()
    return None


def autofill_value(tag: ModelTag, field: FieldDefinition) -> tuple[bool, Any]:
    """Value an annotation assigns on insert.

    Returns:
        (filled, value); filled is False when the tag does not auto-fill
    """
    if tag.name in ("rand", "randstr"):
        value = random_value(tag, field.type)
        return value is not None, value
    if tag.name in ("createtime", "updatetime"):
        return True, timestamp()
    if tag.name == "showindex":
        # NOT NULL columns reject an omitted value on some engines
        return True, 0
    return False, None


def showindex_mode(tag: ModelTag) -> str:
    if tag.params and tag.params[0]:
        return tag.params[0]
    return SHOWINDEX_APPEND


def to_column_value(value: Any) -> Any:
    """Convert a parameter value for storage in a single column."""
    if isinstance(value, (IPv4Address, IPv6Address, IPv4Network, IPv6Network)):
        return str(value)
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return ",".join(value)
    return value


def is_duplicate_key(exc: BaseException, table: str = "", pk_columns: Sequence[str] = ()) -> bool:
    """Whether a failed insert collided on the primary key.

    MySQL:      Duplicate entry '3283486027' for key 'PRIMARY'
    PostgreSQL: duplicate key value violates unique constraint "user_pkey"
    SQLite:     UNIQUE constraint failed: user.user_id
    """
    message = str(exc).lower()
    if "duplicate" in message and ("primary" in message or "pkey" in message):
        return True
    if "unique constraint failed" in message and table:
        return any(f"{table}.{col}".lower() in message for col in pk_columns)
    return False
