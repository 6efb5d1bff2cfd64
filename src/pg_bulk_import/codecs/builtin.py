"""
Built-in value codecs.

A codec is any callable taking one non-null value and returning the text
token PostgreSQL expects for it inside a COPY CSV stream. Null handling is
done by the registry before a codec is ever called.
"""

import datetime as dt
import ipaddress
import json
import math
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict

from psycopg2.extras import Json

Codec = Callable[[Any], str]


def encode_str(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


def encode_bool(value: Any) -> str:
    return "true" if value else "false"


def encode_int(value: Any) -> str:
    return str(int(value))


def encode_float(value: Any) -> str:
    """Non-finite floats become the words PostgreSQL reads back as floats."""
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return repr(value)


def encode_decimal(value: Decimal) -> str:
    """
    Render a Decimal in plain notation.

    Examples:
        >>> encode_decimal(Decimal("1E+10"))
        '10000000000'
    """
    if value.is_nan():
        return "NaN"
    if value.is_infinite():
        return "-Infinity" if value.is_signed() else "Infinity"
    return format(value, "f")


def encode_date(value: dt.date) -> str:
    return value.isoformat()


def encode_datetime(value: dt.datetime) -> str:
    # Aware values keep their offset
    return value.isoformat()


def encode_time(value: dt.time) -> str:
    return value.isoformat()


def encode_timedelta(value: dt.timedelta) -> str:
    """
    Render a timedelta as PostgreSQL interval input.

    Examples:
        >>> encode_timedelta(dt.timedelta(days=1, seconds=30))
        '1 days 30 seconds'
    """
    seconds = str(value.seconds)
    if value.microseconds:
        seconds = f"{value.seconds}.{value.microseconds:06d}"
    return f"{value.days} days {seconds} seconds"


def encode_uuid(value: uuid.UUID) -> str:
    return str(value)


def encode_bytes(value: Any) -> str:
    """
    Render binary data as a bytea hex literal.

    The leading backslash is doubled because the token also passes through
    CSV encoding.

    Examples:
        >>> encode_bytes(b"\\x01\\xab")
        '\\\\\\\\x01ab'
    """
    return "\\\\x" + bytes(value).hex()


def encode_json(value: Any) -> str:
    if isinstance(value, Json):
        value = value.adapted
    return json.dumps(value, separators=(",", ":"), default=str)


def encode_enum(value: Enum) -> str:
    return value.name


def builtin_codecs() -> Dict[type, Codec]:
    """Exact-type codecs registered on every new registry."""
    codecs: Dict[type, Codec] = {
        str: encode_str,
        bool: encode_bool,
        int: encode_int,
        float: encode_float,
        Decimal: encode_decimal,
        dt.date: encode_date,
        dt.datetime: encode_datetime,
        dt.time: encode_time,
        dt.timedelta: encode_timedelta,
        uuid.UUID: encode_uuid,
        bytes: encode_bytes,
        bytearray: encode_bytes,
        memoryview: encode_bytes,
        dict: encode_json,
        Json: encode_json,
    }
    for address_type in (
        ipaddress.IPv4Address,
        ipaddress.IPv6Address,
        ipaddress.IPv4Network,
        ipaddress.IPv6Network,
        ipaddress.IPv4Interface,
        ipaddress.IPv6Interface,
    ):
        codecs[address_type] = encode_str
    return codecs
