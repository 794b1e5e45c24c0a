"""Numeric reply normalization shared by the Redis and Upstash adapters.

Script replies reach us in different shapes depending on the client and its
decoding settings: plain integers, numeric strings or bytes, arrays of those,
or wrapper objects such as ``{"result": 3}``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from limitr.core.errors import MalformedReplyAppError

Number = int | float


def _try_parse_number(value: Any) -> Number | None:
    """Parse a scalar reply element, or return None when it is not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return int(value) if value.is_integer() else value
    if isinstance(value, (bytes, bytearray)):
        try:
            value = value.decode()
        except UnicodeDecodeError:
            return None
    if isinstance(value, str):
        try:
            parsed: float = float(value.strip())
        except ValueError:
            return None
        if not math.isfinite(parsed):
            return None
        return int(parsed) if parsed.is_integer() else parsed
    return None


def extract_number(reply: Any) -> Number:
    """Extract a number from a heterogeneous backend reply.

    Args:
        reply: Scalar, sequence, or mapping returned by a backend.

    Returns:
        The first numeric value found (int when integral).

    Raises:
        MalformedReplyAppError: If the reply is empty or holds no number.
    """
    if reply is None:
        raise MalformedReplyAppError(
            code="storage_empty_reply",
            message="Empty reply from storage backend",
        )

    number = _try_parse_number(reply)
    if number is not None:
        return number

    if isinstance(reply, Mapping):
        candidates: list[Any] = list(reply.values())
    elif isinstance(reply, (list, tuple)):
        candidates = list(reply)
    else:
        candidates = []

    for candidate in candidates:
        number = _try_parse_number(candidate)
        if number is not None:
            return number

    raise MalformedReplyAppError(
        code="storage_invalid_numeric_reply",
        message="Invalid numeric reply from storage backend",
        details={"reply_type": type(reply).__name__},
    )


def extract_count_and_ttl(reply: Any) -> tuple[int, Number]:
    """Read the ``{count, ttl_ms}`` pair returned by the increment script.

    Accepts the pair directly or wrapped as ``{"result": [count, ttl]}``.

    Raises:
        MalformedReplyAppError: If the reply does not hold two numbers.
    """
    if isinstance(reply, Mapping) and "result" in reply:
        reply = reply["result"]

    if not isinstance(reply, (list, tuple)) or len(reply) < 2:
        raise MalformedReplyAppError(
            code="storage_invalid_increment_reply",
            message="Increment script did not return [count, ttl]",
            details={"reply_type": type(reply).__name__},
        )

    return int(extract_number(reply[0])), extract_number(reply[1])
