"""
Value codec for the stored counter.

Counters are stored as their decimal text form. Anything else found under the
key is treated as corruption and is never repaired.
"""

from typing import Optional, Union

from .transition import next_value


class MalformedValue(ValueError):
    """Raised when stored bytes do not hold a non-negative decimal integer."""

    def __init__(self, raw: Union[bytes, str]):
        self.raw = raw
        super().__init__(f"Stored value is not a non-negative decimal integer: {raw!r}")


def encode(value: int) -> bytes:
    """Encode a non-negative integer as decimal ASCII bytes."""
    if value < 0:
        raise ValueError(f"Counter values are non-negative, got {value}")
    return str(value).encode("ascii")


def decode(raw: Union[bytes, str]) -> int:
    """
    Decode stored bytes into an integer.

    Args:
        raw: Bytes read from the cache (text is accepted for decoded clients)

    Returns:
        int: The decoded counter

    Raises:
        MalformedValue: If raw is empty or contains anything but ASCII digits
    """
    data = raw.encode("ascii", "replace") if isinstance(raw, str) else raw
    if not data or not data.isdigit():
        raise MalformedValue(raw)
    return int(data)


def advance(raw: Optional[bytes]) -> bytes:
    """Decode the current value, apply the transition and encode the result."""
    current = None if raw is None else decode(raw)
    return encode(next_value(current))
