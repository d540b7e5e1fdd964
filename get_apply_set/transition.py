"""Deterministic counter transition."""

from typing import Optional


def next_value(current: Optional[int]) -> int:
    """
    Advance the counter one step.

    A missing value starts the sequence at 0. Even values grow by 3 and odd
    values by 1, so the result is always strictly greater than the input.

    Args:
        current: Current counter value, or None when the key is absent

    Returns:
        The next counter value
    """
    if current is None:
        return 0
    if current % 2 == 0:
        return current + 3
    return current + 1


def iterate(times: int) -> Optional[int]:
    """Apply next_value `times` times starting from the absent state."""
    value: Optional[int] = None
    for _ in range(times):
        value = next_value(value)
    return value
