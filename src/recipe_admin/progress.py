"""
Simulated progress schedule for backends that return no job id.

Progress moves slowly at first, faster in the middle band and fastest near
the end, and always reaches exactly 100.
"""

from __future__ import annotations

# (upper bound of band, increment per tick)
PROGRESS_BANDS = (
    (20.0, 5.0),
    (60.0, 10.0),
    (100.0, 20.0),
)

# Hard stop so a simulation can never run forever.
MAX_SIMULATED_TICKS = 50


def next_progress(current: float, elapsed_ticks: int) -> float:
    """
    Compute the next simulated progress value.

    Args:
        current: Progress before this tick, in [0, 100]
        elapsed_ticks: Number of ticks already applied to this job

    Returns:
        The new progress value, never lower than `current` and capped at 100

    Example:
        >>> next_progress(0, 0)
        5.0
        >>> next_progress(45, 6)
        55.0
        >>> next_progress(90, 9)
        100.0
    """
    current = min(100.0, max(0.0, float(current)))
    if elapsed_ticks >= MAX_SIMULATED_TICKS:
        return 100.0

    for upper_bound, increment in PROGRESS_BANDS:
        if current < upper_bound:
            return min(100.0, current + increment)
    return 100.0
