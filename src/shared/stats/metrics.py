from __future__ import annotations

import time
from typing import Optional


def compute_elapsed_s(started_at: Optional[float], *, now: Optional[float] = None) -> float:
    """
    Seconds elapsed since a `time.monotonic()` reading.

    Contract:
    - No start reading means nothing has run yet: 0.0.
    - Never negative.
    """
    if started_at is None:
        return 0.0

    if now is None:
        now = time.monotonic()

    return max(0.0, float(now - started_at))


def compute_throughput(bytes_transferred: int, elapsed_s: float) -> float:
    """
    throughput = bytes_transferred / elapsed (bytes per second)
    (elapsed > 0)
    """
    if elapsed_s <= 0:
        return 0.0

    return float(int(bytes_transferred)) / float(elapsed_s)


def format_throughput(bytes_per_s: float) -> str:
    """Human readable rate, e.g. "512.0 KiB/s"."""
    value = float(bytes_per_s)
    for unit in ("B/s", "KiB/s", "MiB/s"):
        if value < 1024.0:
            return f"{value:.1f} {unit}"
        value /= 1024.0
    return f"{value:.1f} GiB/s"
