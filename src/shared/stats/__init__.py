from __future__ import annotations

from .metrics import compute_elapsed_s, compute_throughput, format_throughput

__all__ = [
    "compute_elapsed_s",
    "compute_throughput",
    "format_throughput",
]
