"""
Pipeline state enum shared across fetcher modules, the API and tests.

Order:
    Preparing -> Fetching -> Verifying -> Handoff -> Cleanup -> Done / Failed

A failure in Preparing, Fetching, Verifying or Handoff jumps to Cleanup, which
always runs before Done or Failed.
"""

from __future__ import annotations

from enum import Enum


class PipelineState(str, Enum):
    PREPARING = "Preparing"
    FETCHING = "Fetching"
    VERIFYING = "Verifying"
    HANDOFF = "Handoff"
    CLEANUP = "Cleanup"
    DONE = "Done"
    FAILED = "Failed"

    def is_terminal(self) -> bool:
        return self in (PipelineState.DONE, PipelineState.FAILED)
