"""
Task Orchestration — Delegating Prompts to an External Process.

A single delegated call runs one external process (DelegateChannel). A batch
of calls runs in bounded chunks (ParallelDispatcher). A map-reduce run maps
items in parallel and folds the outputs one step at a time (MapReducer).
"""

from __future__ import annotations

from inception.orchestration.channel import DelegateChannel, DelegateChannelBase
from inception.orchestration.dispatcher import ParallelDispatcher
from inception.orchestration.models import (
    BatchOutcome,
    DelegateResult,
    DelegateTask,
    ReductionOutcome,
)
from inception.orchestration.reducer import MapReducer

__all__ = [
    "BatchOutcome",
    "DelegateChannel",
    "DelegateChannelBase",
    "DelegateResult",
    "DelegateTask",
    "MapReducer",
    "ParallelDispatcher",
    "ReductionOutcome",
]
