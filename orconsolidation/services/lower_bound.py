"""Lower bounds on the number of consolidated rooms a group can need."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from orconsolidation.domain.models import ProcedureInterval


@dataclass(frozen=True)
class LowerBound:
    volume: int
    concurrency: int

    @property
    def value(self) -> int:
        return max(self.volume, self.concurrency)


def volume_bound(intervals: Sequence[ProcedureInterval], capacity: int) -> int:
    if capacity <= 0:
        raise ValueError("capacity must be > 0")
    total_minutes = sum(interval.duration_minutes for interval in intervals)
    return math.ceil(total_minutes / capacity)


def concurrency_bound(intervals: Sequence[ProcedureInterval]) -> int:
    """Peak number of simultaneous raw patient windows.

    Raw patient-in/out times are used so that padding cannot inflate the bound.
    Ends sort before starts at equal instants, so back-to-back cases count once.
    """
    if not intervals:
        return 0
    times = np.array(
        [interval.patient_in for interval in intervals]
        + [interval.patient_out for interval in intervals],
        dtype=np.int64,
    )
    deltas = np.array([1] * len(intervals) + [-1] * len(intervals), dtype=np.int64)
    order = np.lexsort((deltas, times))
    running = np.cumsum(deltas[order])
    return int(max(0, running.max()))


def estimate_lower_bound(intervals: Sequence[ProcedureInterval], capacity: int) -> LowerBound:
    return LowerBound(
        volume=volume_bound(intervals, capacity),
        concurrency=concurrency_bound(intervals),
    )
