"""Pairwise conflict rules shared by every packer.

Two intervals conflict when their padded occupancy windows overlap, unless they
originally ran in the same physical room and their raw patient windows did not
overlap. In that case the padding overlap already existed in the original
schedule and re-labelling the room must not turn it into a hard constraint.
"""

from __future__ import annotations

from datetime import time
from typing import Sequence

from orconsolidation.domain.models import ProcedureInterval


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def windows_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and b_start < a_end


def is_safety_exempt(first: ProcedureInterval, second: ProcedureInterval) -> bool:
    same_original_room = first.site == second.site and first.room == second.room
    if not same_original_room:
        return False
    originally_overlapped = windows_overlap(
        first.patient_in, first.patient_out, second.patient_in, second.patient_out
    )
    return not originally_overlapped


def intervals_conflict(first: ProcedureInterval, second: ProcedureInterval) -> bool:
    if not windows_overlap(
        first.occupancy_start,
        first.occupancy_end,
        second.occupancy_start,
        second.occupancy_end,
    ):
        return False
    return not is_safety_exempt(first, second)


def build_conflict_pairs(intervals: Sequence[ProcedureInterval]) -> list[tuple[int, int]]:
    """Return every conflicting index pair ``(i, k)`` with ``i < k``."""
    order = sorted(range(len(intervals)), key=lambda index: intervals[index].occupancy_start)
    pairs: list[tuple[int, int]] = []
    for position, i in enumerate(order):
        current = intervals[i]
        for k in order[position + 1:]:
            other = intervals[k]
            if other.occupancy_start >= current.occupancy_end:
                break
            if intervals_conflict(current, other):
                pairs.append((min(i, k), max(i, k)))
    pairs.sort()
    return pairs
