from __future__ import annotations

from datetime import date

import pytest

from orconsolidation.domain.models import ProcedureInterval
from orconsolidation.services.lower_bound import (
    concurrency_bound,
    estimate_lower_bound,
    volume_bound,
)


def _interval(case_id: str, start: int, end: int, pad: int = 0) -> ProcedureInterval:
    return ProcedureInterval(
        case_id=case_id,
        site="Main",
        date=date(2026, 3, 2),
        room=f"OR-{case_id}",
        occupancy_start=start - pad,
        occupancy_end=end + pad,
        patient_in=start,
        patient_out=end,
        duration_minutes=(end + pad) - (start - pad),
    )


def test_volume_bound_rounds_up():
    intervals = [_interval("a", 480, 880), _interval("b", 900, 1000)]
    assert volume_bound(intervals, 480) == 2


def test_volume_bound_rejects_non_positive_capacity():
    with pytest.raises(ValueError):
        volume_bound([_interval("a", 480, 540)], 0)


def test_concurrency_counts_back_to_back_cases_once():
    intervals = [
        _interval("a", 480, 600),
        _interval("b", 600, 720),
        _interval("c", 720, 840),
    ]
    assert concurrency_bound(intervals) == 1


def test_concurrency_uses_raw_windows_not_padding():
    intervals = [
        _interval("a", 480, 600, pad=15),
        _interval("b", 610, 720, pad=15),
    ]
    assert concurrency_bound(intervals) == 1


def test_concurrency_peak():
    intervals = [
        _interval("a", 480, 720),
        _interval("b", 540, 600),
        _interval("c", 570, 660),
        _interval("d", 700, 800),
    ]
    assert concurrency_bound(intervals) == 3


def test_lower_bound_is_max_of_both_bounds():
    intervals = [_interval("a", 480, 520), _interval("b", 490, 530), _interval("c", 500, 540)]
    bound = estimate_lower_bound(intervals, 480)

    assert bound.volume == 1
    assert bound.concurrency == 3
    assert bound.value == 3


def test_empty_group_has_zero_bound():
    bound = estimate_lower_bound([], 480)
    assert bound.value == 0
