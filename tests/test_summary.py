from __future__ import annotations

from datetime import date

import pytest

from orconsolidation.domain.models import (
    AnesthesiaSavings,
    GroupKey,
    GroupResult,
    GroupStatus,
    ProcedureInterval,
)
from orconsolidation.services.summary_service import (
    aggregate_weekly,
    iso_week_label,
    results_to_frame,
    summarize_results,
)


def _case(case_id: str, on_date: date, minutes: int):
    return ProcedureInterval(
        case_id=case_id,
        site="Main",
        date=on_date,
        room="OR1",
        occupancy_start=480,
        occupancy_end=480 + minutes,
        patient_in=480,
        patient_out=480 + minutes,
        duration_minutes=minutes,
    )


def _result(on_date, actual, optimized, status, minutes, savings=AnesthesiaSavings()):
    saved = max(0, actual - optimized) if optimized is not None else 0
    return GroupResult(
        key=GroupKey(name="Main", date=on_date),
        intervals=[_case(f"{on_date}-{index}", on_date, minutes) for index in range(actual)],
        actual_rooms=actual,
        optimized_rooms=optimized,
        rooms_saved=saved,
        status=status,
        anesthesia_savings=savings,
    )


def _sample_results() -> list[GroupResult]:
    return [
        _result(date(2026, 3, 2), 3, 2, GroupStatus.FFD_OPTIMAL, 100, AnesthesiaSavings(1, 0, 1, 2)),
        _result(date(2026, 3, 3), 2, 2, GroupStatus.OK_NO_SAVINGS_POSSIBLE, 200),
        _result(date(2026, 3, 9), 4, None, GroupStatus.INFEASIBLE, 120),
        _result(date(2026, 3, 10), 4, 1, GroupStatus.SOLVED_EXACTLY, 60, AnesthesiaSavings(0, 1, 0, 1)),
    ]


def test_iso_week_label():
    assert iso_week_label(date(2026, 3, 2)) == "2026-W10"
    assert iso_week_label(date(2027, 1, 1)) == "2026-W53"


def test_summary_totals():
    summary = summarize_results(_sample_results(), 480)

    assert summary.total_actual_rooms == 13
    assert summary.total_rooms_saved == 4
    assert summary.total_optimized_rooms == 9
    assert summary.groups_with_savings == 2
    assert summary.anesthesia_savings.total == 3
    assert summary.status_counts["INFEASIBLE"] == 1
    assert summary.optimized_utilization > summary.current_utilization


def test_infeasible_group_counts_its_actual_rooms_in_utilization():
    results = [_result(date(2026, 3, 9), 2, None, GroupStatus.INFEASIBLE, 240)]

    summary = summarize_results(results, 480)

    assert summary.current_utilization == pytest.approx(50.0)
    assert summary.optimized_utilization == pytest.approx(50.0)


def test_weekly_rollup_sums_to_run_totals():
    results = _sample_results()

    weekly = aggregate_weekly(results, 480)
    summary = summarize_results(results, 480)

    assert [week.week for week in weekly] == ["2026-W10", "2026-W11"]
    assert sum(week.rooms_saved for week in weekly) == summary.total_rooms_saved
    assert sum(week.actual_rooms for week in weekly) == summary.total_actual_rooms
    assert sum(week.total_minutes for week in weekly) == summary.total_duration_minutes
    assert weekly[0].days_count == 2
    assert weekly[0].unused_minutes == weekly[0].capacity_minutes - weekly[0].total_minutes


def test_results_frame_has_one_row_per_group():
    frame = results_to_frame(_sample_results())

    assert len(frame) == 4
    assert frame["rooms_saved"].sum() == 4
    assert list(frame["status"])[2] == "INFEASIBLE"


def test_labor_yield_uses_clinical_minutes_over_original_room_days():
    result = _result(date(2026, 3, 2), 2, 1, GroupStatus.FFD_OPTIMAL, 100)
    for interval in result.intervals:
        interval.anesthesia_start = 480
        interval.anesthesia_end = 540

    summary = summarize_results([result], 480)

    assert summary.labor_yield == pytest.approx(12.5)


def test_labor_yield_without_clinical_windows_is_zero():
    assert summarize_results(_sample_results(), 480).labor_yield == 0.0
