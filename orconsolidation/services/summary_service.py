"""Run-level and weekly aggregates handed to the reporting layer."""

from __future__ import annotations

from collections import Counter, defaultdict
from typing import Sequence

import pandas as pd

from orconsolidation.domain.models import (
    AnesthesiaSavings,
    GroupResult,
    RunSummary,
    StaffingSummary,
    WeekSummary,
)


def _utilization(results: Sequence[GroupResult], capacity: int, *, optimized: bool) -> float:
    total_minutes = sum(result.total_duration_minutes for result in results)
    total_capacity = sum(
        (result.effective_rooms if optimized else result.actual_rooms) * capacity
        for result in results
    )
    if total_capacity <= 0:
        return 0.0
    return total_minutes / total_capacity * 100.0


def labor_yield(results: Sequence[GroupResult], capacity: int) -> float:
    """Clinical anesthesia minutes as a percentage of original room-day capacity."""
    room_days = sum(result.actual_rooms for result in results)
    if room_days <= 0 or capacity <= 0:
        return 0.0
    clinical_minutes = sum(
        interval.clinical_minutes for result in results for interval in result.intervals
    )
    return clinical_minutes / (room_days * capacity) * 100.0


def summarize_results(
    results: Sequence[GroupResult],
    capacity: int,
    staffing: StaffingSummary | None = None,
) -> RunSummary:
    total_actual = sum(result.actual_rooms for result in results)
    total_saved = sum(result.rooms_saved for result in results)
    providers = {
        interval.provider.strip()
        for result in results
        for interval in result.intervals
        if interval.has_provider
    }
    return RunSummary(
        total_actual_rooms=total_actual,
        total_optimized_rooms=total_actual - total_saved,
        total_rooms_saved=total_saved,
        current_utilization=_utilization(results, capacity, optimized=False),
        optimized_utilization=_utilization(results, capacity, optimized=True),
        group_count=len(results),
        groups_with_savings=sum(1 for result in results if result.rooms_saved > 0),
        total_duration_minutes=sum(result.total_duration_minutes for result in results),
        total_providers=len(providers),
        anesthesia_savings=AnesthesiaSavings.combine(
            [result.anesthesia_savings for result in results]
        ),
        status_counts=dict(Counter(result.status.value for result in results)),
        staffing=staffing or StaffingSummary(),
        labor_yield=labor_yield(results, capacity),
    )


def iso_week_label(value) -> str:
    year, week, _ = value.isocalendar()
    return f"{year:04d}-W{week:02d}"


def aggregate_weekly(results: Sequence[GroupResult], capacity: int) -> list[WeekSummary]:
    by_week: dict[tuple[str, str], list[GroupResult]] = defaultdict(list)
    for result in results:
        by_week[(result.key.name, iso_week_label(result.key.date))].append(result)

    summaries: list[WeekSummary] = []
    for name, week in sorted(by_week, key=lambda item: (item[1], item[0])):
        days = by_week[(name, week)]
        total_minutes = sum(day.total_duration_minutes for day in days)
        capacity_minutes = sum(day.effective_rooms * capacity for day in days)
        summaries.append(
            WeekSummary(
                name=name,
                week=week,
                days_count=len(days),
                total_cases=sum(len(day.intervals) for day in days),
                actual_rooms=sum(day.actual_rooms for day in days),
                optimized_rooms=sum(day.optimized_rooms or 0 for day in days),
                rooms_saved=sum(day.rooms_saved for day in days),
                total_minutes=total_minutes,
                capacity_minutes=capacity_minutes,
                unused_minutes=capacity_minutes - total_minutes,
            )
        )
    return summaries


def results_to_frame(results: Sequence[GroupResult]) -> pd.DataFrame:
    columns = [
        "group",
        "date",
        "cluster",
        "status",
        "cases",
        "actual_rooms",
        "optimized_rooms",
        "rooms_saved",
        "lower_bound",
        "anesthesia_method1",
        "anesthesia_method2",
        "anesthesia_method3",
        "anesthesia_total",
        "surplus_staffing_hours",
    ]
    rows = [
        {
            "group": result.key.name,
            "date": result.key.date,
            "cluster": result.key.cluster,
            "status": result.status.value,
            "cases": len(result.intervals),
            "actual_rooms": result.actual_rooms,
            "optimized_rooms": result.optimized_rooms,
            "rooms_saved": result.rooms_saved,
            "lower_bound": result.lower_bound,
            "anesthesia_method1": result.anesthesia_savings.method1,
            "anesthesia_method2": result.anesthesia_savings.method2,
            "anesthesia_method3": result.anesthesia_savings.method3,
            "anesthesia_total": result.anesthesia_savings.total,
            "surplus_staffing_hours": result.surplus_staffing_hours,
        }
        for result in results
    ]
    return pd.DataFrame(rows, columns=columns)
