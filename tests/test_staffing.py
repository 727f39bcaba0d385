from __future__ import annotations

from datetime import date, timedelta

import pytest

from orconsolidation.domain.constraints import RegionConfig
from orconsolidation.domain.models import (
    GroupKey,
    GroupResult,
    GroupStatus,
    ProcedureInterval,
    StaffingHoursRecord,
)
from orconsolidation.services.staffing_service import (
    balance_regional_staffing,
    distribute_surplus,
)


DAY = date(2026, 3, 2)
REGIONS = RegionConfig.from_members({"East": ["Alpha", "Beta"], "West": ["Gamma"]})


def _case(
    case_id: str,
    site: str,
    minutes: int,
    on_date: date = DAY,
    room: str = "OR1",
    slot: str | None = None,
) -> ProcedureInterval:
    return ProcedureInterval(
        case_id=case_id,
        site=site,
        date=on_date,
        room=room,
        assigned_slot=slot,
        occupancy_start=480,
        occupancy_end=480 + minutes,
        patient_in=480,
        patient_out=480 + minutes,
        duration_minutes=minutes,
        anesthesia_start=480,
        anesthesia_end=480 + minutes,
    )


def _group_result(name: str, intervals: list[ProcedureInterval]) -> GroupResult:
    return GroupResult(
        key=GroupKey(name=name, date=DAY),
        intervals=intervals,
        actual_rooms=1,
        optimized_rooms=1,
        rooms_saved=0,
        status=GroupStatus.SKIPPED,
    )


def test_surplus_is_effective_supply_minus_demand():
    balance = balance_regional_staffing(
        [_case("c1", "Alpha", 120)],
        [StaffingHoursRecord(region="East", date=DAY, hours=10.0)],
        REGIONS,
        0.8,
    )

    record = balance.record_for("East", DAY)
    assert record.required_hours == pytest.approx(2.0)
    assert record.effective_supply_hours == pytest.approx(8.0)
    assert record.surplus_hours == pytest.approx(6.0)
    assert balance.summary.total_hours == pytest.approx(10.0)
    assert balance.summary.current_utilization == pytest.approx(20.0)
    assert balance.summary.target_utilization == pytest.approx(25.0)


def test_supply_records_for_same_region_date_are_summed():
    balance = balance_regional_staffing(
        [_case("c1", "Alpha", 60), _case("c2", "Beta", 60)],
        [
            StaffingHoursRecord(region="East", date=DAY, hours=4.0, provider="N1"),
            StaffingHoursRecord(region="East", date=DAY, hours=6.0, provider="N2"),
        ],
        REGIONS,
        1.0,
    )

    record = balance.record_for("East", DAY)
    assert record.supply_hours == pytest.approx(10.0)
    assert record.required_hours == pytest.approx(2.0)
    assert record.surplus_hours == pytest.approx(8.0)


def test_understaffed_region_has_zero_surplus():
    balance = balance_regional_staffing(
        [_case("c1", "Alpha", 480)],
        [StaffingHoursRecord(region="East", date=DAY, hours=6.0)],
        REGIONS,
        0.85,
    )

    assert balance.record_for("East", DAY).surplus_hours == 0.0


def test_region_without_supply_is_left_out_of_totals():
    balance = balance_regional_staffing(
        [_case("c1", "Alpha", 120), _case("c2", "Gamma", 240)],
        [StaffingHoursRecord(region="East", date=DAY, hours=10.0)],
        REGIONS,
        0.8,
    )

    west = balance.record_for("West", DAY)
    assert west.supply_hours == 0.0
    assert west.surplus_hours == 0.0
    assert balance.summary.required_hours == pytest.approx(2.0)
    assert balance.summary.surplus_hours == pytest.approx(6.0)
    assert balance.summary.regions_count == 2


def test_productivity_factor_is_clamped():
    balance = balance_regional_staffing(
        [_case("c1", "Alpha", 60)],
        [StaffingHoursRecord(region="East", date=DAY, hours=10.0)],
        REGIONS,
        0.2,
    )

    assert balance.record_for("East", DAY).effective_supply_hours == pytest.approx(5.0)


def test_unmapped_site_forms_standalone_region():
    balance = balance_regional_staffing([_case("c1", "Delta", 60)], [], REGIONS, 0.85)

    frame = balance.to_frame()
    assert frame["region"].tolist() == ["Standalone: Delta"]
    assert frame["surplus_hours"].tolist() == [0.0]


def test_no_cases_gives_empty_balance():
    balance = balance_regional_staffing(
        [],
        [StaffingHoursRecord(region="East", date=DAY, hours=10.0)],
        REGIONS,
        0.85,
    )

    assert balance.records == []
    assert balance.summary.total_hours == 0.0
    assert balance.to_frame().empty


def test_surplus_is_distributed_by_share_of_demand():
    alpha_cases = [_case("a1", "Alpha", 90)]
    beta_cases = [_case("b1", "Beta", 30)]
    balance = balance_regional_staffing(
        alpha_cases + beta_cases,
        [StaffingHoursRecord(region="East", date=DAY, hours=10.0)],
        REGIONS,
        1.0,
    )

    results = distribute_surplus(
        [_group_result("Alpha", alpha_cases), _group_result("Beta", beta_cases)],
        balance,
        REGIONS,
    )

    assert results[0].surplus_staffing_hours == pytest.approx(6.0)
    assert results[1].surplus_staffing_hours == pytest.approx(2.0)


def _consolidated_week() -> list[ProcedureInterval]:
    return [
        _case("a1", "Alpha", 120, room="OR1", slot="Alpha - Consolidated Room A"),
        _case("a2", "Alpha", 60, room="OR2", slot="Alpha - Consolidated Room A"),
        _case("b1", "Beta", 60, room="OR1"),
        _case("a3", "Alpha", 60, on_date=DAY + timedelta(days=1)),
        _case("g1", "Gamma", 240),
    ]


def test_room_days_count_staffed_slices_only():
    balance = balance_regional_staffing(
        _consolidated_week(),
        [StaffingHoursRecord(region="East", date=DAY, hours=10.0)],
        REGIONS,
        1.0,
    )

    east = balance.record_for("East", DAY)
    assert east.active_rooms == 3
    assert east.optimized_rooms == 2
    assert balance.summary.scheduled_room_days == 3
    assert balance.summary.required_room_days == 2
    assert balance.summary.max_active_rooms == 3
    assert balance.summary.avg_active_rooms == pytest.approx(5 / 3)


def test_region_totals_sum_staffed_slices_per_region():
    balance = balance_regional_staffing(
        _consolidated_week(),
        [StaffingHoursRecord(region="East", date=DAY, hours=10.0)],
        REGIONS,
        1.0,
    )

    east = balance.totals_for("East")
    assert east.supply_hours == pytest.approx(10.0)
    assert east.effective_supply_hours == pytest.approx(10.0)
    assert east.required_hours == pytest.approx(4.0)
    assert east.surplus_hours == pytest.approx(6.0)

    west = balance.totals_for("West")
    assert west.supply_hours == 0.0
    assert west.required_hours == 0.0
    assert sorted(totals.region for totals in balance.region_totals) == ["East", "West"]
    assert sum(t.surplus_hours for t in balance.region_totals) == pytest.approx(
        balance.summary.surplus_hours
    )
