"""Regional anesthesia staffing balance: demand vs. supplied nurse hours."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Iterable, Sequence

import pandas as pd

from orconsolidation.domain.constraints import RegionConfig, clamp_productivity_factor
from orconsolidation.domain.models import (
    GroupResult,
    ProcedureInterval,
    RegionStaffingTotals,
    RegionalStaffingRecord,
    StaffingHoursRecord,
    StaffingSummary,
)
from orconsolidation.utils.logger import get_logger


logger = get_logger(__name__)

_RECORD_COLUMNS = [
    "region",
    "date",
    "required_hours",
    "supply_hours",
    "effective_supply_hours",
    "surplus_hours",
    "active_rooms",
    "optimized_rooms",
]
_REGION_TOTAL_COLUMNS = [
    "supply_hours",
    "effective_supply_hours",
    "required_hours",
    "surplus_hours",
]


@dataclass(frozen=True)
class StaffingBalance:
    records: list[RegionalStaffingRecord]
    summary: StaffingSummary
    region_totals: list[RegionStaffingTotals] = field(default_factory=list)

    def record_for(self, region: str, on_date) -> RegionalStaffingRecord | None:
        for record in self.records:
            if record.region == region and record.date == on_date:
                return record
        return None

    def totals_for(self, region: str) -> RegionStaffingTotals | None:
        for totals in self.region_totals:
            if totals.region == region:
                return totals
        return None

    def to_frame(self) -> pd.DataFrame:
        if not self.records:
            return pd.DataFrame(columns=_RECORD_COLUMNS)
        return pd.DataFrame(
            [
                {
                    "region": record.region,
                    "date": record.date,
                    "required_hours": record.required_hours,
                    "supply_hours": record.supply_hours,
                    "effective_supply_hours": record.effective_supply_hours,
                    "surplus_hours": record.surplus_hours,
                    "active_rooms": record.active_rooms,
                    "optimized_rooms": record.optimized_rooms,
                }
                for record in self.records
            ],
            columns=_RECORD_COLUMNS,
        )


def _demand_frame(intervals: Iterable[ProcedureInterval], regions: RegionConfig) -> pd.DataFrame:
    """Hours of clinical demand plus original and consolidated room counts.

    A case without a consolidated slot counts in its original room.
    """
    columns = ["region", "date", "required_hours", "active_rooms", "optimized_rooms"]
    rows = [
        {
            "region": regions.region_of(interval.site),
            "date": interval.date,
            "clinical_minutes": interval.clinical_minutes,
            "room_label": interval.original_room_label,
            "slot_label": interval.assigned_slot or interval.original_room_label,
        }
        for interval in intervals
    ]
    if not rows:
        return pd.DataFrame(columns=columns)
    frame = pd.DataFrame(rows)
    demand = frame.groupby(["region", "date"], as_index=False).agg(
        clinical_minutes=("clinical_minutes", "sum"),
        active_rooms=("room_label", "nunique"),
        optimized_rooms=("slot_label", "nunique"),
    )
    demand["required_hours"] = demand["clinical_minutes"] / 60.0
    return demand[columns]


def _supply_frame(records: Iterable[StaffingHoursRecord]) -> pd.DataFrame:
    rows = [
        {"region": record.region, "date": record.date, "supply_hours": float(record.hours)}
        for record in records
    ]
    if not rows:
        return pd.DataFrame(columns=["region", "date", "supply_hours"])
    frame = pd.DataFrame(rows)
    return frame.groupby(["region", "date"], as_index=False)["supply_hours"].sum()


def balance_regional_staffing(
    intervals: Sequence[ProcedureInterval],
    staffing_records: Iterable[StaffingHoursRecord],
    regions: RegionConfig,
    productivity_factor: float,
) -> StaffingBalance:
    """Compare case demand with supplied hours per region and date.

    Region/date pairs without supplied hours keep a zero surplus and are left
    out of the aggregate totals, since no staffing data exists for them.
    Supply for dates without any case is ignored.
    """
    factor = clamp_productivity_factor(productivity_factor)
    demand = _demand_frame(intervals, regions)
    if demand.empty:
        return StaffingBalance(records=[], summary=StaffingSummary())

    supply = _supply_frame(staffing_records)
    merged = demand.merge(supply, on=["region", "date"], how="left")
    merged["supply_hours"] = pd.to_numeric(merged["supply_hours"], errors="coerce").fillna(0.0)
    merged["effective_supply_hours"] = merged["supply_hours"] * factor
    merged["surplus_hours"] = (
        (merged["effective_supply_hours"] - merged["required_hours"]).clip(lower=0.0)
    )
    merged.loc[merged["supply_hours"] <= 0.0, "surplus_hours"] = 0.0
    merged = merged.sort_values(["region", "date"]).reset_index(drop=True)

    records = [
        RegionalStaffingRecord(
            region=str(row.region),
            date=row.date,
            required_hours=float(row.required_hours),
            supply_hours=float(row.supply_hours),
            effective_supply_hours=float(row.effective_supply_hours),
            surplus_hours=float(row.surplus_hours),
            active_rooms=int(row.active_rooms),
            optimized_rooms=int(row.optimized_rooms),
        )
        for row in merged.itertuples(index=False)
    ]

    for record in records:
        if not record.has_supply:
            logger.debug(
                "No staffing supply for region-date | region=%s | date=%s | required_hours=%.2f",
                record.region,
                record.date,
                record.required_hours,
            )

    staffed_mask = merged["supply_hours"] > 0.0
    staffed = merged[staffed_mask]
    total_hours = float(staffed["supply_hours"].sum())
    effective_hours = float(staffed["effective_supply_hours"].sum())
    required_hours = float(staffed["required_hours"].sum())
    surplus_hours = float(staffed["surplus_hours"].sum())
    summary = StaffingSummary(
        total_hours=total_hours,
        effective_hours=effective_hours,
        required_hours=required_hours,
        surplus_hours=surplus_hours,
        current_utilization=(required_hours / total_hours * 100.0) if total_hours > 0 else 0.0,
        target_utilization=(
            (required_hours / effective_hours * 100.0) if effective_hours > 0 else 0.0
        ),
        regions_count=int(merged["region"].nunique()),
        avg_active_rooms=float(merged["active_rooms"].mean()),
        max_active_rooms=int(merged["active_rooms"].max()),
        scheduled_room_days=int(staffed["active_rooms"].sum()),
        required_room_days=int(staffed["optimized_rooms"].sum()),
    )

    regional = (
        merged.assign(required_hours=merged["required_hours"].where(staffed_mask, 0.0))
        .groupby("region", as_index=False)[_REGION_TOTAL_COLUMNS]
        .sum()
    )
    region_totals = [
        RegionStaffingTotals(
            region=str(row.region),
            supply_hours=float(row.supply_hours),
            effective_supply_hours=float(row.effective_supply_hours),
            required_hours=float(row.required_hours),
            surplus_hours=float(row.surplus_hours),
        )
        for row in regional.itertuples(index=False)
    ]

    logger.info(
        (
            "Staffing balance computed | region_dates=%s | staffed=%s | supply=%.2f | "
            "effective=%.2f | required=%.2f | surplus=%.2f"
        ),
        len(records),
        len(staffed),
        total_hours,
        effective_hours,
        required_hours,
        surplus_hours,
    )
    return StaffingBalance(records=records, summary=summary, region_totals=region_totals)


def distribute_surplus(
    results: Sequence[GroupResult],
    balance: StaffingBalance,
    regions: RegionConfig,
) -> list[GroupResult]:
    """Attribute each region/date surplus to groups by their share of its demand."""
    surplus_by_key = {
        (record.region, record.date): record
        for record in balance.records
        if record.has_supply and record.required_hours > 0.0
    }
    distributed: list[GroupResult] = []
    for result in results:
        group_minutes: dict[tuple[str, object], int] = defaultdict(int)
        for interval in result.intervals:
            group_minutes[(regions.region_of(interval.site), interval.date)] += (
                interval.clinical_minutes
            )

        surplus = 0.0
        for key, minutes in group_minutes.items():
            record = surplus_by_key.get(key)
            if record is None:
                continue
            share = (minutes / 60.0) / record.required_hours
            surplus += record.surplus_hours * share
        distributed.append(replace(result, surplus_staffing_hours=surplus))
    return distributed
