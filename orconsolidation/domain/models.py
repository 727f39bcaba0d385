"""Domain models for operating-room consolidation and staffing analysis.

All instants are integer minutes since midnight of the interval's date.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional


@dataclass(eq=False)
class ProcedureInterval:
    """One surgical case as handed over by the validation layer.

    ``occupancy_*`` is the padded room window used for packing and conflict
    detection, ``patient_in``/``patient_out`` the raw room window and
    ``anesthesia_*`` the clinical window used by the staffing calculators.
    ``assigned_slot`` is written exactly once by the packer of its group.
    """

    case_id: str
    site: str
    date: date
    room: str
    occupancy_start: int
    occupancy_end: int
    patient_in: int
    patient_out: int
    duration_minutes: int
    anesthesia_start: Optional[int] = None
    anesthesia_end: Optional[int] = None
    provider: Optional[str] = None
    assigned_slot: Optional[str] = None

    @property
    def original_room_label(self) -> str:
        return f"{self.site} - {self.room}"

    @property
    def clinical_minutes(self) -> int:
        if self.anesthesia_start is None or self.anesthesia_end is None:
            return 0
        return max(0, self.anesthesia_end - self.anesthesia_start)

    @property
    def has_provider(self) -> bool:
        return self.provider is not None and bool(self.provider.strip())


@dataclass(frozen=True)
class GroupKey:
    name: str
    date: date
    cluster: Optional[str] = None


@dataclass(frozen=True)
class ResourceGroup:
    key: GroupKey
    intervals: list[ProcedureInterval]
    actual_rooms: tuple[str, ...]
    member_sites: tuple[str, ...]

    @property
    def is_cluster(self) -> bool:
        return self.key.cluster is not None and len(self.member_sites) > 1

    @property
    def hub_site(self) -> str:
        return self.member_sites[0]


@dataclass
class Slot:
    """Abstract consolidated room built during packing."""

    index: int
    load: int = 0
    interval_indices: list[int] = field(default_factory=list)
    site: Optional[str] = None


@dataclass(frozen=True)
class PackingResult:
    slots: list[Slot]

    @property
    def rooms_used(self) -> int:
        return len(self.slots)

    def slot_of_interval(self) -> dict[int, int]:
        return {
            interval_index: slot_position
            for slot_position, slot in enumerate(self.slots)
            for interval_index in slot.interval_indices
        }


class GroupStatus(str, Enum):
    EMPTY = "EMPTY"
    INFEASIBLE = "INFEASIBLE"
    SKIPPED = "SKIPPED"
    OK_NO_SAVINGS_POSSIBLE = "OK_NO_SAVINGS_POSSIBLE"
    FFD_OPTIMAL = "FFD_OPTIMAL"
    SOLVED_EXACTLY = "SOLVED_EXACTLY"
    HEURISTIC_FALLBACK = "HEURISTIC_FALLBACK"


@dataclass(frozen=True)
class AnesthesiaSavings:
    method1: int = 0
    method2: int = 0
    method3: int = 0
    total: int = 0

    @classmethod
    def combine(cls, items: list[AnesthesiaSavings]) -> AnesthesiaSavings:
        return cls(
            method1=sum(item.method1 for item in items),
            method2=sum(item.method2 for item in items),
            method3=sum(item.method3 for item in items),
            total=sum(item.total for item in items),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "method1": self.method1,
            "method2": self.method2,
            "method3": self.method3,
            "total": self.total,
        }


@dataclass(frozen=True)
class GroupResult:
    key: GroupKey
    intervals: list[ProcedureInterval]
    actual_rooms: int
    optimized_rooms: Optional[int]
    rooms_saved: int
    status: GroupStatus
    lower_bound: Optional[int] = None
    anesthesia_savings: AnesthesiaSavings = AnesthesiaSavings()
    surplus_staffing_hours: float = 0.0

    @property
    def effective_rooms(self) -> int:
        return self.optimized_rooms if self.optimized_rooms is not None else self.actual_rooms

    @property
    def total_duration_minutes(self) -> int:
        return sum(interval.duration_minutes for interval in self.intervals)

    def assignments(self) -> dict[str, Optional[str]]:
        return {interval.case_id: interval.assigned_slot for interval in self.intervals}

    def to_dict(self) -> dict[str, object]:
        return {
            "group": self.key.name,
            "date": self.key.date.isoformat(),
            "cluster": self.key.cluster,
            "actual_rooms": self.actual_rooms,
            "optimized_rooms": self.optimized_rooms,
            "rooms_saved": self.rooms_saved,
            "status": self.status.value,
            "lower_bound": self.lower_bound,
            "anesthesia_savings": self.anesthesia_savings.to_dict(),
            "surplus_staffing_hours": self.surplus_staffing_hours,
            "assignments": self.assignments(),
        }


@dataclass(frozen=True)
class StaffingHoursRecord:
    region: str
    date: date
    hours: float
    provider: Optional[str] = None


@dataclass(frozen=True)
class RegionalStaffingRecord:
    region: str
    date: date
    required_hours: float
    supply_hours: float
    effective_supply_hours: float
    surplus_hours: float
    active_rooms: int = 0
    optimized_rooms: int = 0

    @property
    def has_supply(self) -> bool:
        return self.supply_hours > 0.0


@dataclass(frozen=True)
class RegionStaffingTotals:
    """Staffed region/date slices of one region, summed."""

    region: str
    supply_hours: float = 0.0
    effective_supply_hours: float = 0.0
    required_hours: float = 0.0
    surplus_hours: float = 0.0

    def to_dict(self) -> dict[str, float | str]:
        return {
            "region": self.region,
            "supply_hours": self.supply_hours,
            "effective_supply_hours": self.effective_supply_hours,
            "required_hours": self.required_hours,
            "surplus_hours": self.surplus_hours,
        }


@dataclass(frozen=True)
class StaffingSummary:
    total_hours: float = 0.0
    effective_hours: float = 0.0
    required_hours: float = 0.0
    surplus_hours: float = 0.0
    current_utilization: float = 0.0
    target_utilization: float = 0.0
    regions_count: int = 0
    avg_active_rooms: float = 0.0
    max_active_rooms: int = 0
    scheduled_room_days: int = 0
    required_room_days: int = 0

    def to_dict(self) -> dict[str, float | int]:
        return {
            "total_hours": self.total_hours,
            "effective_hours": self.effective_hours,
            "required_hours": self.required_hours,
            "surplus_hours": self.surplus_hours,
            "current_utilization": self.current_utilization,
            "target_utilization": self.target_utilization,
            "regions_count": self.regions_count,
            "avg_active_rooms": self.avg_active_rooms,
            "max_active_rooms": self.max_active_rooms,
            "scheduled_room_days": self.scheduled_room_days,
            "required_room_days": self.required_room_days,
        }


@dataclass(frozen=True)
class WeekSummary:
    name: str
    week: str
    days_count: int
    total_cases: int
    actual_rooms: int
    optimized_rooms: int
    rooms_saved: int
    total_minutes: int
    capacity_minutes: int
    unused_minutes: int


@dataclass(frozen=True)
class RunSummary:
    total_actual_rooms: int
    total_optimized_rooms: int
    total_rooms_saved: int
    current_utilization: float
    optimized_utilization: float
    group_count: int
    groups_with_savings: int
    total_duration_minutes: int
    total_providers: int
    anesthesia_savings: AnesthesiaSavings
    status_counts: dict[str, int]
    staffing: StaffingSummary = StaffingSummary()
    labor_yield: float = 0.0

    def to_dict(self) -> dict[str, object]:
        return {
            "total_actual_rooms": self.total_actual_rooms,
            "total_optimized_rooms": self.total_optimized_rooms,
            "total_rooms_saved": self.total_rooms_saved,
            "current_utilization": self.current_utilization,
            "optimized_utilization": self.optimized_utilization,
            "group_count": self.group_count,
            "groups_with_savings": self.groups_with_savings,
            "total_duration_minutes": self.total_duration_minutes,
            "total_providers": self.total_providers,
            "anesthesia_savings": self.anesthesia_savings.to_dict(),
            "status_counts": dict(self.status_counts),
            "staffing": self.staffing.to_dict(),
            "labor_yield": self.labor_yield,
        }
