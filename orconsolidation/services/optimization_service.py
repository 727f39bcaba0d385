"""Per-group consolidation orchestration and run-level assembly.

Each group is an independent problem: groups fan out over a bounded thread pool
and the only synchronization is the final join of their results. Inside a group
the decision order is fixed:

INFEASIBLE -> SKIPPED -> OK_NO_SAVINGS_POSSIBLE -> FFD_OPTIMAL
-> SOLVED_EXACTLY | HEURISTIC_FALLBACK
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence
from uuid import uuid4

from orconsolidation.domain.conflicts import build_conflict_pairs
from orconsolidation.domain.constraints import OptimizationConfig, validate_optimization_config
from orconsolidation.domain.models import (
    AnesthesiaSavings,
    GroupResult,
    GroupStatus,
    PackingResult,
    ProcedureInterval,
    ResourceGroup,
    RunSummary,
    StaffingHoursRecord,
    WeekSummary,
)
from orconsolidation.services.anesthesia_savings_service import calculate_savings
from orconsolidation.services.exact_packer import CpSatExactSolver, ExactSolver, PackingProblem
from orconsolidation.services.grouping_service import group_intervals
from orconsolidation.services.heuristic_packer import (
    apply_assignment,
    apply_default_mapping,
    assign_sites,
    map_slots_to_sites,
    pack_first_fit_decreasing,
    rooms_per_site,
)
from orconsolidation.services.lower_bound import estimate_lower_bound
from orconsolidation.services.staffing_service import (
    StaffingBalance,
    balance_regional_staffing,
    distribute_surplus,
)
from orconsolidation.services.summary_service import aggregate_weekly, summarize_results
from orconsolidation.utils.config import Settings, get_settings
from orconsolidation.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class OptimizationRun:
    run_id: str
    results: list[GroupResult]
    staffing: StaffingBalance
    summary: RunSummary
    weekly: list[WeekSummary]


def _group_savings(group: ResourceGroup, config: OptimizationConfig) -> AnesthesiaSavings:
    return calculate_savings(
        group.intervals,
        group.intervals,
        group.actual_rooms,
        padding_minutes=config.anesthesia_padding_minutes,
        fte_threshold_minutes=config.fte_threshold_minutes,
        method1_enabled=config.method1_enabled,
        method2_enabled=config.method2_enabled,
        method3_enabled=config.method3_enabled,
    )


def _result(
    group: ResourceGroup,
    status: GroupStatus,
    optimized_rooms: Optional[int],
    *,
    lower_bound: Optional[int] = None,
    savings: AnesthesiaSavings = AnesthesiaSavings(),
) -> GroupResult:
    actual_rooms = len(group.actual_rooms)
    rooms_saved = max(0, actual_rooms - optimized_rooms) if optimized_rooms is not None else 0
    return GroupResult(
        key=group.key,
        intervals=group.intervals,
        actual_rooms=actual_rooms,
        optimized_rooms=optimized_rooms,
        rooms_saved=rooms_saved,
        status=status,
        lower_bound=lower_bound,
        anesthesia_savings=savings,
    )


def _solve_exactly(
    group: ResourceGroup,
    capacity: int,
    heuristic: PackingResult,
    room_counts: dict[str, int],
    solver: ExactSolver,
) -> Optional[PackingResult]:
    slot_budget = len(group.actual_rooms)
    problem = PackingProblem(
        intervals=group.intervals,
        capacity=capacity,
        conflict_pairs=build_conflict_pairs(group.intervals),
        slot_budget=slot_budget,
        member_sites=group.member_sites if group.is_cluster else (),
        site_of_slot=(
            map_slots_to_sites(slot_budget, room_counts, group.member_sites)
            if group.is_cluster
            else {}
        ),
    )
    try:
        return solver.solve(problem, heuristic)
    except Exception:
        logger.warning(
            "Exact solve failed | group=%s | date=%s | intervals=%s | slot_budget=%s",
            group.key.name,
            group.key.date,
            len(group.intervals),
            slot_budget,
            exc_info=True,
        )
        return None


def optimize_group(
    group: ResourceGroup,
    config: OptimizationConfig,
    solver: ExactSolver,
) -> GroupResult:
    """Run the per-group decision sequence and write slot labels onto its intervals."""
    if not group.intervals:
        return _result(group, GroupStatus.EMPTY, 0)

    capacity = config.capacity_minutes
    actual_rooms = len(group.actual_rooms)

    offending = [
        interval for interval in group.intervals if interval.duration_minutes > capacity
    ]
    if offending:
        logger.debug(
            "Group infeasible | group=%s | date=%s | cases_over_capacity=%s | capacity=%s",
            group.key.name,
            group.key.date,
            len(offending),
            capacity,
        )
        return _result(group, GroupStatus.INFEASIBLE, None)

    if config.skip_single_room and actual_rooms <= 1:
        apply_default_mapping(group.intervals)
        return _result(group, GroupStatus.SKIPPED, actual_rooms)

    bound = estimate_lower_bound(group.intervals, capacity)
    if bound.value >= actual_rooms:
        apply_default_mapping(group.intervals)
        return _result(
            group,
            GroupStatus.OK_NO_SAVINGS_POSSIBLE,
            actual_rooms,
            lower_bound=bound.value,
            savings=_group_savings(group, config),
        )

    room_counts = rooms_per_site(group)
    heuristic = pack_first_fit_decreasing(group.intervals, capacity)
    if group.is_cluster:
        assign_sites(
            heuristic,
            map_slots_to_sites(heuristic.rooms_used, room_counts, group.member_sites),
        )

    if heuristic.rooms_used <= bound.value:
        chosen, status = heuristic, GroupStatus.FFD_OPTIMAL
    else:
        exact = _solve_exactly(group, capacity, heuristic, room_counts, solver)
        if exact is not None and exact.rooms_used < heuristic.rooms_used:
            chosen, status = exact, GroupStatus.SOLVED_EXACTLY
        else:
            chosen, status = heuristic, GroupStatus.HEURISTIC_FALLBACK

    if chosen.rooms_used > actual_rooms:
        # The original room layout is kept when no packing beats it.
        apply_default_mapping(group.intervals)
        optimized_rooms = actual_rooms
    else:
        apply_assignment(group.intervals, chosen)
        optimized_rooms = chosen.rooms_used

    logger.debug(
        "Group optimized | group=%s | date=%s | status=%s | rooms=%s->%s | lower_bound=%s",
        group.key.name,
        group.key.date,
        status.value,
        actual_rooms,
        optimized_rooms,
        bound.value,
    )
    return _result(
        group,
        status,
        optimized_rooms,
        lower_bound=bound.value,
        savings=_group_savings(group, config),
    )


class ConsolidationOptimizationService:
    """Business logic orchestration for grouping, packing and staffing analysis."""

    def __init__(
        self,
        config: Optional[OptimizationConfig] = None,
        settings: Optional[Settings] = None,
        solver: Optional[ExactSolver] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._config = config or OptimizationConfig.from_settings(self._settings)
        self._solver = solver or CpSatExactSolver(
            max_time_seconds=self._config.solver_max_time_seconds,
            workers=self._config.cp_sat_workers,
            random_seed=self._config.solver_random_seed,
        )

    @property
    def config(self) -> OptimizationConfig:
        return self._config

    def optimize_groups(self, groups: Sequence[ResourceGroup]) -> list[GroupResult]:
        if not groups:
            return []
        with ThreadPoolExecutor(
            max_workers=min(self._config.group_workers, len(groups)),
            thread_name_prefix="group-optimizer",
        ) as executor:
            return list(
                executor.map(
                    lambda group: optimize_group(group, self._config, self._solver),
                    groups,
                )
            )

    def run(
        self,
        intervals: Iterable[ProcedureInterval],
        staffing_records: Iterable[StaffingHoursRecord] = (),
    ) -> OptimizationRun:
        validate_optimization_config(self._config)
        run_id = str(uuid4())
        interval_list = list(intervals)
        logger.info(
            "Optimization run started | run_id=%s | intervals=%s | capacity=%s | timeout=%.1fs",
            run_id,
            len(interval_list),
            self._config.capacity_minutes,
            self._config.solver_max_time_seconds,
        )

        groups = group_intervals(interval_list, self._config.clusters)
        results = self.optimize_groups(groups)

        staffing = balance_regional_staffing(
            interval_list,
            staffing_records,
            self._config.regions,
            self._config.productivity_factor,
        )
        results = distribute_surplus(results, staffing, self._config.regions)
        summary = summarize_results(
            results,
            self._config.capacity_minutes,
            staffing=staffing.summary,
        )
        weekly = aggregate_weekly(results, self._config.capacity_minutes)

        logger.info(
            (
                "Optimization run completed | run_id=%s | groups=%s | rooms=%s->%s | "
                "saved=%s | anesthesia_total=%s | statuses=%s"
            ),
            run_id,
            summary.group_count,
            summary.total_actual_rooms,
            summary.total_optimized_rooms,
            summary.total_rooms_saved,
            summary.anesthesia_savings.total,
            summary.status_counts,
        )
        return OptimizationRun(
            run_id=run_id,
            results=results,
            staffing=staffing,
            summary=summary,
            weekly=weekly,
        )
