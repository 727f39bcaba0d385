"""Exact room packing using CP-SAT."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol, Sequence

from ortools.sat.python import cp_model

from orconsolidation.domain.models import PackingResult, ProcedureInterval, Slot
from orconsolidation.utils.logger import get_logger


logger = get_logger(__name__)

SITE_ACTIVATION_WEIGHT = 1000


class ExactSolveError(Exception):
    """Raised when a packing problem is internally inconsistent."""


@dataclass(frozen=True)
class PackingProblem:
    intervals: Sequence[ProcedureInterval]
    capacity: int
    conflict_pairs: Sequence[tuple[int, int]]
    slot_budget: int
    member_sites: tuple[str, ...] = ()
    site_of_slot: Mapping[int, str] = field(default_factory=dict)

    @property
    def is_cluster(self) -> bool:
        return len(self.member_sites) > 1


class ExactSolver(Protocol):
    def solve(
        self,
        problem: PackingProblem,
        hint: Optional[PackingResult] = None,
    ) -> Optional[PackingResult]:
        """Return an improved packing, or ``None`` on timeout or failure."""


@dataclass(frozen=True)
class BuildArtifacts:
    model: Any
    assignment_vars: list[list[Any]]
    slot_used_vars: list[Any]
    site_used_vars: dict[str, Any]


def _validate_problem(problem: PackingProblem) -> None:
    if problem.capacity <= 0:
        raise ExactSolveError("capacity must be > 0")
    if problem.intervals and problem.slot_budget <= 0:
        raise ExactSolveError("slot_budget must be > 0 when intervals are present")
    if problem.is_cluster:
        missing = [
            slot for slot in range(problem.slot_budget) if slot not in problem.site_of_slot
        ]
        if missing:
            raise ExactSolveError(f"cluster slots without a site mapping: {missing}")
        unknown_sites = set(problem.site_of_slot.values()) - set(problem.member_sites)
        if unknown_sites:
            raise ExactSolveError(f"slots mapped to non-member sites: {sorted(unknown_sites)}")


def build_model(
    problem: PackingProblem,
    hint: Optional[PackingResult] = None,
) -> BuildArtifacts:
    """Build the assignment model with capacity, conflict and symmetry constraints."""
    _validate_problem(problem)
    model = cp_model.CpModel()
    num_intervals = len(problem.intervals)
    num_slots = problem.slot_budget

    x = [
        [model.NewBoolVar(f"x_case_{i}_slot_{j}") for j in range(num_slots)]
        for i in range(num_intervals)
    ]
    y = [model.NewBoolVar(f"y_slot_{j}") for j in range(num_slots)]

    for i in range(num_intervals):
        model.AddExactlyOne(x[i])

    for j in range(num_slots):
        model.Add(
            sum(problem.intervals[i].duration_minutes * x[i][j] for i in range(num_intervals))
            <= problem.capacity * y[j]
        )

    for i, k in problem.conflict_pairs:
        for j in range(num_slots):
            model.AddAtMostOne([x[i][j], x[k][j]])

    site_used: dict[str, Any] = {}
    if problem.is_cluster:
        for site in problem.member_sites:
            site_used[site] = model.NewBoolVar(f"site_used_{site}")
        for j in range(num_slots):
            model.Add(y[j] <= site_used[problem.site_of_slot[j]])
        model.Minimize(
            sum(
                (SITE_ACTIVATION_WEIGHT + position) * site_used[site]
                for position, site in enumerate(problem.member_sites)
            )
            + sum(y)
        )
    else:
        for j in range(num_slots - 1):
            model.Add(y[j + 1] <= y[j])
        model.Minimize(sum(y))

    if hint is not None:
        hinted_slot = hint.slot_of_interval()
        for j in range(num_slots):
            model.AddHint(y[j], 1 if j < hint.rooms_used else 0)
        for i in range(num_intervals):
            for j in range(num_slots):
                model.AddHint(x[i][j], 1 if hinted_slot.get(i) == j else 0)
        if problem.is_cluster:
            hinted_sites = {
                problem.site_of_slot[j] for j in range(min(hint.rooms_used, num_slots))
            }
            for site, var in site_used.items():
                model.AddHint(var, 1 if site in hinted_sites else 0)

    logger.debug(
        "Exact model built | intervals=%s | slots=%s | conflict_pairs=%s | cluster=%s",
        num_intervals,
        num_slots,
        len(problem.conflict_pairs),
        problem.is_cluster,
    )
    return BuildArtifacts(
        model=model,
        assignment_vars=x,
        slot_used_vars=y,
        site_used_vars=site_used,
    )


def solve_model(
    *,
    artifacts: BuildArtifacts,
    problem: PackingProblem,
    max_time_seconds: float,
    workers: int,
    random_seed: int,
) -> Optional[PackingResult]:
    """Solve the model and extract the used slots, or return ``None`` on failure."""
    solver = cp_model.CpSolver()
    solver.parameters.max_time_in_seconds = float(max_time_seconds)
    solver.parameters.num_workers = workers
    solver.parameters.random_seed = random_seed

    status = solver.Solve(artifacts.model)
    status_name = solver.StatusName(status)
    if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
        logger.warning(
            "Exact solve produced no usable solution | status=%s | intervals=%s",
            status_name,
            len(problem.intervals),
        )
        return None

    slots: list[Slot] = []
    for j, slot_var in enumerate(artifacts.slot_used_vars):
        if solver.Value(slot_var) != 1:
            continue
        members = [
            i
            for i in range(len(problem.intervals))
            if solver.Value(artifacts.assignment_vars[i][j]) == 1
        ]
        if not members:
            continue
        slots.append(
            Slot(
                index=j,
                load=sum(problem.intervals[i].duration_minutes for i in members),
                interval_indices=members,
                site=problem.site_of_slot.get(j),
            )
        )

    logger.debug(
        "Exact solve completed | status=%s | slots_used=%s | objective=%.1f",
        status_name,
        len(slots),
        solver.ObjectiveValue(),
    )
    return PackingResult(slots=slots)


class CpSatExactSolver:
    """CP-SAT backend behind the ``ExactSolver`` interface."""

    def __init__(self, *, max_time_seconds: float, workers: int, random_seed: int) -> None:
        self._max_time_seconds = max_time_seconds
        self._workers = workers
        self._random_seed = random_seed

    def solve(
        self,
        problem: PackingProblem,
        hint: Optional[PackingResult] = None,
    ) -> Optional[PackingResult]:
        if not problem.intervals:
            return PackingResult(slots=[])
        artifacts = build_model(problem, hint)
        return solve_model(
            artifacts=artifacts,
            problem=problem,
            max_time_seconds=self._max_time_seconds,
            workers=self._workers,
            random_seed=self._random_seed,
        )
