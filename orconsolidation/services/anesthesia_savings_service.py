"""Anesthesia-provider savings derived from a room consolidation.

Three complementary estimates are produced per group:

* method 1 (room elimination): eliminable providers whose whole original room
  footprint disappeared in the consolidation;
* method 3 (absorption): every other provider whose cases can all be covered
  by a colleague who is free at the time;
* method 2 (FTE window efficiency): reduction of active room-window minutes,
  expressed in FTEs, on top of the whole providers already counted.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from orconsolidation.domain.models import AnesthesiaSavings, ProcedureInterval
from orconsolidation.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class ClinicalWindow:
    start: int
    end: int


def padded_window(interval: ProcedureInterval, padding_minutes: int) -> Optional[ClinicalWindow]:
    if interval.anesthesia_start is None or interval.anesthesia_end is None:
        return None
    half_padding = padding_minutes // 2 if padding_minutes > 0 else 0
    return ClinicalWindow(
        start=interval.anesthesia_start - half_padding,
        end=interval.anesthesia_end + half_padding,
    )


def _cases_by_provider(
    intervals: Iterable[ProcedureInterval],
) -> dict[str, list[ProcedureInterval]]:
    grouped: dict[str, list[ProcedureInterval]] = defaultdict(list)
    for interval in intervals:
        if interval.has_provider:
            grouped[interval.provider.strip()].append(interval)  # type: ignore[union-attr]
    return dict(grouped)


def is_provider_free_during(
    provider_cases: Sequence[ProcedureInterval],
    window: ClinicalWindow,
    padding_minutes: int,
) -> bool:
    for existing in provider_cases:
        existing_window = padded_window(existing, padding_minutes)
        if existing_window is None:
            continue
        if existing_window.start < window.end and window.start < existing_window.end:
            return False
    return True


def find_eliminable_providers(
    intervals: Sequence[ProcedureInterval],
    padding_minutes: int,
) -> set[str]:
    """Providers whose every case can be absorbed by another remaining provider.

    Candidates are tried smallest caseload first; a provider that has been
    eliminated can no longer absorb anybody else's cases.
    """
    providers = {
        name: sorted(
            cases,
            key=lambda case: case.anesthesia_start if case.anesthesia_start is not None else 0,
        )
        for name, cases in _cases_by_provider(intervals).items()
    }
    if len(providers) <= 1:
        return set()

    eliminated: set[str] = set()
    for candidate in sorted(providers, key=lambda name: (len(providers[name]), name)):
        others = [
            cases
            for name, cases in providers.items()
            if name != candidate and name not in eliminated
        ]
        if not others:
            break
        can_absorb_all = True
        for case in providers[candidate]:
            window = padded_window(case, padding_minutes)
            if window is None:
                continue
            if not any(
                is_provider_free_during(other_cases, window, padding_minutes)
                for other_cases in others
            ):
                can_absorb_all = False
                break
        if can_absorb_all:
            eliminated.add(candidate)
    return eliminated


def find_eliminated_rooms(
    intervals: Sequence[ProcedureInterval],
    actual_rooms: Iterable[str],
) -> set[str]:
    """Original rooms that no consolidated slot carries forward.

    Each slot keeps the original room that contributes most of its minutes,
    heaviest slots choosing first; rooms kept by no slot are eliminated.
    """
    minutes_by_slot: dict[str, Counter[str]] = defaultdict(Counter)
    for interval in intervals:
        slot_label = interval.assigned_slot or interval.original_room_label
        minutes_by_slot[slot_label][interval.original_room_label] += max(
            interval.duration_minutes, 1
        )

    retained: set[str] = set()
    for slot_label in sorted(
        minutes_by_slot,
        key=lambda label: (-sum(minutes_by_slot[label].values()), label),
    ):
        contributions = sorted(
            minutes_by_slot[slot_label].items(),
            key=lambda item: (-item[1], item[0]),
        )
        for room_label, _ in contributions:
            if room_label not in retained:
                retained.add(room_label)
                break
    return set(actual_rooms) - retained


def total_room_window_minutes(
    intervals: Sequence[ProcedureInterval],
    padding_minutes: int,
    *,
    use_assigned_slot: bool,
) -> int:
    """Sum over rooms of (latest padded end - earliest padded start)."""
    windows_by_room: dict[str, list[ClinicalWindow]] = defaultdict(list)
    for interval in intervals:
        window = padded_window(interval, padding_minutes)
        if window is None:
            continue
        if use_assigned_slot and interval.assigned_slot:
            room_label = interval.assigned_slot
        else:
            room_label = interval.original_room_label
        windows_by_room[room_label].append(window)

    return sum(
        max(window.end for window in windows) - min(window.start for window in windows)
        for windows in windows_by_room.values()
    )


def calculate_fte_efficiency(
    original: Sequence[ProcedureInterval],
    optimized: Sequence[ProcedureInterval],
    padding_minutes: int,
    already_saved_providers: int,
    threshold_minutes: int,
) -> int:
    active_providers = len(_cases_by_provider(original))
    if active_providers == 0 or threshold_minutes <= 0:
        return 0

    minutes_before = total_room_window_minutes(original, padding_minutes, use_assigned_slot=False)
    minutes_after = total_room_window_minutes(optimized, padding_minutes, use_assigned_slot=True)
    saved_minutes = max(0, minutes_before - minutes_after)
    raw_ftes = saved_minutes // threshold_minutes

    additional = max(0, raw_ftes - already_saved_providers)
    remaining_providers = max(0, active_providers - already_saved_providers)
    return min(additional, remaining_providers)


def calculate_savings(
    original: Sequence[ProcedureInterval],
    optimized: Sequence[ProcedureInterval],
    actual_rooms: Iterable[str],
    *,
    padding_minutes: int = 0,
    fte_threshold_minutes: int = 480,
    method1_enabled: bool = True,
    method2_enabled: bool = True,
    method3_enabled: bool = True,
) -> AnesthesiaSavings:
    if not original:
        return AnesthesiaSavings()

    eliminable = find_eliminable_providers(optimized, padding_minutes)
    eliminated_rooms = find_eliminated_rooms(optimized, actual_rooms)

    method1 = 0
    for name, cases in _cases_by_provider(original).items():
        if name not in eliminable:
            continue
        rooms_worked = {case.original_room_label for case in cases}
        if rooms_worked and rooms_worked <= eliminated_rooms:
            method1 += 1
    method3 = max(0, len(eliminable) - method1)

    method2 = calculate_fte_efficiency(
        original,
        optimized,
        padding_minutes,
        already_saved_providers=method1 + method3,
        threshold_minutes=fte_threshold_minutes,
    )

    total = (
        (method1 if method1_enabled else 0)
        + (method2 if method2_enabled else 0)
        + (method3 if method3_enabled else 0)
    )
    logger.debug(
        "Anesthesia savings computed | eliminable=%s | eliminated_rooms=%s | m1=%s | m2=%s | m3=%s",
        len(eliminable),
        len(eliminated_rooms),
        method1,
        method2,
        method3,
    )
    return AnesthesiaSavings(method1=method1, method2=method2, method3=method3, total=total)
