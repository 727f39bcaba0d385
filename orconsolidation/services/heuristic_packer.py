"""First-fit-decreasing packer and slot labelling helpers."""

from __future__ import annotations

from collections import Counter
from typing import Mapping, Sequence

from orconsolidation.domain.conflicts import intervals_conflict
from orconsolidation.domain.models import PackingResult, ProcedureInterval, ResourceGroup, Slot


def pack_first_fit_decreasing(
    intervals: Sequence[ProcedureInterval],
    capacity: int,
) -> PackingResult:
    """Greedy packing that is always feasible for intervals no longer than ``capacity``.

    Intervals are taken longest first (ties keep input order) and placed in the
    first existing slot with enough remaining minutes and no conflicting member.
    """
    order = sorted(range(len(intervals)), key=lambda index: -intervals[index].duration_minutes)
    slots: list[Slot] = []
    for index in order:
        candidate = intervals[index]
        placed = False
        for slot in slots:
            if slot.load + candidate.duration_minutes > capacity:
                continue
            if any(
                intervals_conflict(intervals[member], candidate)
                for member in slot.interval_indices
            ):
                continue
            slot.interval_indices.append(index)
            slot.load += candidate.duration_minutes
            placed = True
            break
        if not placed:
            slots.append(
                Slot(
                    index=len(slots),
                    load=candidate.duration_minutes,
                    interval_indices=[index],
                )
            )
    return PackingResult(slots=slots)


def rooms_per_site(group: ResourceGroup) -> dict[str, int]:
    distinct_rooms = {(interval.site, interval.room) for interval in group.intervals}
    return dict(Counter(site for site, _ in distinct_rooms))


def map_slots_to_sites(
    slot_count: int,
    room_counts: Mapping[str, int],
    member_sites: Sequence[str],
) -> dict[int, str]:
    """Give each cluster site as many slots as it had rooms, largest site first.

    Slots beyond the original room allocation spill into the hub, the first
    member site. Single-site groups get an empty mapping.
    """
    if len(member_sites) <= 1:
        return {}
    ordered_sites = sorted(member_sites, key=lambda site: -room_counts.get(site, 0))
    site_of_slot: dict[int, str] = {}
    slot_index = 0
    for site in ordered_sites:
        for _ in range(room_counts.get(site, 0)):
            if slot_index >= slot_count:
                return site_of_slot
            site_of_slot[slot_index] = site
            slot_index += 1
    while slot_index < slot_count:
        site_of_slot[slot_index] = member_sites[0]
        slot_index += 1
    return site_of_slot


def assign_sites(packing: PackingResult, site_of_slot: Mapping[int, str]) -> PackingResult:
    for position, slot in enumerate(packing.slots):
        slot.site = site_of_slot.get(position)
    return packing


def slot_letter(position: int) -> str:
    """Spreadsheet-style lettering: 0 -> A, 25 -> Z, 26 -> AA."""
    letters = ""
    remaining = position + 1
    while remaining > 0:
        remaining, offset = divmod(remaining - 1, 26)
        letters = chr(ord("A") + offset) + letters
    return letters


def label_slot(position: int, site: str) -> str:
    return f"{site} - Consolidated Room {slot_letter(position)}"


def apply_assignment(intervals: Sequence[ProcedureInterval], packing: PackingResult) -> None:
    for position, slot in enumerate(packing.slots):
        for index in slot.interval_indices:
            interval = intervals[index]
            interval.assigned_slot = label_slot(position, slot.site or interval.site)


def apply_default_mapping(intervals: Sequence[ProcedureInterval]) -> None:
    """Map every original room onto its own consolidated label (display only)."""
    original_rooms = sorted({interval.original_room_label for interval in intervals})
    position_of_room = {label: position for position, label in enumerate(original_rooms)}
    for interval in intervals:
        interval.assigned_slot = label_slot(
            position_of_room[interval.original_room_label], interval.site
        )
