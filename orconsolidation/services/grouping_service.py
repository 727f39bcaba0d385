"""Maps validated intervals onto independent optimization groups."""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from orconsolidation.domain.constraints import ClusterConfig
from orconsolidation.domain.models import GroupKey, ProcedureInterval, ResourceGroup
from orconsolidation.utils.logger import get_logger


logger = get_logger(__name__)


class GroupingError(Exception):
    """Raised when the interval collection cannot be grouped consistently."""


def resolve_group_key(interval: ProcedureInterval, clusters: ClusterConfig) -> GroupKey:
    cluster_name = clusters.cluster_of(interval.site)
    if cluster_name is not None:
        return GroupKey(name=cluster_name, date=interval.date, cluster=cluster_name)
    return GroupKey(name=interval.site, date=interval.date)


def group_intervals(
    intervals: Iterable[ProcedureInterval],
    clusters: ClusterConfig,
) -> list[ResourceGroup]:
    """Split intervals into site-day or cluster-day groups, sorted by name then date."""
    seen_case_ids: set[str] = set()
    by_key: dict[GroupKey, list[ProcedureInterval]] = defaultdict(list)
    for interval in intervals:
        if interval.case_id in seen_case_ids:
            raise GroupingError(f"duplicate case_id '{interval.case_id}' in optimization input")
        seen_case_ids.add(interval.case_id)
        by_key[resolve_group_key(interval, clusters)].append(interval)

    groups: list[ResourceGroup] = []
    for key in sorted(by_key, key=lambda item: (item.name, item.date)):
        members = by_key[key]
        actual_rooms = tuple(sorted({interval.original_room_label for interval in members}))
        if key.cluster is not None:
            member_sites = clusters.members_of(key.cluster)
        else:
            member_sites = (key.name,)
        groups.append(
            ResourceGroup(
                key=key,
                intervals=members,
                actual_rooms=actual_rooms,
                member_sites=member_sites,
            )
        )

    logger.debug(
        "Intervals grouped | intervals=%s | groups=%s",
        len(seen_case_ids),
        len(groups),
    )
    return groups
