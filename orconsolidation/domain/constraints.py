"""Domain-level configuration and validation rules for consolidation runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from orconsolidation.utils.config import Settings
from orconsolidation.utils.logger import get_logger


logger = get_logger(__name__)

PRODUCTIVITY_FACTOR_MIN = 0.5
PRODUCTIVITY_FACTOR_MAX = 1.0
STANDALONE_REGION_PREFIX = "Standalone: "


@dataclass(frozen=True)
class ClusterConfig:
    """Sites that share room capacity; the first member of a cluster is its hub."""

    site_to_cluster: Mapping[str, str] = field(default_factory=dict)
    cluster_members: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def from_members(cls, members: Mapping[str, Iterable[str]]) -> ClusterConfig:
        cluster_members: dict[str, tuple[str, ...]] = {}
        site_to_cluster: dict[str, str] = {}
        for cluster_name, sites in members.items():
            ordered = tuple(dict.fromkeys(site.strip() for site in sites if site.strip()))
            cluster_members[cluster_name] = ordered
            for site in ordered:
                if site in site_to_cluster:
                    raise ValueError(
                        f"site '{site}' is listed in clusters "
                        f"'{site_to_cluster[site]}' and '{cluster_name}'"
                    )
                site_to_cluster[site] = cluster_name
        return cls(
            site_to_cluster=MappingProxyType(site_to_cluster),
            cluster_members=MappingProxyType(cluster_members),
        )

    def cluster_of(self, site: str) -> Optional[str]:
        return self.site_to_cluster.get(site)

    def members_of(self, cluster: str) -> tuple[str, ...]:
        return tuple(self.cluster_members.get(cluster, ()))


@dataclass(frozen=True)
class RegionConfig:
    """Sites that share a staffing pool."""

    site_to_region: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_members(cls, members: Mapping[str, Iterable[str]]) -> RegionConfig:
        site_to_region: dict[str, str] = {}
        for region_name, sites in members.items():
            for site in sites:
                site = site.strip()
                if not site:
                    continue
                if site in site_to_region and site_to_region[site] != region_name:
                    raise ValueError(
                        f"site '{site}' is listed in regions "
                        f"'{site_to_region[site]}' and '{region_name}'"
                    )
                site_to_region[site] = region_name
        return cls(site_to_region=MappingProxyType(site_to_region))

    def region_of(self, site: str) -> str:
        return self.site_to_region.get(site, f"{STANDALONE_REGION_PREFIX}{site}")


@dataclass(frozen=True)
class OptimizationConfig:
    bin_capacity_minutes: int
    solver_max_time_seconds: float
    skip_single_room: bool
    anesthesia_padding_minutes: int
    fte_threshold_minutes: int
    productivity_factor: float
    method1_enabled: bool = True
    method2_enabled: bool = True
    method3_enabled: bool = True
    cp_sat_workers: int = 4
    group_workers: int = 1
    solver_random_seed: int = 42
    day_start_minute: Optional[int] = None
    day_end_minute: Optional[int] = None
    clusters: ClusterConfig = ClusterConfig()
    regions: RegionConfig = RegionConfig()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        clusters: Optional[ClusterConfig] = None,
        regions: Optional[RegionConfig] = None,
        **overrides: object,
    ) -> OptimizationConfig:
        values: dict[str, object] = {
            "bin_capacity_minutes": settings.bin_capacity_minutes,
            "solver_max_time_seconds": settings.solver_max_time_seconds,
            "skip_single_room": settings.skip_single_room,
            "anesthesia_padding_minutes": settings.anesthesia_padding_minutes,
            "fte_threshold_minutes": settings.fte_threshold_minutes,
            "productivity_factor": settings.productivity_factor,
            "method1_enabled": settings.anesthesia_room_elimination_enabled,
            "method2_enabled": settings.anesthesia_fte_efficiency_enabled,
            "method3_enabled": settings.anesthesia_absorption_enabled,
            "cp_sat_workers": settings.cp_sat_workers,
            "group_workers": settings.group_workers,
            "solver_random_seed": settings.solver_random_seed,
            "day_start_minute": settings.day_start_minute,
            "day_end_minute": settings.day_end_minute,
            "clusters": clusters or ClusterConfig(),
            "regions": regions or RegionConfig(),
        }
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "productivity_factor",
            clamp_productivity_factor(self.productivity_factor),
        )

    @property
    def day_window_minutes(self) -> Optional[int]:
        if self.day_start_minute is None or self.day_end_minute is None:
            return None
        return self.day_end_minute - self.day_start_minute

    @property
    def capacity_minutes(self) -> int:
        """Per-slot capacity, taken from the operating-day window when it is positive."""
        window = self.day_window_minutes
        if window is not None and window > 0:
            return window
        return self.bin_capacity_minutes


def clamp_productivity_factor(value: Optional[float], default: float = 0.85) -> float:
    if value is None:
        return default
    return min(PRODUCTIVITY_FACTOR_MAX, max(PRODUCTIVITY_FACTOR_MIN, float(value)))


def validate_optimization_config(config: OptimizationConfig) -> None:
    if config.capacity_minutes <= 0:
        raise ValueError("bin_capacity_minutes must be > 0")
    if config.solver_max_time_seconds <= 0:
        raise ValueError("solver_max_time_seconds must be > 0")
    if config.cp_sat_workers <= 0:
        raise ValueError("cp_sat_workers must be > 0")
    if config.group_workers <= 0:
        raise ValueError("group_workers must be > 0")
    if config.solver_random_seed < 0:
        raise ValueError("solver_random_seed must be >= 0")
    if config.anesthesia_padding_minutes < 0:
        raise ValueError("anesthesia_padding_minutes must be >= 0")
    if config.fte_threshold_minutes <= 0:
        raise ValueError("fte_threshold_minutes must be > 0")
    window = config.day_window_minutes
    if window is not None and window <= 0:
        logger.warning(
            "Operating day window is not positive | start=%s | end=%s | fallback_capacity=%s",
            config.day_start_minute,
            config.day_end_minute,
            config.bin_capacity_minutes,
        )

    clusters = config.clusters
    for cluster_name, members in clusters.cluster_members.items():
        if not members:
            raise ValueError(f"cluster '{cluster_name}' has no member sites")
    for site, cluster_name in clusters.site_to_cluster.items():
        if site not in clusters.cluster_members.get(cluster_name, ()):
            raise ValueError(
                f"site '{site}' maps to cluster '{cluster_name}' which does not list it"
            )
