"""Environment-backed runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_ENV_PREFIX = "ORCONSOLIDATION_"


def _env_str(name: str, default: str) -> str:
    return os.environ.get(f"{_ENV_PREFIX}{name}", default)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    bin_capacity_minutes: int
    day_start_minute: Optional[int]
    day_end_minute: Optional[int]
    solver_max_time_seconds: float
    solver_random_seed: int
    cp_sat_workers: int
    group_workers: int
    skip_single_room: bool
    anesthesia_padding_minutes: int
    fte_threshold_minutes: int
    anesthesia_room_elimination_enabled: bool
    anesthesia_fte_efficiency_enabled: bool
    anesthesia_absorption_enabled: bool
    productivity_factor: float


def _optional_minute(name: str) -> Optional[int]:
    raw = os.environ.get(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return None
    return int(raw)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process; call ``cache_clear`` to reload."""
    return Settings(
        app_name=_env_str("APP_NAME", "OR Consolidation"),
        app_version=_env_str("APP_VERSION", "1.0.0"),
        log_level=_env_str("LOG_LEVEL", "INFO"),
        bin_capacity_minutes=_env_int("BIN_CAPACITY_MINUTES", 480),
        day_start_minute=_optional_minute("DAY_START_MINUTE"),
        day_end_minute=_optional_minute("DAY_END_MINUTE"),
        solver_max_time_seconds=_env_float("SOLVER_MAX_TIME_SECONDS", 10.0),
        solver_random_seed=_env_int("SOLVER_RANDOM_SEED", 42),
        cp_sat_workers=_env_int("CP_SAT_WORKERS", 4),
        group_workers=_env_int("GROUP_WORKERS", max(1, min(8, os.cpu_count() or 1))),
        skip_single_room=_env_bool("SKIP_SINGLE_ROOM", True),
        anesthesia_padding_minutes=_env_int("ANESTHESIA_PADDING_MINUTES", 0),
        fte_threshold_minutes=_env_int("FTE_THRESHOLD_MINUTES", 480),
        anesthesia_room_elimination_enabled=_env_bool("ANESTHESIA_ROOM_ELIMINATION", True),
        anesthesia_fte_efficiency_enabled=_env_bool("ANESTHESIA_FTE_EFFICIENCY", True),
        anesthesia_absorption_enabled=_env_bool("ANESTHESIA_ABSORPTION", True),
        productivity_factor=_env_float("PRODUCTIVITY_FACTOR", 0.85),
    )
