"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


_DEFAULT_COUNTED_STATUSES = (
    "WAITING_FOR_PAYMENT",
    "WAITING_FOR_CONFIRMATION",
    "ACCEPTED",
)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_tuple(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return tuple(item.strip().upper() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    database_path: Path
    log_level: str
    log_format: str
    timezone: str
    counted_reservation_statuses: tuple[str, ...]
    availability_max_range_days: int
    seed_demo_data: bool
    order_number_prefix: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read settings once per process; tests derive variants with replace()."""
    project_root = Path(__file__).resolve().parents[2]
    return Settings(
        app_name=os.getenv("APP_NAME", "Room Pricing & Availability Engine"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        database_path=Path(
            os.getenv("DATABASE_PATH", str(project_root / "data" / "booking_engine.db"))
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_format=os.getenv(
            "LOG_FORMAT",
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        ),
        timezone=os.getenv("TIMEZONE", "UTC"),
        counted_reservation_statuses=_env_tuple(
            "COUNTED_RESERVATION_STATUSES",
            _DEFAULT_COUNTED_STATUSES,
        ),
        availability_max_range_days=int(os.getenv("AVAILABILITY_MAX_RANGE_DAYS", "366")),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
        order_number_prefix=os.getenv("ORDER_NUMBER_PREFIX", "INV"),
    )
