"""Domain-level write-time invariants for room types and season rules."""

from __future__ import annotations

import math
from datetime import date
from typing import Optional

from booking_engine.domain.models import (
    Adjustment,
    NominalAdjustment,
    PercentageAdjustment,
    ReservationStatus,
    RoomType,
)


# Upper bounds keep adjusted prices finite and inside SQLite INTEGER range.
MAX_PERCENTAGE = 1000.0
MAX_NOMINAL = 1_000_000_000_000


def validate_room_type(room_type: RoomType) -> None:
    if room_type.base_price < 0:
        raise ValueError("base_price must be >= 0")
    if room_type.quota <= 0:
        raise ValueError("quota must be > 0")
    if room_type.capacity.adults <= 0:
        raise ValueError("capacity.adults must be > 0")
    if room_type.capacity.children < 0:
        raise ValueError("capacity.children must be >= 0")


def build_adjustment(
    percentage: Optional[float],
    nominal: Optional[int],
) -> Adjustment:
    """Collapse the two optional wire fields into a single adjustment variant."""
    if percentage is not None and nominal is not None:
        raise ValueError("percentage and nominal are mutually exclusive")
    if percentage is not None:
        if not math.isfinite(percentage):
            raise ValueError("percentage must be a finite number")
        if percentage <= 0:
            raise ValueError("percentage must be > 0")
        if percentage > MAX_PERCENTAGE:
            raise ValueError(f"percentage must be <= {MAX_PERCENTAGE:g}")
        return PercentageAdjustment(percentage=percentage)
    if nominal is not None:
        if nominal <= 0:
            raise ValueError("nominal must be > 0")
        if nominal > MAX_NOMINAL:
            raise ValueError(f"nominal must be <= {MAX_NOMINAL}")
        return NominalAdjustment(nominal=nominal)
    return None


def validate_season_rule(
    start_date: date,
    end_date: date,
    is_available: bool,
    adjustment: Adjustment,
) -> None:
    if start_date > end_date:
        raise ValueError("start_date must be on or before end_date")
    if not is_available and adjustment is not None:
        raise ValueError("an unavailable range cannot carry a price adjustment")


def parse_statuses(values: tuple[str, ...] | list[str]) -> frozenset[ReservationStatus]:
    """Map configured status names onto the enum, rejecting unknown names."""
    try:
        return frozenset(ReservationStatus(value.upper()) for value in values)
    except ValueError as exc:
        raise ValueError(f"unknown reservation status in {list(values)}") from exc
