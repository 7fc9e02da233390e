"""Occupancy reporting across room types for a date window."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

import pandas as pd

from booking_engine.domain.models import AvailabilityStatus, DayAvailability, RoomType
from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.availability_service import AvailabilityService
from booking_engine.services.pricing_service import RoomTypeNotFoundError
from booking_engine.utils.config import Settings, get_settings


@dataclass(frozen=True)
class OccupancySummary:
    total_reserved_nights: int
    total_capacity_nights: int
    occupancy_rate: float
    full_days: int
    peak_days: int


@dataclass(frozen=True)
class RoomOccupancyReport:
    room_type: RoomType
    per_date: list[DayAvailability]
    summary: OccupancySummary


def summarize_occupancy(days: list[DayAvailability]) -> OccupancySummary:
    """Roll per-day rows up; blackout days add no sellable capacity."""
    frame = pd.DataFrame(
        [
            {
                "quota": day.quota,
                "reserved": day.reserved,
                "is_blackout": day.is_blackout,
                "is_full": day.status is AvailabilityStatus.FULL,
                "is_peak_season": day.is_peak_season,
            }
            for day in days
        ]
    )
    if frame.empty:
        return OccupancySummary(0, 0, 0.0, 0, 0)

    open_days = frame[~frame["is_blackout"]]
    capacity_nights = int(open_days["quota"].sum())
    sold_nights = int(open_days["reserved"].clip(upper=open_days["quota"]).sum())
    occupancy_rate = round(sold_nights / capacity_nights, 4) if capacity_nights else 0.0

    return OccupancySummary(
        total_reserved_nights=int(frame["reserved"].sum()),
        total_capacity_nights=capacity_nights,
        occupancy_rate=float(occupancy_rate),
        full_days=int(frame["is_full"].sum()),
        peak_days=int(frame["is_peak_season"].sum()),
    )


class ReportService:
    """Builds the per-room-type, per-day occupancy report."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        availability_service: Optional[AvailabilityService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._availability_service = availability_service or AvailabilityService(
            repository=self._repository,
            settings=self._settings,
        )

    def occupancy_report(
        self,
        range_start: date,
        range_end: date,
        room_type_id: Optional[int] = None,
    ) -> list[RoomOccupancyReport]:
        self._availability_service.validate_window(range_start, range_end)

        if room_type_id is not None:
            room_type = self._repository.get_room_type(room_type_id)
            if room_type is None:
                raise RoomTypeNotFoundError(f"room_type_id {room_type_id} not found")
            room_types = [room_type]
        else:
            room_types = self._repository.list_room_types()

        reports: list[RoomOccupancyReport] = []
        for room_type in room_types:
            days = self._availability_service.availability_for(
                room_type,
                range_start,
                range_end,
            )
            reports.append(
                RoomOccupancyReport(
                    room_type=room_type,
                    per_date=days,
                    summary=summarize_occupancy(days),
                )
            )
        return reports
