"""Per-day quota consumption and availability status for a room type."""

from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Sequence

from booking_engine.domain.constraints import parse_statuses
from booking_engine.domain.models import (
    AvailabilityStatus,
    DayAvailability,
    Reservation,
    ReservationStatus,
    RoomType,
    SeasonRule,
)
from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.pricing_service import (
    RoomTypeNotFoundError,
    iter_nights,
    rules_covering,
)
from booking_engine.utils.config import Settings, get_settings


DEFAULT_COUNTED_STATUSES = frozenset(
    {
        ReservationStatus.WAITING_FOR_PAYMENT,
        ReservationStatus.WAITING_FOR_CONFIRMATION,
        ReservationStatus.ACCEPTED,
    }
)


class AvailabilityValidationError(Exception):
    """Raised when a requested availability window is invalid."""


def compute_availability(
    room_type: RoomType,
    rules: Sequence[SeasonRule],
    reservations: Iterable[Reservation],
    range_start: date,
    range_end: date,
    counted_statuses: frozenset[ReservationStatus] = DEFAULT_COUNTED_STATUSES,
) -> list[DayAvailability]:
    """Report reserved/remaining units for every day in [range_start, range_end)."""
    counted = [
        reservation
        for reservation in reservations
        if reservation.status in counted_statuses
        and reservation.check_in_date < range_end
        and reservation.check_out_date > range_start
    ]

    days: list[DayAvailability] = []
    for day in iter_nights(range_start, range_end):
        reserved = sum(item.qty for item in counted if item.occupies(day))
        matching = rules_covering(rules, day)
        is_blackout = any(rule.is_blackout for rule in matching)
        is_peak = any(rule.adjustment is not None for rule in matching)

        if is_blackout:
            remaining = 0
        else:
            remaining = max(0, room_type.quota - reserved)

        days.append(
            DayAvailability(
                date=day,
                quota=room_type.quota,
                reserved=reserved,
                remaining=remaining,
                status=(
                    AvailabilityStatus.FULL
                    if remaining == 0
                    else AvailabilityStatus.AVAILABLE
                ),
                is_peak_season=is_peak,
                is_blackout=is_blackout,
            )
        )
    return days


class AvailabilityService:
    """Loads room-type snapshots and runs the availability aggregation."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._counted_statuses = parse_statuses(self._settings.counted_reservation_statuses)

    @property
    def counted_statuses(self) -> frozenset[ReservationStatus]:
        return self._counted_statuses

    def validate_window(self, range_start: date, range_end: date) -> None:
        if range_start >= range_end:
            raise AvailabilityValidationError("start must be before end")
        span = (range_end - range_start).days
        if span > self._settings.availability_max_range_days:
            raise AvailabilityValidationError(
                f"range may not exceed {self._settings.availability_max_range_days} days"
            )

    def get_availability(
        self,
        room_type_id: int,
        range_start: date,
        range_end: date,
    ) -> list[DayAvailability]:
        self.validate_window(range_start, range_end)
        room_type = self._repository.get_room_type(room_type_id)
        if room_type is None:
            raise RoomTypeNotFoundError(f"room_type_id {room_type_id} not found")
        return self.availability_for(room_type, range_start, range_end)

    def availability_for(
        self,
        room_type: RoomType,
        range_start: date,
        range_end: date,
    ) -> list[DayAvailability]:
        rules = self._repository.list_season_rules(room_type.room_type_id)
        reservations = self._repository.list_reservations(
            room_type.room_type_id,
            statuses=self._counted_statuses,
            window_start=range_start,
            window_end=range_end,
        )
        return compute_availability(
            room_type=room_type,
            rules=rules,
            reservations=reservations,
            range_start=range_start,
            range_end=range_end,
            counted_statuses=self._counted_statuses,
        )
