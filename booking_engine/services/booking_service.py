"""Booking validation and transaction creation.

`validate_stay` is the pure gate a stay request must pass before it is priced
and persisted. `BookingService.create_transaction` runs snapshot read,
validation, pricing and insert inside a per-room-type repository transaction
so concurrent requests cannot over-commit quota.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Iterable, Optional, Sequence
from uuid import uuid4
from zoneinfo import ZoneInfo

from booking_engine.domain.constraints import parse_statuses
from booking_engine.domain.models import (
    Accepted,
    Rejected,
    RejectionReason,
    Reservation,
    ReservationStatus,
    RoomType,
    SeasonRule,
    StayQuote,
    StayRequest,
)
from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.availability_service import (
    DEFAULT_COUNTED_STATUSES,
    compute_availability,
)
from booking_engine.services.pricing_service import RoomTypeNotFoundError, compute_stay
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


ALLOWED_STATUS_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.WAITING_FOR_PAYMENT: frozenset(
        {ReservationStatus.WAITING_FOR_CONFIRMATION, ReservationStatus.CANCELLED}
    ),
    ReservationStatus.WAITING_FOR_CONFIRMATION: frozenset(
        {
            ReservationStatus.ACCEPTED,
            ReservationStatus.CANCELLED,
            ReservationStatus.WAITING_FOR_PAYMENT,
        }
    ),
    ReservationStatus.ACCEPTED: frozenset({ReservationStatus.CANCELLED}),
    ReservationStatus.CANCELLED: frozenset(),
}


def local_today(zone: ZoneInfo, now: Optional[datetime] = None) -> date:
    """Return the calendar day in `zone`; stay dates are local calendar days."""
    moment = now or datetime.now(timezone.utc)
    return moment.astimezone(zone).date()


class BookingError(Exception):
    """Base exception for booking workflow failures."""


class BookingFailedError(BookingError):
    """Raised when the reservation insert cannot be serialized; the user retries."""


class TransactionNotFoundError(BookingError):
    """Raised when a transaction id does not exist."""


class InvalidStatusTransitionError(BookingError):
    """Raised when a status change is not allowed from the current status."""


@dataclass(frozen=True)
class BookingConfirmation:
    reservation: Reservation
    quote: StayQuote


def validate_stay(
    stay: StayRequest,
    room_type: RoomType,
    rules: Sequence[SeasonRule],
    reservations: Iterable[Reservation],
    today: date,
    counted_statuses: frozenset[ReservationStatus] = DEFAULT_COUNTED_STATUSES,
) -> Accepted | Rejected:
    """Check a stay request against dates, quota, occupancy and availability.

    Checks run in a fixed order and the first failure is returned. The
    `reservations` snapshot must not contain the request being validated.
    """
    if stay.check_in_date >= stay.check_out_date:
        return Rejected(
            reason=RejectionReason.INVALID_RANGE,
            message="check_in must be before check_out",
        )
    if stay.check_in_date < today:
        return Rejected(
            reason=RejectionReason.INVALID_RANGE,
            message="check_in may not be in the past",
            dates=(stay.check_in_date,),
        )

    if stay.qty < 1 or stay.qty > room_type.quota:
        return Rejected(
            reason=RejectionReason.QUOTA_EXCEEDED,
            message=f"qty must be between 1 and {room_type.quota}",
        )

    # Capacity is per unit; qty does not multiply it.
    if stay.adults > room_type.capacity.adults:
        return Rejected(
            reason=RejectionReason.QUOTA_EXCEEDED,
            message=f"at most {room_type.capacity.adults} adults per room",
        )
    if stay.children > room_type.capacity.children:
        return Rejected(
            reason=RejectionReason.QUOTA_EXCEEDED,
            message=f"at most {room_type.capacity.children} children per room",
        )

    days = compute_availability(
        room_type=room_type,
        rules=rules,
        reservations=reservations,
        range_start=stay.check_in_date,
        range_end=stay.check_out_date,
        counted_statuses=counted_statuses,
    )
    short_nights = tuple(
        day.date for day in days if not day.is_blackout and day.remaining < stay.qty
    )
    if short_nights:
        return Rejected(
            reason=RejectionReason.QUOTA_EXCEEDED,
            message=f"not enough rooms left for {stay.qty} unit(s)",
            dates=short_nights,
        )

    blackout_nights = tuple(day.date for day in days if day.is_blackout)
    if blackout_nights:
        return Rejected(
            reason=RejectionReason.BLACKOUT,
            message="stay includes unavailable dates",
            dates=blackout_nights,
        )

    return Accepted(stay=stay, nights=len(days))


class BookingService:
    """Creates reservations and applies external status transitions."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._counted_statuses = parse_statuses(self._settings.counted_reservation_statuses)
        self._zone = ZoneInfo(self._settings.timezone)

    def _new_order_number(self, created_on: date) -> str:
        return (
            f"{self._settings.order_number_prefix}-{created_on:%Y%m%d}-"
            f"{uuid4().hex[:8].upper()}"
        )

    def create_transaction(
        self,
        stay: StayRequest,
        today: Optional[date] = None,
    ) -> BookingConfirmation | Rejected:
        """Validate, price and persist a stay as a WAITING_FOR_PAYMENT reservation."""
        current_day = today or local_today(self._zone)
        try:
            with self._repository.reservation_transaction(stay.room_type_id) as conn:
                room_type = self._repository.get_room_type(stay.room_type_id, conn=conn)
                if room_type is None:
                    raise RoomTypeNotFoundError(
                        f"room_type_id {stay.room_type_id} not found"
                    )
                rules = self._repository.list_season_rules(stay.room_type_id, conn=conn)
                reservations = self._repository.list_reservations(
                    stay.room_type_id,
                    statuses=self._counted_statuses,
                    window_start=stay.check_in_date,
                    window_end=stay.check_out_date,
                    conn=conn,
                )

                decision = validate_stay(
                    stay=stay,
                    room_type=room_type,
                    rules=rules,
                    reservations=reservations,
                    today=current_day,
                    counted_statuses=self._counted_statuses,
                )
                if isinstance(decision, Rejected):
                    logger.info(
                        "Booking rejected for room_type=%s: %s",
                        stay.room_type_id,
                        decision.reason.value,
                    )
                    return decision

                quote = compute_stay(
                    base_price=room_type.base_price,
                    rules=rules,
                    check_in=stay.check_in_date,
                    check_out=stay.check_out_date,
                    qty=stay.qty,
                )
                if isinstance(quote, Rejected):
                    return quote

                reservation = self._repository.create_reservation(
                    stay=stay,
                    total_price=quote.total,
                    order_number=self._new_order_number(current_day),
                    status=ReservationStatus.WAITING_FOR_PAYMENT,
                    conn=conn,
                )
        except sqlite3.OperationalError as exc:
            logger.warning("Reservation insert failed for room_type=%s: %s", stay.room_type_id, exc)
            raise BookingFailedError("booking failed, please retry") from exc

        logger.info(
            "Transaction %s created for room_type=%s total=%s",
            reservation.order_number,
            stay.room_type_id,
            quote.total,
        )
        return BookingConfirmation(reservation=reservation, quote=quote)

    def list_reservations(
        self,
        room_type_id: int,
        statuses: Optional[Iterable[ReservationStatus]] = None,
    ) -> list[Reservation]:
        if self._repository.get_room_type(room_type_id) is None:
            raise RoomTypeNotFoundError(f"room_type_id {room_type_id} not found")
        return self._repository.list_reservations(
            room_type_id,
            statuses=frozenset(statuses) if statuses else None,
        )

    def update_status(
        self,
        reservation_id: int,
        new_status: ReservationStatus,
    ) -> Reservation:
        reservation = self._repository.get_reservation(reservation_id)
        if reservation is None:
            raise TransactionNotFoundError(f"transaction {reservation_id} not found")
        if new_status not in ALLOWED_STATUS_TRANSITIONS[reservation.status]:
            raise InvalidStatusTransitionError(
                f"cannot move transaction from {reservation.status.value} to {new_status.value}"
            )
        updated = self._repository.update_reservation_status(
            reservation_id,
            expected=reservation.status,
            status=new_status,
        )
        if not updated:
            raise InvalidStatusTransitionError(
                f"transaction {reservation_id} changed status concurrently; "
                f"it is no longer {reservation.status.value}"
            )
        logger.info(
            "Transaction %s status %s -> %s",
            reservation_id,
            reservation.status.value,
            new_status.value,
        )
        return replace(reservation, status=new_status)
