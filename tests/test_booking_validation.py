"""Tests for the ordered booking validation checks."""

from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from booking_engine.domain.models import (
    Accepted,
    Capacity,
    Rejected,
    RejectionReason,
    Reservation,
    ReservationStatus,
    RoomType,
    SeasonRule,
    StayRequest,
)
from booking_engine.services.booking_service import local_today, validate_stay


TODAY = date(2025, 5, 1)

ROOM_TYPE = RoomType(
    room_type_id=1,
    name="Deluxe Room",
    base_price=500_000,
    quota=3,
    capacity=Capacity(adults=2, children=1),
)


def _stay(**overrides) -> StayRequest:
    defaults = {
        "room_type_id": 1,
        "check_in_date": date(2025, 6, 1),
        "check_out_date": date(2025, 6, 4),
        "qty": 1,
        "adults": 2,
        "children": 0,
    }
    defaults.update(overrides)
    return StayRequest(**defaults)


def _reservation(check_in: date, check_out: date, qty: int) -> Reservation:
    return Reservation(
        room_type_id=1,
        check_in_date=check_in,
        check_out_date=check_out,
        qty=qty,
        status=ReservationStatus.ACCEPTED,
    )


def _blackout(day: date) -> SeasonRule:
    return SeasonRule(
        rule_id=1,
        room_type_id=1,
        start_date=day,
        end_date=day,
        is_available=False,
    )


def _reason(result) -> RejectionReason:
    assert isinstance(result, Rejected), result
    return result.reason


def test_valid_stay_is_accepted() -> None:
    result = validate_stay(_stay(), ROOM_TYPE, [], [], TODAY)

    assert isinstance(result, Accepted)
    assert result.nights == 3


# --- Date range ---

def test_zero_night_stay_is_invalid_range() -> None:
    stay = _stay(check_out_date=date(2025, 6, 1))
    assert _reason(validate_stay(stay, ROOM_TYPE, [], [], TODAY)) is RejectionReason.INVALID_RANGE


def test_check_in_in_the_past_is_invalid_range() -> None:
    stay = _stay(check_in_date=date(2025, 4, 30), check_out_date=date(2025, 5, 2))
    assert _reason(validate_stay(stay, ROOM_TYPE, [], [], TODAY)) is RejectionReason.INVALID_RANGE


def test_check_in_today_is_allowed() -> None:
    stay = _stay(check_in_date=TODAY, check_out_date=date(2025, 5, 2))
    assert isinstance(validate_stay(stay, ROOM_TYPE, [], [], TODAY), Accepted)


# --- Quantity and occupancy ---

def test_qty_above_quota_is_rejected() -> None:
    result = validate_stay(_stay(qty=4), ROOM_TYPE, [], [], TODAY)
    assert _reason(result) is RejectionReason.QUOTA_EXCEEDED


def test_qty_zero_is_rejected() -> None:
    result = validate_stay(_stay(qty=0), ROOM_TYPE, [], [], TODAY)
    assert _reason(result) is RejectionReason.QUOTA_EXCEEDED


def test_adults_over_unit_capacity_is_rejected() -> None:
    result = validate_stay(_stay(adults=3), ROOM_TYPE, [], [], TODAY)
    assert _reason(result) is RejectionReason.QUOTA_EXCEEDED


def test_children_over_unit_capacity_is_rejected() -> None:
    result = validate_stay(_stay(children=2), ROOM_TYPE, [], [], TODAY)
    assert _reason(result) is RejectionReason.QUOTA_EXCEEDED


def test_capacity_is_not_multiplied_by_qty() -> None:
    result = validate_stay(_stay(qty=2, adults=3), ROOM_TYPE, [], [], TODAY)
    assert _reason(result) is RejectionReason.QUOTA_EXCEEDED


# --- Availability ---

def test_fully_reserved_night_rejects_new_booking() -> None:
    reservations = [
        _reservation(date(2025, 6, 2), date(2025, 6, 3), 2),
        _reservation(date(2025, 6, 2), date(2025, 6, 3), 1),
    ]

    result = validate_stay(_stay(qty=1), ROOM_TYPE, [], reservations, TODAY)

    assert _reason(result) is RejectionReason.QUOTA_EXCEEDED
    assert result.dates == (date(2025, 6, 2),)


def test_single_short_night_rejects_whole_stay() -> None:
    reservations = [_reservation(date(2025, 6, 3), date(2025, 6, 4), 2)]

    result = validate_stay(_stay(qty=2), ROOM_TYPE, [], reservations, TODAY)

    assert _reason(result) is RejectionReason.QUOTA_EXCEEDED
    assert result.dates == (date(2025, 6, 3),)


def test_reservation_ending_on_check_in_does_not_block() -> None:
    reservations = [_reservation(date(2025, 5, 28), date(2025, 6, 1), 3)]

    assert isinstance(validate_stay(_stay(), ROOM_TYPE, [], reservations, TODAY), Accepted)


def test_blackout_night_rejects_stay() -> None:
    result = validate_stay(_stay(), ROOM_TYPE, [_blackout(date(2025, 6, 2))], [], TODAY)

    assert _reason(result) is RejectionReason.BLACKOUT
    assert result.dates == (date(2025, 6, 2),)


# --- Ordering ---

def test_invalid_range_is_reported_before_quota() -> None:
    stay = _stay(check_out_date=date(2025, 6, 1), qty=10)
    assert _reason(validate_stay(stay, ROOM_TYPE, [], [], TODAY)) is RejectionReason.INVALID_RANGE


def test_quota_shortfall_is_reported_before_blackout() -> None:
    reservations = [_reservation(date(2025, 6, 1), date(2025, 6, 2), 3)]

    result = validate_stay(_stay(), ROOM_TYPE, [_blackout(date(2025, 6, 3))], reservations, TODAY)

    assert _reason(result) is RejectionReason.QUOTA_EXCEEDED
    assert result.dates == (date(2025, 6, 1),)


def test_local_today_follows_the_configured_zone() -> None:
    # 20:00 UTC on May 1 is already May 2 in Jakarta (UTC+7).
    now = datetime(2025, 5, 1, 20, 0, tzinfo=timezone.utc)

    assert local_today(ZoneInfo("UTC"), now=now) == date(2025, 5, 1)
    assert local_today(ZoneInfo("Asia/Jakarta"), now=now) == date(2025, 5, 2)
