"""Domain models for room-type pricing, availability and booking."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Union


class ReservationStatus(str, Enum):
    WAITING_FOR_PAYMENT = "WAITING_FOR_PAYMENT"
    WAITING_FOR_CONFIRMATION = "WAITING_FOR_CONFIRMATION"
    ACCEPTED = "ACCEPTED"
    CANCELLED = "CANCELLED"


class AvailabilityStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    FULL = "FULL"


class RejectionReason(str, Enum):
    INVALID_RANGE = "INVALID_RANGE"
    BLACKOUT = "BLACKOUT"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    AMBIGUOUS_RULE = "AMBIGUOUS_RULE"


class HistoryAction(str, Enum):
    CREATE = "CREATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class Capacity:
    adults: int
    children: int


@dataclass(frozen=True)
class RoomType:
    room_type_id: int
    name: str
    base_price: int
    quota: int
    capacity: Capacity


@dataclass(frozen=True)
class PercentageAdjustment:
    percentage: float

    def describe(self) -> str:
        return f"+{self.percentage:g}%"


@dataclass(frozen=True)
class NominalAdjustment:
    nominal: int

    def describe(self) -> str:
        return f"+{self.nominal}"


# None means "available, no price change".
Adjustment = Union[PercentageAdjustment, NominalAdjustment, None]


@dataclass(frozen=True)
class SeasonRule:
    """Inclusive date range that either blacks out a room type or adjusts its price."""

    rule_id: int
    room_type_id: int
    start_date: date
    end_date: date
    is_available: bool
    adjustment: Adjustment = None
    created_at: datetime | None = None

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    @property
    def span_days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    @property
    def is_blackout(self) -> bool:
        return not self.is_available

    def describe(self) -> str:
        span = f"{self.start_date.isoformat()} - {self.end_date.isoformat()}"
        if self.is_blackout:
            return f"{span} unavailable"
        if self.adjustment is None:
            return f"{span} available"
        return f"{span} {self.adjustment.describe()}"


@dataclass(frozen=True)
class SeasonRuleHistoryEntry:
    entry_id: int
    room_type_id: int
    rule_id: int
    action: HistoryAction
    details: str
    timestamp: datetime


@dataclass(frozen=True)
class Reservation:
    """A transaction occupying room-type quota over [check_in_date, check_out_date)."""

    room_type_id: int
    check_in_date: date
    check_out_date: date
    qty: int
    status: ReservationStatus
    reservation_id: int | None = None
    order_number: str | None = None
    total_price: int | None = None
    adults: int | None = None
    children: int | None = None
    created_at: datetime | None = None

    def occupies(self, day: date) -> bool:
        return self.check_in_date <= day < self.check_out_date


@dataclass(frozen=True)
class StayRequest:
    room_type_id: int
    check_in_date: date
    check_out_date: date
    qty: int
    adults: int
    children: int = 0


@dataclass(frozen=True)
class NightPrice:
    date: date
    unit_price: int
    is_peak: bool
    line_total: int
    rule_id: int | None = None


@dataclass(frozen=True)
class StayQuote:
    nights: list[NightPrice]
    total: int
    qty: int

    @property
    def night_count(self) -> int:
        return len(self.nights)


@dataclass(frozen=True)
class DayAvailability:
    date: date
    quota: int
    reserved: int
    remaining: int
    status: AvailabilityStatus
    is_peak_season: bool
    is_blackout: bool = False


@dataclass(frozen=True)
class Rejected:
    """Typed failure of a pricing or validation computation."""

    reason: RejectionReason
    message: str
    dates: tuple[date, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, object]:
        return {
            "reason": self.reason.value,
            "message": self.message,
            "dates": [day.isoformat() for day in self.dates],
        }


@dataclass(frozen=True)
class Accepted:
    stay: StayRequest
    nights: int
