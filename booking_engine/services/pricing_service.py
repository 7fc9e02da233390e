"""Per-night stay pricing over overlapping season rules.

`compute_stay` is a pure function over an explicit snapshot of a room type's
base price and season rules, so it can quote a stay without touching storage.
`PricingService` only loads that snapshot from the repository.

Precedence when several adjusting rules cover the same night: the rule with
the shortest date range wins; among equal spans the highest (most recently
created) rule id wins.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterator, Optional, Sequence

from booking_engine.domain.models import (
    Adjustment,
    NightPrice,
    NominalAdjustment,
    PercentageAdjustment,
    Rejected,
    RejectionReason,
    SeasonRule,
    StayQuote,
)
from booking_engine.repository.data_repository import DataRepository
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


class PricingError(Exception):
    """Base exception for pricing workflow failures."""


class RoomTypeNotFoundError(PricingError):
    """Raised when a room type id does not exist in persisted state."""


class AmbiguousRuleError(PricingError):
    """Raised when two adjusting rules remain tied after precedence is applied."""


def iter_nights(check_in: date, check_out: date) -> Iterator[date]:
    """Yield every night of a stay; the checkout day itself is never a night."""
    current = check_in
    while current < check_out:
        yield current
        current += timedelta(days=1)


def rules_covering(rules: Sequence[SeasonRule], day: date) -> list[SeasonRule]:
    return [rule for rule in rules if rule.covers(day)]


def select_adjusting_rule(matching: Sequence[SeasonRule]) -> Optional[SeasonRule]:
    """Pick the single rule whose adjustment applies to a night."""
    candidates = [rule for rule in matching if rule.adjustment is not None]
    if not candidates:
        return None

    ranked = sorted(candidates, key=lambda rule: (rule.span_days, -rule.rule_id))
    if len(ranked) > 1:
        first, second = ranked[0], ranked[1]
        if (first.span_days, first.rule_id) == (second.span_days, second.rule_id):
            raise AmbiguousRuleError(
                f"rules tied on span {first.span_days} and id {first.rule_id}"
            )
    return ranked[0]


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_adjustment(base_price: int, adjustment: Adjustment) -> int:
    if isinstance(adjustment, NominalAdjustment):
        return base_price + adjustment.nominal
    if isinstance(adjustment, PercentageAdjustment):
        multiplier = (Decimal(100) + Decimal(str(adjustment.percentage))) / Decimal(100)
        return round_half_up(Decimal(base_price) * multiplier)
    return base_price


def compute_stay(
    base_price: int,
    rules: Sequence[SeasonRule],
    check_in: date,
    check_out: date,
    qty: int,
) -> StayQuote | Rejected:
    """Price every night in [check_in, check_out) for `qty` units."""
    if qty < 1:
        raise ValueError("qty must be >= 1")
    if check_in >= check_out:
        return Rejected(
            reason=RejectionReason.INVALID_RANGE,
            message="check_in must be before check_out",
        )

    nights: list[NightPrice] = []
    blackout_nights: list[date] = []
    for night in iter_nights(check_in, check_out):
        matching = rules_covering(rules, night)
        if any(rule.is_blackout for rule in matching):
            blackout_nights.append(night)
            continue
        if blackout_nights:
            continue

        try:
            selected = select_adjusting_rule(matching)
        except AmbiguousRuleError as exc:
            return Rejected(
                reason=RejectionReason.AMBIGUOUS_RULE,
                message=str(exc),
                dates=(night,),
            )

        adjustment = selected.adjustment if selected is not None else None
        unit_price = apply_adjustment(base_price, adjustment)
        nights.append(
            NightPrice(
                date=night,
                unit_price=unit_price,
                is_peak=adjustment is not None,
                line_total=unit_price * qty,
                rule_id=selected.rule_id if selected is not None else None,
            )
        )

    if blackout_nights:
        return Rejected(
            reason=RejectionReason.BLACKOUT,
            message="stay includes unavailable dates",
            dates=tuple(blackout_nights),
        )

    return StayQuote(
        nights=nights,
        total=sum(item.line_total for item in nights),
        qty=qty,
    )


class PricingService:
    """Quotes stays for persisted room types."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def quote(
        self,
        room_type_id: int,
        check_in: date,
        check_out: date,
        qty: int,
    ) -> StayQuote | Rejected:
        room_type = self._repository.get_room_type(room_type_id)
        if room_type is None:
            raise RoomTypeNotFoundError(f"room_type_id {room_type_id} not found")

        rules = self._repository.list_season_rules(room_type_id)
        result = compute_stay(
            base_price=room_type.base_price,
            rules=rules,
            check_in=check_in,
            check_out=check_out,
            qty=qty,
        )
        if isinstance(result, Rejected):
            logger.info(
                "Quote rejected for room_type=%s %s..%s: %s",
                room_type_id,
                check_in,
                check_out,
                result.reason.value,
            )
        return result
