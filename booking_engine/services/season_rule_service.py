"""Tenant-facing management of season rules per room type."""

from __future__ import annotations

from datetime import date
from typing import Optional, Sequence

from booking_engine.domain.constraints import build_adjustment, validate_season_rule
from booking_engine.domain.models import SeasonRule, SeasonRuleHistoryEntry
from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.pricing_service import RoomTypeNotFoundError
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


class SeasonRuleError(Exception):
    """Base exception for season rule management failures."""


class SeasonRuleValidationError(SeasonRuleError):
    """Raised when a rule violates a write-time invariant."""


class SeasonRuleNotFoundError(SeasonRuleError):
    """Raised when a rule id does not belong to the room type."""


class SeasonRuleService:
    """Applies, lists and deletes season rules, recording each change."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def _require_room_type(self, room_type_id: int) -> None:
        if self._repository.get_room_type(room_type_id) is None:
            raise RoomTypeNotFoundError(f"room_type_id {room_type_id} not found")

    def list_rules(self, room_type_id: int) -> list[SeasonRule]:
        self._require_room_type(room_type_id)
        return self._repository.list_season_rules(room_type_id)

    def apply_rule(
        self,
        room_type_id: int,
        start_date: date,
        end_date: date,
        is_available: bool,
        percentage: Optional[float] = None,
        nominal: Optional[int] = None,
    ) -> SeasonRule:
        """Create a rule over [start_date, end_date]; overlapping rules are kept."""
        self._require_room_type(room_type_id)
        try:
            adjustment = build_adjustment(percentage=percentage, nominal=nominal)
            validate_season_rule(start_date, end_date, is_available, adjustment)
        except ValueError as exc:
            raise SeasonRuleValidationError(str(exc)) from exc

        rule = self._repository.create_season_rule(
            room_type_id=room_type_id,
            start_date=start_date,
            end_date=end_date,
            is_available=is_available,
            adjustment=adjustment,
        )
        logger.info("Season rule %s applied to room_type=%s", rule.rule_id, room_type_id)
        return rule

    def delete_rule(self, room_type_id: int, rule_id: int) -> None:
        self.bulk_delete(room_type_id, [rule_id])

    def bulk_delete(self, room_type_id: int, rule_ids: Sequence[int]) -> int:
        """Delete every listed rule or none of them."""
        self._require_room_type(room_type_id)
        unique_ids = sorted(set(rule_ids))
        if not unique_ids:
            raise SeasonRuleValidationError("rule_ids must not be empty")

        try:
            deleted = self._repository.delete_season_rules(
                room_type_id=room_type_id,
                rule_ids=unique_ids,
            )
        except LookupError as exc:
            missing = exc.args[0]
            raise SeasonRuleNotFoundError(
                f"season rule(s) {missing} not found for room_type_id {room_type_id}"
            ) from exc

        logger.info(
            "Deleted %s season rule(s) from room_type=%s",
            len(deleted),
            room_type_id,
        )
        return len(deleted)

    def history(self, room_type_id: int) -> list[SeasonRuleHistoryEntry]:
        self._require_room_type(room_type_id)
        return self._repository.list_season_rule_history(room_type_id)

