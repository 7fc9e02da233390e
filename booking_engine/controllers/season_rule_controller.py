"""HTTP controller layer for room-type season rules."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field, field_validator

from booking_engine.controllers.dependencies import get_season_rule_service
from booking_engine.domain.constraints import MAX_NOMINAL, MAX_PERCENTAGE
from booking_engine.domain.models import (
    NominalAdjustment,
    PercentageAdjustment,
    SeasonRule,
    SeasonRuleHistoryEntry,
)
from booking_engine.services.pricing_service import RoomTypeNotFoundError
from booking_engine.services.season_rule_service import (
    SeasonRuleNotFoundError,
    SeasonRuleService,
    SeasonRuleValidationError,
)
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["season-rules"])


class SeasonRuleCreateRequest(BaseModel):
    """Single-range apply action from the pricing calendar."""

    start_date: date
    end_date: date
    is_available: bool = True
    percentage: float | None = Field(
        default=None,
        gt=0.0,
        le=MAX_PERCENTAGE,
        allow_inf_nan=False,
    )
    nominal: int | None = Field(default=None, gt=0, le=MAX_NOMINAL)


class SeasonRuleResponse(BaseModel):
    id: int = Field(gt=0)
    room_type_id: int = Field(gt=0)
    start_date: date
    end_date: date
    is_available: bool
    percentage: float | None = None
    nominal: int | None = None
    type: Literal["normal", "peak", "unavailable"]
    created_at: datetime | None = None


class BulkDeleteRequest(BaseModel):
    rule_ids: list[int]

    @field_validator("rule_ids")
    @classmethod
    def validate_rule_ids(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("rule_ids must contain at least one id")
        for rule_id in value:
            if rule_id <= 0:
                raise ValueError("rule_ids values must be positive integers")
        return value


class BulkDeleteResponse(BaseModel):
    deleted_count: int = Field(ge=0)


class HistoryEntryResponse(BaseModel):
    id: int = Field(gt=0)
    rule_id: int = Field(gt=0)
    action: str
    details: str
    timestamp: datetime


def _to_response(rule: SeasonRule) -> SeasonRuleResponse:
    percentage = None
    nominal = None
    if isinstance(rule.adjustment, PercentageAdjustment):
        percentage = rule.adjustment.percentage
    elif isinstance(rule.adjustment, NominalAdjustment):
        nominal = rule.adjustment.nominal

    if rule.is_blackout:
        rule_type = "unavailable"
    elif rule.adjustment is not None:
        rule_type = "peak"
    else:
        rule_type = "normal"

    return SeasonRuleResponse(
        id=rule.rule_id,
        room_type_id=rule.room_type_id,
        start_date=rule.start_date,
        end_date=rule.end_date,
        is_available=rule.is_available,
        percentage=percentage,
        nominal=nominal,
        type=rule_type,
        created_at=rule.created_at,
    )


def _history_response(entry: SeasonRuleHistoryEntry) -> HistoryEntryResponse:
    return HistoryEntryResponse(
        id=entry.entry_id,
        rule_id=entry.rule_id,
        action=entry.action.value,
        details=entry.details,
        timestamp=entry.timestamp,
    )


@router.get(
    "/room-types/{room_type_id}/season-rules",
    response_model=list[SeasonRuleResponse],
)
async def list_season_rules(
    room_type_id: int,
    service: SeasonRuleService = Depends(get_season_rule_service),
) -> list[SeasonRuleResponse]:
    try:
        rules = service.list_rules(room_type_id)
    except RoomTypeNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return [_to_response(rule) for rule in rules]


@router.post(
    "/room-types/{room_type_id}/season-rules",
    response_model=SeasonRuleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def apply_season_rule(
    room_type_id: int,
    payload: SeasonRuleCreateRequest,
    service: SeasonRuleService = Depends(get_season_rule_service),
) -> SeasonRuleResponse:
    try:
        rule = service.apply_rule(
            room_type_id=room_type_id,
            start_date=payload.start_date,
            end_date=payload.end_date,
            is_available=payload.is_available,
            percentage=payload.percentage,
            nominal=payload.nominal,
        )
    except SeasonRuleValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RoomTypeNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected failure applying season rule")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to apply season rule",
        ) from exc
    return _to_response(rule)


@router.delete(
    "/room-types/{room_type_id}/season-rules/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_season_rule(
    room_type_id: int,
    rule_id: int,
    service: SeasonRuleService = Depends(get_season_rule_service),
) -> Response:
    try:
        service.delete_rule(room_type_id, rule_id)
    except (RoomTypeNotFoundError, SeasonRuleNotFoundError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/room-types/{room_type_id}/season-rules/bulk-delete",
    response_model=BulkDeleteResponse,
)
async def bulk_delete_season_rules(
    room_type_id: int,
    payload: BulkDeleteRequest,
    service: SeasonRuleService = Depends(get_season_rule_service),
) -> BulkDeleteResponse:
    try:
        deleted = service.bulk_delete(room_type_id, payload.rule_ids)
    except SeasonRuleValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (RoomTypeNotFoundError, SeasonRuleNotFoundError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return BulkDeleteResponse(deleted_count=deleted)


@router.get(
    "/room-types/{room_type_id}/season-rules/history",
    response_model=list[HistoryEntryResponse],
)
async def season_rule_history(
    room_type_id: int,
    service: SeasonRuleService = Depends(get_season_rule_service),
) -> list[HistoryEntryResponse]:
    try:
        entries = service.history(room_type_id)
    except RoomTypeNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return [_history_response(entry) for entry in entries]
