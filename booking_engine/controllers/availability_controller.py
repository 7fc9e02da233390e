"""HTTP controller layer for availability calendars and occupancy reports."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from booking_engine.controllers.dependencies import (
    get_availability_service,
    get_report_service,
)
from booking_engine.domain.models import AvailabilityStatus, DayAvailability
from booking_engine.services.availability_service import (
    AvailabilityService,
    AvailabilityValidationError,
)
from booking_engine.services.pricing_service import RoomTypeNotFoundError
from booking_engine.services.report_service import ReportService
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["availability"])


class AvailabilityDayResponse(BaseModel):
    date: date
    quota: int = Field(gt=0)
    reserved: int = Field(ge=0)
    remaining: int = Field(ge=0)
    status: AvailabilityStatus
    is_peak_season: bool
    is_blackout: bool


class AvailabilityResponse(BaseModel):
    room_type_id: int = Field(gt=0)
    start: date
    end: date
    days: list[AvailabilityDayResponse]


class OccupancySummaryResponse(BaseModel):
    total_reserved_nights: int = Field(ge=0)
    total_capacity_nights: int = Field(ge=0)
    occupancy_rate: float = Field(ge=0.0, le=1.0)
    full_days: int = Field(ge=0)
    peak_days: int = Field(ge=0)


class RoomReportResponse(BaseModel):
    room_type_id: int = Field(gt=0)
    room_name: str
    quota: int = Field(gt=0)
    per_date: list[AvailabilityDayResponse]
    summary: OccupancySummaryResponse


class OccupancyReportResponse(BaseModel):
    start: date
    end: date
    items: list[RoomReportResponse]


def _day_rows(days: list[DayAvailability]) -> list[AvailabilityDayResponse]:
    return [
        AvailabilityDayResponse(
            date=day.date,
            quota=day.quota,
            reserved=day.reserved,
            remaining=day.remaining,
            status=day.status,
            is_peak_season=day.is_peak_season,
            is_blackout=day.is_blackout,
        )
        for day in days
    ]


@router.get(
    "/room-types/{room_type_id}/availability",
    response_model=AvailabilityResponse,
)
async def get_availability(
    room_type_id: int,
    start: date = Query(...),
    end: date = Query(..., description="Exclusive end date"),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    try:
        days = service.get_availability(room_type_id, start, end)
    except AvailabilityValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RoomTypeNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return AvailabilityResponse(
        room_type_id=room_type_id,
        start=start,
        end=end,
        days=_day_rows(days),
    )


@router.get(
    "/reports/occupancy",
    response_model=OccupancyReportResponse,
)
async def occupancy_report(
    start: date = Query(...),
    end: date = Query(..., description="Exclusive end date"),
    room_type_id: Optional[int] = Query(default=None, gt=0),
    service: ReportService = Depends(get_report_service),
) -> OccupancyReportResponse:
    try:
        reports = service.occupancy_report(start, end, room_type_id=room_type_id)
    except AvailabilityValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RoomTypeNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected report failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build occupancy report",
        ) from exc

    return OccupancyReportResponse(
        start=start,
        end=end,
        items=[
            RoomReportResponse(
                room_type_id=report.room_type.room_type_id,
                room_name=report.room_type.name,
                quota=report.room_type.quota,
                per_date=_day_rows(report.per_date),
                summary=OccupancySummaryResponse(
                    total_reserved_nights=report.summary.total_reserved_nights,
                    total_capacity_nights=report.summary.total_capacity_nights,
                    occupancy_rate=report.summary.occupancy_rate,
                    full_days=report.summary.full_days,
                    peak_days=report.summary.peak_days,
                ),
            )
            for report in reports
        ],
    )
