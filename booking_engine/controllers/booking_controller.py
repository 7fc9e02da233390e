"""HTTP controller layer for quotes, transactions and reservations."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from booking_engine.controllers.dependencies import (
    get_booking_service,
    get_pricing_service,
    raise_for_rejection,
)
from booking_engine.domain.models import (
    NightPrice,
    Rejected,
    Reservation,
    ReservationStatus,
    StayRequest,
)
from booking_engine.services.booking_service import (
    BookingFailedError,
    BookingService,
    InvalidStatusTransitionError,
    TransactionNotFoundError,
)
from booking_engine.services.pricing_service import PricingService, RoomTypeNotFoundError
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["booking"])


class QuoteRequest(BaseModel):
    check_in: date
    check_out: date
    qty: int = Field(default=1, ge=1)


class NightPriceResponse(BaseModel):
    date: date
    unit_price: int = Field(ge=0)
    is_peak: bool
    line_total: int = Field(ge=0)


class QuoteResponse(BaseModel):
    room_type_id: int = Field(gt=0)
    check_in: date
    check_out: date
    qty: int = Field(ge=1)
    night_count: int = Field(ge=1)
    nights: list[NightPriceResponse]
    total: int = Field(ge=0)


class TransactionRequest(BaseModel):
    room_type_id: int = Field(gt=0)
    check_in: date
    check_out: date
    qty: int = Field(default=1, ge=1)
    adults: int = Field(default=1, ge=1)
    children: int = Field(default=0, ge=0)


class ReservationResponse(BaseModel):
    id: int = Field(gt=0)
    order_number: str
    room_type_id: int = Field(gt=0)
    check_in_date: date
    check_out_date: date
    qty: int = Field(ge=1)
    adults: int = Field(ge=0)
    children: int = Field(ge=0)
    total_price: int = Field(ge=0)
    status: ReservationStatus
    created_at: datetime | None = None


class TransactionResponse(BaseModel):
    reservation: ReservationResponse
    nights: list[NightPriceResponse]


class StatusUpdateRequest(BaseModel):
    status: ReservationStatus


def _night_rows(nights: list[NightPrice]) -> list[NightPriceResponse]:
    return [
        NightPriceResponse(
            date=night.date,
            unit_price=night.unit_price,
            is_peak=night.is_peak,
            line_total=night.line_total,
        )
        for night in nights
    ]


def _reservation_response(reservation: Reservation) -> ReservationResponse:
    return ReservationResponse(
        id=reservation.reservation_id,
        order_number=reservation.order_number,
        room_type_id=reservation.room_type_id,
        check_in_date=reservation.check_in_date,
        check_out_date=reservation.check_out_date,
        qty=reservation.qty,
        adults=reservation.adults or 0,
        children=reservation.children or 0,
        total_price=reservation.total_price or 0,
        status=reservation.status,
        created_at=reservation.created_at,
    )


@router.post(
    "/room-types/{room_type_id}/quote",
    response_model=QuoteResponse,
    status_code=status.HTTP_200_OK,
)
async def quote_stay(
    room_type_id: int,
    payload: QuoteRequest,
    service: PricingService = Depends(get_pricing_service),
) -> QuoteResponse:
    """Price a stay for preview; quota is not checked here."""
    try:
        result = service.quote(
            room_type_id=room_type_id,
            check_in=payload.check_in,
            check_out=payload.check_out,
            qty=payload.qty,
        )
    except RoomTypeNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected quote failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute quote",
        ) from exc

    if isinstance(result, Rejected):
        raise_for_rejection(result)

    return QuoteResponse(
        room_type_id=room_type_id,
        check_in=payload.check_in,
        check_out=payload.check_out,
        qty=result.qty,
        night_count=result.night_count,
        nights=_night_rows(result.nights),
        total=result.total,
    )


@router.post(
    "/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_transaction(
    payload: TransactionRequest,
    service: BookingService = Depends(get_booking_service),
) -> TransactionResponse:
    """Validate, price and persist a stay awaiting payment."""
    stay = StayRequest(
        room_type_id=payload.room_type_id,
        check_in_date=payload.check_in,
        check_out_date=payload.check_out,
        qty=payload.qty,
        adults=payload.adults,
        children=payload.children,
    )
    try:
        result = service.create_transaction(stay)
    except RoomTypeNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except BookingFailedError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected transaction failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="booking failed, please retry",
        ) from exc

    if isinstance(result, Rejected):
        raise_for_rejection(result)

    return TransactionResponse(
        reservation=_reservation_response(result.reservation),
        nights=_night_rows(result.quote.nights),
    )


@router.patch(
    "/transactions/{transaction_id}/status",
    response_model=ReservationResponse,
)
async def update_transaction_status(
    transaction_id: int,
    payload: StatusUpdateRequest,
    service: BookingService = Depends(get_booking_service),
) -> ReservationResponse:
    """Apply a status change driven by the external payment flow."""
    try:
        reservation = service.update_status(transaction_id, payload.status)
    except TransactionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidStatusTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _reservation_response(reservation)


@router.get(
    "/room-types/{room_type_id}/reservations",
    response_model=list[ReservationResponse],
)
async def list_reservations(
    room_type_id: int,
    status_filter: Optional[list[ReservationStatus]] = Query(default=None, alias="status"),
    service: BookingService = Depends(get_booking_service),
) -> list[ReservationResponse]:
    try:
        reservations = service.list_reservations(room_type_id, statuses=status_filter)
    except RoomTypeNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return [_reservation_response(item) for item in reservations]
