"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

import math
from typing import NoReturn

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from booking_engine.domain.models import Rejected, RejectionReason
from booking_engine.services.availability_service import AvailabilityService
from booking_engine.services.booking_service import BookingService
from booking_engine.services.pricing_service import PricingService
from booking_engine.services.report_service import ReportService
from booking_engine.services.season_rule_service import SeasonRuleService
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


_REJECTION_STATUS_CODES = {
    RejectionReason.INVALID_RANGE: status.HTTP_400_BAD_REQUEST,
    RejectionReason.BLACKOUT: status.HTTP_409_CONFLICT,
    RejectionReason.QUOTA_EXCEEDED: status.HTTP_409_CONFLICT,
    RejectionReason.AMBIGUOUS_RULE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _service_from_state(request: Request, attribute: str, label: str):
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_pricing_service(request: Request) -> PricingService:
    return _service_from_state(request, "pricing_service", "Pricing service")


def get_availability_service(request: Request) -> AvailabilityService:
    return _service_from_state(request, "availability_service", "Availability service")


def get_booking_service(request: Request) -> BookingService:
    return _service_from_state(request, "booking_service", "Booking service")


def get_season_rule_service(request: Request) -> SeasonRuleService:
    return _service_from_state(request, "season_rule_service", "Season rule service")


def get_report_service(request: Request) -> ReportService:
    return _service_from_state(request, "report_service", "Report service")


def raise_for_rejection(rejected: Rejected) -> NoReturn:
    """Translate a typed engine rejection into an HTTP error."""
    if rejected.reason is RejectionReason.AMBIGUOUS_RULE:
        logger.error("Season rule precedence left a tie: %s", rejected.message)
    raise HTTPException(
        status_code=_REJECTION_STATUS_CODES[rejected.reason],
        detail=rejected.to_dict(),
    )


def _json_safe_float(value: float) -> float | str:
    return value if math.isfinite(value) else str(value)


async def request_validation_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Default 422 body, with Infinity/NaN inputs echoed as strings so it renders."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": jsonable_encoder(
                exc.errors(),
                custom_encoder={float: _json_safe_float},
            )
        },
    )
