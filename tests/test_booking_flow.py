from __future__ import annotations

import importlib
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from threading import Thread
from zoneinfo import ZoneInfo

import pytest
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from booking_engine.controllers.availability_controller import router as availability_router
from booking_engine.controllers.booking_controller import router as booking_router
from booking_engine.controllers.dependencies import request_validation_handler
from booking_engine.controllers.season_rule_controller import router as season_rule_router
from booking_engine.domain.models import Capacity, ReservationStatus, StayRequest
from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.availability_service import AvailabilityService
from booking_engine.services.booking_service import (
    BookingConfirmation,
    BookingService,
    InvalidStatusTransitionError,
    local_today,
)
from booking_engine.services.pricing_service import PricingService
from booking_engine.services.report_service import ReportService
from booking_engine.services.season_rule_service import SeasonRuleService
from booking_engine.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(base, database_path=tmp_path / filename, seed_demo_data=False)


def _build_test_app(tmp_path) -> tuple[FastAPI, DataRepository]:
    settings = _build_test_settings(tmp_path, "booking_flow.db")
    repository = DataRepository(settings)
    repository.initialize_database()

    availability_service = AvailabilityService(repository=repository, settings=settings)

    app = FastAPI()
    app.include_router(season_rule_router)
    app.include_router(booking_router)
    app.include_router(availability_router)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.state.repository = repository
    app.state.pricing_service = PricingService(repository=repository, settings=settings)
    app.state.availability_service = availability_service
    app.state.booking_service = BookingService(repository=repository, settings=settings)
    app.state.season_rule_service = SeasonRuleService(repository=repository, settings=settings)
    app.state.report_service = ReportService(
        repository=repository,
        availability_service=availability_service,
        settings=settings,
    )
    return app, repository


def _future(days: int) -> date:
    return datetime.now(timezone.utc).date() + timedelta(days=days)


def test_quote_then_book_records_quoted_total(tmp_path):
    app, repository = _build_test_app(tmp_path)
    room_type = repository.create_room_type("Deluxe Room", 1_000_000, 3, Capacity(2, 1))
    client = TestClient(app)

    rules_url = f"/room-types/{room_type.room_type_id}/season-rules"
    wide = client.post(
        rules_url,
        json={
            "start_date": _future(30).isoformat(),
            "end_date": _future(39).isoformat(),
            "is_available": True,
            "percentage": 10,
        },
    )
    assert wide.status_code == 201
    assert wide.json()["type"] == "peak"
    narrow = client.post(
        rules_url,
        json={
            "start_date": _future(33).isoformat(),
            "end_date": _future(34).isoformat(),
            "nominal": 50_000,
        },
    )
    assert narrow.status_code == 201

    stay = {
        "check_in": _future(30).isoformat(),
        "check_out": _future(37).isoformat(),
        "qty": 2,
    }
    quote_response = client.post(f"/room-types/{room_type.room_type_id}/quote", json=stay)
    assert quote_response.status_code == 200
    quote = quote_response.json()
    assert quote["night_count"] == 7
    assert quote["total"] == (1_050_000 * 2 + 1_100_000 * 5) * 2

    booking_response = client.post(
        "/transactions",
        json={"room_type_id": room_type.room_type_id, "adults": 2, **stay},
    )
    assert booking_response.status_code == 201
    reservation = booking_response.json()["reservation"]
    assert reservation["total_price"] == quote["total"]
    assert reservation["status"] == "WAITING_FOR_PAYMENT"
    assert reservation["order_number"].startswith("INV-")
    assert repository.count_reservations() == 1


def test_quota_exhaustion_blocks_booking_until_cancelled(tmp_path):
    app, repository = _build_test_app(tmp_path)
    room_type = repository.create_room_type("Family Suite", 1_500_000, 3, Capacity(4, 2))
    client = TestClient(app)

    stay = {
        "room_type_id": room_type.room_type_id,
        "check_in": _future(10).isoformat(),
        "check_out": _future(12).isoformat(),
    }
    first = client.post("/transactions", json={**stay, "qty": 2})
    second = client.post("/transactions", json={**stay, "qty": 1})
    assert first.status_code == 201
    assert second.status_code == 201

    rejected = client.post("/transactions", json={**stay, "qty": 1})
    assert rejected.status_code == 409
    assert rejected.json()["detail"]["reason"] == "QUOTA_EXCEEDED"

    availability_url = f"/room-types/{room_type.room_type_id}/availability"
    window = {"start": stay["check_in"], "end": stay["check_out"]}
    days = client.get(availability_url, params=window).json()["days"]
    assert [(day["reserved"], day["remaining"], day["status"]) for day in days] == [
        (3, 0, "FULL"),
        (3, 0, "FULL"),
    ]

    first_id = first.json()["reservation"]["id"]
    cancel = client.patch(f"/transactions/{first_id}/status", json={"status": "CANCELLED"})
    assert cancel.status_code == 200
    assert cancel.json()["status"] == "CANCELLED"

    days = client.get(availability_url, params=window).json()["days"]
    assert all(day["remaining"] == 2 and day["status"] == "AVAILABLE" for day in days)

    retry = client.post("/transactions", json={**stay, "qty": 1})
    assert retry.status_code == 201


def test_blackout_rejects_quote_and_booking(tmp_path):
    app, repository = _build_test_app(tmp_path)
    room_type = repository.create_room_type("Standard Room", 450_000, 5, Capacity(2, 0))
    client = TestClient(app)

    blackout = client.post(
        f"/room-types/{room_type.room_type_id}/season-rules",
        json={
            "start_date": _future(21).isoformat(),
            "end_date": _future(21).isoformat(),
            "is_available": False,
        },
    )
    assert blackout.status_code == 201
    assert blackout.json()["type"] == "unavailable"

    stay = {"check_in": _future(20).isoformat(), "check_out": _future(23).isoformat(), "qty": 1}
    quote = client.post(f"/room-types/{room_type.room_type_id}/quote", json=stay)
    assert quote.status_code == 409
    assert quote.json()["detail"]["reason"] == "BLACKOUT"
    assert quote.json()["detail"]["dates"] == [_future(21).isoformat()]

    booking = client.post(
        "/transactions",
        json={"room_type_id": room_type.room_type_id, **stay},
    )
    assert booking.status_code == 409
    assert booking.json()["detail"]["reason"] == "BLACKOUT"
    assert repository.count_reservations() == 0


def test_invalid_requests_map_to_client_errors(tmp_path):
    app, repository = _build_test_app(tmp_path)
    room_type = repository.create_room_type("Deluxe Room", 500_000, 2, Capacity(2, 1))
    client = TestClient(app)

    zero_nights = client.post(
        f"/room-types/{room_type.room_type_id}/quote",
        json={"check_in": _future(5).isoformat(), "check_out": _future(5).isoformat()},
    )
    assert zero_nights.status_code == 400
    assert zero_nights.json()["detail"]["reason"] == "INVALID_RANGE"

    past = client.post(
        "/transactions",
        json={
            "room_type_id": room_type.room_type_id,
            "check_in": _future(-2).isoformat(),
            "check_out": _future(1).isoformat(),
        },
    )
    assert past.status_code == 400

    too_many_adults = client.post(
        "/transactions",
        json={
            "room_type_id": room_type.room_type_id,
            "check_in": _future(5).isoformat(),
            "check_out": _future(6).isoformat(),
            "adults": 3,
        },
    )
    assert too_many_adults.status_code == 409
    assert too_many_adults.json()["detail"]["reason"] == "QUOTA_EXCEEDED"

    unknown = client.post(
        "/room-types/9999/quote",
        json={"check_in": _future(5).isoformat(), "check_out": _future(6).isoformat()},
    )
    assert unknown.status_code == 404

    both_adjustments = client.post(
        f"/room-types/{room_type.room_type_id}/season-rules",
        json={
            "start_date": _future(5).isoformat(),
            "end_date": _future(6).isoformat(),
            "percentage": 10,
            "nominal": 1_000,
        },
    )
    assert both_adjustments.status_code == 400

    reversed_window = client.get(
        f"/room-types/{room_type.room_type_id}/availability",
        params={"start": _future(6).isoformat(), "end": _future(5).isoformat()},
    )
    assert reversed_window.status_code == 400


def test_status_transitions_and_reservation_listing(tmp_path):
    app, repository = _build_test_app(tmp_path)
    room_type = repository.create_room_type("Deluxe Room", 500_000, 4, Capacity(2, 1))
    client = TestClient(app)

    created = client.post(
        "/transactions",
        json={
            "room_type_id": room_type.room_type_id,
            "check_in": _future(3).isoformat(),
            "check_out": _future(5).isoformat(),
        },
    )
    transaction_id = created.json()["reservation"]["id"]

    invalid = client.patch(f"/transactions/{transaction_id}/status", json={"status": "ACCEPTED"})
    assert invalid.status_code == 409

    for next_status in ("WAITING_FOR_CONFIRMATION", "ACCEPTED"):
        response = client.patch(
            f"/transactions/{transaction_id}/status",
            json={"status": next_status},
        )
        assert response.status_code == 200

    missing = client.patch("/transactions/9999/status", json={"status": "CANCELLED"})
    assert missing.status_code == 404

    reservations_url = f"/room-types/{room_type.room_type_id}/reservations"
    accepted = client.get(reservations_url, params={"status": "ACCEPTED"})
    assert [item["id"] for item in accepted.json()] == [transaction_id]
    cancelled = client.get(reservations_url, params={"status": "CANCELLED"})
    assert cancelled.json() == []
    assert len(client.get(reservations_url).json()) == 1


def test_status_change_loses_to_a_concurrent_cancellation(tmp_path, monkeypatch):
    settings = _build_test_settings(tmp_path, "status_race.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    room_type = repository.create_room_type("Deluxe Room", 500_000, 1, Capacity(2, 1))
    service = BookingService(repository=repository, settings=settings)
    stay = StayRequest(
        room_type_id=room_type.room_type_id,
        check_in_date=_future(7),
        check_out_date=_future(9),
        qty=1,
        adults=1,
    )
    first = service.create_transaction(stay)
    reservation_id = first.reservation.reservation_id

    # Cancel and rebook between the status read and the status write.
    original_get = repository.get_reservation
    interleaved = []

    def _get_then_cancel_and_rebook(target_id):
        snapshot = original_get(target_id)
        if not interleaved:
            interleaved.append(None)
            interleaved[0] = service.update_status(reservation_id, ReservationStatus.CANCELLED)
            interleaved.append(service.create_transaction(stay))
        return snapshot

    monkeypatch.setattr(repository, "get_reservation", _get_then_cancel_and_rebook)

    with pytest.raises(InvalidStatusTransitionError):
        service.update_status(reservation_id, ReservationStatus.WAITING_FOR_CONFIRMATION)

    assert isinstance(interleaved[1], BookingConfirmation)
    active = service.list_reservations(
        room_type.room_type_id,
        statuses=[
            ReservationStatus.WAITING_FOR_PAYMENT,
            ReservationStatus.WAITING_FOR_CONFIRMATION,
            ReservationStatus.ACCEPTED,
        ],
    )
    assert [item.reservation_id for item in active] == [
        interleaved[1].reservation.reservation_id
    ]
    assert original_get(reservation_id).status is ReservationStatus.CANCELLED


def test_out_of_range_adjustments_are_refused_and_quotes_keep_working(tmp_path):
    app, repository = _build_test_app(tmp_path)
    room_type = repository.create_room_type("Deluxe Room", 500_000, 2, Capacity(2, 1))
    client = TestClient(app)
    rules_url = f"/room-types/{room_type.room_type_id}/season-rules"
    window = (
        f'"start_date": "{_future(5).isoformat()}", '
        f'"end_date": "{_future(6).isoformat()}"'
    )

    for body in (
        "{" + window + ', "percentage": Infinity}',
        "{" + window + ', "percentage": NaN}',
        "{" + window + ', "percentage": 1e30}',
        "{" + window + ', "nominal": 9223372036854775808}',
    ):
        response = client.post(
            rules_url,
            content=body,
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 422
    assert client.get(rules_url).json() == []

    quote = client.post(
        f"/room-types/{room_type.room_type_id}/quote",
        json={"check_in": _future(5).isoformat(), "check_out": _future(7).isoformat()},
    )
    assert quote.status_code == 200
    assert quote.json()["total"] == 1_000_000


def test_past_date_check_uses_the_configured_time_zone(tmp_path):
    settings = replace(
        _build_test_settings(tmp_path, "time_zone.db"),
        timezone="Etc/GMT+12",
    )
    repository = DataRepository(settings)
    repository.initialize_database()
    room_type = repository.create_room_type("Deluxe Room", 500_000, 2, Capacity(2, 1))
    service = BookingService(repository=repository, settings=settings)

    # UTC-12 is on the same day as UTC or one day behind it.
    local_day = local_today(ZoneInfo("Etc/GMT+12"))
    result = service.create_transaction(
        StayRequest(
            room_type_id=room_type.room_type_id,
            check_in_date=local_day,
            check_out_date=local_day + timedelta(days=1),
            qty=1,
            adults=1,
        )
    )

    assert isinstance(result, BookingConfirmation)


def test_season_rule_endpoints_record_history(tmp_path):
    app, repository = _build_test_app(tmp_path)
    room_type = repository.create_room_type("Deluxe Room", 500_000, 3, Capacity(2, 1))
    client = TestClient(app)
    rules_url = f"/room-types/{room_type.room_type_id}/season-rules"

    rule_ids = []
    for offset in (10, 20, 30):
        response = client.post(
            rules_url,
            json={
                "start_date": _future(offset).isoformat(),
                "end_date": _future(offset + 2).isoformat(),
                "percentage": 15,
            },
        )
        rule_ids.append(response.json()["id"])

    assert client.delete(f"{rules_url}/{rule_ids[0]}").status_code == 204
    assert client.delete(f"{rules_url}/{rule_ids[0]}").status_code == 404

    bulk = client.post(f"{rules_url}/bulk-delete", json={"rule_ids": rule_ids[1:]})
    assert bulk.status_code == 200
    assert bulk.json()["deleted_count"] == 2
    assert client.get(rules_url).json() == []

    history = client.get(f"{rules_url}/history").json()
    assert [entry["action"] for entry in history].count("CREATE") == 3
    assert [entry["action"] for entry in history].count("DELETE") == 3
    assert history[0]["action"] == "DELETE"


def test_occupancy_report_summarizes_each_room_type(tmp_path):
    app, repository = _build_test_app(tmp_path)
    deluxe = repository.create_room_type("Deluxe Room", 500_000, 2, Capacity(2, 1))
    suite = repository.create_room_type("Family Suite", 900_000, 1, Capacity(4, 2))
    client = TestClient(app)

    start = _future(40)
    end = _future(44)
    client.post(
        f"/room-types/{deluxe.room_type_id}/season-rules",
        json={
            "start_date": _future(42).isoformat(),
            "end_date": _future(42).isoformat(),
            "is_available": False,
        },
    )
    client.post(
        f"/room-types/{suite.room_type_id}/season-rules",
        json={
            "start_date": start.isoformat(),
            "end_date": _future(41).isoformat(),
            "nominal": 100_000,
        },
    )
    booked = client.post(
        "/transactions",
        json={
            "room_type_id": deluxe.room_type_id,
            "check_in": start.isoformat(),
            "check_out": _future(42).isoformat(),
            "qty": 2,
        },
    )
    assert booked.status_code == 201

    response = client.get(
        "/reports/occupancy",
        params={"start": start.isoformat(), "end": end.isoformat()},
    )
    assert response.status_code == 200
    items = response.json()["items"]
    assert [item["room_type_id"] for item in items] == [deluxe.room_type_id, suite.room_type_id]

    deluxe_summary = items[0]["summary"]
    assert deluxe_summary["total_reserved_nights"] == 4
    assert deluxe_summary["total_capacity_nights"] == 6
    assert deluxe_summary["occupancy_rate"] == round(4 / 6, 4)
    assert deluxe_summary["full_days"] == 3

    suite_summary = items[1]["summary"]
    assert suite_summary["peak_days"] == 2
    assert suite_summary["occupancy_rate"] == 0.0

    single = client.get(
        "/reports/occupancy",
        params={
            "start": start.isoformat(),
            "end": end.isoformat(),
            "room_type_id": suite.room_type_id,
        },
    )
    assert [item["room_name"] for item in single.json()["items"]] == ["Family Suite"]


def test_concurrent_bookings_never_exceed_quota(tmp_path):
    settings = _build_test_settings(tmp_path, "concurrency.db")
    repository = DataRepository(settings)
    repository.initialize_database()
    room_type = repository.create_room_type("Deluxe Room", 500_000, 2, Capacity(2, 1))
    service = BookingService(repository=repository, settings=settings)

    stay = StayRequest(
        room_type_id=room_type.room_type_id,
        check_in_date=_future(7),
        check_out_date=_future(9),
        qty=1,
        adults=1,
    )
    results = []

    def _book() -> None:
        results.append(service.create_transaction(stay))

    threads = [Thread(target=_book) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    confirmations = [item for item in results if isinstance(item, BookingConfirmation)]
    assert len(results) == 6
    assert len(confirmations) == 2
    assert repository.count_reservations() == 2


def test_app_factory_initializes_schema_and_seeds_demo_data(tmp_path):
    import app as app_module

    # The module-level app is built from env-derived settings on import.
    importlib.reload(app_module)
    assert app_module.app.state.settings.database_path == tmp_path / "default.db"
    create_app = app_module.create_app

    settings = replace(
        _build_test_settings(tmp_path, "factory.db"),
        seed_demo_data=True,
    )
    app = create_app(settings)

    with TestClient(app) as client:
        health = client.get("/health")
        assert health.status_code == 200
        assert health.json() == {"status": "ok"}

        first_room = app.state.repository.list_room_types()[0]
        rules = client.get(f"/room-types/{first_room.room_type_id}/season-rules")
        assert rules.status_code == 200

    assert len(app.state.repository.list_room_types()) == 3
