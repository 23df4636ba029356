from __future__ import annotations

import sqlite3
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import date, datetime

import pytest

from booking_engine.domain.models import (
    BookingCandidate,
    BookingDetails,
    CostType,
    Facility,
    ReservationStatus,
    Room,
    RoomSettings,
    RoomUnavailable,
)
from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.booking_service import (
    BookingService,
    BookingValidationError,
    ConfirmedBooking,
    InvalidStatusTransitionError,
    PricingValidationError,
    ReservationNotFoundError,
    RoomNotFoundError,
)
from booking_engine.utils.config import get_settings


NOW = datetime(2025, 3, 9, 8, 0)
START = datetime(2025, 3, 10, 9, 0)
END = datetime(2025, 3, 10, 11, 30)
DETAILS = BookingDetails(
    title="Quarterly review",
    customer_name="Alex Doe",
    customer_email="alex@example.com",
)


def _build_service(tmp_path, **overrides) -> tuple[BookingService, DataRepository]:
    get_settings.cache_clear()
    settings = replace(
        get_settings(),
        database_path=tmp_path / "bookings.db",
        seed_demo_data=False,
        **overrides,
    )
    repository = DataRepository(settings)
    repository.initialize_database()
    return BookingService(repository=repository, settings=settings), repository


def _hall(repository: DataRepository) -> int:
    return repository.create_room(
        Room(
            0,
            "Hall",
            80,
            flat_rate=10000,
            hourly_rate=5000,
            facilities=(Facility("Projector", 1500),),
        )
    )


def _candidate(room_id: int, start: datetime = START, end: datetime = END, **kwargs) -> BookingCandidate:
    settings = RoomSettings(
        cost_type=kwargs.pop("cost_type", CostType.HOURLY),
        requested_facilities=kwargs.pop("facilities", ()),
    )
    return BookingCandidate(start=start, end=end, attendee_count=10, room_settings={room_id: settings})


def test_second_overlapping_booking_is_refused(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)

    first = service.confirm_booking(_candidate(room_id), DETAILS, now=NOW)
    second = service.confirm_booking(
        _candidate(room_id, datetime(2025, 3, 10, 11, 0), datetime(2025, 3, 10, 12, 0)),
        DETAILS,
        now=NOW,
    )

    assert isinstance(first, ConfirmedBooking)
    assert first.priced.summary.grand_total == 15000
    assert isinstance(second, RoomUnavailable)
    assert second.reservation_id == first.reservation_id
    assert repository.count_reservations() == 1


def test_back_to_back_bookings_get_sequential_order_numbers(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)

    first = service.confirm_booking(_candidate(room_id), DETAILS, now=NOW)
    second = service.confirm_booking(
        _candidate(room_id, END, datetime(2025, 3, 10, 13, 0)),
        DETAILS,
        now=NOW,
    )

    assert isinstance(second, ConfirmedBooking)
    assert (first.order_number, second.order_number) == (1, 2)


def test_concurrent_confirmations_admit_exactly_one(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)

    with ThreadPoolExecutor(max_workers=4) as executor:
        results = list(
            executor.map(
                lambda _: service.confirm_booking(_candidate(room_id), DETAILS, now=NOW),
                range(4),
            )
        )

    assert sum(isinstance(result, ConfirmedBooking) for result in results) == 1
    assert sum(isinstance(result, RoomUnavailable) for result in results) == 3
    assert repository.count_reservations() == 1


def test_stored_breakdown_survives_price_change(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)
    confirmed = service.confirm_booking(_candidate(room_id, facilities=("Projector",)), DETAILS, now=NOW)
    stored_before = repository.get_cost_breakdown(confirmed.reservation_id)

    with sqlite3.connect(repository.database_path) as conn:
        conn.execute("UPDATE Rooms SET hourly_rate = 9000 WHERE id = ?;", (room_id,))

    requote = service.quote(
        _candidate(room_id, datetime(2025, 3, 11, 9, 0), datetime(2025, 3, 11, 11, 30))
    )
    assert requote.summary.grand_total == 27000
    assert repository.get_cost_breakdown(confirmed.reservation_id) == stored_before
    assert stored_before["grand_total"] == 16500


def test_status_transitions(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)
    confirmed = service.confirm_booking(_candidate(room_id), DETAILS, now=NOW)

    change = service.update_status(confirmed.reservation_id, ReservationStatus.APPROVED)
    assert change.previous is ReservationStatus.PENDING
    assert change.status is ReservationStatus.APPROVED
    assert change.final_revenue is None
    with pytest.raises(InvalidStatusTransitionError):
        service.update_status(confirmed.reservation_id, ReservationStatus.PENDING)
    with pytest.raises(ReservationNotFoundError):
        service.update_status(9999, ReservationStatus.APPROVED)

    service.update_status(confirmed.reservation_id, ReservationStatus.FINISHED)
    assert repository.get_reservation_status(confirmed.reservation_id) is ReservationStatus.FINISHED


def test_cancelled_booking_frees_the_room(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)
    confirmed = service.confirm_booking(_candidate(room_id), DETAILS, now=NOW)

    service.update_status(confirmed.reservation_id, ReservationStatus.CANCELLED)

    assert service.check_availability(room_id, START, END) is None
    assert isinstance(service.confirm_booking(_candidate(room_id), DETAILS, now=NOW), ConfirmedBooking)


def test_missing_rate_blocks_confirmation_by_default(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)

    with pytest.raises(PricingValidationError):
        service.confirm_booking(_candidate(room_id, cost_type=CostType.PER_ATTENDEE), DETAILS, now=NOW)
    assert repository.count_reservations() == 0


def test_missing_rate_allowed_when_configured(tmp_path) -> None:
    service, repository = _build_service(tmp_path, allow_unpriced_bookings=True)
    room_id = _hall(repository)

    result = service.confirm_booking(_candidate(room_id, cost_type=CostType.PER_ATTENDEE), DETAILS, now=NOW)

    assert isinstance(result, ConfirmedBooking)
    assert result.priced.lines[0].rate_missing
    stored = repository.get_cost_breakdown(result.reservation_id)
    assert stored["lines"][0]["rate_missing"] is True


def test_inactive_and_unknown_rooms_are_rejected(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    inactive_id = repository.create_room(Room(0, "Closed", 10, flat_rate=100, active=False))

    with pytest.raises(BookingValidationError):
        service.quote(_candidate(inactive_id))
    with pytest.raises(RoomNotFoundError):
        service.quote(_candidate(9999))


def test_availability_reflects_stored_bookings(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)
    service.confirm_booking(_candidate(room_id), DETAILS, now=NOW)

    index = service.availability(room_id, now=NOW, horizon_days=7)

    assert index.horizon_start == date(2025, 3, 9)
    assert index.booked_days() == ["2025-03-10"]
    assert not index.is_available(date(2025, 3, 10))
    assert index.is_available(date(2025, 3, 11))


def test_utilization_counts_only_approved_bookings(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)
    approved = service.confirm_booking(
        _candidate(room_id, datetime(2025, 3, 10, 0, 0), datetime(2025, 3, 10, 6, 0)),
        DETAILS,
        now=NOW,
    )
    service.confirm_booking(
        _candidate(room_id, datetime(2025, 3, 10, 12, 0), datetime(2025, 3, 10, 18, 0)),
        DETAILS,
        now=NOW,
    )
    service.update_status(approved.reservation_id, ReservationStatus.APPROVED)

    value = service.room_utilization(room_id, datetime(2025, 3, 10, 0, 0), datetime(2025, 3, 11, 0, 0))

    assert value == pytest.approx(25.0)


def test_seed_demo_rooms_only_once(tmp_path) -> None:
    _, repository = _build_service(tmp_path)

    repository.seed_demo_rooms_if_empty()
    repository.seed_demo_rooms_if_empty()

    assert [room.name for room in repository.list_rooms()] == ["Auditorium", "Meeting Room", "Event Hall"]


def test_booking_starting_before_today_is_refused(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)
    past = _candidate(room_id, datetime(2025, 3, 1, 9, 0), datetime(2025, 3, 1, 10, 0))

    with pytest.raises(BookingValidationError):
        service.confirm_booking(past, DETAILS, now=NOW)
    with pytest.raises(BookingValidationError):
        service.quote(past, now=NOW)
    assert repository.count_reservations() == 0


def test_booking_later_today_is_accepted(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)
    today = _candidate(room_id, datetime(2025, 3, 9, 7, 0), datetime(2025, 3, 9, 9, 0))

    assert isinstance(service.confirm_booking(today, DETAILS, now=NOW), ConfirmedBooking)


def test_day_timeline_beyond_horizon_shows_booked_hours(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)
    far = _candidate(room_id, datetime(2025, 7, 1, 9, 0), datetime(2025, 7, 1, 11, 0))
    service.confirm_booking(far, DETAILS, now=NOW)

    slots = service.day_timeline(room_id, date(2025, 7, 1), now=NOW)

    assert [slot.hour for slot in slots if not slot.available] == [9, 10, 11]


def test_day_timeline_for_past_day_has_no_available_slot(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)

    slots = service.day_timeline(room_id, date(2025, 3, 1), now=NOW)

    assert len(slots) == 24
    assert all(slot.past and not slot.available for slot in slots)


def test_invalid_room_is_not_stored(tmp_path) -> None:
    _, repository = _build_service(tmp_path)
    duplicate = Room(
        0,
        "Twin",
        10,
        flat_rate=100,
        facilities=(Facility("Projector", 100), Facility("Projector", 200)),
    )

    with pytest.raises(ValueError):
        repository.create_room(duplicate)
    with pytest.raises(ValueError):
        repository.create_room(Room(0, "Cheap", 10, flat_rate=-1))
    assert repository.list_rooms(active_only=False) == []


def test_finishing_records_agreed_cost_as_final_revenue(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)
    confirmed = service.confirm_booking(_candidate(room_id), DETAILS, now=NOW)
    service.update_status(confirmed.reservation_id, ReservationStatus.APPROVED)

    change = service.update_status(confirmed.reservation_id, ReservationStatus.FINISHED)

    assert change.final_revenue == 15000
    assert repository.get_final_revenue(confirmed.reservation_id) == 15000


def test_finishing_with_explicit_final_revenue(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)
    confirmed = service.confirm_booking(_candidate(room_id), DETAILS, now=NOW)
    service.update_status(confirmed.reservation_id, ReservationStatus.APPROVED)

    change = service.update_status(
        confirmed.reservation_id,
        ReservationStatus.FINISHED,
        final_revenue=12000,
    )

    assert change.final_revenue == 12000
    assert repository.get_cost_breakdown(confirmed.reservation_id)["grand_total"] == 15000


def test_final_revenue_only_accepted_when_finishing(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    room_id = _hall(repository)
    confirmed = service.confirm_booking(_candidate(room_id), DETAILS, now=NOW)

    with pytest.raises(BookingValidationError):
        service.update_status(
            confirmed.reservation_id,
            ReservationStatus.APPROVED,
            final_revenue=100,
        )
    assert repository.get_reservation_status(confirmed.reservation_id) is ReservationStatus.PENDING


def test_initialize_adds_final_revenue_to_older_databases(tmp_path) -> None:
    get_settings.cache_clear()
    settings = replace(get_settings(), database_path=tmp_path / "legacy.db", seed_demo_data=False)
    with sqlite3.connect(settings.database_path) as conn:
        conn.execute(
            "CREATE TABLE Reservations (id INTEGER PRIMARY KEY, title TEXT, start_time TEXT, "
            "end_time TEXT, status TEXT, agreed_cost INTEGER);"
        )
    conn.close()

    DataRepository(settings).initialize_database()

    with sqlite3.connect(settings.database_path) as conn:
        columns = {row[1] for row in conn.execute("PRAGMA table_info(Reservations);")}
    conn.close()
    assert "final_revenue" in columns


def test_overall_utilization_covers_active_rooms(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    hall_id = _hall(repository)
    quiet_id = repository.create_room(Room(0, "Quiet", 4, hourly_rate=500))
    repository.create_room(Room(0, "Closed", 4, hourly_rate=500, active=False))
    approved = service.confirm_booking(
        _candidate(hall_id, datetime(2025, 3, 10, 0, 0), datetime(2025, 3, 10, 12, 0)),
        DETAILS,
        now=NOW,
    )
    service.update_status(approved.reservation_id, ReservationStatus.APPROVED)

    values = service.overall_utilization(datetime(2025, 3, 10, 0, 0), datetime(2025, 3, 11, 0, 0))

    assert list(values) == [hall_id, quiet_id]
    assert values[hall_id] == pytest.approx(50.0)
    assert values[quiet_id] == 0.0
