import json
from datetime import date, datetime, time

import pytest

from app.bookings import BookingRepository, booking_view, merge_remote
from app.errors import NotFound, SeatsAlreadyBooked
from app.events import BOOKINGS_CHANGED, EventBus
from app.models import BookingStatus, SeatType
from app.storage import LocalStorage
from conftest import FAR_FUTURE, make_context


def test_create_and_list_for_owner_only(repository):
    mine = repository.create(make_context(user_id=1))
    theirs = repository.create(make_context(user_id=7, show_id=3))

    assert [b.id for b in repository.list(1)] == [mine.id]
    assert [b.id for b in repository.list(7)] == [theirs.id]
    assert repository.list(None) == []
    assert theirs.id > mine.id


def test_get_unknown_booking(repository):
    with pytest.raises(NotFound):
        repository.get(42)


def test_record_survives_new_repository(storage_path, repository):
    booking = repository.create(make_context(), payment_method="upi", transaction_id="TXN1")

    reread = BookingRepository(LocalStorage(storage_path), EventBus()).get(booking.id)

    assert reread.transaction_id == "TXN1"
    assert reread.seats[0].seat_type == SeatType.PREMIUM
    assert reread.show.show_time == time(19, 30)
    assert reread.total_amount == 600


def test_write_then_in_page_event(repository, bus):
    seen = []
    bus.subscribe(BOOKINGS_CHANGED, lambda detail: seen.append((detail, len(repository.all()))))

    booking = repository.create(make_context())

    assert seen == [({"booking_id": booking.id, "action": "created"}, 1)]


def test_other_tab_is_notified(storage_path, repository):
    other_tab = BookingRepository(LocalStorage(storage_path), EventBus())
    refreshed = []
    other_tab.subscribe(lambda: refreshed.append([b.id for b in other_tab.list(1)]))

    booking = repository.create(make_context())

    assert refreshed == [[booking.id]]


def test_writer_tab_does_not_get_storage_event(storage):
    events = []
    storage.add_listener(events.append)
    storage.set_item("bookings", "[]")
    assert events == []


def test_poll_picks_up_external_write(storage_path, storage):
    events = []
    storage.add_listener(events.append)
    with open(storage_path, "w", encoding="utf-8") as f:
        json.dump({"bookings": "[]"}, f)

    assert storage.poll() == 1
    assert events[0].key == "bookings"
    assert storage.poll() == 0


def test_unsubscribe(repository):
    calls = []
    unsubscribe = repository.subscribe(lambda: calls.append(1))
    unsubscribe()
    repository.create(make_context())
    assert calls == []


def test_legacy_collections_are_read(storage, repository):
    storage.set_json("demoBookings", [{
        "id": 1001,
        "userId": 1,
        "movieTitle": "Dune: Part Two",
        "venueName": "PVR Forum Mall",
        "showDate": "2030-02-01",
        "showTime": "07:30 PM",
        "seats": [{"seatNumber": "G1", "type": "PREMIUM", "price": 350}],
        "totalAmount": 350,
        "bookingDate": "2030-01-01T10:00:00Z",
        "status": "confirmed",
    }])
    storage.set_json("userBookings", [{
        "id": 1002,
        "movieTitle": "Oppenheimer",
        "showDate": "2030-02-02",
        "showTime": "22:00",
        "seats": ["A1", "A2"],
        "totalAmount": 300,
        "bookingDate": "2030-01-02T10:00:00",
    }])

    [legacy] = repository.list(1)
    assert legacy.id == 1001
    assert legacy.status == BookingStatus.CONFIRMED
    assert legacy.show.show_time == time(19, 30)
    assert legacy.seats[0].label == "G1"
    assert {b.id for b in repository.all()} == {1001, 1002}


def test_legacy_booking_cancel_moves_to_canonical(storage, repository):
    storage.set_json("demoBookings", [{
        "id": 1001, "userId": 1, "movieTitle": "Dune: Part Two", "showDate": "2030-02-01",
        "showTime": "19:30", "seats": [], "totalAmount": 500, "bookingDate": "2030-01-01T10:00:00",
    }])

    cancelled = repository.cancel(1001, 1, now=FAR_FUTURE)

    assert cancelled.refund_amount == 450
    assert repository.get(1001).status == BookingStatus.CANCELLED
    assert len(storage.get_json("demoBookings")) == 1
    assert [r["id"] for r in storage.get_json("bookings")] == [1001]


def test_cancel_someone_elses_booking(repository):
    booking = repository.create(make_context(user_id=7))
    with pytest.raises(NotFound):
        repository.cancel(booking.id, 1, now=FAR_FUTURE)
    assert repository.get(booking.id).status == BookingStatus.CONFIRMED


def test_stats_are_derived(repository):
    upcoming = repository.create(make_context(show_date=date(2030, 1, 10)), now=datetime(2029, 12, 1))
    repository.create(make_context(show_id=3, show_date=date(2029, 12, 1), show_time=time(10, 0)),
                      now=datetime(2029, 11, 1))
    cancelled = repository.create(make_context(show_id=4, show_date=date(2030, 1, 12)), now=datetime(2029, 12, 2))
    repository.cancel(cancelled.id, 1, now=FAR_FUTURE)

    stats = repository.stats(1, now=datetime(2030, 1, 5))

    assert stats == {
        "total_bookings": 3,
        "upcoming_shows": 1,
        "completed_shows": 1,
        "cancelled_bookings": 1,
        "total_spent": 1200.0,
    }
    assert upcoming.id in [b.id for b in repository.list(1)]


def test_booking_view_has_derived_fields(repository):
    booking = repository.create(make_context(show_date=date(2030, 1, 10)))

    view = booking_view(booking, now=datetime(2030, 1, 9))
    assert view["reference"] == f"BK{booking.id}"
    assert view["status"] == "CONFIRMED"
    assert view["can_cancel"] is True
    assert view["cancellation_deadline"] == "2030-01-10T17:30:00"

    later = booking_view(booking, now=datetime(2030, 1, 11))
    assert later["status"] == "COMPLETED"
    assert later["can_cancel"] is False


def test_merge_remote_prefers_local(repository):
    local = repository.create(make_context())
    remote_copy = repository.get(local.id)
    remote_copy.status = BookingStatus.CANCELLED
    remote_only = repository.create(make_context(user_id=5, show_id=5))

    merged = merge_remote([local], [remote_copy, remote_only])

    assert {b.id for b in merged} == {local.id, remote_only.id}
    assert next(b for b in merged if b.id == local.id).status == BookingStatus.CONFIRMED


def test_same_seat_cannot_be_booked_twice(repository):
    repository.create(make_context(user_id=1))

    with pytest.raises(SeatsAlreadyBooked) as exc:
        repository.create(make_context(user_id=7))

    assert exc.value.labels == ["G1", "C1"]
    assert exc.value.status_code == 409
    assert len(repository.all()) == 1
    assert repository.booked_seat_ids(2) == {1061, 1021}
    assert repository.booked_seat_ids(3) == set()


def test_cancelled_booking_frees_its_seats(repository):
    booking = repository.create(make_context(user_id=1))
    repository.cancel(booking.id, 1, now=FAR_FUTURE)

    assert repository.booked_seat_ids(2) == set()
    assert repository.create(make_context(user_id=7)).user_id == 7


def test_booking_keeps_prices_after_base_price_change(storefront, demo_client, card_form):
    storefront.session.login("demo@example.com", "demo123")
    selection = storefront.selection_for(2)
    selection.toggle_seat(2061)
    selection.toggle_seat(2021)
    booking = storefront.start_checkout(2).confirm(card_form)

    demo_client._shows[2].price = 999.0
    reread = storefront.bookings.get(booking.id)

    assert reread.total_amount == 600
    assert [(s.label, s.price) for s in reread.seats] == [("G1", 350), ("C1", 250)]
    assert storefront.selection_for(2).price_of(selection.seats[2061]) == 1099
