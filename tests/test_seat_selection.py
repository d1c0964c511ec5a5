import pytest

from app.api_client import FallbackClient
from app.auth import SessionHolder
from app.errors import AuthError, LoadError, NetworkError, NotFound, SelectionLimitExceeded, ValidationError
from app.seat_selection import SeatSelection


class FakeTimer:
    """Таймер, который срабатывает только по команде теста"""
    created = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.cancelled = False
        self.started = False
        self.daemon = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


class RecordingClient(FallbackClient):

    def __init__(self, fail_reserve=False, fail_seats=False):
        super().__init__()
        self.reserve_calls = []
        self.fail_reserve = fail_reserve
        self.fail_seats = fail_seats

    def reserve_seats(self, seat_ids, show_id, hold_minutes=10):
        self.reserve_calls.append(list(seat_ids))
        if self.fail_reserve:
            raise NetworkError("Booking API unavailable")
        return super().reserve_seats(seat_ids, show_id, hold_minutes)

    def get_seats_by_show(self, show_id):
        if self.fail_seats:
            raise NetworkError("Booking API unavailable")
        return super().get_seats_by_show(show_id)


def make_selection(session, client, show_id=2, **kwargs):
    kwargs.setdefault("debounce_seconds", 0)
    selection = SeatSelection(client, client.get_show(show_id), session, **kwargs)
    selection.load_seat_map()
    return selection


def test_requires_signed_in_user(storage, demo_client):
    anonymous = SessionHolder(storage, client=demo_client)
    with pytest.raises(AuthError):
        SeatSelection(demo_client, demo_client.get_show(1), anonymous)


def test_seat_map_grouped_by_row_and_sorted(session, demo_client):
    selection = make_selection(session, demo_client)
    assert list(selection.rows) == ["A", "B", "C", "D", "E", "F", "G", "H"]
    assert [s.number for s in selection.rows["A"]] == list(range(1, 11))
    assert selection.rows["G"][0].label == "G1"


def test_toggle_selects_prices_and_holds(session, demo_client):
    selection = make_selection(session, demo_client)
    assert selection.toggle_seat(2061) is True
    assert selection.toggle_seat(2021) is True

    view = selection.view()
    assert [s["label"] for s in view["seats"]] == ["G1", "C1"]
    assert [s["price"] for s in view["seats"]] == [350, 250]
    assert view["total"] == 600
    assert view["all_held"] is True
    assert view["reservation_pending"] is False


def test_toggle_twice_deselects(session, demo_client):
    selection = make_selection(session, demo_client)
    selection.toggle_seat(2001)
    selection.toggle_seat(2001)
    assert selection.selected == []
    assert selection.total == 0


def test_eleventh_seat_is_rejected(session, demo_client):
    selection = make_selection(session, demo_client)
    for seat_id in range(2021, 2031):
        selection.toggle_seat(seat_id)
    with pytest.raises(SelectionLimitExceeded) as exc:
        selection.toggle_seat(2031)
    assert exc.value.limit == 10
    assert len(selection.selected) == 10
    assert 2031 not in selection.selected


def test_unknown_seat(session, demo_client):
    selection = make_selection(session, demo_client)
    with pytest.raises(NotFound):
        selection.toggle_seat(999999)


def test_seat_held_by_someone_else_is_not_selectable(session, demo_client):
    demo_client.reserve_seats([2005], 2)
    selection = make_selection(session, demo_client)
    assert selection.toggle_seat(2005) is False
    assert selection.selected == []


def test_reservation_is_debounced_to_last_state(session):
    client = RecordingClient()
    FakeTimer.created = []
    selection = make_selection(session, client, debounce_seconds=0.5, timer_factory=FakeTimer)

    selection.toggle_seat(2001)
    selection.toggle_seat(2002)
    selection.toggle_seat(2003)
    assert client.reserve_calls == []
    assert selection.view()["reservation_pending"] is True

    active = [t for t in FakeTimer.created if not t.cancelled]
    assert len(active) == 1
    assert active[0].interval == 0.5
    active[0].fire()

    assert client.reserve_calls == [[2001, 2002, 2003]]
    assert selection.view()["all_held"] is True


def test_confirm_flushes_pending_reservation(session):
    client = RecordingClient()
    FakeTimer.created = []
    selection = make_selection(session, client, debounce_seconds=0.5, timer_factory=FakeTimer)
    selection.toggle_seat(2061)

    context = selection.confirm_selection()

    assert client.reserve_calls == [[2061]]
    assert context.total_amount == 350
    assert selection.is_held(2061)


def test_failed_hold_keeps_selection_unheld(session):
    client = RecordingClient(fail_reserve=True)
    selection = make_selection(session, client)

    assert selection.toggle_seat(2021) is True
    view = selection.view()
    assert [s["id"] for s in view["seats"]] == [2021]
    assert view["all_held"] is False
    assert view["reservation_error"]

    client.fail_reserve = False
    selection.toggle_seat(2022)
    assert client.reserve_calls[-1] == [2021, 2022]
    assert selection.view()["all_held"] is True
    assert selection.view()["reservation_error"] is None


def test_load_error_clears_seat_map(session):
    client = RecordingClient()
    selection = make_selection(session, client)
    client.fail_seats = True
    with pytest.raises(LoadError):
        selection.load_seat_map()
    assert selection.seats == {}
    assert LoadError.retryable is True


def test_confirm_requires_seats(session, demo_client):
    selection = make_selection(session, demo_client)
    with pytest.raises(ValidationError) as exc:
        selection.confirm_selection()
    assert "seats" in exc.value.errors


def test_confirm_captures_prices(session, demo_client):
    selection = make_selection(session, demo_client)
    selection.toggle_seat(2061)
    selection.toggle_seat(2021)

    context = selection.confirm_selection()

    assert context.user_id == 1
    assert context.show.show_id == 2
    assert [(s.label, s.price) for s in context.seats] == [("G1", 350), ("C1", 250)]
    assert context.total_amount == 600


def test_seat_deselected_during_hold_is_not_kept(session):
    FakeTimer.created = []

    class DeselectingClient(RecordingClient):
        def reserve_seats(self, seat_ids, show_id, hold_minutes=10):
            result = super().reserve_seats(seat_ids, show_id, hold_minutes)
            selection.toggle_seat(2021)
            return result

    client = DeselectingClient()
    selection = make_selection(session, client, debounce_seconds=0.5, timer_factory=FakeTimer)
    selection.toggle_seat(2061)
    selection.toggle_seat(2021)

    FakeTimer.created[-1].fire()

    assert client.reserve_calls == [[2061, 2021]]
    assert selection.selected == [2061]
    assert selection.is_held(2061)
    assert not selection.is_held(2021)


def test_locally_booked_seats_are_unavailable(session, demo_client):
    selection = make_selection(session, demo_client, booked_seats=lambda: {2061})

    assert selection.seats[2061].is_available is False
    assert selection.toggle_seat(2061) is False
    assert selection.toggle_seat(2021) is True
    assert selection.selected == [2021]


def test_reload_drops_seat_booked_meanwhile(session, demo_client):
    booked = set()
    selection = make_selection(session, demo_client, booked_seats=lambda: booked)
    selection.toggle_seat(2061)
    selection.toggle_seat(2021)

    booked.add(2061)
    selection.load_seat_map()

    assert selection.selected == [2021]
