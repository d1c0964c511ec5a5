from datetime import date, datetime, time

import pytest

from app.booking_status import can_cancel, cancellation_deadline, effective_status, refund_for, transition
from app.errors import CancellationWindowClosed, InvalidTransition
from app.models import Booking, BookingStatus
from conftest import make_context

SHOW_START = datetime(2030, 1, 10, 19, 30)


def make_booking(status=BookingStatus.CONFIRMED, total=600.0):
    context = make_context(show_date=date(2030, 1, 10), show_time=time(19, 30))
    return Booking(
        id=1700000000000,
        user_id=1,
        show=context.show,
        seats=context.seats,
        total_amount=total,
        booking_date=datetime(2030, 1, 1, 12, 0),
        status=status,
    )


def test_deadline_is_two_hours_before_show():
    assert cancellation_deadline(make_booking()) == datetime(2030, 1, 10, 17, 30)


def test_cancel_before_deadline_refunds_ninety_percent():
    booking = make_booking()
    now = datetime(2030, 1, 9, 10, 0)
    assert can_cancel(booking, now)

    cancelled = transition(booking, BookingStatus.CANCELLED, now=now)

    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.refund_amount == 540
    assert cancelled.cancelled_at == now
    assert cancelled.cancellation_reason == "User requested cancellation"
    assert booking.status == BookingStatus.CONFIRMED


def test_refund_is_rounded():
    assert refund_for(make_booking(total=333.33)) == 300.0


def test_cancel_after_deadline():
    booking = make_booking()
    now = datetime(2030, 1, 10, 18, 0)
    assert not can_cancel(booking, now)
    with pytest.raises(CancellationWindowClosed):
        transition(booking, BookingStatus.CANCELLED, now=now)


def test_confirmed_reads_as_completed_after_start():
    booking = make_booking()
    assert effective_status(booking, datetime(2030, 1, 10, 19, 0)) == BookingStatus.CONFIRMED
    assert effective_status(booking, SHOW_START) == BookingStatus.COMPLETED


def test_completed_cannot_be_cancelled():
    with pytest.raises(InvalidTransition):
        transition(make_booking(), BookingStatus.CANCELLED, now=datetime(2030, 1, 11))


def test_complete_only_after_show_started():
    booking = make_booking()
    with pytest.raises(InvalidTransition):
        transition(booking, BookingStatus.COMPLETED, now=datetime(2030, 1, 10, 12, 0))
    completed = transition(booking, "COMPLETED", now=datetime(2030, 1, 10, 22, 0))
    assert completed.status == BookingStatus.COMPLETED


@pytest.mark.parametrize("status", [BookingStatus.CANCELLED, BookingStatus.COMPLETED])
def test_terminal_states(status):
    booking = make_booking(status=status)
    for target in BookingStatus:
        with pytest.raises(InvalidTransition):
            transition(booking, target, now=datetime(2030, 1, 1))


def test_cancelled_never_reads_as_completed():
    booking = make_booking(status=BookingStatus.CANCELLED)
    assert effective_status(booking, datetime(2031, 1, 1)) == BookingStatus.CANCELLED
