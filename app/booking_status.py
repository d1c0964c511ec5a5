"""Жизненный цикл брони.

    CONFIRMED -> CANCELLED   пользователь, пока не прошёл дедлайн отмены
    CONFIRMED -> COMPLETED   сеанс уже начался

COMPLETED вычисляется при чтении из времени сеанса, фоновая задача не нужна.
Если его всё же сохраняют, переход разрешён только когда сеанс начался,
чтобы сохранённое значение совпадало с вычисленным.
"""
from dataclasses import replace
from datetime import datetime, timedelta

from app.config import CANCELLATION_CUTOFF_HOURS, REFUND_RATE
from app.errors import CancellationWindowClosed, InvalidTransition
from app.models import Booking, BookingStatus


def cancellation_deadline(booking: Booking) -> datetime:
    return booking.show.starts_at - timedelta(hours=CANCELLATION_CUTOFF_HOURS)


def effective_status(booking: Booking, now: datetime = None) -> BookingStatus:
    now = now or datetime.now()
    if booking.status == BookingStatus.CONFIRMED and booking.show.starts_at <= now:
        return BookingStatus.COMPLETED
    return booking.status


def can_cancel(booking: Booking, now: datetime = None) -> bool:
    now = now or datetime.now()
    return effective_status(booking, now) == BookingStatus.CONFIRMED and now < cancellation_deadline(booking)


def refund_for(booking: Booking) -> float:
    return round(booking.total_amount * REFUND_RATE, 2)


def transition(booking: Booking, new_status, now: datetime = None, reason: str = None) -> Booking:
    """Вернуть новую запись с применённым переходом. Исходная не меняется"""
    now = now or datetime.now()
    new_status = BookingStatus(getattr(new_status, "value", new_status))
    if booking.status != BookingStatus.CONFIRMED:
        raise InvalidTransition(booking.status, new_status)

    if new_status == BookingStatus.COMPLETED:
        if booking.show.starts_at > now:
            raise InvalidTransition(booking.status, new_status, "Show has not started yet")
        return replace(booking, status=BookingStatus.COMPLETED)

    if new_status == BookingStatus.CANCELLED:
        current = effective_status(booking, now)
        if current != BookingStatus.CONFIRMED:
            raise InvalidTransition(current, new_status)
        deadline = cancellation_deadline(booking)
        if now >= deadline:
            raise CancellationWindowClosed(
                current, new_status,
                f"Cancellation closed at {deadline.isoformat(timespec='minutes')}",
            )
        return replace(
            booking,
            status=BookingStatus.CANCELLED,
            cancelled_at=now,
            cancellation_reason=reason or "User requested cancellation",
            refund_amount=refund_for(booking),
        )

    raise InvalidTransition(booking.status, new_status)
