"""Репозиторий броней - единственный писатель коллекции ``bookings``.

Порядок всегда один: сначала запись в хранилище, потом событие
``bookings-changed``. Подписчики в этой вкладке получают его синхронно и
видят уже сохранённые данные. Другие вкладки узнают об изменении через
``StorageEvent`` и перечитывают коллекцию сами.
"""
import time
from datetime import datetime
from typing import Callable, Iterable, List

from app.booking_status import can_cancel, cancellation_deadline, effective_status, transition
from app.errors import NotFound, SeatsAlreadyBooked
from app.events import BOOKINGS_CHANGED, EventBus
from app.logger import logger
from app.logging_service import log_action
from app.models import Booking, BookingContext, BookingStatus
from app.records import booking_to_dict, normalize_booking
from app.storage import LocalStorage

BOOKINGS_KEY = "bookings"
# Старые коллекции фронтенда, только чтение
LEGACY_KEYS = ("demoBookings", "userBookings")


class BookingRepository:

    def __init__(self, storage: LocalStorage, bus: EventBus):
        self.storage = storage
        self.bus = bus

    # --- чтение ---

    def _canonical(self) -> List[dict]:
        return self.storage.get_json(BOOKINGS_KEY, []) or []

    def _legacy(self) -> List[Booking]:
        bookings = []
        for key in LEGACY_KEYS:
            for raw in self.storage.get_json(key, []) or []:
                try:
                    bookings.append(normalize_booking(raw))
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping unreadable record in {key}: {e}")
        return bookings

    def all(self) -> List[Booking]:
        """Все брони, новые первыми. Каноническая запись важнее старой с тем же id"""
        bookings = {}
        for booking in self._legacy():
            bookings[booking.id] = booking
        for raw in self._canonical():
            booking = normalize_booking(raw)
            bookings[booking.id] = booking
        return sorted(bookings.values(), key=lambda b: b.booking_date, reverse=True)

    def list(self, user_id) -> List[Booking]:
        """Брони пользователя. Фильтр применяется при каждом чтении"""
        if user_id is None:
            return []
        return [b for b in self.all() if b.user_id == user_id]

    def get(self, booking_id) -> Booking:
        for booking in self.all():
            if booking.id == booking_id:
                return booking
        raise NotFound(f"Booking {booking_id} not found")

    def stats(self, user_id, now: datetime = None) -> dict:
        """Статистика для дашборда, считается из коллекции, а не кэшируется"""
        now = now or datetime.now()
        bookings = self.list(user_id)
        statuses = [effective_status(b, now) for b in bookings]
        return {
            "total_bookings": len(bookings),
            "upcoming_shows": sum(1 for s in statuses if s == BookingStatus.CONFIRMED),
            "completed_shows": sum(1 for s in statuses if s == BookingStatus.COMPLETED),
            "cancelled_bookings": sum(1 for s in statuses if s == BookingStatus.CANCELLED),
            "total_spent": round(sum(b.total_amount for b, s in zip(bookings, statuses)
                                     if s != BookingStatus.CANCELLED), 2),
        }

    def booked_seat_ids(self, show_id) -> set:
        """Места сеанса, занятые неотменёнными бронями"""
        return {
            seat.seat_id
            for booking in self.all()
            if booking.show.show_id == show_id and booking.status != BookingStatus.CANCELLED
            for seat in booking.seats
        }

    def ensure_available(self, context: BookingContext):
        taken = self.booked_seat_ids(context.show.show_id)
        labels = [seat.label for seat in context.seats if seat.seat_id in taken]
        if labels:
            raise SeatsAlreadyBooked(labels)

    # --- запись ---

    def _next_id(self) -> int:
        """Метка времени в мс, но строго больше любого существующего id"""
        candidate = int(time.time() * 1000)
        last = max((b.id for b in self.all() if isinstance(b.id, int)), default=0)
        return max(candidate, last + 1)

    def create(self, context: BookingContext, payment_method: str = None,
               transaction_id: str = None, now: datetime = None) -> Booking:
        with self.storage.lock():
            self.ensure_available(context)
            records = self._canonical()
            booking = Booking(
                id=self._next_id(),
                user_id=context.user_id,
                show=context.show,
                seats=list(context.seats),
                total_amount=context.total_amount,
                booking_date=now or datetime.now(),
                status=BookingStatus.CONFIRMED,
                payment_method=payment_method,
                transaction_id=transaction_id,
            )
            records.append(booking_to_dict(booking))
            self.storage.set_json(BOOKINGS_KEY, records)

        logger.info(f"Booking {booking.id} created for user {booking.user_id}, total {booking.total_amount}")
        log_action(
            action="CREATE_BOOKING",
            user_id=str(booking.user_id),
            details={
                "booking_id": booking.id,
                "show_id": booking.show.show_id,
                "seats": [s.label for s in booking.seats],
                "total_amount": booking.total_amount,
            }
        )
        self.bus.publish(BOOKINGS_CHANGED, {"booking_id": booking.id, "action": "created"})
        return booking

    def update_status(self, booking_id, new_status, reason: str = None, now: datetime = None) -> Booking:
        with self.storage.lock():
            current = self.get(booking_id)
            updated = transition(current, new_status, now=now, reason=reason)
            records = [r for r in self._canonical() if r.get("id") != booking_id]
            # старая запись переезжает в каноническую коллекцию при первом изменении
            records.append(booking_to_dict(updated))
            self.storage.set_json(BOOKINGS_KEY, records)

        logger.info(f"Booking {booking_id}: {current.status.value} -> {updated.status.value}")
        log_action(
            action="UPDATE_BOOKING_STATUS",
            user_id=str(updated.user_id),
            details={
                "booking_id": booking_id,
                "from": current.status.value,
                "to": updated.status.value,
                "refund_amount": updated.refund_amount,
            }
        )
        self.bus.publish(BOOKINGS_CHANGED, {"booking_id": booking_id, "action": "status"})
        return updated

    def cancel(self, booking_id, user_id, reason: str = None, now: datetime = None) -> Booking:
        """Отмена самим пользователем: чужие брони не видны"""
        booking = self.get(booking_id)
        if booking.user_id != user_id:
            raise NotFound(f"Booking {booking_id} not found")
        updated = self.update_status(booking_id, BookingStatus.CANCELLED, reason=reason, now=now)
        log_action(
            action="CANCEL_BOOKING",
            user_id=str(user_id),
            details={"booking_id": booking_id, "refund_amount": updated.refund_amount, "reason": reason}
        )
        return updated

    # --- подписка ---

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Единая точка подписки на изменения броней из этой и других вкладок.

        Колбэк вызывается без аргументов и должен сам перечитать ``list()``.
        """
        def on_event(detail):
            callback()

        def on_storage(event):
            if event.key in (BOOKINGS_KEY, None) or event.key in LEGACY_KEYS:
                callback()

        unsubscribe_bus = self.bus.subscribe(BOOKINGS_CHANGED, on_event)
        unsubscribe_storage = self.storage.add_listener(on_storage)

        def unsubscribe():
            unsubscribe_bus()
            unsubscribe_storage()

        return unsubscribe


def merge_remote(local: Iterable[Booking], remote: Iterable[Booking]) -> List[Booking]:
    """Брони из API + локальные; при совпадении id побеждает локальная"""
    merged = {b.id: b for b in remote}
    merged.update({b.id: b for b in local})
    return sorted(merged.values(), key=lambda b: b.booking_date, reverse=True)


def booking_view(booking: Booking, now: datetime = None) -> dict:
    """Ответ для клиента: каноническая запись + вычисляемые поля"""
    now = now or datetime.now()
    data = booking_to_dict(booking)
    data["reference"] = booking.reference
    data["status"] = effective_status(booking, now).value
    data["can_cancel"] = can_cancel(booking, now)
    data["cancellation_deadline"] = cancellation_deadline(booking).isoformat()
    return data
