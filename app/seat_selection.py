import threading
import uuid
from collections import OrderedDict
from typing import Dict, List

from app.config import HOLD_MINUTES, MAX_SEATS, RESERVE_DEBOUNCE_SECONDS
from app.errors import AuthError, LoadError, NetworkError, NotFound, SelectionLimitExceeded, ValidationError
from app.logger import logger
from app.logging_service import log_action
from app.models import BookedSeat, BookingContext, Seat, Show, ShowSnapshot
from app.pricing import seat_price


class SeatSelection:
    """Выбор мест на сеанс с мягким удержанием.

    После каждого изменения выбора запрос на удержание откладывается на
    ``debounce_seconds``; новое изменение отменяет предыдущий таймер, так что
    уходит только последнее состояние. Неудачное удержание не мешает
    продолжить: места остаются выбранными, но не помечаются как наши.
    Освобождение удержания - забота сервера (TTL).
    """

    def __init__(self, client, show: Show, session, debounce_seconds: float = RESERVE_DEBOUNCE_SECONDS,
                 hold_minutes: int = HOLD_MINUTES, max_seats: int = MAX_SEATS,
                 timer_factory=threading.Timer, booked_seats=None):
        self.user = session.require_user()
        self.client = client
        self.show = show
        self.debounce_seconds = debounce_seconds
        self.hold_minutes = hold_minutes
        self.max_seats = max_seats
        self.timer_factory = timer_factory
        # места, уже проданные локальными бронями (демо-сервер о них не знает)
        self.booked_seats = booked_seats or (lambda: set())

        self.seats: Dict[int, Seat] = {}
        self.rows: "OrderedDict[str, List[Seat]]" = OrderedDict()
        self.selected: List[int] = []
        self.reserved_by_me = set()
        self.last_reservation_error = None
        self._timer = None
        self._lock = threading.RLock()

    # --- схема зала ---

    def load_seat_map(self) -> "OrderedDict[str, List[Seat]]":
        logger.info(f"Loading seat layout for show {self.show.id}")
        try:
            seats = self.client.get_seats_by_show(self.show.id)
        except NetworkError as e:
            with self._lock:
                self.seats, self.rows = {}, OrderedDict()
            logger.error(f"Error loading seats for show {self.show.id}: {e}")
            raise LoadError("Failed to load seat layout")

        booked = self.booked_seats()
        for seat in seats:
            if seat.id in booked:
                seat.is_available = False

        rows = OrderedDict()
        for seat in seats:
            rows.setdefault(seat.seat_row, []).append(seat)
        for row_seats in rows.values():
            row_seats.sort(key=lambda s: s.number)

        with self._lock:
            self.rows = rows
            self.seats = {seat.id: seat for seat in seats}
            self.selected = [seat_id for seat_id in self.selected
                             if seat_id in self.seats and self.seats[seat_id].is_available]
        return rows

    def is_blocked_by_other(self, seat: Seat) -> bool:
        return seat.is_blocked and seat.id not in self.reserved_by_me

    # --- выбор ---

    def toggle_seat(self, seat_id: int) -> bool:
        """Выбрать/снять место. Возвращает True, если выбор изменился"""
        with self._lock:
            seat = self.seats.get(seat_id)
            if seat is None:
                raise NotFound(f"Seat {seat_id} not found for show {self.show.id}")
            if not seat.is_available or self.is_blocked_by_other(seat):
                return False

            if seat_id in self.selected:
                self.selected.remove(seat_id)
            else:
                if len(self.selected) >= self.max_seats:
                    raise SelectionLimitExceeded(self.max_seats)
                self.selected.append(seat_id)

            if self.selected:
                self._schedule_reservation()
            else:
                self._cancel_timer()
        return True

    @property
    def selected_seats(self) -> List[Seat]:
        return [self.seats[seat_id] for seat_id in self.selected]

    def price_of(self, seat: Seat) -> float:
        return seat_price(seat.seat_type, self.show.price)

    @property
    def total(self) -> float:
        return sum(self.price_of(seat) for seat in self.selected_seats)

    def is_held(self, seat_id: int) -> bool:
        return seat_id in self.reserved_by_me

    # --- удержание ---

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_reservation(self):
        self._cancel_timer()
        if self.debounce_seconds <= 0:
            self._reserve()
            return
        self._timer = self.timer_factory(self.debounce_seconds, self._reserve)
        self._timer.daemon = True
        self._timer.start()

    @property
    def reservation_pending(self) -> bool:
        return self._timer is not None

    def _reserve(self):
        with self._lock:
            self._timer = None
            pending = [seat_id for seat_id in self.selected if seat_id not in self.reserved_by_me]
        if not pending:
            return

        try:
            self.client.reserve_seats(pending, self.show.id, hold_minutes=self.hold_minutes)
        except (NetworkError, AuthError) as e:
            # не блокируем пользователя, но и не считаем места удержанными
            self.last_reservation_error = e.message
            logger.warning(f"Error blocking seats {pending} for show {self.show.id}: {e}")
            return

        with self._lock:
            # пока шёл запрос, часть мест могли снять с выбора
            self.reserved_by_me.update(seat_id for seat_id in pending if seat_id in self.selected)
            self.last_reservation_error = None
        logger.info(f"Seats {pending} held for show {self.show.id} ({self.hold_minutes} min)")
        log_action(
            action="RESERVE_SEATS",
            user_id=self.user.email,
            details={"show_id": self.show.id, "seat_ids": pending, "hold_minutes": self.hold_minutes}
        )

    def flush_reservation(self):
        """Отправить отложенный запрос на удержание прямо сейчас"""
        with self._lock:
            if self._timer is None:
                return
            self._cancel_timer()
        self._reserve()

    def close(self):
        with self._lock:
            self._cancel_timer()

    # --- переход к оплате ---

    def view(self) -> dict:
        with self._lock:
            seats = [
                {
                    "id": seat.id,
                    "label": seat.label,
                    "seat_type": seat.seat_type.value,
                    "price": self.price_of(seat),
                    "held": self.is_held(seat.id),
                }
                for seat in self.selected_seats
            ]
            return {
                "show_id": self.show.id,
                "base_price": self.show.price,
                "seats": seats,
                "total": self.total,
                "max_seats": self.max_seats,
                "reservation_pending": self.reservation_pending,
                "all_held": all(s["held"] for s in seats) if seats else False,
                "reservation_error": self.last_reservation_error,
            }

    def confirm_selection(self) -> BookingContext:
        with self._lock:
            if not self.selected:
                raise ValidationError({"seats": "Please select at least one seat"})
        self.flush_reservation()

        with self._lock:
            seats = [
                BookedSeat(seat_id=seat.id, label=seat.label, seat_type=seat.seat_type, price=self.price_of(seat))
                for seat in self.selected_seats
            ]
        return BookingContext(
            id=uuid.uuid4().hex,
            user_id=self.user.id,
            show=ShowSnapshot.from_show(self.show),
            seats=seats,
            total_amount=sum(seat.price for seat in seats),
        )
