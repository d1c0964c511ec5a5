import threading
import time
from typing import Optional

from app.config import PROCESSING_DELAY
from app.errors import CheckoutError, CheckoutInProgress, StateError, ValidationError
from app.logger import logger
from app.models import Booking, BookingContext
from app.payments import SimulatedGateway, masked_details, validate_payment


class Checkout:
    """Оформление одной брони из контекста выбора мест.

    Пока ``confirm`` выполняется, повторный вызов отклоняется (двойной клик).
    После успеха повторный вызов возвращает ту же бронь, новая не создаётся.
    """

    def __init__(self, context: Optional[BookingContext], repository, gateway: SimulatedGateway = None,
                 notifications=None, processing_delay: float = PROCESSING_DELAY):
        if context is None:
            raise StateError("No booking data found. Please select seats first.")
        self.context = context
        self.repository = repository
        self.gateway = gateway or SimulatedGateway()
        self.notifications = notifications
        self.processing_delay = processing_delay
        self.booking: Optional[Booking] = None
        self._in_flight = threading.Lock()

    @property
    def processing(self) -> bool:
        return self._in_flight.locked()

    def confirm(self, form: dict) -> Booking:
        if self.booking is not None:
            return self.booking

        errors = validate_payment(form)
        if errors:
            raise ValidationError(errors)

        if not self._in_flight.acquire(blocking=False):
            raise CheckoutInProgress("Payment is already being processed")
        try:
            # кто-то успел завершить оплату, пока мы ждали
            if self.booking is not None:
                return self.booking

            logger.info(f"Processing checkout {self.context.id}, amount {self.context.total_amount}")
            if self.processing_delay > 0:
                time.sleep(self.processing_delay)

            # проданные места не оплачиваем
            self.repository.ensure_available(self.context)
            transaction_id = self.gateway.authorize(self.context.total_amount, form)
            try:
                booking = self.repository.create(
                    self.context,
                    payment_method=masked_details(form)["payment_method"],
                    transaction_id=transaction_id,
                )
            except OSError as e:
                logger.error(f"Failed to store booking for checkout {self.context.id}: {e}")
                raise CheckoutError("Booking could not be saved. Please try again.")

            self.booking = booking
        finally:
            self._in_flight.release()

        if self.notifications is not None:
            self.notifications.booking_confirmed(booking)
        return booking

    def summary(self) -> dict:
        show = self.context.show
        return {
            "checkout_id": self.context.id,
            "movie_title": show.movie_title,
            "venue_name": show.venue_name,
            "show_date": show.show_date.isoformat(),
            "show_time": show.show_time.strftime("%H:%M"),
            "seats": [seat.label for seat in self.context.seats],
            "total_amount": self.context.total_amount,
            "processing": self.processing,
            "booking_id": self.booking.id if self.booking else None,
        }
