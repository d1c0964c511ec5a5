import threading
from typing import Dict

from app.api_client import BookingApi, build_client
from app.auth import SessionHolder
from app.bookings import BookingRepository
from app.checkout import Checkout
from app.config import PROCESSING_DELAY, RESERVE_DEBOUNCE_SECONDS, STORAGE_FILE
from app.errors import StateError
from app.events import SESSION_CHANGED, EventBus
from app.logger import logger
from app.notifications import NotificationCenter
from app.payments import SimulatedGateway
from app.seat_selection import SeatSelection
from app.storage import LocalStorage
from app.wishlist import Wishlist


class Storefront:
    """Состояние одной вкладки витрины: сессия, выбор мест, оформления заказа"""

    def __init__(self, storage_path: str = STORAGE_FILE, client: BookingApi = None,
                 debounce_seconds: float = RESERVE_DEBOUNCE_SECONDS,
                 processing_delay: float = PROCESSING_DELAY):
        self.storage = LocalStorage(storage_path)
        self.bus = EventBus()
        self.session = SessionHolder(self.storage, bus=self.bus)
        self.client = client or build_client(
            token_provider=self.session.current_token,
            on_unauthorized=self.session.clear,
        )
        self.session.client = self.client
        self.bookings = BookingRepository(self.storage, self.bus)
        self.notifications = NotificationCenter(self.storage, self.bus)
        self.wishlist = Wishlist(self.storage, self.bus)
        self.gateway = SimulatedGateway()
        self.debounce_seconds = debounce_seconds
        self.processing_delay = processing_delay

        self.selections: Dict[int, SeatSelection] = {}
        self.checkouts: Dict[str, Checkout] = {}
        # сеанс -> id открытого оформления; на один выбор мест оплатить можно только одно
        self.open_checkouts: Dict[int, str] = {}
        self._lock = threading.RLock()
        # выбор мест и корзины принадлежат пользователю, при смене сессии сбрасываем
        self.bus.subscribe(SESSION_CHANGED, lambda detail: self.reset())

    def reset(self):
        with self._lock:
            for selection in self.selections.values():
                selection.close()
            self.selections.clear()
            self.checkouts.clear()
            self.open_checkouts.clear()
        logger.info("Session changed, selections and checkouts reset")

    def selection_for(self, show_id: int, reload: bool = False) -> SeatSelection:
        user = self.session.require_user()
        with self._lock:
            selection = self.selections.get(show_id)
            if selection is not None and selection.user.id != user.id:
                selection.close()
                selection = None
            if selection is None:
                show = self.client.get_show(show_id)
                selection = SeatSelection(self.client, show, self.session,
                                          debounce_seconds=self.debounce_seconds,
                                          booked_seats=lambda: self.bookings.booked_seat_ids(show_id))
                self.selections[show_id] = selection
                reload = True
        if reload:
            selection.load_seat_map()
        return selection

    def start_checkout(self, show_id: int) -> Checkout:
        """Перейти к оплате. Повторный вызов для того же выбора возвращает то же оформление"""
        selection = self.selection_for(show_id)
        with self._lock:
            current = self.checkouts.get(self.open_checkouts.get(show_id))
            if current is not None and current.booking is None:
                if [s.seat_id for s in current.context.seats] == list(selection.selected):
                    return current
                # выбор изменился: старое оформление больше нельзя оплатить
                self.checkouts.pop(current.context.id, None)

            context = selection.confirm_selection()
            checkout = Checkout(context, self.bookings, gateway=self.gateway,
                                notifications=self.notifications,
                                processing_delay=self.processing_delay)
            self.checkouts[context.id] = checkout
            self.open_checkouts[show_id] = context.id
        logger.info(f"Checkout {context.id} started for show {show_id}, total {context.total_amount}")
        return checkout

    def checkout(self, checkout_id: str) -> Checkout:
        user = self.session.require_user()
        checkout = self.checkouts.get(checkout_id)
        if checkout is None or checkout.context.user_id != user.id:
            raise StateError("No booking data found. Please select seats first.")
        return checkout

    def finish_selection(self, show_id: int):
        with self._lock:
            selection = self.selections.pop(show_id, None)
            self.open_checkouts.pop(show_id, None)
        if selection is not None:
            selection.close()

    def close(self):
        self.reset()
