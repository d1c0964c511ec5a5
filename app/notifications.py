from dataclasses import asdict
from typing import List

from app.events import NOTIFICATIONS_CHANGED, EventBus
from app.errors import NotFound
from app.logger import logger
from app.models import Booking, Notification
from app.storage import LocalStorage

NOTIFICATIONS_KEY = "notifications"


class NotificationCenter:
    """Уведомления пользователя в локальном хранилище"""

    def __init__(self, storage: LocalStorage, bus: EventBus):
        self.storage = storage
        self.bus = bus

    def _load(self) -> List[Notification]:
        return [Notification(**n) for n in self.storage.get_json(NOTIFICATIONS_KEY, []) or []]

    def _save(self, notifications: List[Notification], detail: dict):
        self.storage.set_json(NOTIFICATIONS_KEY, [asdict(n) for n in notifications])
        self.bus.publish(NOTIFICATIONS_CHANGED, detail)

    def push(self, user_id: int, kind: str, title: str, message: str, booking_id: int = None) -> Notification:
        with self.storage.lock():
            notifications = self._load()
            notification = Notification(
                id=max((n.id for n in notifications), default=0) + 1,
                user_id=user_id,
                kind=kind,
                title=title,
                message=message,
                booking_id=booking_id,
            )
            notifications.append(notification)
            self._save(notifications, {"notification_id": notification.id, "user_id": user_id})
        logger.info(f"Notification for user {user_id}: {title}")
        return notification

    def booking_confirmed(self, booking: Booking) -> Notification:
        show = booking.show
        return self.push(
            booking.user_id,
            "booking_confirmation",
            "Booking Confirmed",
            f"Your booking {booking.reference} for {show.movie_title} has been confirmed. "
            f"Show time: {show.show_date.isoformat()} at {show.show_time.strftime('%H:%M')}",
            booking_id=booking.id,
        )

    def booking_cancelled(self, booking: Booking) -> Notification:
        return self.push(
            booking.user_id,
            "booking_cancelled",
            "Booking Cancelled",
            f"Your booking {booking.reference} for {booking.show.movie_title} was cancelled. "
            f"Refund of {booking.refund_amount:.2f} will be credited to your original payment method.",
            booking_id=booking.id,
        )

    def list(self, user_id: int, unread_only: bool = False) -> List[Notification]:
        notifications = [n for n in self._load() if n.user_id == user_id]
        if unread_only:
            notifications = [n for n in notifications if not n.is_read]
        return sorted(notifications, key=lambda n: n.id, reverse=True)

    def unread_count(self, user_id: int) -> int:
        return len(self.list(user_id, unread_only=True))

    def mark_read(self, notification_id: int, user_id: int) -> Notification:
        with self.storage.lock():
            notifications = self._load()
            for notification in notifications:
                if notification.id == notification_id and notification.user_id == user_id:
                    notification.is_read = True
                    self._save(notifications, {"notification_id": notification_id, "user_id": user_id})
                    return notification
        raise NotFound(f"Notification {notification_id} not found")

    def mark_all_read(self, user_id: int) -> int:
        with self.storage.lock():
            notifications = self._load()
            changed = 0
            for notification in notifications:
                if notification.user_id == user_id and not notification.is_read:
                    notification.is_read = True
                    changed += 1
            if changed:
                self._save(notifications, {"user_id": user_id})
        return changed

    def delete(self, notification_id: int, user_id: int):
        with self.storage.lock():
            notifications = self._load()
            remaining = [n for n in notifications if not (n.id == notification_id and n.user_id == user_id)]
            if len(remaining) == len(notifications):
                raise NotFound(f"Notification {notification_id} not found")
            self._save(remaining, {"notification_id": notification_id, "user_id": user_id})
