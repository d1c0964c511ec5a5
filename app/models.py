import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import List, Optional


class SeatType(str, Enum):
    PREMIUM = "PREMIUM"
    STANDARD = "STANDARD"
    ECONOMY = "ECONOMY"


class BookingStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    UPI = "upi"
    NET_BANKING = "net_banking"
    WALLET = "wallet"


@dataclass
class User:
    id: int
    email: str
    name: str
    roles: List[str] = field(default_factory=list)


@dataclass
class City:
    id: int
    name: str


@dataclass
class Venue:
    id: int
    name: str
    city_id: int
    address: str = ""


@dataclass
class Movie:
    id: int
    title: str
    genre: str = ""
    duration_minutes: int = 0
    rating: str = ""


@dataclass
class Show:
    id: int
    movie_id: int
    venue_id: int
    screen_id: int
    show_date: date
    show_time: time
    price: float
    available_seats: int = 0
    movie_title: str = ""
    venue_name: str = ""
    screen_name: str = ""
    city_id: Optional[int] = None

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.show_date, self.show_time)


@dataclass
class Seat:
    id: int
    show_id: int
    seat_row: str
    seat_number: str
    seat_type: SeatType = SeatType.STANDARD
    is_available: bool = True
    is_blocked: bool = False
    price: float = 0.0

    @property
    def number(self) -> int:
        """Числовая часть номера места: "A12" -> 12, "7" -> 7"""
        digits = re.findall(r"\d+", str(self.seat_number))
        return int(digits[-1]) if digits else 0

    @property
    def label(self) -> str:
        if str(self.seat_number).startswith(self.seat_row):
            return str(self.seat_number)
        return f"{self.seat_row}{self.seat_number}"


@dataclass
class BookedSeat:
    """Место в брони с ценой, зафиксированной в момент покупки"""
    seat_id: int
    label: str
    seat_type: SeatType
    price: float


@dataclass
class ShowSnapshot:
    show_id: int
    movie_id: Optional[int]
    movie_title: str
    venue_name: str
    screen_name: str
    show_date: date
    show_time: time

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.show_date, self.show_time)

    @classmethod
    def from_show(cls, show: Show) -> "ShowSnapshot":
        return cls(
            show_id=show.id,
            movie_id=show.movie_id,
            movie_title=show.movie_title,
            venue_name=show.venue_name,
            screen_name=show.screen_name,
            show_date=show.show_date,
            show_time=show.show_time,
        )


@dataclass
class BookingContext:
    """То, что выбор мест передаёт на оформление заказа"""
    id: str
    user_id: int
    show: ShowSnapshot
    seats: List[BookedSeat]
    total_amount: float


@dataclass
class Booking:
    id: int
    user_id: Optional[int]
    show: ShowSnapshot
    seats: List[BookedSeat]
    total_amount: float
    booking_date: datetime
    status: BookingStatus = BookingStatus.CONFIRMED
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    refund_amount: Optional[float] = None

    @property
    def reference(self) -> str:
        return f"BK{self.id}"


@dataclass
class Notification:
    id: int
    user_id: int
    kind: str
    title: str
    message: str
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    is_read: bool = False
    booking_id: Optional[int] = None


@dataclass
class WishlistItem:
    user_id: int
    movie_id: int
    title: str
    added_at: str = field(default_factory=lambda: datetime.now().isoformat())
