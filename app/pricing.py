from typing import Iterable

from app.config import DEFAULT_BASE_PRICE
from app.models import Seat, SeatType

# Надбавка к базовой цене сеанса по типу места
TIER_OFFSETS = {
    SeatType.PREMIUM: 100.0,
    SeatType.STANDARD: 0.0,
    SeatType.ECONOMY: -50.0,
}


def seat_price(seat_type, base_price: float = None) -> float:
    """Цена места = базовая цена сеанса + надбавка за тип"""
    base = DEFAULT_BASE_PRICE if base_price is None else float(base_price)
    try:
        seat_type = SeatType(getattr(seat_type, "value", seat_type))
    except ValueError:
        return base
    return base + TIER_OFFSETS[seat_type]


def selection_total(seats: Iterable[Seat], base_price: float = None) -> float:
    return sum(seat_price(seat.seat_type, base_price) for seat in seats)
