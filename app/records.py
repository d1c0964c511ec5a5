"""Сериализация броней и приведение старых форматов к каноническому.

Канонический формат пишется только через ``booking_to_dict``. Старые записи
(коллекции ``demoBookings`` и ``userBookings``) и ответы REST API переводятся
в ``Booking`` при чтении и никогда не перезаписываются.
"""
from datetime import date, datetime, time
from typing import Optional

from app.logger import logger
from app.models import BookedSeat, Booking, BookingStatus, SeatType, ShowSnapshot

TIME_FORMATS = ("%H:%M:%S", "%H:%M", "%I:%M %p", "%I:%M%p")


def parse_date(value, default: date = None) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return default
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.warning(f"Unparseable date '{value}'")
        return default


def parse_time(value, default: time = time(0, 0)) -> time:
    if isinstance(value, time):
        return value
    if not value:
        return default
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(str(value).strip(), fmt).time()
        except ValueError:
            continue
    logger.warning(f"Unparseable time '{value}'")
    return default


def parse_datetime(value, default: datetime = None) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return default
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1]
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.warning(f"Unparseable datetime '{value}'")
        return default


def parse_status(value) -> BookingStatus:
    try:
        return BookingStatus(str(value or "CONFIRMED").upper())
    except ValueError:
        return BookingStatus.CONFIRMED


def parse_seat_type(value) -> SeatType:
    try:
        return SeatType(str(value or "STANDARD").upper())
    except ValueError:
        # REGULAR и прочие типы старого фронтенда
        return SeatType.STANDARD


def _as_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return value


# --- канонический формат ---

def booking_to_dict(booking: Booking) -> dict:
    return {
        "id": booking.id,
        "user_id": booking.user_id,
        "show": {
            "show_id": booking.show.show_id,
            "movie_id": booking.show.movie_id,
            "movie_title": booking.show.movie_title,
            "venue_name": booking.show.venue_name,
            "screen_name": booking.show.screen_name,
            "show_date": booking.show.show_date.isoformat(),
            "show_time": booking.show.show_time.strftime("%H:%M"),
        },
        "seats": [
            {
                "seat_id": seat.seat_id,
                "label": seat.label,
                "seat_type": seat.seat_type.value,
                "price": seat.price,
            }
            for seat in booking.seats
        ],
        "total_amount": booking.total_amount,
        "booking_date": booking.booking_date.isoformat(),
        "status": booking.status.value,
        "payment_method": booking.payment_method,
        "transaction_id": booking.transaction_id,
        "cancelled_at": booking.cancelled_at.isoformat() if booking.cancelled_at else None,
        "cancellation_reason": booking.cancellation_reason,
        "refund_amount": booking.refund_amount,
    }


def booking_from_dict(data: dict) -> Booking:
    show = data["show"]
    booking_date = parse_datetime(data.get("booking_date"), datetime.now())
    return Booking(
        id=data["id"],
        user_id=data.get("user_id"),
        show=ShowSnapshot(
            show_id=show.get("show_id"),
            movie_id=show.get("movie_id"),
            movie_title=show.get("movie_title", ""),
            venue_name=show.get("venue_name", ""),
            screen_name=show.get("screen_name", ""),
            show_date=parse_date(show.get("show_date"), booking_date.date()),
            show_time=parse_time(show.get("show_time")),
        ),
        seats=[
            BookedSeat(
                seat_id=seat.get("seat_id"),
                label=seat.get("label", ""),
                seat_type=parse_seat_type(seat.get("seat_type")),
                price=float(seat.get("price", 0)),
            )
            for seat in data.get("seats", [])
        ],
        total_amount=float(data.get("total_amount", 0)),
        booking_date=booking_date,
        status=parse_status(data.get("status")),
        payment_method=data.get("payment_method"),
        transaction_id=data.get("transaction_id"),
        cancelled_at=parse_datetime(data.get("cancelled_at")),
        cancellation_reason=data.get("cancellation_reason"),
        refund_amount=data.get("refund_amount"),
    )


# --- старые форматы ---

def _legacy_seats(raw_seats, total: float):
    seats = []
    for index, seat in enumerate(raw_seats or []):
        if isinstance(seat, dict):
            label = str(seat.get("seatNumber") or seat.get("displayName") or seat.get("label") or "")
            seats.append(BookedSeat(
                seat_id=_as_int(seat.get("id", index + 1)),
                label=label,
                seat_type=parse_seat_type(seat.get("type") or seat.get("seatType")),
                price=float(seat.get("price") or 0),
            ))
        else:
            # userBookings хранит только номера мест, цену делим поровну
            seats.append(BookedSeat(
                seat_id=index + 1,
                label=str(seat),
                seat_type=SeatType.STANDARD,
                price=round(total / len(raw_seats), 2) if raw_seats else 0.0,
            ))
    return seats


def booking_from_legacy(raw: dict) -> Booking:
    """Записи demoBookings (camelCase, есть userId) и userBookings (без userId)"""
    total = float(raw.get("totalAmount") or 0)
    booking_date = parse_datetime(raw.get("bookingDate"), datetime.now())
    return Booking(
        id=_as_int(raw["id"]),
        user_id=_as_int(raw.get("userId")),
        show=ShowSnapshot(
            show_id=_as_int(raw.get("showId")),
            movie_id=_as_int(raw.get("movieId")),
            movie_title=raw.get("movieTitle", ""),
            venue_name=raw.get("venueName") or raw.get("venue") or "",
            screen_name=raw.get("screenName", ""),
            show_date=parse_date(raw.get("showDate") or raw.get("date"), booking_date.date()),
            show_time=parse_time(raw.get("showTime")),
        ),
        seats=_legacy_seats(raw.get("seats"), total),
        total_amount=total,
        booking_date=booking_date,
        status=parse_status(raw.get("status")),
        cancelled_at=parse_datetime(raw.get("cancellationDate")),
        cancellation_reason=raw.get("cancellationReason"),
        refund_amount=raw.get("refundAmount"),
    )


def booking_from_api(raw: dict, user_id=None) -> Booking:
    """BookingResponse бэкенда: вложенные show.movie / show.venue"""
    show = raw.get("show") or {}
    movie = show.get("movie") or {}
    venue = show.get("venue") or {}
    total = float(raw.get("totalAmount") or 0)
    booking_date = parse_datetime(raw.get("bookingDate"), datetime.now())
    seats = []
    for seat in raw.get("seats", []):
        label = seat.get("displayName") or f"{seat.get('seatRow', '')}{seat.get('seatNumber', '')}"
        seats.append(BookedSeat(
            seat_id=_as_int(seat.get("id")),
            label=str(label),
            seat_type=parse_seat_type(seat.get("seatType")),
            price=float(seat.get("price") or 0),
        ))
    return Booking(
        id=_as_int(raw["id"]),
        user_id=_as_int(raw.get("userId", user_id)),
        show=ShowSnapshot(
            show_id=_as_int(show.get("id")),
            movie_id=_as_int(movie.get("id")),
            movie_title=movie.get("title", ""),
            venue_name=venue.get("name", ""),
            screen_name=show.get("screenName", ""),
            show_date=parse_date(show.get("showDate"), booking_date.date()),
            show_time=parse_time(show.get("showTime")),
        ),
        seats=seats,
        total_amount=total,
        booking_date=booking_date,
        status=parse_status(raw.get("bookingStatus") or raw.get("status")),
        payment_method=raw.get("paymentMethod"),
        transaction_id=raw.get("transactionId"),
        cancelled_at=parse_datetime(raw.get("cancellationDate")),
        cancellation_reason=raw.get("cancellationReason"),
        refund_amount=raw.get("refundAmount"),
    )


def normalize_booking(raw: dict, user_id=None) -> Booking:
    """Любой известный формат брони -> канонический ``Booking``"""
    show = raw.get("show")
    if isinstance(show, dict) and "show_id" in show:
        return booking_from_dict(raw)
    if isinstance(show, dict):
        return booking_from_api(raw, user_id)
    return booking_from_legacy(raw)
