"""Клиенты внешнего REST API витрины.

``RealClient`` ходит в бэкенд через requests, ``FallbackClient`` отдаёт
демо-данные из памяти. Какой из них использовать, решает ``build_client``
один раз при старте приложения.
"""
import itertools
import secrets
import threading
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, List, Optional, Tuple

import requests

from app.config import API_BASE_URL, HOLD_MINUTES, REQUEST_TIMEOUT, USE_FALLBACK
from app.errors import AuthError, NetworkError, NotFound, ValidationError
from app.logger import logger
from app.models import Booking, City, Movie, Seat, SeatType, Show, User, Venue
from app.pricing import seat_price
from app.records import booking_from_api, parse_date, parse_seat_type, parse_time


def _items(payload) -> list:
    """Spring отдаёт страницы как {"content": [...]}"""
    if isinstance(payload, dict):
        return payload.get("content", [])
    return payload or []


def show_from_api(data: dict) -> Show:
    movie = data.get("movie") or {}
    venue = data.get("venue") or {}
    return Show(
        id=data["id"],
        movie_id=data.get("movieId", movie.get("id")),
        venue_id=data.get("venueId", venue.get("id")),
        screen_id=data.get("screenId", 1),
        show_date=parse_date(data.get("showDate"), date.today()),
        show_time=parse_time(data.get("showTime")),
        price=float(data.get("price") or 0),
        available_seats=int(data.get("availableSeats") or 0),
        movie_title=data.get("movieTitle", movie.get("title", "")),
        venue_name=data.get("venueName", venue.get("name", "")),
        screen_name=data.get("screenName", ""),
        city_id=data.get("cityId"),
    )


def seat_from_api(data: dict, show_id: int) -> Seat:
    seat_number = data.get("seatNumber")
    display = data.get("displayName") or ""
    row = data.get("seatRow") or data.get("rowNumber") or (display[:1] if display else "") or str(seat_number or "A")[:1]
    is_booked = bool(data.get("isBooked", False))
    return Seat(
        id=data["id"],
        show_id=data.get("showId", show_id),
        seat_row=str(row),
        seat_number=str(seat_number if seat_number is not None else display[1:]),
        seat_type=parse_seat_type(data.get("seatType")),
        is_available=bool(data.get("isAvailable", True)) and not is_booked,
        is_blocked=bool(data.get("isBlocked", False)),
        price=float(data.get("price") or 0),
    )


def user_from_auth(data: dict) -> User:
    return User(
        id=data["id"],
        email=data.get("email", ""),
        name=data.get("username") or data.get("name") or data.get("email", ""),
        roles=list(data.get("roles") or []),
    )


class BookingApi:
    """Контракт внешнего API. Все методы бросают NetworkError/AuthError"""

    def health(self) -> bool:
        raise NotImplementedError

    def sign_in(self, email: str, password: str) -> Tuple[str, User]:
        raise NotImplementedError

    def sign_up(self, name: str, email: str, password: str) -> str:
        raise NotImplementedError

    def get_shows(self, page: int = 0, size: int = 10) -> List[Show]:
        raise NotImplementedError

    def get_shows_by_movie(self, movie_id: int, page: int = 0, size: int = 10) -> List[Show]:
        raise NotImplementedError

    def get_shows_by_movie_and_city(self, movie_id: int, city_id: int, page: int = 0, size: int = 10) -> List[Show]:
        raise NotImplementedError

    def get_shows_by_date_and_city(self, show_date: date, city_id: int, page: int = 0, size: int = 10) -> List[Show]:
        raise NotImplementedError

    def get_shows_by_venue(self, venue_id: int) -> List[Show]:
        raise NotImplementedError

    def get_show(self, show_id: int) -> Show:
        raise NotImplementedError

    def get_venues(self) -> List[Venue]:
        raise NotImplementedError

    def get_venues_by_city(self, city_id: int) -> List[Venue]:
        raise NotImplementedError

    def get_cities(self) -> List[City]:
        raise NotImplementedError

    def get_movies(self) -> List[Movie]:
        raise NotImplementedError

    def get_seats_by_show(self, show_id: int) -> List[Seat]:
        raise NotImplementedError

    def reserve_seats(self, seat_ids: List[int], show_id: int, hold_minutes: int = HOLD_MINUTES) -> dict:
        raise NotImplementedError

    def get_user_bookings(self) -> List[Booking]:
        raise NotImplementedError

    def get_all_bookings(self) -> List[Booking]:
        raise NotImplementedError

    def cancel_booking(self, booking_id: int) -> Booking:
        raise NotImplementedError


class RealClient(BookingApi):

    def __init__(self, base_url: str, token_provider: Callable[[], Optional[str]] = None,
                 on_unauthorized: Callable[[], None] = None, timeout: float = REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider or (lambda: None)
        self.on_unauthorized = on_unauthorized
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        token = self.token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"Booking API unavailable: {method} {path}: {e}")
            raise NetworkError(f"Booking API unavailable: {e}")

        if response.status_code == 401:
            logger.warning(f"401 from {method} {path}, clearing session")
            if self.on_unauthorized:
                self.on_unauthorized()
            raise AuthError("Authentication required")

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise NetworkError(f"{method} {path} failed with status {response.status_code}")

        if not response.content:
            return None
        return response.json()

    def health(self) -> bool:
        try:
            self._request("GET", "/health")
            return True
        except NetworkError:
            return False

    def sign_in(self, email: str, password: str) -> Tuple[str, User]:
        data = self._request("POST", "/auth/signin", json={"email": email, "password": password})
        logger.info(f"Signed in as {data.get('username')}")
        return data["token"], user_from_auth(data)

    def sign_up(self, name: str, email: str, password: str) -> str:
        data = self._request("POST", "/auth/signup", json={"username": name, "email": email, "password": password})
        return (data or {}).get("message", "User registered successfully")

    def get_shows(self, page: int = 0, size: int = 10) -> List[Show]:
        data = self._request("GET", "/shows", params={"page": page, "size": size})
        return [show_from_api(s) for s in _items(data)]

    def get_shows_by_movie(self, movie_id: int, page: int = 0, size: int = 10) -> List[Show]:
        data = self._request("GET", f"/shows/movie/{movie_id}", params={"page": page, "size": size})
        return [show_from_api(s) for s in _items(data)]

    def get_shows_by_movie_and_city(self, movie_id: int, city_id: int, page: int = 0, size: int = 10) -> List[Show]:
        data = self._request("GET", f"/shows/movie/{movie_id}/city/{city_id}", params={"page": page, "size": size})
        return [show_from_api(s) for s in _items(data)]

    def get_shows_by_date_and_city(self, show_date: date, city_id: int, page: int = 0, size: int = 10) -> List[Show]:
        data = self._request("GET", f"/shows/date/{show_date.isoformat()}/city/{city_id}",
                             params={"page": page, "size": size})
        return [show_from_api(s) for s in _items(data)]

    def get_shows_by_venue(self, venue_id: int) -> List[Show]:
        data = self._request("GET", f"/shows/venue/{venue_id}")
        return [show_from_api(s) for s in _items(data)]

    def get_show(self, show_id: int) -> Show:
        return show_from_api(self._request("GET", f"/shows/{show_id}"))

    def get_venues(self) -> List[Venue]:
        return [self._venue(v) for v in _items(self._request("GET", "/venues"))]

    def get_venues_by_city(self, city_id: int) -> List[Venue]:
        return [self._venue(v) for v in _items(self._request("GET", f"/venues/city/{city_id}"))]

    @staticmethod
    def _venue(data: dict) -> Venue:
        return Venue(id=data["id"], name=data.get("name", ""),
                     city_id=data.get("cityId"), address=data.get("address", ""))

    def get_cities(self) -> List[City]:
        return [City(id=c["id"], name=c.get("name", "")) for c in _items(self._request("GET", "/cities"))]

    def get_movies(self) -> List[Movie]:
        data = self._request("GET", "/movies")
        return [
            Movie(id=m["id"], title=m.get("title", ""), genre=m.get("genre", ""),
                  duration_minutes=m.get("duration", 0), rating=m.get("rating", ""))
            for m in _items(data)
        ]

    def get_seats_by_show(self, show_id: int) -> List[Seat]:
        data = self._request("GET", f"/seats/show/{show_id}")
        return [seat_from_api(s, show_id) for s in _items(data)]

    def reserve_seats(self, seat_ids: List[int], show_id: int, hold_minutes: int = HOLD_MINUTES) -> dict:
        return self._request("POST", "/seats/block", json={
            "seatIds": list(seat_ids),
            "showId": show_id,
            "reservationTimeMinutes": hold_minutes,
        }) or {}

    def get_user_bookings(self) -> List[Booking]:
        data = self._request("GET", "/bookings/my-bookings")
        return [booking_from_api(b) for b in _items(data)]

    def get_all_bookings(self) -> List[Booking]:
        data = self._request("GET", "/admin/bookings")
        return [booking_from_api(b) for b in _items(data)]

    def cancel_booking(self, booking_id: int) -> Booking:
        return booking_from_api(self._request("PUT", f"/bookings/{booking_id}/cancel"))


# --- демо-режим без бэкенда ---

DEMO_CITIES = [City(1, "Bangalore"), City(2, "Mumbai")]

DEMO_VENUES = [
    Venue(1, "CinemaFlix IMAX", 1, "MG Road"),
    Venue(2, "PVR Forum Mall", 1, "Koramangala"),
    Venue(3, "INOX Phoenix", 2, "Lower Parel"),
]

DEMO_MOVIES = [
    Movie(1, "Spider-Man: No Way Home", "Action", 148, "PG-13"),
    Movie(2, "Dune: Part Two", "Sci-Fi", 166, "PG-13"),
    Movie(3, "Oppenheimer", "Drama", 180, "R"),
]

# Ряды зала: передние - эконом, задние - премиум
DEMO_ROW_TYPES = [
    ("A", SeatType.ECONOMY), ("B", SeatType.ECONOMY),
    ("C", SeatType.STANDARD), ("D", SeatType.STANDARD), ("E", SeatType.STANDARD), ("F", SeatType.STANDARD),
    ("G", SeatType.PREMIUM), ("H", SeatType.PREMIUM),
]
DEMO_SEATS_PER_ROW = 10
DEMO_SHOW_SLOTS = [(1, time(10, 0), 200.0), (1, time(19, 30), 250.0), (2, time(22, 0), 300.0)]


class FallbackClient(BookingApi):
    """Демо-данные в памяти вместо бэкенда.

    Удержание мест живёт здесь же и истекает само по TTL, как на сервере.
    Брони демо-бэкенд не хранит: за них отвечает локальный репозиторий.
    """

    def __init__(self, today: date = None):
        self._lock = threading.Lock()
        self._ids = itertools.count(3)
        self._users: Dict[str, Tuple[str, User]] = {
            "demo@example.com": ("demo123", User(1, "demo@example.com", "Demo User", ["ROLE_USER"])),
            "admin@example.com": ("admin123", User(2, "admin@example.com", "Admin", ["ROLE_USER", "ROLE_ADMIN"])),
        }
        self._shows = self._seed_shows(today or date.today())
        self._seats: Dict[int, List[Seat]] = {}
        self._holds: Dict[int, datetime] = {}

    @staticmethod
    def _seed_shows(today: date) -> Dict[int, Show]:
        shows = {}
        show_id = 1
        for movie in DEMO_MOVIES:
            for venue in DEMO_VENUES:
                for day_offset, start, price in DEMO_SHOW_SLOTS:
                    shows[show_id] = Show(
                        id=show_id,
                        movie_id=movie.id,
                        venue_id=venue.id,
                        screen_id=1,
                        show_date=today + timedelta(days=day_offset),
                        show_time=start,
                        price=price,
                        available_seats=len(DEMO_ROW_TYPES) * DEMO_SEATS_PER_ROW,
                        movie_title=movie.title,
                        venue_name=venue.name,
                        screen_name="Screen 1",
                        city_id=venue.city_id,
                    )
                    show_id += 1
        return shows

    def health(self) -> bool:
        return True

    def sign_in(self, email: str, password: str) -> Tuple[str, User]:
        entry = self._users.get(email.lower())
        if not entry or entry[0] != password:
            raise AuthError("Invalid email or password")
        return f"demo-{secrets.token_hex(16)}", entry[1]

    def sign_up(self, name: str, email: str, password: str) -> str:
        with self._lock:
            if email.lower() in self._users:
                raise ValidationError({"email": "Email is already in use"})
            user = User(next(self._ids), email.lower(), name, ["ROLE_USER"])
            self._users[email.lower()] = (password, user)
        logger.info(f"Demo user registered: {email}")
        return "User registered successfully"

    @staticmethod
    def _page(items: list, page: int, size: int) -> list:
        return items[page * size:(page + 1) * size]

    def _sorted_shows(self, predicate=lambda s: True) -> List[Show]:
        return sorted((s for s in self._shows.values() if predicate(s)), key=lambda s: (s.starts_at, s.id))

    def get_shows(self, page: int = 0, size: int = 10) -> List[Show]:
        return self._page(self._sorted_shows(), page, size)

    def get_shows_by_movie(self, movie_id: int, page: int = 0, size: int = 10) -> List[Show]:
        return self._page(self._sorted_shows(lambda s: s.movie_id == movie_id), page, size)

    def get_shows_by_movie_and_city(self, movie_id: int, city_id: int, page: int = 0, size: int = 10) -> List[Show]:
        shows = self._sorted_shows(lambda s: s.movie_id == movie_id and s.city_id == city_id)
        return self._page(shows, page, size)

    def get_shows_by_date_and_city(self, show_date: date, city_id: int, page: int = 0, size: int = 10) -> List[Show]:
        shows = self._sorted_shows(lambda s: s.show_date == show_date and s.city_id == city_id)
        return self._page(shows, page, size)

    def get_shows_by_venue(self, venue_id: int) -> List[Show]:
        return self._sorted_shows(lambda s: s.venue_id == venue_id)

    def get_show(self, show_id: int) -> Show:
        show = self._shows.get(show_id)
        if not show:
            raise NetworkError(f"Show {show_id} not found")
        return show

    def get_venues(self) -> List[Venue]:
        return list(DEMO_VENUES)

    def get_venues_by_city(self, city_id: int) -> List[Venue]:
        return [v for v in DEMO_VENUES if v.city_id == city_id]

    def get_cities(self) -> List[City]:
        return list(DEMO_CITIES)

    def get_movies(self) -> List[Movie]:
        return list(DEMO_MOVIES)

    def _seat_map(self, show_id: int) -> List[Seat]:
        show = self.get_show(show_id)
        if show_id not in self._seats:
            seats = []
            for row_index, (row, seat_type) in enumerate(DEMO_ROW_TYPES):
                for number in range(1, DEMO_SEATS_PER_ROW + 1):
                    seats.append(Seat(
                        id=show_id * 1000 + row_index * DEMO_SEATS_PER_ROW + number,
                        show_id=show_id,
                        seat_row=row,
                        seat_number=str(number),
                        seat_type=seat_type,
                        price=seat_price(seat_type, show.price),
                    ))
            self._seats[show_id] = seats
        return self._seats[show_id]

    def get_seats_by_show(self, show_id: int) -> List[Seat]:
        now = datetime.now()
        with self._lock:
            seats = self._seat_map(show_id)
            for seat in seats:
                expires_at = self._holds.get(seat.id)
                seat.is_blocked = bool(expires_at and expires_at > now)
                if expires_at and expires_at <= now:
                    del self._holds[seat.id]
            return [Seat(**vars(seat)) for seat in seats]

    def reserve_seats(self, seat_ids: List[int], show_id: int, hold_minutes: int = HOLD_MINUTES) -> dict:
        expires_at = datetime.now() + timedelta(minutes=hold_minutes)
        with self._lock:
            by_id = {seat.id: seat for seat in self._seat_map(show_id)}
            for seat_id in seat_ids:
                seat = by_id.get(seat_id)
                if seat is None or not seat.is_available:
                    raise NetworkError(f"Seat {seat_id} is no longer available")
            for seat_id in seat_ids:
                self._holds[seat_id] = expires_at
        logger.info(f"Demo hold on seats {list(seat_ids)} of show {show_id} until {expires_at.isoformat()}")
        return {"seatIds": list(seat_ids), "showId": show_id, "expiresAt": expires_at.isoformat()}

    def get_user_bookings(self) -> List[Booking]:
        return []

    def get_all_bookings(self) -> List[Booking]:
        return []

    def cancel_booking(self, booking_id: int) -> Booking:
        # в демо-режиме брони живут только локально
        raise NotFound(f"Booking {booking_id} not found")


def build_client(token_provider=None, on_unauthorized=None,
                 base_url: str = API_BASE_URL, use_fallback: bool = USE_FALLBACK) -> BookingApi:
    if base_url and not use_fallback:
        logger.info(f"Using booking API at {base_url}")
        return RealClient(base_url, token_provider=token_provider, on_unauthorized=on_unauthorized)
    logger.info("No booking API configured, using demo fallback client")
    return FallbackClient()
