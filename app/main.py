from datetime import date, datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.bookings import booking_view, merge_remote
from app.errors import Forbidden, NetworkError, NotFound, StorefrontError
from app.logger import logger
from app.logging_service import get_logs
from app.monitoring import action_metrics
from app.models import BookingStatus
from app.schemas import (
    BookingResponse, BookingStatsResponse, CancelBookingRequest, CheckoutSummary, CitySchema,
    LoginRequest, MovieSchema, NotificationSchema, PaymentRequest, RegisterRequest, SeatMapResponse,
    SelectionResponse, ShowSchema, StatusUpdateRequest, ToggleSeatRequest, ToggleSeatResponse,
    UserResponse, VenueSchema, WishlistAddRequest, WishlistItemSchema,
)
from app.storefront import Storefront

app = FastAPI(
    title="Ticket Storefront",
    docs_url="/docs",
    default_response_class=JSONResponse
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_storefront: Optional[Storefront] = None


def get_storefront() -> Storefront:
    global _storefront
    if _storefront is None:
        _storefront = Storefront()
    return _storefront


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.__class__.__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
def startup():
    logger.info("Ticket Storefront started")


@app.on_event("shutdown")
def shutdown():
    if _storefront is not None:
        _storefront.close()


def _user_response(user) -> UserResponse:
    return UserResponse(id=user.id, email=user.email, name=user.name, roles=user.roles,
                        is_admin="ROLE_ADMIN" in user.roles)


def _show_response(show) -> ShowSchema:
    return ShowSchema(
        id=show.id, movie_id=show.movie_id, venue_id=show.venue_id, screen_id=show.screen_id,
        show_date=show.show_date, show_time=show.show_time.strftime("%H:%M"), price=show.price,
        available_seats=show.available_seats, movie_title=show.movie_title,
        venue_name=show.venue_name, screen_name=show.screen_name, city_id=show.city_id,
    )


def _require_admin(sf: Storefront):
    sf.session.require_user()
    if not sf.session.is_admin:
        raise Forbidden("Admin access required")


# --- служебное ---

@app.get("/health")
def health(sf: Storefront = Depends(get_storefront)):
    logger.info("GET /health")
    return {"status": "UP", "backend": sf.client.health(), "timestamp": datetime.now().isoformat()}


# --- аутентификация ---

@app.post("/auth/login", response_model=UserResponse)
def login(request: LoginRequest, sf: Storefront = Depends(get_storefront)):
    logger.info(f"POST /auth/login - {request.email}")
    return _user_response(sf.session.login(request.email, request.password))


@app.post("/auth/register")
def register(request: RegisterRequest, sf: Storefront = Depends(get_storefront)):
    logger.info(f"POST /auth/register - {request.email}")
    return {"message": sf.session.register(request.name, request.email, request.password)}


@app.post("/auth/logout")
def logout(sf: Storefront = Depends(get_storefront)):
    logger.info("POST /auth/logout")
    sf.session.logout()
    return {"status": "logged_out"}


@app.get("/auth/me", response_model=UserResponse)
def me(sf: Storefront = Depends(get_storefront)):
    return _user_response(sf.session.require_user())


# --- каталог ---

@app.get("/cities", response_model=List[CitySchema])
def get_cities(sf: Storefront = Depends(get_storefront)):
    logger.info("GET /cities")
    return [CitySchema(id=c.id, name=c.name) for c in sf.client.get_cities()]


@app.get("/venues", response_model=List[VenueSchema])
def get_venues(city_id: Optional[int] = None, sf: Storefront = Depends(get_storefront)):
    logger.info(f"GET /venues city_id={city_id}")
    venues = sf.client.get_venues_by_city(city_id) if city_id else sf.client.get_venues()
    return [VenueSchema(id=v.id, name=v.name, city_id=v.city_id, address=v.address) for v in venues]


@app.get("/movies", response_model=List[MovieSchema])
def get_movies(sf: Storefront = Depends(get_storefront)):
    logger.info("GET /movies")
    return [MovieSchema(id=m.id, title=m.title, genre=m.genre, duration_minutes=m.duration_minutes,
                        rating=m.rating) for m in sf.client.get_movies()]


@app.get("/shows", response_model=List[ShowSchema])
def get_shows(movie_id: Optional[int] = None, city_id: Optional[int] = None,
              show_date: Optional[date] = Query(None, alias="date"), venue_id: Optional[int] = None,
              page: int = 0, size: int = 10, sf: Storefront = Depends(get_storefront)):
    """Сеансы с фильтрами по фильму, городу, дате или площадке"""
    logger.info(f"GET /shows movie_id={movie_id} city_id={city_id} date={show_date} venue_id={venue_id}")
    client = sf.client
    if venue_id:
        shows = client.get_shows_by_venue(venue_id)
        if show_date:
            shows = [s for s in shows if s.show_date == show_date]
    elif movie_id and city_id:
        shows = client.get_shows_by_movie_and_city(movie_id, city_id, page, size)
    elif show_date and city_id:
        shows = client.get_shows_by_date_and_city(show_date, city_id, page, size)
    elif movie_id:
        shows = client.get_shows_by_movie(movie_id, page, size)
    else:
        shows = client.get_shows(page, size)
    if show_date and movie_id:
        shows = [s for s in shows if s.show_date == show_date]
    return [_show_response(s) for s in shows]


@app.get("/shows/{show_id}", response_model=ShowSchema)
def get_show(show_id: int, sf: Storefront = Depends(get_storefront)):
    logger.info(f"GET /shows/{show_id}")
    return _show_response(sf.client.get_show(show_id))


# --- выбор мест ---

@app.get("/shows/{show_id}/seats", response_model=SeatMapResponse)
def get_seat_map(show_id: int, sf: Storefront = Depends(get_storefront)):
    """Схема зала: каждый запрос перечитывает места (повтор после ошибки)"""
    logger.info(f"GET /shows/{show_id}/seats")
    selection = sf.selection_for(show_id, reload=True)
    rows = []
    for row, seats in selection.rows.items():
        rows.append({
            "row": row,
            "seats": [
                {
                    "id": seat.id,
                    "seat_row": seat.seat_row,
                    "seat_number": seat.seat_number,
                    "label": seat.label,
                    "seat_type": seat.seat_type.value,
                    "is_available": seat.is_available,
                    "is_blocked": selection.is_blocked_by_other(seat),
                    "price": selection.price_of(seat),
                    "selected": seat.id in selection.selected,
                    "held": selection.is_held(seat.id),
                }
                for seat in seats
            ],
        })
    return {"show_id": show_id, "base_price": selection.show.price, "rows": rows,
            "selection": selection.view()}


@app.get("/shows/{show_id}/selection", response_model=SelectionResponse)
def get_selection(show_id: int, sf: Storefront = Depends(get_storefront)):
    return sf.selection_for(show_id).view()


@app.post("/shows/{show_id}/selection/toggle", response_model=ToggleSeatResponse)
def toggle_seat(show_id: int, request: ToggleSeatRequest, sf: Storefront = Depends(get_storefront)):
    logger.info(f"POST /shows/{show_id}/selection/toggle - seat {request.seat_id}")
    selection = sf.selection_for(show_id)
    changed = selection.toggle_seat(request.seat_id)
    return {"changed": changed, "selection": selection.view()}


@app.post("/shows/{show_id}/selection/confirm", response_model=CheckoutSummary)
def confirm_selection(show_id: int, sf: Storefront = Depends(get_storefront)):
    logger.info(f"POST /shows/{show_id}/selection/confirm")
    return sf.start_checkout(show_id).summary()


# --- оформление ---

@app.get("/checkout/{checkout_id}", response_model=CheckoutSummary)
def get_checkout(checkout_id: str, sf: Storefront = Depends(get_storefront)):
    return sf.checkout(checkout_id).summary()


@app.post("/checkout/{checkout_id}/confirm", response_model=BookingResponse)
def confirm_checkout(checkout_id: str, request: PaymentRequest, sf: Storefront = Depends(get_storefront)):
    logger.info(f"POST /checkout/{checkout_id}/confirm - {request.payment_method.value}")
    checkout = sf.checkout(checkout_id)
    form = request.model_dump()
    form["payment_method"] = request.payment_method.value
    booking = checkout.confirm(form)
    sf.finish_selection(checkout.context.show.show_id)
    return booking_view(booking)


# --- брони ---

@app.get("/bookings/my", response_model=List[BookingResponse])
def my_bookings(status: Optional[BookingStatus] = None, include_remote: bool = True,
                sf: Storefront = Depends(get_storefront)):
    """Брони текущего пользователя: фильтр по сессии на момент запроса"""
    user = sf.session.require_user()
    logger.info(f"GET /bookings/my - user {user.id}")
    bookings = sf.bookings.list(user.id)
    if include_remote:
        try:
            bookings = merge_remote(bookings, sf.client.get_user_bookings())
        except NetworkError as e:
            logger.info(f"API bookings not available, using local data: {e}")
    now = datetime.now()
    views = [booking_view(b, now) for b in bookings]
    if status:
        views = [v for v in views if v["status"] == status.value]
    return views


@app.get("/bookings/stats", response_model=BookingStatsResponse)
def booking_stats(sf: Storefront = Depends(get_storefront)):
    user = sf.session.require_user()
    return sf.bookings.stats(user.id)


@app.get("/bookings/{booking_id}", response_model=BookingResponse)
def get_booking(booking_id: int, sf: Storefront = Depends(get_storefront)):
    user = sf.session.require_user()
    booking = sf.bookings.get(booking_id)
    if booking.user_id != user.id and not sf.session.is_admin:
        raise NotFound(f"Booking {booking_id} not found")
    return booking_view(booking)


@app.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(booking_id: int, request: Optional[CancelBookingRequest] = None,
                   sf: Storefront = Depends(get_storefront)):
    user = sf.session.require_user()
    reason = request.reason if request else None
    logger.info(f"POST /bookings/{booking_id}/cancel - user {user.id}")
    try:
        sf.bookings.get(booking_id)
    except NotFound:
        # брони, которых нет локально, отменяет бэкенд
        logger.info(f"Booking {booking_id} not stored locally, cancelling through API")
        return booking_view(sf.client.cancel_booking(booking_id))
    booking = sf.bookings.cancel(booking_id, user.id, reason=reason)
    sf.notifications.booking_cancelled(booking)
    return booking_view(booking)


# --- администрирование ---

@app.get("/admin/bookings", response_model=List[BookingResponse])
def all_bookings(status: Optional[BookingStatus] = None, sf: Storefront = Depends(get_storefront)):
    _require_admin(sf)
    logger.info("GET /admin/bookings")
    bookings = sf.bookings.all()
    try:
        bookings = merge_remote(bookings, sf.client.get_all_bookings())
    except NetworkError as e:
        logger.info(f"API bookings not available, using local data: {e}")
    now = datetime.now()
    views = [booking_view(b, now) for b in bookings]
    if status:
        views = [v for v in views if v["status"] == status.value]
    return views


@app.put("/admin/bookings/{booking_id}/status", response_model=BookingResponse)
def update_booking_status(booking_id: int, request: StatusUpdateRequest,
                          sf: Storefront = Depends(get_storefront)):
    _require_admin(sf)
    logger.info(f"PUT /admin/bookings/{booking_id}/status -> {request.status.value}")
    booking = sf.bookings.update_status(booking_id, request.status, reason=request.reason)
    if booking.status == BookingStatus.CANCELLED:
        sf.notifications.booking_cancelled(booking)
    return booking_view(booking)


# --- избранное ---

@app.get("/wishlist", response_model=List[WishlistItemSchema])
def get_wishlist(sf: Storefront = Depends(get_storefront)):
    user = sf.session.require_user()
    return [{"movie_id": i.movie_id, "title": i.title, "added_at": i.added_at} for i in sf.wishlist.list(user.id)]


@app.post("/wishlist", response_model=WishlistItemSchema)
def add_to_wishlist(request: WishlistAddRequest, sf: Storefront = Depends(get_storefront)):
    user = sf.session.require_user()
    logger.info(f"POST /wishlist - movie {request.movie_id}")
    movie = next((m for m in sf.client.get_movies() if m.id == request.movie_id), None)
    if movie is None:
        raise NotFound(f"Movie {request.movie_id} not found")
    item = sf.wishlist.add(user.id, movie)
    return {"movie_id": item.movie_id, "title": item.title, "added_at": item.added_at}


@app.delete("/wishlist/{movie_id}")
def remove_from_wishlist(movie_id: int, sf: Storefront = Depends(get_storefront)):
    user = sf.session.require_user()
    logger.info(f"DELETE /wishlist/{movie_id}")
    if not sf.wishlist.remove(user.id, movie_id):
        raise NotFound(f"Movie {movie_id} is not in wishlist")
    return {"status": "removed"}


# --- уведомления ---

@app.get("/notifications", response_model=List[NotificationSchema])
def get_notifications(unread_only: bool = False, sf: Storefront = Depends(get_storefront)):
    user = sf.session.require_user()
    return [vars(n) for n in sf.notifications.list(user.id, unread_only=unread_only)]


@app.put("/notifications/read-all")
def mark_all_notifications_read(sf: Storefront = Depends(get_storefront)):
    user = sf.session.require_user()
    return {"updated": sf.notifications.mark_all_read(user.id)}


@app.put("/notifications/{notification_id}/read", response_model=NotificationSchema)
def mark_notification_read(notification_id: int, sf: Storefront = Depends(get_storefront)):
    user = sf.session.require_user()
    return vars(sf.notifications.mark_read(notification_id, user.id))


@app.delete("/notifications/{notification_id}")
def delete_notification(notification_id: int, sf: Storefront = Depends(get_storefront)):
    user = sf.session.require_user()
    sf.notifications.delete(notification_id, user.id)
    return {"status": "deleted"}


# --- мониторинг ---

@app.get("/api/monitoring/user-actions")
def get_user_actions_logs(limit: int = 100, action: Optional[str] = None):
    """Получить логи действий пользователей"""
    logger.info("GET /api/monitoring/user-actions")
    logs = get_logs(limit, action)
    return {
        "logs": logs,
        "total_lines": len(logs),
        "timestamp": datetime.now().isoformat()
    }


@app.get("/api/monitoring/metrics")
def get_monitoring_metrics():
    """Метрики из журнала действий"""
    logger.info("GET /api/monitoring/metrics")
    return action_metrics()
