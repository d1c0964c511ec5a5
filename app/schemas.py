from datetime import date
from typing import List, Optional

from pydantic import BaseModel, EmailStr

from app.models import BookingStatus, PaymentMethod


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    roles: List[str] = []
    is_admin: bool = False


class CitySchema(BaseModel):
    id: int
    name: str


class VenueSchema(BaseModel):
    id: int
    name: str
    city_id: Optional[int] = None
    address: str = ""


class MovieSchema(BaseModel):
    id: int
    title: str
    genre: str = ""
    duration_minutes: int = 0
    rating: str = ""


class ShowSchema(BaseModel):
    id: int
    movie_id: Optional[int] = None
    venue_id: Optional[int] = None
    screen_id: Optional[int] = None
    show_date: date
    show_time: str
    price: float
    available_seats: int = 0
    movie_title: str = ""
    venue_name: str = ""
    screen_name: str = ""
    city_id: Optional[int] = None


class SeatSchema(BaseModel):
    id: int
    seat_row: str
    seat_number: str
    label: str
    seat_type: str
    is_available: bool
    is_blocked: bool
    price: float
    selected: bool = False
    held: bool = False


class SeatRowSchema(BaseModel):
    row: str
    seats: List[SeatSchema]


class SelectedSeatSchema(BaseModel):
    id: int
    label: str
    seat_type: str
    price: float
    held: bool


class SelectionResponse(BaseModel):
    show_id: int
    base_price: float
    seats: List[SelectedSeatSchema]
    total: float
    max_seats: int
    reservation_pending: bool
    all_held: bool
    reservation_error: Optional[str] = None


class SeatMapResponse(BaseModel):
    show_id: int
    base_price: float
    rows: List[SeatRowSchema]
    selection: SelectionResponse


class ToggleSeatRequest(BaseModel):
    seat_id: int


class ToggleSeatResponse(BaseModel):
    changed: bool
    selection: SelectionResponse


class CheckoutSummary(BaseModel):
    checkout_id: str
    movie_title: str
    venue_name: str
    show_date: str
    show_time: str
    seats: List[str]
    total_amount: float
    processing: bool
    booking_id: Optional[int] = None


class PaymentRequest(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD
    card_number: str = ""
    expiry_date: str = ""
    cvv: str = ""
    card_holder_name: str = ""
    upi_id: str = ""
    bank_name: str = ""
    wallet_type: str = ""


class BookingShowSchema(BaseModel):
    show_id: Optional[int] = None
    movie_id: Optional[int] = None
    movie_title: str = ""
    venue_name: str = ""
    screen_name: str = ""
    show_date: str
    show_time: str


class BookingSeatSchema(BaseModel):
    seat_id: Optional[int] = None
    label: str
    seat_type: str
    price: float


class BookingResponse(BaseModel):
    id: int
    reference: str
    user_id: Optional[int] = None
    show: BookingShowSchema
    seats: List[BookingSeatSchema]
    total_amount: float
    booking_date: str
    status: BookingStatus
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    cancelled_at: Optional[str] = None
    cancellation_reason: Optional[str] = None
    refund_amount: Optional[float] = None
    can_cancel: bool = False
    cancellation_deadline: Optional[str] = None


class BookingStatsResponse(BaseModel):
    total_bookings: int
    upcoming_shows: int
    completed_shows: int
    cancelled_bookings: int
    total_spent: float


class CancelBookingRequest(BaseModel):
    reason: str = "User requested cancellation"


class StatusUpdateRequest(BaseModel):
    status: BookingStatus
    reason: Optional[str] = None


class WishlistAddRequest(BaseModel):
    movie_id: int


class WishlistItemSchema(BaseModel):
    movie_id: int
    title: str
    added_at: str


class NotificationSchema(BaseModel):
    id: int
    kind: str
    title: str
    message: str
    created_at: str
    is_read: bool
    booking_id: Optional[int] = None
