from app.models import Seat, SeatType
from app.pricing import seat_price, selection_total


def test_tier_offsets_from_base_price():
    assert seat_price(SeatType.PREMIUM, 250) == 350
    assert seat_price(SeatType.STANDARD, 250) == 250
    assert seat_price(SeatType.ECONOMY, 250) == 200


def test_default_base_price_and_string_types():
    assert seat_price("PREMIUM") == 350
    assert seat_price("ECONOMY", 200) == 150


def test_unknown_type_costs_base_price():
    assert seat_price("BALCONY", 300) == 300


def test_selection_total_premium_plus_standard():
    seats = [
        Seat(id=1, show_id=1, seat_row="G", seat_number="1", seat_type=SeatType.PREMIUM),
        Seat(id=2, show_id=1, seat_row="C", seat_number="1", seat_type=SeatType.STANDARD),
    ]
    assert selection_total(seats, 250) == 600
