import os
import tempfile

# логи и данные тестов не должны попадать в рабочие каталоги
_tmp = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ.setdefault("STOREFRONT_LOG_DIR", os.path.join(_tmp, "logs"))
os.environ.setdefault("STOREFRONT_DATA_DIR", os.path.join(_tmp, "data"))
os.environ.setdefault("STOREFRONT_API_URL", "")

from datetime import date, datetime, time  # noqa: E402

import pytest  # noqa: E402

from app.api_client import FallbackClient  # noqa: E402
from app.auth import SessionHolder  # noqa: E402
from app.bookings import BookingRepository  # noqa: E402
from app.events import EventBus  # noqa: E402
from app.models import BookedSeat, BookingContext, SeatType, ShowSnapshot, User  # noqa: E402
from app.storage import LocalStorage  # noqa: E402
from app.storefront import Storefront  # noqa: E402


@pytest.fixture
def storage_path(tmp_path):
    return str(tmp_path / "local_storage.json")


@pytest.fixture
def storage(storage_path):
    return LocalStorage(storage_path)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def repository(storage, bus):
    return BookingRepository(storage, bus)


@pytest.fixture
def demo_client():
    return FallbackClient()


@pytest.fixture
def session(storage, demo_client, bus):
    holder = SessionHolder(storage, client=demo_client, bus=bus)
    holder.login("demo@example.com", "demo123")
    return holder


@pytest.fixture
def storefront(storage_path, demo_client):
    sf = Storefront(storage_path, client=demo_client, debounce_seconds=0, processing_delay=0)
    yield sf
    sf.close()


def make_context(user_id=1, show_id=2, show_date=None, show_time=time(19, 30), seats=None, total=None):
    """Контекст оформления без прохода через выбор мест"""
    seats = seats or [
        BookedSeat(seat_id=1061, label="G1", seat_type=SeatType.PREMIUM, price=350.0),
        BookedSeat(seat_id=1021, label="C1", seat_type=SeatType.STANDARD, price=250.0),
    ]
    return BookingContext(
        id="ctx-1",
        user_id=user_id,
        show=ShowSnapshot(
            show_id=show_id,
            movie_id=1,
            movie_title="Interstellar",
            venue_name="PVR Phoenix",
            screen_name="Screen 1",
            show_date=show_date or date(2030, 1, 10),
            show_time=show_time,
        ),
        seats=seats,
        total_amount=sum(s.price for s in seats) if total is None else total,
    )


@pytest.fixture
def context():
    return make_context()


@pytest.fixture
def demo_user():
    return User(1, "demo@example.com", "Demo User", ["ROLE_USER"])


VALID_CARD = {
    "payment_method": "credit_card",
    "card_number": "4111 1111 1111 1111",
    "expiry_date": "12/30",
    "cvv": "123",
    "card_holder_name": "Demo User",
}


@pytest.fixture
def card_form():
    return dict(VALID_CARD)


FAR_FUTURE = datetime(2030, 1, 1, 12, 0)
