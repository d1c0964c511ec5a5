import pytest
import requests

from app.api_client import RealClient
from app.auth import TOKEN_KEY, USER_KEY, SessionHolder
from app.errors import AuthError
from app.events import SESSION_CHANGED
from app.storage import LocalStorage


def test_login_persists_session(storage, demo_client, bus):
    changes = []
    bus.subscribe(SESSION_CHANGED, changes.append)
    session = SessionHolder(storage, client=demo_client, bus=bus)

    user = session.login("demo@example.com", "demo123")

    assert user.id == 1
    assert session.is_authenticated
    assert not session.is_admin
    assert storage.get_item(TOKEN_KEY) == session.current_token()
    assert session.auth_headers() == {"Authorization": f"Bearer {session.token}"}
    assert changes == [{"user_id": 1}]


def test_wrong_password(storage, demo_client):
    session = SessionHolder(storage, client=demo_client)
    with pytest.raises(AuthError):
        session.login("demo@example.com", "nope")
    assert not session.is_authenticated
    with pytest.raises(AuthError):
        session.require_user()


def test_admin_role(storage, demo_client):
    session = SessionHolder(storage, client=demo_client)
    session.login("admin@example.com", "admin123")
    assert session.is_admin


def test_restore_from_storage(storage_path, session):
    restored = SessionHolder(LocalStorage(storage_path))
    assert restored.user.email == "demo@example.com"
    assert restored.token == session.token


def test_corrupt_user_is_dropped(storage):
    storage.set_item(TOKEN_KEY, "abc")
    storage.set_item(USER_KEY, "{not json")
    session = SessionHolder(storage)
    assert session.user is None
    assert storage.get_item(TOKEN_KEY) is None


def test_logout_in_other_tab(storage_path, session):
    other_tab = SessionHolder(LocalStorage(storage_path))
    assert other_tab.is_authenticated

    session.logout()

    assert not other_tab.is_authenticated


def test_register_does_not_sign_in(storage, demo_client):
    session = SessionHolder(storage, client=demo_client)
    assert session.register("New User", "new@example.com", "secret1")
    assert not session.is_authenticated
    assert session.login("new@example.com", "secret1").id >= 3


class FakeResponse:

    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"{}" if payload is not None else b""

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")


def test_unauthorized_response_clears_session(storage, bus, monkeypatch):
    session = SessionHolder(storage, bus=bus)
    storage.set_item(TOKEN_KEY, "expired")
    storage.set_json(USER_KEY, {"id": 1, "email": "demo@example.com", "name": "Demo", "roles": []})
    session.restore()
    changes = []
    bus.subscribe(SESSION_CHANGED, changes.append)

    sent = {}

    def fake_request(method, url, headers=None, **kwargs):
        sent.update(headers)
        return FakeResponse(401)

    monkeypatch.setattr("app.api_client.requests.request", fake_request)
    client = RealClient("http://api.test", token_provider=session.current_token, on_unauthorized=session.clear)

    with pytest.raises(AuthError):
        client.get_user_bookings()

    assert sent["Authorization"] == "Bearer expired"
    assert not session.is_authenticated
    assert storage.get_item(TOKEN_KEY) is None
    assert changes == [{"user_id": None}]
