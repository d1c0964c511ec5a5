import json
from typing import Optional

from app.errors import AuthError
from app.events import SESSION_CHANGED, EventBus
from app.logger import logger
from app.logging_service import log_action
from app.models import User
from app.storage import LocalStorage

TOKEN_KEY = "token"
USER_KEY = "user"


class SessionHolder:
    """Текущий пользователь и токен. Хранится в LocalStorage под ключами token/user"""

    def __init__(self, storage: LocalStorage, client=None, bus: EventBus = None):
        self.storage = storage
        self.client = client
        self.bus = bus
        self.user: Optional[User] = None
        self.token: Optional[str] = None
        self.restore()
        # вход/выход в другой вкладке
        storage.add_listener(self._on_storage)

    def _on_storage(self, event):
        if event.key in (TOKEN_KEY, USER_KEY, None):
            self.restore()

    def restore(self):
        """Поднять сессию из хранилища. Битые данные удаляются"""
        token = self.storage.get_item(TOKEN_KEY)
        raw_user = self.storage.get_item(USER_KEY)
        if not token or not raw_user:
            self.user, self.token = None, None
            return
        try:
            data = json.loads(raw_user)
            self.user = User(id=data["id"], email=data["email"], name=data.get("name", ""),
                             roles=list(data.get("roles", [])))
            self.token = token
            logger.info(f"Restored session for {self.user.email}")
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.error(f"Error parsing stored user data: {e}")
            self.clear()

    def login(self, email: str, password: str) -> User:
        logger.info(f"Attempting login for {email}")
        token, user = self.client.sign_in(email, password)
        self.storage.set_item(TOKEN_KEY, token)
        self.storage.set_json(USER_KEY, {"id": user.id, "email": user.email, "name": user.name, "roles": user.roles})
        self.user, self.token = user, token
        log_action(action="LOGIN", user_id=user.email, details={"user_id": user.id})
        self._changed()
        return user

    def register(self, name: str, email: str, password: str) -> str:
        """Регистрация не выполняет вход"""
        message = self.client.sign_up(name, email, password)
        logger.info(f"Registration successful for {email}")
        return message

    def logout(self):
        if self.user:
            log_action(action="LOGOUT", user_id=self.user.email)
        self.clear()

    def clear(self):
        self.storage.remove_item(TOKEN_KEY)
        self.storage.remove_item(USER_KEY)
        was_authenticated = self.user is not None
        self.user, self.token = None, None
        if was_authenticated:
            self._changed()

    def _changed(self):
        if self.bus:
            self.bus.publish(SESSION_CHANGED, {"user_id": self.user.id if self.user else None})

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token) and self.user is not None

    @property
    def is_admin(self) -> bool:
        return bool(self.user) and "ROLE_ADMIN" in self.user.roles

    def current_token(self) -> Optional[str]:
        return self.token

    def auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def require_user(self) -> User:
        if not self.is_authenticated:
            raise AuthError("Please sign in to continue")
        return self.user
