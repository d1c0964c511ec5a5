from dataclasses import asdict
from typing import List

from app.events import WISHLIST_CHANGED, EventBus
from app.logger import logger
from app.logging_service import log_action
from app.models import Movie, WishlistItem
from app.storage import LocalStorage

WISHLIST_KEY = "wishlist"


class Wishlist:

    def __init__(self, storage: LocalStorage, bus: EventBus):
        self.storage = storage
        self.bus = bus

    def _load(self) -> List[WishlistItem]:
        return [WishlistItem(**item) for item in self.storage.get_json(WISHLIST_KEY, []) or []]

    def _save(self, items: List[WishlistItem], detail: dict):
        self.storage.set_json(WISHLIST_KEY, [asdict(item) for item in items])
        self.bus.publish(WISHLIST_CHANGED, detail)

    def list(self, user_id: int) -> List[WishlistItem]:
        return [item for item in self._load() if item.user_id == user_id]

    def contains(self, user_id: int, movie_id: int) -> bool:
        return any(item.movie_id == movie_id for item in self.list(user_id))

    def add(self, user_id: int, movie: Movie) -> WishlistItem:
        """Повторное добавление того же фильма ничего не меняет"""
        with self.storage.lock():
            items = self._load()
            for item in items:
                if item.user_id == user_id and item.movie_id == movie.id:
                    return item
            item = WishlistItem(user_id=user_id, movie_id=movie.id, title=movie.title)
            items.append(item)
            self._save(items, {"user_id": user_id, "movie_id": movie.id, "action": "added"})
        logger.info(f"Movie {movie.id} added to wishlist of user {user_id}")
        log_action(action="WISHLIST_ADD", user_id=str(user_id), details={"movie_id": movie.id})
        return item

    def remove(self, user_id: int, movie_id: int) -> bool:
        with self.storage.lock():
            items = self._load()
            remaining = [i for i in items if not (i.user_id == user_id and i.movie_id == movie_id)]
            if len(remaining) == len(items):
                return False
            self._save(remaining, {"user_id": user_id, "movie_id": movie_id, "action": "removed"})
        log_action(action="WISHLIST_REMOVE", user_id=str(user_id), details={"movie_id": movie_id})
        return True
