"""
User Store
用户存储

Thread-safe in-memory store for user records.
"""

import logging
from threading import Lock
from typing import Dict, List, Optional

from .models import UserProfile

logger = logging.getLogger(__name__)


class UserNotFoundError(KeyError):
    """Raised when a user id is not in the store."""


class InMemoryUserStore:
    """
    Thread-safe in-memory user storage
    线程安全的内存用户存储
    """

    def __init__(self):
        self._users: Dict[str, UserProfile] = {}
        self._lock = Lock()

    def save(self, user: UserProfile) -> UserProfile:
        """Insert or replace a user. Only one user may be the current user."""
        with self._lock:
            if user.is_current_user:
                for other in self._users.values():
                    if other.id != user.id:
                        other.is_current_user = False
            self._users[user.id] = user
            return user

    def get(self, user_id: str) -> Optional[UserProfile]:
        with self._lock:
            return self._users.get(user_id)

    def current_user(self) -> Optional[UserProfile]:
        with self._lock:
            for user in self._users.values():
                if user.is_current_user:
                    return user
            return None

    def list_all(self) -> List[UserProfile]:
        with self._lock:
            return sorted(self._users.values(), key=lambda u: u.join_date)

    def set_profile_image_url(self, user_id: str, url: Optional[str]) -> UserProfile:
        """
        Update a user's profile image URL.

        Raises:
            UserNotFoundError: if user_id is unknown
        """
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise UserNotFoundError(user_id)
            user.profile_image_url = url
            logger.info(f"[UserStore] Updated profile image for user {user_id}")
            return user
