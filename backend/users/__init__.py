"""
Users Module

User records and the profile image update flow.
"""

from .models import UserProfile
from .store import InMemoryUserStore, UserNotFoundError
from .profile_image import update_profile_image, preload_current_user_image
from .routes_fastapi import router

__all__ = [
    "router",
    "UserProfile",
    "InMemoryUserStore",
    "UserNotFoundError",
    "update_profile_image",
    "preload_current_user_image",
]
