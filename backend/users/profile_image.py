"""
Profile image updates for user records.
"""

import logging
from typing import Optional

from profile_images.codec import ImageInput
from profile_images.service import ProfileImageService
from profile_images.storage import ProgressCallback

from .models import UserProfile
from .store import InMemoryUserStore, UserNotFoundError

logger = logging.getLogger(__name__)


async def update_profile_image(
    service: ProfileImageService,
    users: InMemoryUserStore,
    user_id: str,
    image: ImageInput,
    progress: Optional[ProgressCallback] = None,
) -> UserProfile:
    """
    Upload a new profile image and point the user record at it.

    The record is only changed after the upload succeeds; upload errors
    propagate unchanged.

    Raises:
        UserNotFoundError: if user_id is unknown (checked before uploading)
    """
    if users.get(user_id) is None:
        raise UserNotFoundError(user_id)

    url = await service.upload(image, user_id, progress=progress)
    return users.set_profile_image_url(user_id, url)


async def preload_current_user_image(service: ProfileImageService, users: InMemoryUserStore) -> bool:
    """Warm the cache with the current user's profile image, if they have one."""
    user = users.current_user()
    if user is None:
        logger.info("[UserStore] No user logged in, skipping profile image preload")
        return False
    if not user.profile_image_url:
        logger.info("[UserStore] No profile image URL to preload")
        return False
    return await service.preload(user.profile_image_url)
