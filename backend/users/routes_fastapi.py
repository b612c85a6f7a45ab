"""
User API Routes

Provides endpoints for:
- Creating and reading user records
- Replacing a user's profile image
- Preloading the current user's profile image
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from profile_images.errors import ImageEncodingError, StorageError
from profile_images.routes_fastapi import decode_base64_image, get_service

from .models import UserProfile
from .profile_image import preload_current_user_image, update_profile_image
from .store import InMemoryUserStore, UserNotFoundError

logger = logging.getLogger(__name__)


def get_user_store(request: Request) -> InMemoryUserStore:
    return request.app.state.user_store


# ============================================
# Request/Response Models
# ============================================

class CreateUserRequest(BaseModel):
    """Request model for creating a user record."""
    name: str
    email: str
    password_hash: str = Field(..., description="Credential hash from the auth provider")
    weight: Optional[float] = Field(None, ge=0)
    height: Optional[float] = Field(None, ge=0)
    fitness_goal: Optional[str] = None
    is_current_user: bool = False


class ProfileImageRequest(BaseModel):
    """Request model for replacing a user's profile image."""
    image_base64: str = Field(..., description="Base64-encoded image (any format PIL can read)")


# ============================================
# Router
# ============================================

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.post("")
async def create_user(request: Request, body: CreateUserRequest):
    """Create a user record."""
    user = get_user_store(request).save(UserProfile(**body.model_dump()))
    return JSONResponse(status_code=201, content={"success": True, "user": user.to_dict()})


@router.get("")
async def list_users(request: Request):
    """List user records, oldest first."""
    users = get_user_store(request).list_all()
    return JSONResponse(content={"success": True, "users": [u.to_dict() for u in users]})


@router.get("/{user_id}")
async def get_user(request: Request, user_id: str):
    user = get_user_store(request).get(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail=f"Unknown user: {user_id}")
    return JSONResponse(content={"success": True, "user": user.to_dict()})


@router.post("/{user_id}/profile-image")
async def set_profile_image(request: Request, user_id: str, body: ProfileImageRequest):
    """
    Upload a new profile image and store its URL on the user record.

    On failure the record keeps its previous URL.
    """
    image_data = decode_base64_image(body.image_base64)

    try:
        user = await update_profile_image(
            get_service(request),
            get_user_store(request),
            user_id,
            image_data,
        )
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail=f"Unknown user: {user_id}")
    except ImageEncodingError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        logger.error(f"[Users] Profile image upload failed for {user_id}: {e}")
        raise HTTPException(status_code=502, detail=f"Upload failed: {e}")

    return JSONResponse(content={"success": True, "user": user.to_dict()})


@router.post("/current/preload-image")
async def preload_image(request: Request):
    """Warm the image cache with the current user's profile image."""
    preloaded = await preload_current_user_image(get_service(request), get_user_store(request))
    return JSONResponse(content={"success": True, "preloaded": preloaded})
