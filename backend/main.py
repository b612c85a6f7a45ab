"""
Profile Image Service - FastAPI application

Composition root: builds the cache tiers, the fetcher, object storage and
the user store once, and hands them to the routers through app.state.

Run:
    cd backend
    python main.py
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI

from profile_images import ProfileImageConfig, ProfileImageService
from profile_images import router as profile_image_router
from profile_images.storage import ObjectStorage
from users import InMemoryUserStore
from users import router as users_router

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[ProfileImageConfig] = None,
    storage: Optional[ObjectStorage] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    user_store: Optional[InMemoryUserStore] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        config: Settings (defaults to ProfileImageConfig.from_env())
        storage: Object storage override (otherwise chosen by config)
        transport: httpx transport override for image fetches
        user_store: User store override
    """
    config = config or ProfileImageConfig.from_env()
    service = ProfileImageService.from_config(config, storage=storage, transport=transport)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("[App] Profile image service started")
        yield
        await service.close()
        logger.info("[App] Profile image service stopped")

    app = FastAPI(title="Profile Image Service", lifespan=lifespan)
    app.state.profile_image_service = service
    app.state.user_store = user_store or InMemoryUserStore()

    app.include_router(profile_image_router)
    app.include_router(users_router)
    return app


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        create_app(),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
