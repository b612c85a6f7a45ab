"""
User store and profile image update tests
"""

import pytest

from profile_images.errors import ImageEncodingError, StorageError
from users import InMemoryUserStore, UserNotFoundError, UserProfile
from users import preload_current_user_image, update_profile_image


@pytest.fixture
def users() -> InMemoryUserStore:
    store = InMemoryUserStore()
    store.save(UserProfile(id="u1", name="Ada", email="ada@example.com", password_hash="h1", is_current_user=True))
    store.save(UserProfile(id="u2", name="Bo", email="bo@example.com", password_hash="h2"))
    return store


class TestUserStore:

    def test_current_user(self, users):
        assert users.current_user().id == "u1"

    def test_only_one_current_user(self, users):
        users.save(UserProfile(id="u3", name="Cy", email="cy@example.com", password_hash="h3", is_current_user=True))

        assert users.current_user().id == "u3"
        assert users.get("u1").is_current_user is False

    def test_set_profile_image_url(self, users):
        user = users.set_profile_image_url("u2", "https://storage.test/x.jpg")

        assert user.profile_image_url == "https://storage.test/x.jpg"
        assert users.get("u2").profile_image_url == "https://storage.test/x.jpg"

    def test_set_profile_image_url_unknown_user(self, users):
        with pytest.raises(UserNotFoundError):
            users.set_profile_image_url("nobody", "https://storage.test/x.jpg")

    def test_to_dict_hides_credentials(self, users):
        data = users.get("u1").to_dict()

        assert "password_hash" not in data
        assert data["email"] == "ada@example.com"
        assert data["profile_image_url"] is None


class TestUpdateProfileImage:

    @pytest.mark.asyncio
    async def test_success_updates_record(self, service, users, jpeg_bytes):
        user = await update_profile_image(service, users, "u1", jpeg_bytes)

        assert user.profile_image_url.startswith("https://storage.test/o/profile_images%2Fu1_")
        assert user.profile_image_url in service.memory_cache

    @pytest.mark.asyncio
    async def test_upload_failure_leaves_record_unchanged(self, service, storage, users, jpeg_bytes):
        users.set_profile_image_url("u1", "https://storage.test/old.jpg")
        storage.fail_uploads_with = StorageError("network down")

        with pytest.raises(StorageError):
            await update_profile_image(service, users, "u1", jpeg_bytes)

        assert users.get("u1").profile_image_url == "https://storage.test/old.jpg"

    @pytest.mark.asyncio
    async def test_encoding_failure_leaves_record_unchanged(self, service, users):
        with pytest.raises(ImageEncodingError):
            await update_profile_image(service, users, "u2", b"nope")

        assert users.get("u2").profile_image_url is None

    @pytest.mark.asyncio
    async def test_unknown_user_never_uploads(self, service, storage, users, jpeg_bytes):
        with pytest.raises(UserNotFoundError):
            await update_profile_image(service, users, "ghost", jpeg_bytes)

        assert storage.stored_objects == {}


class TestPreloadCurrentUserImage:

    @pytest.mark.asyncio
    async def test_preloads_current_user_image(self, service, users, image_server, jpeg_bytes):
        url = "https://cdn/u1.jpg"
        image_server.serve(url, jpeg_bytes)
        users.set_profile_image_url("u1", url)

        assert await preload_current_user_image(service, users) is True
        assert url in service.memory_cache

    @pytest.mark.asyncio
    async def test_no_image_url(self, service, users, image_server):
        assert await preload_current_user_image(service, users) is False
        assert image_server.requests == []

    @pytest.mark.asyncio
    async def test_no_current_user(self, service, image_server):
        assert await preload_current_user_image(service, InMemoryUserStore()) is False
