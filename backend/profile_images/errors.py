"""
Profile Image Errors

Exception hierarchy for the profile image pipeline.

- ImageEncodingError: image could not be compressed for upload (terminal)
- ImageDecodeError: fetched bytes are not a valid raster image
- StorageError: object storage upload / URL resolution failed
"""


class ProfileImageError(Exception):
    """Base class for profile image pipeline errors."""


class ImageEncodingError(ProfileImageError):
    """Raised when an image cannot be encoded to JPEG."""


class ImageDecodeError(ProfileImageError):
    """Raised when bytes cannot be decoded as an image."""


class StorageError(ProfileImageError):
    """Raised by object storage clients when an upload or URL lookup fails."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path
