"""
Image Codec

Handles:
- Decoding fetched bytes into a ProfileImage (validated with PIL)
- Compressing an image to JPEG for upload
"""

import logging
from io import BytesIO
from typing import Union

from PIL import Image, UnidentifiedImageError

from .errors import ImageDecodeError, ImageEncodingError
from .models import ProfileImage

logger = logging.getLogger(__name__)

ImageInput = Union[Image.Image, bytes, ProfileImage]


def decode_image(data: bytes) -> ProfileImage:
    """
    Decode raw bytes into a ProfileImage.

    Raises:
        ImageDecodeError: if the bytes are empty, not a raster image PIL can read,
            or too large to decode safely.
    """
    if not data:
        raise ImageDecodeError("Empty image body")

    try:
        # verify() checks integrity but leaves the image unusable, so reopen
        with Image.open(BytesIO(data)) as check:
            check.verify()
        with Image.open(BytesIO(data)) as img:
            img.load()  # truncated bodies only fail on a full decode
            width, height = img.size
            image_format = img.format or ""
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise ImageDecodeError(f"Not a valid image: {e}") from e

    return ProfileImage(data=data, width=width, height=height, format=image_format)


def encode_jpeg(image: ImageInput, quality: int = 90) -> bytes:
    """
    Compress an image to JPEG.

    Args:
        image: PIL image, encoded bytes or a ProfileImage
        quality: JPEG quality (1-100)

    Raises:
        ImageEncodingError: if the input cannot be opened or saved as JPEG.
    """
    try:
        if isinstance(image, ProfileImage):
            img = image.to_pil()
        elif isinstance(image, (bytes, bytearray)):
            img = Image.open(BytesIO(bytes(image)))
        elif isinstance(image, Image.Image):
            img = image
        else:
            raise ImageEncodingError(f"Unsupported image type: {type(image).__name__}")

        # JPEG has no alpha channel: flatten onto white
        if img.mode in ("RGBA", "LA", "P"):
            if img.mode == "P":
                img = img.convert("RGBA")
            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            img = background
        elif img.mode != "RGB":
            img = img.convert("RGB")

        output = BytesIO()
        img.save(output, format="JPEG", quality=quality)
        data = output.getvalue()
    except ImageEncodingError:
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.error(f"[ImageCodec] Failed to compress image: {e}")
        raise ImageEncodingError(f"Failed to compress image: {e}") from e

    if not data:
        raise ImageEncodingError("Failed to compress image: empty output")

    logger.debug(f"[ImageCodec] Encoded JPEG ({len(data)} bytes, quality={quality})")
    return data
