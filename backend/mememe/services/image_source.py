"""
Image Source Service.

This module turns what the client's camera or photo library produced into
a decoded Pillow image. The client either uploads the photo as base64 or
points at it with a URL; sending nothing means the picker was cancelled.
"""

import base64
import binascii
import logging
from io import BytesIO
from typing import Optional, Protocol

import httpx
from PIL import Image, UnidentifiedImageError

from mememe.config import Settings, get_settings
from mememe.schemas.meme import ImageSourceKind, PickResult

# Configure logging
logger = logging.getLogger(__name__)


class ImageSourceError(Exception):
    """Base exception for image source errors."""
    pass


class ImageSourceUnavailableError(ImageSourceError):
    """Raised when the requested picker source is not supported."""

    def __init__(self, kind: ImageSourceKind):
        self.kind = ImageSourceKind(kind)
        super().__init__(f"Image source '{self.kind.value}' is not available on this device")


class ImageDecodeError(ImageSourceError):
    """Raised when the picked data is not a readable image."""
    pass


class ImageSourceConnectionError(ImageSourceError):
    """Raised when a picked image URL cannot be fetched."""
    pass


class ImageSource(Protocol):
    """Collaborator that supplies source photos."""

    def is_available(self, kind: ImageSourceKind) -> bool: ...

    async def request(
        self,
        kind: ImageSourceKind,
        image_base64: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> PickResult: ...


class UploadImageSource:
    """
    Image source backed by client uploads.

    Camera and library availability come from settings so deployments can
    stop offering a picker the clients do not have.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the image source.

        Args:
            settings: Optional settings instance. If not provided, uses default settings.
            transport: Optional httpx transport for URL fetches. Defaults to the network.
        """
        self.settings = settings or get_settings()
        self.transport = transport

    def is_available(self, kind: ImageSourceKind) -> bool:
        kind = ImageSourceKind(kind)
        if kind is ImageSourceKind.CAMERA:
            return self.settings.CAMERA_AVAILABLE
        return self.settings.PHOTO_LIBRARY_AVAILABLE

    async def request(
        self,
        kind: ImageSourceKind,
        image_base64: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> PickResult:
        """
        Resolve a pick into an image or a cancellation.

        Args:
            kind: Picker source the client used
            image_base64: Uploaded image, plain base64 or data URI
            image_url: URL of the picked image

        Returns:
            PickResult with the decoded image, or with no image if cancelled

        Raises:
            ImageSourceUnavailableError: If kind is not offered
            ImageDecodeError: If the data is not a readable image
            ImageSourceConnectionError: If the URL cannot be fetched
        """
        kind = ImageSourceKind(kind)
        if not self.is_available(kind):
            raise ImageSourceUnavailableError(kind)

        if image_base64:
            data = self._decode_base64(image_base64)
        elif image_url:
            data = await self._fetch(image_url)
        else:
            logger.info(f"Image pick from {kind.value} cancelled")
            return PickResult(kind=kind)

        image = self._open_image(data)
        logger.info(f"Picked {image.width}x{image.height} image from {kind.value}")
        return PickResult(kind=kind, image=image)

    def _decode_base64(self, image_base64: str) -> bytes:
        raw = image_base64
        if raw.startswith("data:"):
            raw = raw.split(",", 1)[-1]
        try:
            data = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ImageDecodeError(f"Image data is not valid base64: {e}") from e
        self._check_size(len(data))
        return data

    async def _fetch(self, image_url: str) -> bytes:
        logger.info(f"Fetching picked image from {image_url}")
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.IMAGE_FETCH_TIMEOUT,
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                async with client.stream("GET", image_url) as response:
                    if response.status_code != 200:
                        logger.error(f"Image URL returned status {response.status_code}")
                        raise ImageSourceConnectionError(
                            f"Image URL returned status {response.status_code}"
                        )

                    # Refuse oversized files before downloading them
                    content_length = response.headers.get("Content-Length", "")
                    if content_length.isdigit():
                        self._check_size(int(content_length))

                    chunks: list[bytes] = []
                    received = 0
                    async for chunk in response.aiter_bytes():
                        received += len(chunk)
                        self._check_size(received)
                        chunks.append(chunk)

        except httpx.TimeoutException as e:
            logger.error(f"Image fetch timed out: {e}")
            raise ImageSourceConnectionError(
                f"Fetching the image timed out after {self.settings.IMAGE_FETCH_TIMEOUT} seconds"
            ) from e

        except httpx.HTTPError as e:
            logger.error(f"HTTP error fetching image: {e}")
            raise ImageSourceConnectionError(f"Failed to fetch image: {str(e)}") from e

        return b"".join(chunks)

    def _check_size(self, size: int) -> None:
        if size > self.settings.MAX_UPLOAD_BYTES:
            raise ImageDecodeError(
                f"Image is {size} bytes, larger than the {self.settings.MAX_UPLOAD_BYTES} byte limit"
            )

    @staticmethod
    def _open_image(data: bytes) -> Image.Image:
        try:
            image = Image.open(BytesIO(data))
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            raise ImageDecodeError(f"Picked data is not a readable image: {e}") from e
        return image.convert("RGB")


# Convenience function for dependency injection
def get_image_source() -> UploadImageSource:
    """Get an UploadImageSource instance for dependency injection."""
    return UploadImageSource()
