"""
Asset Decoder

Turns the opaque image reference stored on an image annotation into
raw bytes the document writer can embed.
"""

import asyncio
import base64
import binascii
import io
import logging
from typing import Callable, Optional, Union
from urllib.parse import unquote_to_bytes

from PIL import Image, UnidentifiedImageError

from .errors import AssetError
from .fonts import http_get

logger = logging.getLogger(__name__)

# Formats the PDF writer embeds as-is; anything else is re-encoded as PNG
PASSTHROUGH_FORMATS = {"PNG", "JPEG"}

ImageRef = Union[str, bytes]


def decode_data_url(data_url: str) -> bytes:
    """Decode a `data:` URL into bytes."""
    header, sep, payload = data_url.partition(",")
    if not sep or not header.startswith("data:"):
        raise AssetError("Malformed data URL")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise AssetError(f"Invalid base64 payload in data URL: {e}") from e
    return unquote_to_bytes(payload)


def normalize_image(data: bytes) -> bytes:
    """
    Validate image bytes and make sure they are embeddable.

    PNG and JPEG pass through untouched; other formats are converted to
    PNG.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img_format = img.format
            img.load()
            if img_format in PASSTHROUGH_FORMATS:
                return data
            logger.debug(f"Re-encoding {img_format} image as PNG")
            if img.mode not in ("RGB", "RGBA", "L", "LA"):
                img = img.convert("RGBA")
            out = io.BytesIO()
            img.save(out, format="PNG")
            return out.getvalue()
    except (UnidentifiedImageError, OSError) as e:
        raise AssetError(f"Image could not be decoded: {e}") from e


class AssetDecoder:
    """
    Resolves image references: data URLs, http(s) URLs or raw bytes.

    Args:
        timeout: HTTP timeout in seconds for remote references
        fetcher: Callable (url, timeout) -> bytes, defaults to HTTP GET
    """

    def __init__(
        self,
        timeout: float = 30.0,
        fetcher: Optional[Callable[[str, float], bytes]] = None,
    ):
        self.timeout = timeout
        self._fetcher = fetcher or http_get

    async def decode(self, image_ref: ImageRef, annotation_id: Optional[str] = None) -> bytes:
        """
        Resolve and validate one image reference.

        Raises:
            AssetError: The reference cannot be fetched or decoded
        """
        try:
            if isinstance(image_ref, bytes):
                raw = image_ref
            elif image_ref.startswith("data:"):
                raw = decode_data_url(image_ref)
            elif image_ref.startswith(("http://", "https://")):
                raw = await asyncio.to_thread(self._fetcher, image_ref, self.timeout)
            else:
                raise AssetError("Unsupported image reference")
            return await asyncio.to_thread(normalize_image, raw)
        except AssetError as e:
            if e.annotation_id is None:
                e.annotation_id = annotation_id
            raise
