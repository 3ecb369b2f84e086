"""
Font Resolution

Maps a (family, bold, italic) triple to a concrete font resource.

Resolution policy:
- Default: the nearest PDF base-14 family. Helvetica, Arial and Verdana
  resolve to Helvetica; Times New Roman resolves to Times; Courier
  resolves to Courier. Bold/italic select the matching base-14 face.
- With Unicode embedding enabled: every family resolves to one embedded
  Unicode-capable font, choosing only the face (regular, bold, italic,
  bold-italic). A face whose download fails twice falls back to the
  base-14 mapping above for the rest of the export.

The same triple always resolves to the same resource within a process.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import fitz  # PyMuPDF
import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .errors import AssetError
from .models import FontFamily
from .mupdf_lock import MUPDF_LOCK

logger = logging.getLogger(__name__)

# One retry after the first failed download
FONT_FETCH_ATTEMPTS = 2


class FontStyle(Enum):
    """Face within a family."""

    REGULAR = "regular"
    BOLD = "bold"
    ITALIC = "italic"
    BOLD_ITALIC = "bold-italic"

    @classmethod
    def from_flags(cls, bold: bool, italic: bool) -> "FontStyle":
        if bold and italic:
            return cls.BOLD_ITALIC
        if bold:
            return cls.BOLD
        if italic:
            return cls.ITALIC
        return cls.REGULAR


BASE14_FAMILY = {
    FontFamily.HELVETICA: "helvetica",
    FontFamily.ARIAL: "helvetica",
    FontFamily.VERDANA: "helvetica",
    FontFamily.TIMES_NEW_ROMAN: "times",
    FontFamily.COURIER: "courier",
}

# PyMuPDF short names for the base-14 faces
BASE14_FACES = {
    "helvetica": {
        FontStyle.REGULAR: "helv",
        FontStyle.BOLD: "hebo",
        FontStyle.ITALIC: "heit",
        FontStyle.BOLD_ITALIC: "hebi",
    },
    "times": {
        FontStyle.REGULAR: "tiro",
        FontStyle.BOLD: "tibo",
        FontStyle.ITALIC: "tiit",
        FontStyle.BOLD_ITALIC: "tibi",
    },
    "courier": {
        FontStyle.REGULAR: "cour",
        FontStyle.BOLD: "cobo",
        FontStyle.ITALIC: "coit",
        FontStyle.BOLD_ITALIC: "cobi",
    },
}


@dataclass(frozen=True)
class FontSpec:
    """Font request as carried by a text annotation."""

    family: FontFamily
    bold: bool = False
    italic: bool = False

    @property
    def style(self) -> FontStyle:
        return FontStyle.from_flags(self.bold, self.italic)


@dataclass(frozen=True)
class ResolvedFont:
    """A font resource ready for measuring and drawing."""

    spec: FontSpec
    resource_name: str
    font: fitz.Font
    embedded: bool = False
    substituted: bool = False


def base14_name(spec: FontSpec) -> str:
    """Base-14 face name for a font request."""
    return BASE14_FACES[BASE14_FAMILY[spec.family]][spec.style]


def http_get(url: str, timeout: float) -> bytes:
    """Download a resource, raising AssetError on any failure."""
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise AssetError(f"Failed to fetch {url}: {e}") from e
    return response.content


class FontResolver:
    """
    Resolves and caches font resources.

    Args:
        embed_unicode: Embed one Unicode font for every family
        font_urls: Download URL per face, used when embedding
        timeout: HTTP timeout in seconds
        fetcher: Callable (url, timeout) -> bytes, defaults to HTTP GET
    """

    def __init__(
        self,
        embed_unicode: bool = False,
        font_urls: Optional[dict[FontStyle, str]] = None,
        timeout: float = 30.0,
        fetcher: Optional[Callable[[str, float], bytes]] = None,
    ):
        self.embed_unicode = embed_unicode
        self.font_urls = font_urls or {}
        self.timeout = timeout
        self._fetcher = fetcher or http_get
        self._font_bytes: dict[FontStyle, bytes] = {}
        self._fonts: dict[str, fitz.Font] = {}
        self.fallback_count = 0
        # Bumped whenever a newly downloaded face changes what font_for returns
        self.generation = 0

    @classmethod
    def from_settings(cls, settings) -> "FontResolver":
        return cls(
            embed_unicode=settings.embed_unicode_font,
            font_urls=settings.unicode_font_urls,
            timeout=settings.font_fetch_timeout,
        )

    def font_for(self, spec: FontSpec) -> ResolvedFont:
        """
        Resolve without any I/O.

        Uses an already downloaded embedded face when one is cached,
        otherwise the base-14 substitute.
        """
        style = spec.style
        if self.embed_unicode and style in self._font_bytes:
            name = f"unicode-{style.value}"
            font = self._fonts.get(name)
            if font is None:
                with MUPDF_LOCK:
                    font = fitz.Font(fontbuffer=self._font_bytes[style])
                self._fonts[name] = font
            return ResolvedFont(spec=spec, resource_name=name, font=font, embedded=True)

        name = base14_name(spec)
        font = self._fonts.get(name)
        if font is None:
            with MUPDF_LOCK:
                font = fitz.Font(name)
            self._fonts[name] = font
        substituted = self.embed_unicode or spec.family not in (
            FontFamily.HELVETICA, FontFamily.TIMES_NEW_ROMAN, FontFamily.COURIER
        )
        return ResolvedFont(spec=spec, resource_name=name, font=font, substituted=substituted)

    async def resolve(self, spec: FontSpec) -> ResolvedFont:
        """Resolve a font, downloading the embedded face when needed."""
        if self.embed_unicode and spec.style not in self._font_bytes:
            try:
                await self._download(spec.style)
            except AssetError as e:
                self.fallback_count += 1
                logger.warning(
                    f"Font '{spec.style.value}' unavailable after retry, "
                    f"substituting {base14_name(spec)}: {e}"
                )
        return self.font_for(spec)

    async def prefetch(self) -> None:
        """Download every embedded face up front."""
        if not self.embed_unicode:
            return
        for style in FontStyle:
            await self.resolve(FontSpec(FontFamily.HELVETICA, *_flags(style)))

    async def _download(self, style: FontStyle) -> None:
        url = self.font_urls.get(style)
        if not url:
            raise AssetError(f"No font URL configured for '{style.value}'")
        data = await self._fetch_with_retry(url)
        # Failed downloads are never cached so a later export retries
        self._font_bytes[style] = data
        self.generation += 1
        logger.info(f"Loaded font '{style.value}' ({len(data)} bytes)")

    @retry(
        stop=stop_after_attempt(FONT_FETCH_ATTEMPTS),
        wait=wait_exponential(multiplier=0.5, max=2),
        retry=retry_if_exception_type(AssetError),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            f"Retrying font fetch (attempt {retry_state.attempt_number}/{FONT_FETCH_ATTEMPTS}): "
            f"{retry_state.outcome.exception()}"
        ),
    )
    async def _fetch_with_retry(self, url: str) -> bytes:
        return await asyncio.to_thread(self._fetcher, url, self.timeout)


def _flags(style: FontStyle) -> tuple[bool, bool]:
    return (
        style in (FontStyle.BOLD, FontStyle.BOLD_ITALIC),
        style in (FontStyle.ITALIC, FontStyle.BOLD_ITALIC),
    )
