"""
Document Writer

Applies planned draw commands to the original PDF with PyMuPDF and
serializes the result. Commands arrive in output space (origin
bottom-left, Y-up); PyMuPDF addresses pages from the top-left, so every
coordinate is flipped on the way in.
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import Optional

import fitz  # PyMuPDF

from .errors import InputError
from .fonts import FontResolver, FontSpec, ResolvedFont
from .mupdf_lock import MUPDF_LOCK
from .reprojection import ImagePlacement, TextRun, VectorPath

logger = logging.getLogger(__name__)


@dataclass
class ImageAsset:
    """Image bytes registered with the document; xref is set once placed."""

    digest: str
    data: bytes
    xref: int = 0


class DocumentWriter:
    """
    Draws overlays onto a loaded PDF.

    Usable as a context manager; the underlying document is closed on
    exit.
    """

    def __init__(self, source_bytes: bytes, font_resolver: Optional[FontResolver] = None):
        try:
            self.doc = fitz.open(stream=source_bytes, filetype="pdf")
        except (fitz.FileDataError, RuntimeError, ValueError) as e:
            raise InputError(f"Source document could not be opened: {e}") from e

        if self.doc.is_encrypted:
            self.doc.close()
            raise InputError("PDF is encrypted and cannot be edited")

        self.font_resolver = font_resolver or FontResolver()
        self._assets: dict[str, ImageAsset] = {}

    def __enter__(self) -> "DocumentWriter":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def page_count(self) -> int:
        return len(self.doc)

    def page_sizes(self) -> list[tuple[float, float]]:
        """Native (width, height) of every page, in PDF points."""
        with MUPDF_LOCK:
            return [(page.rect.width, page.rect.height) for page in self.doc]

    async def resolve_font(self, spec: FontSpec) -> ResolvedFont:
        return await self.font_resolver.resolve(spec)

    def embed_image_asset(self, data: bytes) -> ImageAsset:
        """Register image bytes; identical bytes share one embedded object."""
        digest = hashlib.sha256(data).hexdigest()
        asset = self._assets.get(digest)
        if asset is None:
            asset = ImageAsset(digest=digest, data=data)
            self._assets[digest] = asset
        return asset

    def add_text_run(self, run: TextRun, font: ResolvedFont) -> None:
        page = self.doc[run.page_index]
        baseline = fitz.Point(run.x, page.rect.height - run.y)
        writer = fitz.TextWriter(page.rect)
        writer.append(baseline, run.text, font=font.font, fontsize=run.font_size)
        writer.write_text(page, color=run.color.as_unit())

    def draw_image(self, placement: ImagePlacement, asset: ImageAsset) -> None:
        page = self.doc[placement.page_index]
        page_height = page.rect.height
        rect = fitz.Rect(
            placement.x,
            page_height - (placement.y + placement.height),
            placement.x + placement.width,
            page_height - placement.y,
        )
        if asset.xref:
            page.insert_image(rect, xref=asset.xref, keep_proportion=False, overlay=True)
        else:
            asset.xref = page.insert_image(
                rect, stream=asset.data, keep_proportion=False, overlay=True
            )

    def draw_vector_path(self, path: VectorPath) -> None:
        page = self.doc[path.page_index]
        page_height = page.rect.height
        shape = page.new_shape()
        for points, closed in zip(path.subpaths, path.closed):
            shape.draw_polyline([fitz.Point(x, page_height - y) for x, y in points])
            shape.finish(
                color=path.color.as_unit(),
                width=path.stroke_width,
                lineCap=1,
                lineJoin=1,
                closePath=closed,
            )
        shape.commit(overlay=True)

    def save(self) -> bytes:
        return self.doc.tobytes(garbage=3, deflate=True)

    def close(self) -> None:
        with MUPDF_LOCK:
            if not self.doc.is_closed:
                self.doc.close()
