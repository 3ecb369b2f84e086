"""
Preview Generator

Rasterizes document pages into fixed-resolution PNG previews. The pixel
size of each preview defines the page's preview coordinate space.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import fitz  # PyMuPDF

from .docx_converter import convert_docx_to_pdf
from .errors import InputError
from .models import PageDescriptor
from .mupdf_lock import run_locked

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class SourceType(Enum):
    PDF = "pdf"
    DOCX = "docx"


@dataclass
class RenderedDocument:
    """A loaded document: the PDF that will be edited plus its previews."""

    pdf_bytes: bytes = field(repr=False)
    pages: list[PageDescriptor]
    source_type: SourceType


def detect_source_type(
    data: bytes,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
) -> SourceType:
    """
    Identify the input format from content type, extension or magic bytes.

    Raises:
        InputError: The format is not supported
    """
    name = (filename or "").lower()
    if content_type == PDF_CONTENT_TYPE or name.endswith(".pdf"):
        return SourceType.PDF
    if content_type == DOCX_CONTENT_TYPE or name.endswith(".docx"):
        return SourceType.DOCX
    if data.startswith(b"%PDF"):
        return SourceType.PDF
    raise InputError(f"Unsupported file type: {content_type or 'unknown'} for file {filename or '<unnamed>'}")


class PreviewGenerator:
    """
    Produces page previews for PDF and DOCX input.

    Args:
        render_scale: Raster zoom relative to 72 DPI
        docx_page_size: (width, height) of pages created from DOCX input
    """

    def __init__(
        self,
        render_scale: float = 1.5,
        docx_page_size: tuple[float, float] = (794.0, 1123.0),
    ):
        if render_scale <= 0:
            raise ValueError(f"render_scale must be positive, got {render_scale}")
        self.render_scale = render_scale
        self.docx_page_size = docx_page_size

    @classmethod
    def from_settings(cls, settings) -> "PreviewGenerator":
        return cls(
            render_scale=settings.preview_render_scale,
            docx_page_size=(settings.docx_render_width, settings.docx_render_height),
        )

    async def load(
        self,
        data: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> RenderedDocument:
        """Convert if needed, then render every page."""
        source_type = detect_source_type(data, filename, content_type)
        if source_type is SourceType.DOCX:
            pdf_bytes = await run_locked(convert_docx_to_pdf, data, *self.docx_page_size)
        else:
            pdf_bytes = data

        pages = await run_locked(self.render_pages, pdf_bytes)
        return RenderedDocument(pdf_bytes=pdf_bytes, pages=pages, source_type=source_type)

    def render_pages(self, pdf_bytes: bytes) -> list[PageDescriptor]:
        """
        Render each PDF page to a PNG preview.

        Raises:
            InputError: The PDF cannot be parsed or has no pages
        """
        try:
            doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        except (fitz.FileDataError, RuntimeError, ValueError) as e:
            raise InputError(f"Document could not be parsed: {e}") from e

        try:
            if doc.is_encrypted:
                raise InputError("PDF is encrypted and cannot be edited")
            if doc.page_count == 0:
                raise InputError("The selected document has no pages")

            matrix = fitz.Matrix(self.render_scale, self.render_scale)
            pages = []
            for page in doc:
                pix = page.get_pixmap(matrix=matrix)
                pages.append(PageDescriptor(
                    preview_width=pix.width,
                    preview_height=pix.height,
                    image=pix.tobytes("png"),
                ))
            logger.info(f"Rendered {len(pages)} preview page(s) at {self.render_scale}x")
            return pages
        finally:
            doc.close()
