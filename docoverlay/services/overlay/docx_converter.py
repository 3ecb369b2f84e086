"""
DOCX Converter

Lays out the text of a Word document onto fixed-size PDF pages so it can
be previewed and annotated like any PDF. Paragraph text, heading sizes
and table rows are kept; images and rich formatting are not.
"""

import io
import logging
import zipfile

import fitz  # PyMuPDF
from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from docx.table import Table

from .errors import InputError

logger = logging.getLogger(__name__)

PAGE_PADDING = 20.0
LINE_HEIGHT = 1.4
BODY_FONT_SIZE = 16.0

HEADING_FONT_SIZES = {
    "Title": 28.0,
    "Heading 1": 24.0,
    "Heading 2": 20.0,
    "Heading 3": 18.0,
}

REGULAR_FACE = "helv"
BOLD_FACE = "hebo"


class _PageLayout:
    """Flows wrapped lines down pages, starting a new page when full."""

    def __init__(self, doc: fitz.Document, page_width: float, page_height: float):
        self.doc = doc
        self.page_width = page_width
        self.page_height = page_height
        self.max_width = page_width - 2 * PAGE_PADDING
        self._fonts = {REGULAR_FACE: fitz.Font(REGULAR_FACE), BOLD_FACE: fitz.Font(BOLD_FACE)}
        self._page = None
        self._cursor = 0.0

    def paragraph(self, text: str, font_size: float, bold: bool) -> None:
        face = BOLD_FACE if bold else REGULAR_FACE
        line_height = font_size * LINE_HEIGHT
        for line in self._wrap(text, face, font_size):
            if self._page is None or self._cursor + line_height > self.page_height - PAGE_PADDING:
                self._new_page()
            baseline = self._cursor + font_size
            if line:
                self._page.insert_text(
                    fitz.Point(PAGE_PADDING, baseline), line, fontname=face, fontsize=font_size
                )
            self._cursor += line_height

    def finish(self) -> None:
        if self._page is None:
            self._new_page()

    def _new_page(self) -> None:
        self._page = self.doc.new_page(width=self.page_width, height=self.page_height)
        self._cursor = PAGE_PADDING

    def _wrap(self, text: str, face: str, font_size: float) -> list[str]:
        font = self._fonts[face]
        lines = []
        for paragraph in text.split("\n"):
            current = ""
            for word in paragraph.split(" "):
                candidate = word if not current else f"{current} {word}"
                if current and font.text_length(candidate, fontsize=font_size) > self.max_width:
                    lines.append(current)
                    current = word
                else:
                    current = candidate
            lines.append(current)
        return lines


def _iter_blocks(document):
    """Yield (text, font_size, bold) for paragraphs and table rows in order."""
    for block in document.iter_inner_content():
        if isinstance(block, Table):
            for row in block.rows:
                cells = [cell.text.strip() for cell in row.cells]
                yield " | ".join(cells), BODY_FONT_SIZE, False
            continue

        style_name = block.style.name if block.style is not None else ""
        font_size = HEADING_FONT_SIZES.get(style_name)
        if font_size is None and style_name.startswith("Heading"):
            font_size = BODY_FONT_SIZE
            bold = True
        elif font_size is not None:
            bold = True
        else:
            font_size = BODY_FONT_SIZE
            runs = [run for run in block.runs if run.text.strip()]
            bold = bool(runs) and all(run.bold for run in runs)
        yield block.text, font_size, bold


def convert_docx_to_pdf(
    docx_bytes: bytes,
    page_width: float = 794.0,
    page_height: float = 1123.0,
) -> bytes:
    """
    Convert a DOCX document to PDF bytes.

    Raises:
        InputError: The bytes are not a readable Word document
    """
    try:
        document = Document(io.BytesIO(docx_bytes))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise InputError(f"Word document could not be read: {e}") from e

    out = fitz.open()
    try:
        layout = _PageLayout(out, page_width, page_height)
        for text, font_size, bold in _iter_blocks(document):
            layout.paragraph(text, font_size, bold)
        layout.finish()

        logger.info(f"Converted DOCX to {out.page_count} page(s)")
        return out.tobytes(garbage=3, deflate=True)
    finally:
        out.close()
