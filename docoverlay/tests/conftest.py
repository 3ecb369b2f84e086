"""Shared fixtures: generated PDFs, images and Word documents."""

import base64
import io

import fitz  # PyMuPDF
import pytest
from docx import Document
from PIL import Image


def build_pdf(page_sizes, text=None) -> bytes:
    """Create a PDF with one page per (width, height)."""
    doc = fitz.open()
    try:
        for width, height in page_sizes:
            page = doc.new_page(width=width, height=height)
            if text:
                page.insert_text(fitz.Point(36, 72), text, fontname="helv", fontsize=12)
        return doc.tobytes()
    finally:
        doc.close()


def build_image(fmt: str = "PNG", size=(40, 20), color=(200, 30, 30)) -> bytes:
    img = Image.new("RGB", size, color)
    out = io.BytesIO()
    img.save(out, format=fmt)
    return out.getvalue()


def as_data_url(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64," + base64.b64encode(data).decode("ascii")


@pytest.fixture
def pdf_bytes():
    """Two Letter-size pages."""
    return build_pdf([(612, 792), (612, 792)], text="Sample page")


@pytest.fixture
def single_page_pdf():
    return build_pdf([(400, 500)])


@pytest.fixture
def png_bytes():
    return build_image("PNG")


@pytest.fixture
def png_data_url(png_bytes):
    return as_data_url(png_bytes)


@pytest.fixture
def gif_bytes():
    return build_image("GIF")


@pytest.fixture
def docx_bytes():
    document = Document()
    document.add_heading("Service Agreement", level=1)
    document.add_paragraph("This agreement is made between the parties named below.")
    table = document.add_table(rows=2, cols=2)
    table.cell(0, 0).text = "Name"
    table.cell(0, 1).text = "Signature"
    table.cell(1, 0).text = "Jane Doe"
    table.cell(1, 1).text = ""
    out = io.BytesIO()
    document.save(out)
    return out.getvalue()
