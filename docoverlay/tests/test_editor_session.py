"""
Tests for EditorSession, the host-facing editing API.

Tests:
- Document loading and reset on failure
- Annotation creation defaults, selection and tool reset
- Keyboard shortcuts
- Partial updates, text refitting and size floor
- Drag/resize routed through the visible page
- Export of the session's annotations
- Text boxes re-measured once a downloaded font replaces its fallback

Run with: python -m pytest docoverlay/tests/test_editor_session.py -v
"""

import fitz  # PyMuPDF
import pytest
import pytest_asyncio

from docoverlay.services.overlay.display_scale import CanvasRect, ScreenPoint, Viewport
from docoverlay.services.overlay.editor_session import EditorSession
from docoverlay.services.overlay.errors import AssetError, InputError
from docoverlay.services.overlay.fonts import FontResolver, FontStyle
from docoverlay.services.overlay.interaction import InteractionState
from docoverlay.services.overlay.models import (
    AnnotationKind,
    Corner,
    RGBColor,
    Tool,
)
from docoverlay.services.overlay.preview_generator import PreviewGenerator
from docoverlay.services.overlay.text_metrics import MetricsMode, TextMetricsProvider

VIEWPORT = Viewport(container_width=2000, canvas=CanvasRect(left=10, top=20))


@pytest.fixture
def session():
    return EditorSession(
        metrics=TextMetricsProvider(mode=MetricsMode.HEURISTIC),
        preview_generator=PreviewGenerator(render_scale=1.0),
    )


@pytest_asyncio.fixture
async def loaded(session, pdf_bytes):
    await session.load_document(pdf_bytes, "contract.pdf", "application/pdf")
    return session


class TestLoading:
    """Tests for the document lifecycle."""

    @pytest.mark.asyncio
    async def test_load(self, session, pdf_bytes):
        pages = await session.load_document(pdf_bytes, "contract.pdf")

        assert session.is_loaded
        assert len(pages) == 2
        assert session.current_page_index == 0
        assert session.tracker.preview_width == 612

    @pytest.mark.asyncio
    async def test_failed_load_resets(self, session, pdf_bytes):
        await session.load_document(pdf_bytes, "contract.pdf")
        session.create_annotation(AnnotationKind.SYMBOL, 10, 10)

        with pytest.raises(InputError):
            await session.load_document(b"plain text", "notes.txt", "text/plain")

        assert not session.is_loaded
        assert session.annotations == {}
        assert session.pages == []

    def test_requires_document(self, session):
        with pytest.raises(ValueError, match="No document loaded"):
            session.create_annotation("text", 0, 0)

    @pytest.mark.asyncio
    async def test_export(self, loaded):
        loaded.create_annotation(AnnotationKind.TEXT, 50, 50)

        result = await loaded.export()

        doc = fitz.open(stream=result.pdf_bytes, filetype="pdf")
        try:
            assert "New Text" in doc[0].get_text()
        finally:
            doc.close()
        assert result.report.text_runs == 1


class TestCreation:
    """Tests for annotation defaults."""

    @pytest.mark.asyncio
    async def test_text_defaults(self, loaded):
        loaded.set_tool(Tool.TEXT)
        ann = loaded.create_annotation(AnnotationKind.TEXT, 30, 40)

        assert ann.content == "New Text"
        assert ann.font_size == 16
        assert ann.width == pytest.approx(8 * 16 * 0.6 + 20)
        assert ann.height == pytest.approx(19.2)
        assert loaded.selected_id == ann.id
        assert loaded.tool is Tool.SELECT

    @pytest.mark.asyncio
    async def test_image_requires_signature(self, loaded):
        with pytest.raises(ValueError):
            loaded.create_annotation(AnnotationKind.IMAGE, 0, 0)

    @pytest.mark.asyncio
    async def test_image_defaults(self, loaded, png_data_url):
        loaded.set_signature_image(png_data_url)
        ann = loaded.create_annotation("image", 0, 0)

        assert (ann.width, ann.height) == (150, 75)
        assert ann.image_data == png_data_url

    @pytest.mark.asyncio
    async def test_symbol_defaults(self, loaded):
        ann = loaded.create_annotation(AnnotationKind.SYMBOL, 5, 5)
        assert (ann.width, ann.height) == (24, 24)

    @pytest.mark.asyncio
    async def test_created_on_current_page(self, loaded):
        loaded.go_to_page(1)
        ann = loaded.create_annotation(AnnotationKind.SYMBOL, 5, 5)

        assert ann.page_index == 1
        assert loaded.annotations_on_page(0) == []

    @pytest.mark.asyncio
    async def test_click_with_creation_tool(self, loaded):
        loaded.set_tool("text")

        ann = loaded.click_background(ScreenPoint(110, 70), VIEWPORT)

        assert (ann.x, ann.y) == (100, 50)
        assert loaded.tool is Tool.SELECT

    @pytest.mark.asyncio
    async def test_click_with_select_deselects(self, loaded):
        loaded.create_annotation(AnnotationKind.SYMBOL, 5, 5)

        assert loaded.click_background(ScreenPoint(0, 0), VIEWPORT) is None
        assert loaded.selected_id is None

    @pytest.mark.asyncio
    async def test_image_tool_without_signature_ignored(self, loaded):
        loaded.set_tool(Tool.IMAGE)

        assert loaded.click_background(ScreenPoint(50, 50), VIEWPORT) is None
        assert loaded.annotations == {}


class TestKeyboard:
    """Tests for keyboard shortcuts."""

    @pytest.mark.asyncio
    async def test_tool_shortcuts(self, loaded):
        assert loaded.handle_key("t") is True
        assert loaded.tool is Tool.TEXT
        assert loaded.handle_key("С") is True
        assert loaded.tool is Tool.IMAGE

    @pytest.mark.asyncio
    async def test_delete_selected(self, loaded):
        ann = loaded.create_annotation(AnnotationKind.SYMBOL, 5, 5)

        assert loaded.handle_key("Backspace") is True
        assert ann.id not in loaded.annotations
        assert loaded.selected_id is None

    @pytest.mark.asyncio
    async def test_ignored_while_typing(self, loaded):
        ann = loaded.create_annotation(AnnotationKind.SYMBOL, 5, 5)

        assert loaded.handle_key("Delete", text_input_focused=True) is False
        assert ann.id in loaded.annotations

    def test_unknown_key(self, session):
        assert session.handle_key("x") is False


class TestUpdates:
    """Tests for partial updates."""

    @pytest.mark.asyncio
    async def test_text_content_refits(self, loaded):
        ann = loaded.create_annotation(AnnotationKind.TEXT, 0, 0)

        loaded.edit_text(ann.id, "A much longer line\nand a second")

        assert ann.width == pytest.approx(18 * 16 * 0.6 + 20)
        assert ann.height == pytest.approx(2 * 19.2)

    @pytest.mark.asyncio
    async def test_bold_widens(self, loaded):
        ann = loaded.create_annotation(AnnotationKind.TEXT, 0, 0)
        before = ann.width

        loaded.update_annotation(ann.id, bold=True)

        assert ann.width > before

    @pytest.mark.asyncio
    async def test_text_size_not_editable(self, loaded):
        ann = loaded.create_annotation(AnnotationKind.TEXT, 0, 0)

        with pytest.raises(ValueError):
            loaded.update_annotation(ann.id, width=300)

    @pytest.mark.asyncio
    async def test_image_size_floor(self, loaded, png_data_url):
        loaded.set_signature_image(png_data_url)
        ann = loaded.create_annotation(AnnotationKind.IMAGE, 0, 0)

        loaded.update_annotation(ann.id, width=5, height="12")

        assert (ann.width, ann.height) == (20, 20)

    @pytest.mark.asyncio
    async def test_rejects_non_positive(self, loaded):
        ann = loaded.create_annotation(AnnotationKind.SYMBOL, 0, 0)

        with pytest.raises(ValueError):
            loaded.update_annotation(ann.id, height=-1)

    @pytest.mark.asyncio
    async def test_symbol_color(self, loaded):
        ann = loaded.create_annotation(AnnotationKind.SYMBOL, 0, 0)

        loaded.update_annotation(ann.id, color="#00ff00")

        assert ann.color == RGBColor(0, 255, 0)

    @pytest.mark.asyncio
    async def test_unknown_annotation(self, loaded):
        with pytest.raises(KeyError):
            loaded.update_annotation("missing", x=1)


class TestNavigationAndPointer:
    """Tests for page navigation and pointer routing."""

    @pytest.mark.asyncio
    async def test_page_clamped(self, loaded):
        assert loaded.go_to_page(7) == 1
        assert loaded.go_to_page(-3) == 0

    @pytest.mark.asyncio
    async def test_drag_moves_annotation(self, loaded):
        ann = loaded.create_annotation(AnnotationKind.SYMBOL, 10, 10)

        assert loaded.begin_drag(ann.id, ScreenPoint(25, 35), VIEWPORT) is True
        loaded.on_pointer_move(ScreenPoint(70, 80), VIEWPORT)
        loaded.on_pointer_up()

        assert (ann.x, ann.y) == (55, 55)
        assert loaded.interaction_state is InteractionState.IDLE

    @pytest.mark.asyncio
    async def test_drag_only_with_select_tool(self, loaded):
        ann = loaded.create_annotation(AnnotationKind.SYMBOL, 10, 10)
        loaded.set_tool(Tool.TEXT)

        assert loaded.begin_drag(ann.id, ScreenPoint(25, 35), VIEWPORT) is False
        assert loaded.selected_id == ann.id

    @pytest.mark.asyncio
    async def test_drag_off_page_ignored(self, loaded):
        ann = loaded.create_annotation(AnnotationKind.SYMBOL, 10, 10)
        loaded.go_to_page(1)

        assert loaded.begin_drag(ann.id, ScreenPoint(25, 35), VIEWPORT) is False

    @pytest.mark.asyncio
    async def test_resize_image(self, loaded, png_data_url):
        loaded.set_signature_image(png_data_url)
        ann = loaded.create_annotation(AnnotationKind.IMAGE, 100, 100)

        assert loaded.begin_resize(ann.id, "bottom-right", ScreenPoint(260, 195), VIEWPORT)
        loaded.on_pointer_move(ScreenPoint(290, 195), VIEWPORT)
        loaded.on_pointer_up()

        assert (ann.x, ann.y, ann.width, ann.height) == (100, 100, 180, 90)

    @pytest.mark.asyncio
    async def test_text_resize_refused(self, loaded):
        ann = loaded.create_annotation(AnnotationKind.TEXT, 0, 0)
        assert loaded.begin_resize(ann.id, Corner.TOP_LEFT, ScreenPoint(0, 0), VIEWPORT) is False

    @pytest.mark.asyncio
    async def test_delete_during_drag_cancels(self, loaded):
        ann = loaded.create_annotation(AnnotationKind.SYMBOL, 10, 10)
        loaded.begin_drag(ann.id, ScreenPoint(25, 35), VIEWPORT)

        loaded.delete_annotation(ann.id)

        assert loaded.interaction_state is InteractionState.IDLE

    @pytest.mark.asyncio
    async def test_snapshot(self, loaded):
        loaded.create_annotation(AnnotationKind.SYMBOL, 10, 10)

        snap = loaded.snapshot()

        assert snap["filename"] == "contract.pdf"
        assert snap["pages"][0] == {"width": 612, "height": 792}
        assert snap["tool"] == "select"
        assert snap["interaction"] == "idle"
        assert len(snap["annotations"]) == 1


class TestFontChanges:
    """Tests for re-measuring text after a late font download."""

    @pytest.mark.asyncio
    async def test_text_refit_when_embedded_font_arrives(self, pdf_bytes):
        online = {"value": False}
        courier = fitz.Font("cour").buffer

        def fetcher(url, timeout):
            if not online["value"]:
                raise AssetError("offline")
            return courier

        resolver = FontResolver(
            embed_unicode=True,
            font_urls={FontStyle.REGULAR: "https://fonts.example/r.ttf"},
            fetcher=fetcher,
        )
        session = EditorSession(
            metrics=TextMetricsProvider(font_resolver=resolver, mode=MetricsMode.SHAPED),
            preview_generator=PreviewGenerator(render_scale=1.0),
        )
        await session.load_document(pdf_bytes, "contract.pdf")
        ann = session.create_annotation(AnnotationKind.TEXT, 10, 10)
        fallback_width = ann.width

        online["value"] = True
        await session.export()

        # Courier advances 0.6 em per glyph
        assert ann.width == pytest.approx(8 * 16 * 0.6 + 20)
        assert ann.width != pytest.approx(fallback_width)

    @pytest.mark.asyncio
    async def test_no_refit_without_font_change(self, loaded):
        ann = loaded.create_annotation(AnnotationKind.TEXT, 0, 0)
        ann.width = 500

        assert await loaded.refit_text_for_fonts() is False
        assert ann.width == 500
