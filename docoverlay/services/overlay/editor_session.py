"""
Editor Session

Host-facing editing API. Owns the geometry model for one loaded
document, the active tool and selection, and wires the pointer
interaction controller, text metrics and export pipeline together.

All geometry mutation is synchronous. Only document loading and export
suspend.
"""

import logging
from typing import Any, Optional, Union

from .display_scale import DisplayScaleTracker, ScreenPoint, Viewport
from .errors import InputError
from .export_service import ExportResult, ExportService
from .fonts import FontSpec
from .interaction import (
    GeometryUpdate,
    InteractionState,
    PointerInteractionController,
    PointerSource,
)
from .models import (
    DEFAULT_FONT_SIZE,
    DEFAULT_IMAGE_SIZE,
    DEFAULT_TEXT,
    EDITABLE_FIELDS,
    LINE_HEIGHT_FACTOR,
    MIN_ELEMENT_SIZE,
    SYMBOL_DESIGN_SIZE,
    Annotation,
    AnnotationKind,
    Corner,
    FontFamily,
    ImageAnnotation,
    PageDescriptor,
    RGBColor,
    SymbolAnnotation,
    SymbolKind,
    TextAnnotation,
    Tool,
    unhandled_kind,
)
from .preview_generator import PreviewGenerator
from .text_metrics import TextMetricsProvider

logger = logging.getLogger(__name__)

DELETE_KEYS = {"Delete", "Backspace"}

# Tool shortcuts, including the Cyrillic keys in the same positions
TOOL_SHORTCUTS = {
    "t": Tool.TEXT,
    "т": Tool.TEXT,
    "s": Tool.IMAGE,
    "с": Tool.IMAGE,
}

# Text fields whose change requires re-measuring the box
_TEXT_LAYOUT_FIELDS = {"content", "font_size", "font_family", "bold", "italic"}


def _coerce_field(name: str, value: Any) -> Any:
    """Convert wire values (strings, ints) to model types."""
    if name == "font_family" and not isinstance(value, FontFamily):
        return FontFamily(value)
    if name == "symbol_kind" and not isinstance(value, SymbolKind):
        return SymbolKind(value)
    if name == "color" and not isinstance(value, RGBColor):
        return RGBColor.from_hex(value)
    if name in ("x", "y", "width", "height", "font_size"):
        return float(value)
    if name in ("bold", "italic") and not isinstance(value, bool):
        raise ValueError(f"{name} must be a boolean")
    if name in ("content", "image_data") and not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    return value


class EditorSession:
    """
    One in-memory editing session.

    Args:
        metrics: Text metrics provider used for sizing text boxes
        preview_generator: Loads and rasterizes source documents
        export_service: Bakes annotations into the output PDF
        pointer_source: Global pointer feed for drag/resize capture
    """

    def __init__(
        self,
        metrics: Optional[TextMetricsProvider] = None,
        preview_generator: Optional[PreviewGenerator] = None,
        export_service: Optional[ExportService] = None,
        pointer_source: Optional[PointerSource] = None,
    ):
        self.metrics = metrics or TextMetricsProvider()
        self.preview_generator = preview_generator or PreviewGenerator()
        self.export_service = export_service or ExportService(font_resolver=self.metrics.font_resolver)
        self.tracker = DisplayScaleTracker()
        self.controller = PointerInteractionController(
            self.tracker, self._apply_geometry, pointer_source
        )

        self.source_bytes: Optional[bytes] = None
        self.filename: Optional[str] = None
        self.pages: list[PageDescriptor] = []
        self.annotations: dict[str, Annotation] = {}
        self.selected_id: Optional[str] = None
        self.tool = Tool.SELECT
        self.signature_image: Optional[str] = None
        self.current_page_index = 0
        self._font_generation = self.metrics.font_resolver.generation

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Drop the document and every annotation."""
        self.controller.cancel()
        self.source_bytes = None
        self.filename = None
        self.pages = []
        self.annotations = {}
        self.selected_id = None
        self.tool = Tool.SELECT
        self.signature_image = None
        self.current_page_index = 0
        self.tracker = DisplayScaleTracker()
        self.controller.tracker = self.tracker

    async def load_document(
        self,
        data: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> list[PageDescriptor]:
        """
        Load a PDF or DOCX and generate its previews.

        Raises:
            InputError: Unsupported, corrupt or empty document; the
                session is left reset
        """
        self.reset()
        try:
            rendered = await self.preview_generator.load(data, filename, content_type)
        except InputError:
            logger.warning(f"Failed to load document {filename or '<unnamed>'}")
            self.reset()
            raise

        self.source_bytes = rendered.pdf_bytes
        self.filename = filename
        self.pages = rendered.pages
        self.tracker.set_page_width(self.pages[0].preview_width)
        await self.metrics.font_resolver.prefetch()
        self._font_generation = self.metrics.font_resolver.generation

        logger.info(f"Loaded {filename or 'document'} with {len(self.pages)} page(s)")
        return self.pages

    @property
    def is_loaded(self) -> bool:
        return self.source_bytes is not None

    async def export(self) -> ExportResult:
        """Bake the current annotations into the document."""
        self._require_document()
        await self.refit_text_for_fonts()
        return await self.export_service.export(
            self.source_bytes, self.pages, self.annotations.values()
        )

    async def refit_text_for_fonts(self) -> bool:
        """
        Resolve the fonts text annotations use, re-measuring every text box
        if a face downloaded since the last measurement changed the font
        their width was taken from.

        Returns:
            True if text boxes were re-measured
        """
        resolver = self.metrics.font_resolver
        texts = [a for a in self.annotations.values() if isinstance(a, TextAnnotation)]
        for spec in {FontSpec(a.font_family, a.bold, a.italic) for a in texts}:
            await resolver.resolve(spec)

        if resolver.generation == self._font_generation:
            return False
        self._font_generation = resolver.generation
        for annotation in texts:
            self.metrics.fit(annotation)
        logger.info(f"Fonts changed, re-measured {len(texts)} text annotation(s)")
        return True

    # ------------------------------------------------------------------
    # Navigation, tools and selection
    # ------------------------------------------------------------------

    @property
    def current_page(self) -> PageDescriptor:
        self._require_document()
        return self.pages[self.current_page_index]

    def go_to_page(self, index: int) -> int:
        """Show another page; the index is clamped to the document."""
        self._require_document()
        self.controller.cancel()
        self.current_page_index = max(0, min(index, len(self.pages) - 1))
        self.tracker.set_page_width(self.current_page.preview_width)
        return self.current_page_index

    def observe_viewport(self, viewport: Viewport) -> float:
        return self.tracker.observe(viewport)

    def set_tool(self, tool: Union[Tool, str]) -> Tool:
        self.tool = Tool(tool)
        return self.tool

    def set_signature_image(self, image_data: Optional[str]) -> None:
        self.signature_image = image_data

    def select(self, annotation_id: Optional[str]) -> None:
        if annotation_id is not None:
            self.get(annotation_id)
        self.selected_id = annotation_id

    def handle_key(self, key: str, text_input_focused: bool = False) -> bool:
        """
        Keyboard shortcuts.

        Ignored while a text input has focus so typing never deletes an
        annotation or switches tools.

        Returns:
            True if the key was handled
        """
        if text_input_focused:
            return False
        if self.selected_id is not None and key in DELETE_KEYS:
            return self.delete_selected()
        tool = TOOL_SHORTCUTS.get(key.lower())
        if tool is not None:
            self.tool = tool
            return True
        return False

    # ------------------------------------------------------------------
    # Annotation CRUD
    # ------------------------------------------------------------------

    def get(self, annotation_id: str) -> Annotation:
        try:
            return self.annotations[annotation_id]
        except KeyError:
            raise KeyError(f"Unknown annotation: {annotation_id}") from None

    def annotations_on_page(self, page_index: int) -> list[Annotation]:
        return [a for a in self.annotations.values() if a.page_index == page_index]

    def create_annotation(
        self,
        kind: Union[AnnotationKind, str],
        preview_x: float,
        preview_y: float,
    ) -> Annotation:
        """
        Create an annotation with its kind's defaults on the current page.

        The new annotation is selected and the tool returns to select.
        """
        self._require_document()
        kind = AnnotationKind(kind)
        page_index = self.current_page_index

        if kind is AnnotationKind.TEXT:
            annotation = TextAnnotation(
                page_index=page_index,
                x=preview_x,
                y=preview_y,
                width=1.0,
                height=DEFAULT_FONT_SIZE * LINE_HEIGHT_FACTOR,
                content=DEFAULT_TEXT,
                font_size=DEFAULT_FONT_SIZE,
            )
            annotation.width = self.metrics.content_width(annotation)
        elif kind is AnnotationKind.IMAGE:
            if not self.signature_image:
                raise ValueError("No signature image loaded")
            width, height = DEFAULT_IMAGE_SIZE
            annotation = ImageAnnotation(
                page_index=page_index,
                x=preview_x,
                y=preview_y,
                width=width,
                height=height,
                image_data=self.signature_image,
            )
        elif kind is AnnotationKind.SYMBOL:
            annotation = SymbolAnnotation(
                page_index=page_index,
                x=preview_x,
                y=preview_y,
                width=SYMBOL_DESIGN_SIZE,
                height=SYMBOL_DESIGN_SIZE,
            )
        else:
            raise unhandled_kind(kind)

        self.annotations[annotation.id] = annotation
        self.selected_id = annotation.id
        self.tool = Tool.SELECT
        logger.debug(f"Created {kind.value} annotation {annotation.id} at ({preview_x:.1f}, {preview_y:.1f})")
        return annotation

    def click_background(self, pointer: ScreenPoint, viewport: Viewport) -> Optional[Annotation]:
        """
        Click on the page outside any annotation.

        Creates an annotation when a creation tool is active, otherwise
        clears the selection.
        """
        kind = self.tool.creates
        if kind is None:
            self.selected_id = None
            return None
        if kind is AnnotationKind.IMAGE and not self.signature_image:
            logger.debug("Image tool active without a signature image; ignoring click")
            return None
        if viewport.canvas is None:
            return None

        self.tracker.observe(viewport)
        x, y = self.tracker.to_preview_point(pointer, viewport.canvas)
        return self.create_annotation(kind, x, y)

    def update_annotation(self, annotation_id: str, **fields) -> Annotation:
        """
        Apply a partial update.

        Text boxes are re-measured whenever their content or font
        changes; their width and height cannot be set directly.

        Raises:
            KeyError: Unknown annotation
            ValueError: A field is not editable for this kind or invalid
        """
        annotation = self.get(annotation_id)
        allowed = EDITABLE_FIELDS[annotation.kind]
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(
                f"Cannot update {sorted(unknown)} on a {annotation.kind.value} annotation"
            )

        coerced = {name: _coerce_field(name, value) for name, value in fields.items()}
        for name in ("width", "height", "font_size"):
            if name in coerced and coerced[name] <= 0:
                raise ValueError(f"{name} must be positive")
        for name in ("width", "height"):
            if name in coerced:
                coerced[name] = max(MIN_ELEMENT_SIZE, coerced[name])

        for name, value in coerced.items():
            setattr(annotation, name, value)

        if isinstance(annotation, TextAnnotation) and _TEXT_LAYOUT_FIELDS & set(coerced):
            self.metrics.fit(annotation)
        return annotation

    def edit_text(self, annotation_id: str, content: str) -> Annotation:
        return self.update_annotation(annotation_id, content=content)

    def delete_annotation(self, annotation_id: str) -> None:
        self.get(annotation_id)
        if self.controller.active_annotation_id == annotation_id:
            self.controller.cancel()
        del self.annotations[annotation_id]
        if self.selected_id == annotation_id:
            self.selected_id = None

    def delete_selected(self) -> bool:
        if self.selected_id is None:
            return False
        self.delete_annotation(self.selected_id)
        return True

    # ------------------------------------------------------------------
    # Pointer interactions
    # ------------------------------------------------------------------

    @property
    def interaction_state(self) -> InteractionState:
        return self.controller.state

    def begin_drag(self, annotation_id: str, pointer: ScreenPoint, viewport: Viewport) -> bool:
        """Pointer down on an annotation: select it and, with the select tool, start dragging."""
        annotation = self.get(annotation_id)
        self.selected_id = annotation_id
        if self.tool is not Tool.SELECT:
            return False
        if annotation.page_index != self.current_page_index:
            logger.debug(f"Annotation {annotation_id} is not on the visible page")
            return False
        return self.controller.begin_drag(annotation, pointer, viewport)

    def begin_resize(
        self,
        annotation_id: str,
        corner: Union[Corner, str],
        pointer: ScreenPoint,
        viewport: Viewport,
    ) -> bool:
        annotation = self.get(annotation_id)
        if annotation.page_index != self.current_page_index:
            logger.debug(f"Annotation {annotation_id} is not on the visible page")
            return False
        return self.controller.begin_resize(annotation, Corner(corner), pointer, viewport)

    def on_pointer_move(self, pointer: ScreenPoint, viewport: Viewport) -> Optional[GeometryUpdate]:
        return self.controller.on_pointer_move(pointer, viewport)

    def on_pointer_up(self) -> None:
        self.controller.on_pointer_up()

    def _apply_geometry(self, update: GeometryUpdate) -> None:
        annotation = self.get(update.annotation_id)
        for name, value in update.as_fields().items():
            setattr(annotation, name, value)

    # ------------------------------------------------------------------

    def snapshot(self) -> dict:
        return {
            "filename": self.filename,
            "pages": [page.to_dict() for page in self.pages],
            "current_page_index": self.current_page_index,
            "display_scale": self.tracker.scale,
            "tool": self.tool.value,
            "selected_id": self.selected_id,
            "interaction": self.controller.state.value,
            "has_signature_image": bool(self.signature_image),
            "annotations": [a.to_dict() for a in self.annotations.values()],
        }

    def _require_document(self) -> None:
        if not self.pages:
            raise ValueError("No document loaded")
