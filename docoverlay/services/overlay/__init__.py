"""
Document Overlay Service

This module places free-floating text, signature images and vector
checkmarks over rasterized page previews and bakes them into the PDF.

Components:
- PreviewGenerator: Rasterizes PDF (and converted DOCX) pages to PNG previews
- TextMetricsProvider: Measures text and sizes text annotation boxes
- DisplayScaleTracker: Converts on-screen pointer coordinates to preview space
- PointerInteractionController: Drag and aspect-locked resize state machine
- ReprojectionEngine: Maps preview-space annotations to PDF draw commands
- DocumentWriter: Applies draw commands to the output PDF
- ExportService: Orchestrates asset decoding, font resolution and writing
- EditorSession: Host-facing editing API tying everything together
- MUPDF_LOCK: Serializes PyMuPDF access across worker threads
"""

from .errors import AssetError, GeometryError, InputError, OverlayError
from .models import (
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
)
from .fonts import FontResolver, FontSpec, FontStyle
from .text_metrics import MetricsMode, TextMetricsProvider
from .display_scale import CanvasRect, DisplayScaleTracker, ScreenPoint, Viewport
from .interaction import GeometryUpdate, InteractionState, PointerInteractionController
from .reprojection import ImagePlacement, PageTransform, ReprojectionEngine, TextRun, VectorPath
from .assets import AssetDecoder
from .document_writer import DocumentWriter
from .preview_generator import PreviewGenerator, RenderedDocument, SourceType
from .export_service import ExportReport, ExportResult, ExportService, export_filename
from .editor_session import EditorSession

__all__ = [
    "OverlayError",
    "InputError",
    "AssetError",
    "GeometryError",
    "Annotation",
    "AnnotationKind",
    "Corner",
    "FontFamily",
    "ImageAnnotation",
    "PageDescriptor",
    "RGBColor",
    "SymbolAnnotation",
    "SymbolKind",
    "TextAnnotation",
    "Tool",
    "FontResolver",
    "FontSpec",
    "FontStyle",
    "MetricsMode",
    "TextMetricsProvider",
    "CanvasRect",
    "DisplayScaleTracker",
    "ScreenPoint",
    "Viewport",
    "GeometryUpdate",
    "InteractionState",
    "PointerInteractionController",
    "ImagePlacement",
    "PageTransform",
    "ReprojectionEngine",
    "TextRun",
    "VectorPath",
    "AssetDecoder",
    "DocumentWriter",
    "PreviewGenerator",
    "RenderedDocument",
    "SourceType",
    "ExportReport",
    "ExportResult",
    "ExportService",
    "export_filename",
    "EditorSession",
]
