"""
Geometry Model

Annotation entities and page descriptors. All geometry is expressed in
preview space: the pixel grid of a page's rasterized preview, origin at
the top-left corner, Y growing downwards.
"""

import base64
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

# Smallest width/height a resize may produce, in preview pixels
MIN_ELEMENT_SIZE = 20.0

# Line pitch as a multiple of font size, shared by editor and export
LINE_HEIGHT_FACTOR = 1.2

# Horizontal padding added to measured text width
TEXT_PADDING = 20.0

DEFAULT_TEXT = "New Text"
DEFAULT_FONT_SIZE = 16.0
DEFAULT_IMAGE_SIZE = (150.0, 75.0)
SYMBOL_DESIGN_SIZE = 24.0


class AnnotationKind(Enum):
    """Closed set of annotation variants."""

    TEXT = "text"
    IMAGE = "image"
    SYMBOL = "symbol"


class Tool(Enum):
    """Active editing tool."""

    SELECT = "select"
    TEXT = "text"
    IMAGE = "image"
    SYMBOL = "symbol"

    @property
    def creates(self) -> Optional[AnnotationKind]:
        """Annotation kind created by a background click, if any."""
        if self is Tool.SELECT:
            return None
        return AnnotationKind(self.value)


class FontFamily(Enum):
    """Font families selectable in the editor."""

    HELVETICA = "Helvetica"
    ARIAL = "Arial"
    TIMES_NEW_ROMAN = "Times New Roman"
    COURIER = "Courier"
    VERDANA = "Verdana"


class SymbolKind(Enum):
    """Vector glyphs available to symbol annotations."""

    CHECKMARK = "checkmark"


class Corner(Enum):
    """Resize handle positions."""

    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"

    @property
    def is_left(self) -> bool:
        return self in (Corner.TOP_LEFT, Corner.BOTTOM_LEFT)

    @property
    def is_top(self) -> bool:
        return self in (Corner.TOP_LEFT, Corner.TOP_RIGHT)


@dataclass(frozen=True)
class RGBColor:
    """RGB color with 0-255 channels."""

    r: int = 0
    g: int = 0
    b: int = 0

    def __post_init__(self):
        for channel in (self.r, self.g, self.b):
            if not 0 <= channel <= 255:
                raise ValueError(f"Color channel out of range: {channel}")

    @classmethod
    def from_hex(cls, value: str) -> "RGBColor":
        """Parse '#rrggbb' or '#rgb'."""
        text = value.strip().lstrip("#")
        if len(text) == 3:
            text = "".join(c * 2 for c in text)
        if len(text) != 6:
            raise ValueError(f"Invalid hex color: {value!r}")
        try:
            return cls(int(text[0:2], 16), int(text[2:4], 16), int(text[4:6], 16))
        except ValueError:
            raise ValueError(f"Invalid hex color: {value!r}") from None

    def to_hex(self) -> str:
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}"

    def as_unit(self) -> tuple[float, float, float]:
        """Channels scaled to 0.0-1.0 as PDF color operators expect."""
        return (self.r / 255.0, self.g / 255.0, self.b / 255.0)


BLACK = RGBColor(0, 0, 0)


@dataclass(frozen=True)
class PageDescriptor:
    """
    Pixel dimensions of one page's rasterized preview.

    Fixed once the preview is generated; `image` holds the encoded PNG
    used to display the page.
    """

    preview_width: float
    preview_height: float
    image: Optional[bytes] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if self.preview_width <= 0 or self.preview_height <= 0:
            raise ValueError(
                f"Page preview dimensions must be positive, got "
                f"{self.preview_width}x{self.preview_height}"
            )

    def image_data_url(self) -> Optional[str]:
        if self.image is None:
            return None
        return "data:image/png;base64," + base64.b64encode(self.image).decode("ascii")

    def to_dict(self) -> dict:
        return {"width": self.preview_width, "height": self.preview_height}


def new_annotation_id() -> str:
    return uuid.uuid4().hex


@dataclass
class _AnnotationBase:
    page_index: int
    x: float
    y: float
    width: float
    height: float
    id: str = field(default_factory=new_annotation_id)

    def __post_init__(self):
        if self.page_index < 0:
            raise ValueError(f"page_index must be >= 0, got {self.page_index}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Annotation size must be positive, got {self.width}x{self.height}")

    def _base_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "page_index": self.page_index,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }


@dataclass
class TextAnnotation(_AnnotationBase):
    """
    Free text overlay.

    `width` and `height` are derived from the content by the text
    metrics provider and are never edited directly.
    """

    content: str = DEFAULT_TEXT
    font_size: float = DEFAULT_FONT_SIZE
    font_family: FontFamily = FontFamily.HELVETICA
    bold: bool = False
    italic: bool = False

    kind = AnnotationKind.TEXT

    def __post_init__(self):
        super().__post_init__()
        if self.font_size <= 0:
            raise ValueError(f"font_size must be positive, got {self.font_size}")

    @property
    def lines(self) -> list[str]:
        return self.content.split("\n")

    def to_dict(self) -> dict:
        data = self._base_dict()
        data.update({
            "content": self.content,
            "font_size": self.font_size,
            "font_family": self.font_family.value,
            "bold": self.bold,
            "italic": self.italic,
        })
        return data


@dataclass
class ImageAnnotation(_AnnotationBase):
    """Raster image overlay, typically a signature."""

    image_data: str = field(default="", repr=False)

    kind = AnnotationKind.IMAGE

    def to_dict(self) -> dict:
        return self._base_dict()


@dataclass
class SymbolAnnotation(_AnnotationBase):
    """Vector glyph overlay such as a checkmark."""

    symbol_kind: SymbolKind = SymbolKind.CHECKMARK
    color: RGBColor = BLACK

    kind = AnnotationKind.SYMBOL

    def to_dict(self) -> dict:
        data = self._base_dict()
        data.update({
            "symbol_kind": self.symbol_kind.value,
            "color": self.color.to_hex(),
        })
        return data


Annotation = Union[TextAnnotation, ImageAnnotation, SymbolAnnotation]

# Fields a caller may change through an update, per variant
EDITABLE_FIELDS: dict[AnnotationKind, frozenset[str]] = {
    AnnotationKind.TEXT: frozenset({"x", "y", "content", "font_size", "font_family", "bold", "italic"}),
    AnnotationKind.IMAGE: frozenset({"x", "y", "width", "height", "image_data"}),
    AnnotationKind.SYMBOL: frozenset({"x", "y", "width", "height", "symbol_kind", "color"}),
}


def unhandled_kind(annotation) -> TypeError:
    """Error for a value that is not one of the annotation variants."""
    return TypeError(f"Unhandled annotation variant: {type(annotation).__name__}")
