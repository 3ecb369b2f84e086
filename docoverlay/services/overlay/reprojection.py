"""
Reprojection & Serialization Engine

Projects preview-space annotation geometry into the output document's
coordinate system (origin bottom-left, Y-up) and plans the draw commands
that reproduce each annotation.

Planning is pure: the same annotations and page dimensions always give
the same command list, in page order and, within a page, in annotation
insertion order.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence, Union

from .errors import GeometryError
from .fonts import FontSpec
from .models import (
    BLACK,
    LINE_HEIGHT_FACTOR,
    Annotation,
    ImageAnnotation,
    PageDescriptor,
    RGBColor,
    SymbolAnnotation,
    TextAnnotation,
    unhandled_kind,
)
from .symbols import glyph_for

logger = logging.getLogger(__name__)

Point = tuple[float, float]


@dataclass(frozen=True)
class PageTransform:
    """Per-page affine map from preview space to output space."""

    preview_width: float
    preview_height: float
    output_width: float
    output_height: float

    @property
    def scale_x(self) -> float:
        return self.output_width / self.preview_width

    @property
    def scale_y(self) -> float:
        return self.output_height / self.preview_height

    def x(self, preview_x: float) -> float:
        return preview_x * self.scale_x

    def top_y(self, preview_y: float) -> float:
        """Output Y of a preview-space top edge."""
        return self.output_height - preview_y * self.scale_y

    def width(self, preview_width: float) -> float:
        return preview_width * self.scale_x

    def height(self, preview_height: float) -> float:
        return preview_height * self.scale_y


@dataclass(frozen=True)
class TextRun:
    """One line of text; (x, y) is the left end of the baseline."""

    page_index: int
    annotation_id: str
    text: str
    x: float
    y: float
    font_size: float
    font: FontSpec
    color: RGBColor = BLACK


@dataclass(frozen=True)
class ImagePlacement:
    """Image box; (x, y) is its lower-left corner."""

    page_index: int
    annotation_id: str
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class VectorPath:
    """Stroked polyline glyph in output coordinates."""

    page_index: int
    annotation_id: str
    subpaths: tuple[tuple[Point, ...], ...]
    closed: tuple[bool, ...]
    color: RGBColor
    stroke_width: float


DrawCommand = Union[TextRun, ImagePlacement, VectorPath]


class ReprojectionEngine:
    """Plans draw commands for a set of annotations."""

    def plan(
        self,
        annotations: Iterable[Annotation],
        pages: Sequence[PageDescriptor],
        output_sizes: Sequence[tuple[float, float]],
    ) -> list[DrawCommand]:
        """
        Plan every draw command for an export.

        Args:
            annotations: Annotations in insertion order
            pages: Preview descriptor per page
            output_sizes: (width, height) of each output page

        Returns:
            Draw commands ordered by page index, then insertion order

        Raises:
            GeometryError: An annotation references a page that has no
                descriptor or no output page
        """
        transforms = self.page_transforms(pages, output_sizes)

        ordered = sorted(annotations, key=lambda a: a.page_index)
        commands: list[DrawCommand] = []
        for annotation in ordered:
            if annotation.page_index >= len(transforms):
                raise GeometryError(
                    f"Annotation {annotation.id} references page {annotation.page_index} "
                    f"but only {len(transforms)} page(s) are described",
                    page_index=annotation.page_index,
                )
            commands.extend(self.plan_annotation(annotation, transforms[annotation.page_index]))

        logger.debug(f"Planned {len(commands)} draw commands for {len(ordered)} annotations")
        return commands

    @staticmethod
    def page_transforms(
        pages: Sequence[PageDescriptor],
        output_sizes: Sequence[tuple[float, float]],
    ) -> list[PageTransform]:
        count = min(len(pages), len(output_sizes))
        if len(pages) != len(output_sizes):
            logger.warning(
                f"Preview has {len(pages)} page(s) but output has {len(output_sizes)}; "
                f"using the first {count}"
            )
        return [
            PageTransform(
                preview_width=page.preview_width,
                preview_height=page.preview_height,
                output_width=width,
                output_height=height,
            )
            for page, (width, height) in zip(pages[:count], output_sizes[:count])
        ]

    def plan_annotation(self, annotation: Annotation, transform: PageTransform) -> list[DrawCommand]:
        if isinstance(annotation, TextAnnotation):
            return self._plan_text(annotation, transform)
        elif isinstance(annotation, ImageAnnotation):
            return [self._plan_image(annotation, transform)]
        elif isinstance(annotation, SymbolAnnotation):
            return [self._plan_symbol(annotation, transform)]
        raise unhandled_kind(annotation)

    def _plan_text(self, annotation: TextAnnotation, transform: PageTransform) -> list[DrawCommand]:
        top = transform.top_y(annotation.y)
        font_size = annotation.font_size * transform.scale_y
        line_pitch = font_size * LINE_HEIGHT_FACTOR
        x = transform.x(annotation.x)
        font = FontSpec(annotation.font_family, annotation.bold, annotation.italic)

        runs = []
        for i, line in enumerate(annotation.lines):
            if not line:
                continue
            runs.append(TextRun(
                page_index=annotation.page_index,
                annotation_id=annotation.id,
                text=line,
                x=x,
                y=top - font_size - i * line_pitch,
                font_size=font_size,
                font=font,
            ))
        return runs

    def _plan_image(self, annotation: ImageAnnotation, transform: PageTransform) -> ImagePlacement:
        height = transform.height(annotation.height)
        return ImagePlacement(
            page_index=annotation.page_index,
            annotation_id=annotation.id,
            x=transform.x(annotation.x),
            y=transform.top_y(annotation.y) - height,
            width=transform.width(annotation.width),
            height=height,
        )

    def _plan_symbol(self, annotation: SymbolAnnotation, transform: PageTransform) -> VectorPath:
        glyph = glyph_for(annotation.symbol_kind)
        box_x = transform.x(annotation.x)
        box_top = transform.top_y(annotation.y)
        box_width = transform.width(annotation.width)
        box_height = transform.height(annotation.height)

        # Uniform scale keeps the glyph undistorted in a non-square box
        scale = min(box_width / glyph.design_size, box_height / glyph.design_size)
        glyph_size = glyph.design_size * scale
        offset_x = (box_width - glyph_size) / 2
        offset_y = (box_height - glyph_size) / 2

        origin_x = box_x + offset_x
        origin_top = box_top - offset_y
        subpaths = tuple(
            tuple((origin_x + px * scale, origin_top - py * scale) for px, py in points)
            for points in glyph.subpaths
        )
        return VectorPath(
            page_index=annotation.page_index,
            annotation_id=annotation.id,
            subpaths=subpaths,
            closed=glyph.closed,
            color=annotation.color,
            stroke_width=glyph.stroke_width * scale,
        )
