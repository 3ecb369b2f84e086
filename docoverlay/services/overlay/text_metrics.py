"""
Text Metrics Provider

Measures rendered text width and wrapped content height for text
annotations.

Two modes exist:
- SHAPED: widths come from the same font resources the exporter draws
  with, so the width baked into an annotation matches the output.
- HEURISTIC: a deterministic approximation (0.6 em per character, +15%
  when bold) used when no font surface is available.
"""

import logging
from enum import Enum
from typing import Optional

from .fonts import FontResolver, FontSpec
from .models import (
    LINE_HEIGHT_FACTOR,
    TEXT_PADDING,
    FontFamily,
    TextAnnotation,
)
from .mupdf_lock import MUPDF_LOCK

logger = logging.getLogger(__name__)

HEURISTIC_EM_RATIO = 0.6
HEURISTIC_BOLD_MULTIPLIER = 1.15

# Height changes at or below this many pixels are not written back
REFLOW_HYSTERESIS = 1.0


class MetricsMode(Enum):
    SHAPED = "shaped"
    HEURISTIC = "heuristic"


def heuristic_width(text: str, font_size: float, bold: bool = False) -> float:
    """Approximate width when no font surface can be used."""
    multiplier = HEURISTIC_BOLD_MULTIPLIER if bold else 1.0
    return len(text) * font_size * HEURISTIC_EM_RATIO * multiplier


class TextMetricsProvider:
    """
    Measures text for sizing and live reflow.

    Results are deterministic for a fixed (text, style) pair: the font
    resolver hands out one cached font object per resolved resource.
    """

    def __init__(
        self,
        font_resolver: Optional[FontResolver] = None,
        mode: MetricsMode = MetricsMode.SHAPED,
    ):
        self.font_resolver = font_resolver or FontResolver()
        self._mode = mode
        logger.info(f"Text metrics mode: {mode.value}")

    @property
    def mode(self) -> MetricsMode:
        return self._mode

    def measure_width(
        self,
        text: str,
        font_size: float,
        font_family: FontFamily = FontFamily.HELVETICA,
        bold: bool = False,
        italic: bool = False,
    ) -> float:
        """Rendered width of a single line, in the same units as font_size."""
        if self._mode is MetricsMode.HEURISTIC:
            return heuristic_width(text, font_size, bold)

        try:
            resolved = self.font_resolver.font_for(FontSpec(font_family, bold, italic))
            with MUPDF_LOCK:
                return resolved.font.text_length(text, fontsize=font_size)
        except (RuntimeError, ValueError) as e:
            logger.warning(f"Font measurement unavailable, switching to heuristic metrics: {e}")
            self._mode = MetricsMode.HEURISTIC
            return heuristic_width(text, font_size, bold)

    def measure_annotation_line(self, annotation: TextAnnotation, line: str) -> float:
        return self.measure_width(
            line,
            annotation.font_size,
            annotation.font_family,
            annotation.bold,
            annotation.italic,
        )

    def content_width(self, annotation: TextAnnotation) -> float:
        """
        Box width for a text annotation: widest line plus padding.

        An empty line is measured as a single space so the box never
        collapses.
        """
        widest = max(
            self.measure_annotation_line(annotation, line or " ")
            for line in annotation.lines
        )
        return widest + TEXT_PADDING

    def wrap_lines(self, annotation: TextAnnotation, max_width: float) -> list[str]:
        """
        Greedy word wrap of the content at max_width.

        Explicit line breaks always start a new line. A single word wider
        than max_width occupies its own line.
        """
        wrapped = []
        for paragraph in annotation.lines:
            words = paragraph.split(" ")
            current = ""
            for word in words:
                candidate = word if not current else f"{current} {word}"
                if current and self.measure_annotation_line(annotation, candidate) > max_width:
                    wrapped.append(current)
                    current = word
                else:
                    current = candidate
            wrapped.append(current)
        return wrapped

    def natural_height(self, annotation: TextAnnotation) -> float:
        """Height of the wrapped content, floored at one line."""
        line_height = annotation.font_size * LINE_HEIGHT_FACTOR
        lines = self.wrap_lines(annotation, annotation.width)
        return max(len(lines) * line_height, line_height)

    def reflow_height(self, annotation: TextAnnotation) -> bool:
        """
        Recompute and write back the annotation height.

        Returns:
            True if the height changed by more than the hysteresis band
        """
        new_height = self.natural_height(annotation)
        if abs(annotation.height - new_height) > REFLOW_HYSTERESIS:
            annotation.height = new_height
            return True
        return False

    def fit(self, annotation: TextAnnotation) -> None:
        """Re-derive width from the content, then reflow height."""
        annotation.width = self.content_width(annotation)
        self.reflow_height(annotation)
