"""
Display Scale Tracker

Tracks the ratio between a page's on-screen size and its preview size.
Pages are shrunk to fit the container, never magnified, so the scale is
always in (0, 1].

Container geometry is an observed input: the host passes a `Viewport`
with every pointer event instead of the tracker reading it from a
rendering surface.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# Horizontal padding subtracted from the container width (both sides)
CONTAINER_GUTTER = 16.0


@dataclass(frozen=True)
class ScreenPoint:
    """Pointer position in screen (client) pixels."""

    x: float
    y: float


@dataclass(frozen=True)
class CanvasRect:
    """On-screen bounding rectangle of the displayed page."""

    left: float
    top: float
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True)
class Viewport:
    """
    Container geometry observed at the time of an event.

    Attributes:
        container_width: Width available to the page, before the gutter
        canvas: Rectangle of the rendered page, None while not laid out
    """

    container_width: float
    canvas: Optional[CanvasRect] = None


class DisplayScaleTracker:
    """Maintains scale = min(1, (container_width - gutter) / preview_width)."""

    def __init__(self, preview_width: Optional[float] = None, gutter: float = CONTAINER_GUTTER):
        self.gutter = gutter
        self._preview_width = preview_width
        self._container_width: Optional[float] = None
        self._scale = 1.0

    @property
    def scale(self) -> float:
        return self._scale

    @property
    def preview_width(self) -> Optional[float]:
        return self._preview_width

    def set_page_width(self, preview_width: float) -> float:
        """Called on page navigation; returns the recomputed scale."""
        if preview_width <= 0:
            raise ValueError(f"preview_width must be positive, got {preview_width}")
        self._preview_width = preview_width
        return self._recompute()

    def observe(self, viewport: Viewport) -> float:
        """Record the container size carried by an event."""
        if viewport.container_width != self._container_width:
            self._container_width = viewport.container_width
            self._recompute()
        return self._scale

    def to_preview_space(self, screen_delta: float) -> float:
        """Convert an on-screen distance to preview pixels."""
        return screen_delta / self._scale

    def to_preview_point(self, point: ScreenPoint, canvas: CanvasRect) -> tuple[float, float]:
        """Convert a screen position to preview coordinates on the page."""
        return (
            self.to_preview_space(point.x - canvas.left),
            self.to_preview_space(point.y - canvas.top),
        )

    def _recompute(self) -> float:
        if self._preview_width is None or self._container_width is None:
            self._scale = 1.0
            return self._scale

        available = self._container_width - self.gutter
        scale = min(1.0, available / self._preview_width)
        if scale <= 0:
            # Container narrower than the gutter; keep the last usable scale
            logger.debug(f"Ignoring degenerate container width {self._container_width}")
            return self._scale

        if scale != self._scale:
            logger.debug(f"Display scale {self._scale:.4f} -> {scale:.4f}")
        self._scale = scale
        return self._scale
