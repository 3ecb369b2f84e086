"""
Pointer Interaction Controller

State machine turning pointer events into geometry updates:

    IDLE --begin_drag--> DRAGGING --pointer up / cancel--> IDLE
    IDLE --begin_resize--> RESIZING --pointer up / cancel--> IDLE

Every pointer-derived coordinate goes through the DisplayScaleTracker so
updates are written in preview space regardless of on-screen zoom.

While an interaction is active the controller holds a subscription on
the host's global pointer source. The subscription is acquired on entry
and closed on every exit path, including exceptions raised while a
move is being applied.
"""

import logging
from contextlib import ExitStack
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from .display_scale import DisplayScaleTracker, ScreenPoint, Viewport
from .models import (
    MIN_ELEMENT_SIZE,
    Annotation,
    Corner,
    ImageAnnotation,
    SymbolAnnotation,
    TextAnnotation,
    unhandled_kind,
)

logger = logging.getLogger(__name__)

MoveHandler = Callable[[ScreenPoint, Viewport], None]
UpHandler = Callable[[], None]


class InteractionState(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    RESIZING = "resizing"


class PointerSource(Protocol):
    """Host-side global pointer event feed."""

    def subscribe(self, on_move: MoveHandler, on_up: UpHandler) -> Callable[[], None]:
        """Start delivering events; returns the unsubscribe callable."""
        ...


class NullPointerSource:
    """Pointer source for hosts that forward events explicitly."""

    def subscribe(self, on_move: MoveHandler, on_up: UpHandler) -> Callable[[], None]:
        return lambda: None


@dataclass(frozen=True)
class GeometryUpdate:
    """New position (and for resizes, size) of one annotation."""

    annotation_id: str
    x: float
    y: float
    width: Optional[float] = None
    height: Optional[float] = None

    def as_fields(self) -> dict:
        fields = {"x": self.x, "y": self.y}
        if self.width is not None:
            fields["width"] = self.width
        if self.height is not None:
            fields["height"] = self.height
        return fields


@dataclass(frozen=True)
class _Drag:
    annotation_id: str
    offset_x: float
    offset_y: float


@dataclass(frozen=True)
class _Resize:
    annotation_id: str
    corner: Corner
    start_x: float
    initial_x: float
    initial_y: float
    initial_width: float
    initial_height: float


def is_resizable(annotation: Annotation) -> bool:
    """Text boxes are sized by their content and have no resize handles."""
    if isinstance(annotation, TextAnnotation):
        return False
    elif isinstance(annotation, (ImageAnnotation, SymbolAnnotation)):
        return True
    raise unhandled_kind(annotation)


def resize_geometry(
    corner: Corner,
    dx: float,
    initial_x: float,
    initial_y: float,
    initial_width: float,
    initial_height: float,
) -> tuple[float, float, float, float]:
    """
    Aspect-locked corner resize.

    Width follows the horizontal delta and height is derived from the
    initial aspect ratio. Each axis is then clamped to MIN_ELEMENT_SIZE on
    its own, so the ratio may break at the floor. Position is taken from
    the unclamped size, so a shrink past the floor shifts the box rather
    than pinning it to the opposite edges.

    Returns:
        (x, y, width, height)
    """
    if corner.is_left:
        raw_width = initial_width - dx
    else:
        raw_width = initial_width + dx

    aspect_ratio = initial_width / initial_height
    raw_height = raw_width / aspect_ratio

    x = initial_x + dx if corner.is_left else initial_x
    y = initial_y + (initial_height - raw_height) if corner.is_top else initial_y

    width = max(MIN_ELEMENT_SIZE, raw_width)
    height = max(MIN_ELEMENT_SIZE, raw_height)
    return x, y, width, height


class PointerInteractionController:
    """
    Drives drag and resize interactions.

    Args:
        tracker: Display scale tracker for the visible page
        on_update: Receives each GeometryUpdate to apply to the model
        pointer_source: Global pointer feed subscribed while interacting
    """

    def __init__(
        self,
        tracker: DisplayScaleTracker,
        on_update: Callable[[GeometryUpdate], None],
        pointer_source: Optional[PointerSource] = None,
    ):
        self.tracker = tracker
        self._on_update = on_update
        self._pointer_source = pointer_source or NullPointerSource()
        self._drag: Optional[_Drag] = None
        self._resize: Optional[_Resize] = None
        self._capture: Optional[ExitStack] = None

    @property
    def state(self) -> InteractionState:
        if self._drag is not None:
            return InteractionState.DRAGGING
        if self._resize is not None:
            return InteractionState.RESIZING
        return InteractionState.IDLE

    @property
    def active_annotation_id(self) -> Optional[str]:
        if self._drag is not None:
            return self._drag.annotation_id
        if self._resize is not None:
            return self._resize.annotation_id
        return None

    @property
    def is_capturing(self) -> bool:
        return self._capture is not None

    def begin_drag(self, annotation: Annotation, pointer: ScreenPoint, viewport: Viewport) -> bool:
        """
        Enter DRAGGING, recording the grab offset in preview space.

        Returns:
            False if another interaction is active or the page rectangle
            is unknown
        """
        if self.state is not InteractionState.IDLE:
            logger.debug(f"Ignoring drag start on {annotation.id}: already {self.state.value}")
            return False
        if viewport.canvas is None:
            logger.debug(f"Ignoring drag start on {annotation.id}: no canvas rectangle")
            return False

        self.tracker.observe(viewport)
        pointer_x, pointer_y = self.tracker.to_preview_point(pointer, viewport.canvas)
        self._drag = _Drag(
            annotation_id=annotation.id,
            offset_x=pointer_x - annotation.x,
            offset_y=pointer_y - annotation.y,
        )
        self._acquire()
        return True

    def begin_resize(
        self,
        annotation: Annotation,
        corner: Corner,
        pointer: ScreenPoint,
        viewport: Viewport,
    ) -> bool:
        """Enter RESIZING from one of the four corner handles."""
        if self.state is not InteractionState.IDLE:
            logger.debug(f"Ignoring resize start on {annotation.id}: already {self.state.value}")
            return False
        if not is_resizable(annotation):
            logger.debug(f"Ignoring resize start on {annotation.id}: {annotation.kind.value} is not resizable")
            return False

        self.tracker.observe(viewport)
        self._resize = _Resize(
            annotation_id=annotation.id,
            corner=corner,
            start_x=pointer.x,
            initial_x=annotation.x,
            initial_y=annotation.y,
            initial_width=annotation.width,
            initial_height=annotation.height,
        )
        self._acquire()
        return True

    def on_pointer_move(self, pointer: ScreenPoint, viewport: Viewport) -> Optional[GeometryUpdate]:
        """Apply one pointer move to the active interaction, if any."""
        if self.state is InteractionState.IDLE:
            return None

        try:
            self.tracker.observe(viewport)
            if self._drag is not None:
                update = self._drag_update(pointer, viewport)
            else:
                update = self._resize_update(pointer)
            if update is not None:
                self._on_update(update)
            return update
        except BaseException:
            self.cancel()
            raise

    def on_pointer_up(self) -> None:
        """Return to IDLE wherever the pointer was released."""
        self._finish()

    def cancel(self) -> None:
        """Abandon the active interaction, keeping updates applied so far."""
        if self.state is not InteractionState.IDLE:
            logger.debug(f"Cancelled {self.state.value} of {self.active_annotation_id}")
        self._finish()

    def _drag_update(self, pointer: ScreenPoint, viewport: Viewport) -> Optional[GeometryUpdate]:
        if viewport.canvas is None:
            return None
        pointer_x, pointer_y = self.tracker.to_preview_point(pointer, viewport.canvas)
        return GeometryUpdate(
            annotation_id=self._drag.annotation_id,
            x=pointer_x - self._drag.offset_x,
            y=pointer_y - self._drag.offset_y,
        )

    def _resize_update(self, pointer: ScreenPoint) -> GeometryUpdate:
        resize = self._resize
        dx = self.tracker.to_preview_space(pointer.x - resize.start_x)
        x, y, width, height = resize_geometry(
            resize.corner,
            dx,
            resize.initial_x,
            resize.initial_y,
            resize.initial_width,
            resize.initial_height,
        )
        return GeometryUpdate(resize.annotation_id, x=x, y=y, width=width, height=height)

    def _acquire(self) -> None:
        stack = ExitStack()
        unsubscribe = self._pointer_source.subscribe(self.on_pointer_move, self.on_pointer_up)
        stack.callback(unsubscribe)
        self._capture = stack

    def _finish(self) -> None:
        self._drag = None
        self._resize = None
        capture, self._capture = self._capture, None
        if capture is not None:
            capture.close()
