"""
Overlay Errors

Exception taxonomy for document loading, asset handling and geometry
violations.
"""


class OverlayError(Exception):
    """Base class for all overlay engine failures."""


class InputError(OverlayError):
    """
    The source document is unsupported, corrupt or has no pages.

    Surfaced to the caller and never retried. The editing session is
    left in its reset state.
    """


class AssetError(OverlayError):
    """An image or font resource could not be fetched or decoded."""

    def __init__(self, message: str, annotation_id: str | None = None):
        super().__init__(message)
        self.annotation_id = annotation_id


class GeometryError(OverlayError):
    """
    An annotation references a page that has no descriptor.

    This is an invariant violation, not a user-facing condition.
    """

    def __init__(self, message: str, page_index: int | None = None):
        super().__init__(message)
        self.page_index = page_index
