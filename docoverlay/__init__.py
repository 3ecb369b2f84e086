"""docoverlay: annotation overlays for PDF and Word documents."""

__version__ = "1.0.0"
