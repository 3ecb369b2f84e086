"""
Export Service

Orchestrates an export pass:
1. Open the source PDF and read its native page sizes
2. Plan draw commands with the reprojection engine
3. Decode image assets concurrently, resolve fonts
4. Apply commands in plan order and serialize

Works on a snapshot of the annotations so a failed export leaves the
editing session untouched.
"""

import asyncio
import copy
import logging
from dataclasses import asdict, dataclass, field
from typing import Iterable, Optional, Sequence

from .assets import AssetDecoder
from .document_writer import DocumentWriter, ImageAsset
from .errors import AssetError
from .fonts import FontResolver, FontSpec, ResolvedFont
from .models import Annotation, ImageAnnotation, PageDescriptor
from .mupdf_lock import run_locked
from .reprojection import (
    DrawCommand,
    ImagePlacement,
    ReprojectionEngine,
    TextRun,
    VectorPath,
)

logger = logging.getLogger(__name__)


@dataclass
class ExportReport:
    """Statistics for one export pass."""

    page_count: int = 0
    pages_with_overlays: int = 0
    annotations: int = 0
    text_runs: int = 0
    images: int = 0
    symbols: int = 0
    embedded_fonts: list = field(default_factory=list)
    substituted_fonts: list = field(default_factory=list)
    font_fallbacks: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ExportResult:
    pdf_bytes: bytes
    report: ExportReport
    commands: list = field(default_factory=list, repr=False)


def export_filename(source_name: Optional[str]) -> str:
    """Download name for an exported document."""
    if not source_name:
        return "document.pdf"
    stem = source_name.rsplit(".", 1)[0] if "." in source_name else source_name
    return f"edited_{stem}.pdf"


class ExportService:
    """Bakes annotations into the source PDF."""

    def __init__(
        self,
        font_resolver: Optional[FontResolver] = None,
        asset_decoder: Optional[AssetDecoder] = None,
        engine: Optional[ReprojectionEngine] = None,
    ):
        self.font_resolver = font_resolver or FontResolver()
        self.asset_decoder = asset_decoder or AssetDecoder()
        self.engine = engine or ReprojectionEngine()

    async def export(
        self,
        source_bytes: bytes,
        pages: Sequence[PageDescriptor],
        annotations: Iterable[Annotation],
    ) -> ExportResult:
        """
        Produce the output PDF.

        Raises:
            InputError: The source PDF cannot be opened
            AssetError: An image annotation's asset cannot be decoded
            GeometryError: An annotation references a missing page
        """
        snapshot = copy.deepcopy(list(annotations))
        logger.info(f"Starting export of {len(snapshot)} annotation(s) over {len(pages)} page(s)")

        writer = await run_locked(DocumentWriter, source_bytes, self.font_resolver)
        with writer:
            commands = self.engine.plan(snapshot, pages, writer.page_sizes())

            assets = await self._decode_assets(writer, snapshot)
            fallbacks_before = self.font_resolver.fallback_count
            fonts = await self._resolve_fonts(writer, commands)

            await run_locked(self._apply, writer, commands, fonts, assets)
            pdf_bytes = await run_locked(writer.save)

            report = self._build_report(writer.page_count, snapshot, commands, fonts)
            report.font_fallbacks = self.font_resolver.fallback_count - fallbacks_before

        logger.info(
            f"Export complete: {report.text_runs} text run(s), {report.images} image(s), "
            f"{report.symbols} symbol(s), {len(pdf_bytes)} bytes"
        )
        return ExportResult(pdf_bytes=pdf_bytes, report=report, commands=commands)

    async def _decode_assets(
        self,
        writer: DocumentWriter,
        annotations: list[Annotation],
    ) -> dict[str, ImageAsset]:
        """Decode every image concurrently; any failure aborts the export."""
        images = [a for a in annotations if isinstance(a, ImageAnnotation)]
        if not images:
            return {}

        results = await asyncio.gather(
            *(self.asset_decoder.decode(a.image_data, annotation_id=a.id) for a in images),
            return_exceptions=True,
        )
        assets = {}
        for annotation, result in zip(images, results):
            if isinstance(result, BaseException):
                logger.error(f"Image asset for annotation {annotation.id} failed: {result}")
                if isinstance(result, AssetError):
                    raise result
                raise AssetError(f"Image asset failed: {result}", annotation.id) from result
            assets[annotation.id] = writer.embed_image_asset(result)
        return assets

    async def _resolve_fonts(
        self,
        writer: DocumentWriter,
        commands: list[DrawCommand],
    ) -> dict[FontSpec, ResolvedFont]:
        fonts: dict[FontSpec, ResolvedFont] = {}
        for command in commands:
            if isinstance(command, TextRun) and command.font not in fonts:
                fonts[command.font] = await writer.resolve_font(command.font)
        return fonts

    @staticmethod
    def _apply(
        writer: DocumentWriter,
        commands: list[DrawCommand],
        fonts: dict[FontSpec, ResolvedFont],
        assets: dict[str, ImageAsset],
    ) -> None:
        for command in commands:
            if isinstance(command, TextRun):
                writer.add_text_run(command, fonts[command.font])
            elif isinstance(command, ImagePlacement):
                writer.draw_image(command, assets[command.annotation_id])
            elif isinstance(command, VectorPath):
                writer.draw_vector_path(command)
            else:
                raise TypeError(f"Unhandled draw command: {type(command).__name__}")

    @staticmethod
    def _build_report(
        page_count: int,
        annotations: list[Annotation],
        commands: list[DrawCommand],
        fonts: dict[FontSpec, ResolvedFont],
    ) -> ExportReport:
        report = ExportReport(page_count=page_count, annotations=len(annotations))
        report.pages_with_overlays = len({c.page_index for c in commands})
        for command in commands:
            if isinstance(command, TextRun):
                report.text_runs += 1
            elif isinstance(command, ImagePlacement):
                report.images += 1
            elif isinstance(command, VectorPath):
                report.symbols += 1
        for resolved in fonts.values():
            label = f"{resolved.spec.family.value} ({resolved.spec.style.value}) -> {resolved.resource_name}"
            if resolved.embedded:
                report.embedded_fonts.append(label)
            elif resolved.substituted:
                report.substituted_fonts.append(label)
        return report
