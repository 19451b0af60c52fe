"""
High-level utilities for exporting PictureBookAI stories into paginated PDFs.
"""

from __future__ import annotations

import base64
import binascii
import dataclasses
import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Sequence

import requests
from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from picturebook.common import ExportError
from picturebook.story_generation import Story

from .layout import ExportPage, layout_story
from .renderer import DEFAULT_PAGE_SIZE, PageRenderer, PillowPageRenderer, RasterImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportReport:
    """Outcome of an export: which logical pages made it into the document."""

    output_path: Path | None
    captured: tuple[str, ...]
    skipped: tuple[str, ...]

    @property
    def page_count(self) -> int:
        return len(self.captured)


class StorybookPDFBuilder:
    """
    Export a story as a fixed-geometry, one-image-per-page PDF.

    The export runs in two phases. The layout phase resolves every page's image
    before anything is captured; the capture phase rasterises each page through the
    renderer and appends it to the document in narrative order. A page whose image
    cannot be resolved or captured is logged and skipped.
    """

    def __init__(
        self,
        *,
        renderer: PageRenderer | None = None,
        page_size: tuple[float, float] = DEFAULT_PAGE_SIZE,
        request_timeout: float = 30.0,
    ) -> None:
        self.page_size = page_size
        self.renderer = renderer or PillowPageRenderer(
            page_size=(int(page_size[0]), int(page_size[1]))
        )
        self.request_timeout = request_timeout

    def build(self, story: Story, output_path: Path | str) -> ExportReport:
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        document, captured, skipped = self._render_document(story)
        output_file.write_bytes(document)
        logger.info(
            "Exported %d page(s) to %s (%d skipped).", len(captured), output_file, len(skipped)
        )
        return ExportReport(output_path=output_file, captured=captured, skipped=skipped)

    def build_bytes(self, story: Story) -> tuple[bytes, ExportReport]:
        document, captured, skipped = self._render_document(story)
        return document, ExportReport(output_path=None, captured=captured, skipped=skipped)

    def _render_document(self, story: Story) -> tuple[bytes, tuple[str, ...], tuple[str, ...]]:
        pages = self.layout(story)

        captured: list[str] = []
        skipped: list[str] = []
        images: list[RasterImage] = []
        for page in pages:
            image = self.capture(page)
            if image is None:
                skipped.append(page.label)
                continue
            images.append(image)
            captured.append(page.label)

        if not images:
            raise ExportError("No page could be rendered; nothing was exported.")

        return self.assemble(images), tuple(captured), tuple(skipped)

    # ------------------------------------------------------------------ layout phase

    def layout(self, story: Story) -> list[ExportPage]:
        """Resolve image data for every page. Completes before any capture begins."""
        resolved: list[ExportPage] = []
        cache: dict[str, bytes | None] = {}
        for page in layout_story(story):
            if page.image_url not in cache:
                cache[page.image_url] = self._load_image(page.image_url)
            resolved.append(dataclasses.replace(page, image_bytes=cache[page.image_url]))
        return resolved

    def _load_image(self, url: str) -> bytes | None:
        if not url:
            return None

        if url.startswith("data:"):
            _, _, encoded = url.partition(",")
            try:
                return base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError):
                logger.warning("Discarding malformed image data URL.")
                return None

        try:
            response = requests.get(url, timeout=self.request_timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Could not download illustration %s: %s", url, exc)
            return None
        return response.content

    # ------------------------------------------------------------------ capture phase

    def capture(self, page: ExportPage) -> RasterImage | None:
        try:
            return self.renderer.render(page)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            logger.warning("Skipping %s in export: %s", page.label, exc)
            return None

    def assemble(self, images: Sequence[RasterImage]) -> bytes:
        """
        Place each raster full-page into a new document, in the order given.
        """
        width, height = self.page_size
        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=(width, height))

        for index, image in enumerate(images):
            if index > 0:
                pdf.showPage()
            pdf.drawImage(ImageReader(BytesIO(image.data)), 0, 0, width, height)

        pdf.save()
        return buffer.getvalue()
