"""
Export of finished stories into paginated PDF documents.
"""

from .builder import ExportReport, StorybookPDFBuilder
from .layout import ExportPage, ExportPageKind, layout_story
from .renderer import PageRenderer, PillowPageRenderer, RasterImage

__all__ = [
    "ExportPage",
    "ExportPageKind",
    "ExportReport",
    "PageRenderer",
    "PillowPageRenderer",
    "RasterImage",
    "StorybookPDFBuilder",
    "layout_story",
]
