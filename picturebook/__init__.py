"""
PictureBookAI package exposing story synthesis, revision history, and PDF export.
"""

from .common import GenerationClient
from .pdf_generation import StorybookPDFBuilder
from .pipeline import (
    ImageGenerationPolicy,
    RevisionHistory,
    StorySession,
    StorySynthesisOrchestrator,
)
from .story_generation import ArtStyle, GenerationRequest, Page, Story, Theme

__all__ = [
    "ArtStyle",
    "GenerationClient",
    "GenerationRequest",
    "ImageGenerationPolicy",
    "Page",
    "RevisionHistory",
    "Story",
    "StorySession",
    "StorySynthesisOrchestrator",
    "StorybookPDFBuilder",
    "Theme",
]
