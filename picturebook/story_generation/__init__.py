"""
Story data model, structured request assembly, and response decoding.
"""

from .drafts import (
    CoverRegenResult,
    DraftPage,
    PageRegenResult,
    StoryDraft,
    decode_cover_regen,
    decode_page_regen,
    decode_story_draft,
)
from .prompting import StructuredRequest, build_regeneration_request, build_story_request
from .request import (
    PERMITTED_PAGE_COUNTS,
    GenerationRequest,
    ReferenceImage,
    RegenerationInstruction,
    RegenerationKind,
)
from .story import ArtStyle, Page, Story, Theme

__all__ = [
    "ArtStyle",
    "Theme",
    "Page",
    "Story",
    "PERMITTED_PAGE_COUNTS",
    "GenerationRequest",
    "ReferenceImage",
    "RegenerationInstruction",
    "RegenerationKind",
    "StructuredRequest",
    "build_story_request",
    "build_regeneration_request",
    "DraftPage",
    "StoryDraft",
    "PageRegenResult",
    "CoverRegenResult",
    "decode_story_draft",
    "decode_page_regen",
    "decode_cover_regen",
]
