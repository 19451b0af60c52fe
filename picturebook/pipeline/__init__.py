"""
End-to-end orchestration, revision history, and session state for PictureBookAI.
"""

from .history import RevisionHistory
from .orchestrator import (
    ImageGenerationPolicy,
    PipelineState,
    StorySynthesisOrchestrator,
)
from .session import StorySession

__all__ = [
    "ImageGenerationPolicy",
    "PipelineState",
    "RevisionHistory",
    "StorySession",
    "StorySynthesisOrchestrator",
]
