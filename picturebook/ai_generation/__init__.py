"""
AI illustration package for PictureBookAI.
"""

from .prompting import build_cover_image_prompt, build_page_image_prompt
from .replicate_service import ReplicateImageGenerator, normalize_image_outputs

__all__ = [
    "build_cover_image_prompt",
    "build_page_image_prompt",
    "ReplicateImageGenerator",
    "normalize_image_outputs",
]
