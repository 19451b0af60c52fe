"""
Ephemeral request types for full generation and targeted regeneration.
"""

from __future__ import annotations

import base64
import mimetypes
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from picturebook.common.errors import ValidationError

from .story import ArtStyle, Story, Theme

PERMITTED_PAGE_COUNTS = (4, 6, 8)
DEFAULT_PAGE_COUNT = 8


@dataclass(frozen=True)
class ReferenceImage:
    """Raw bytes of an optional protagonist reference image."""

    data: bytes
    mime_type: str = "image/jpeg"

    def __post_init__(self) -> None:
        if not self.data:
            raise ValidationError("Reference image must not be empty.", field="reference_image")
        if not self.mime_type.startswith("image/"):
            raise ValidationError(
                f"Reference image mime type must be image/*, got {self.mime_type!r}.",
                field="reference_image",
            )

    @classmethod
    def from_path(cls, path: str | Path) -> "ReferenceImage":
        image_path = Path(path).expanduser()
        if not image_path.exists():
            raise ValidationError(
                f"Reference image not found at '{image_path}'.", field="reference_image"
            )
        mime_type, _ = mimetypes.guess_type(image_path.name)
        return cls(data=image_path.read_bytes(), mime_type=mime_type or "image/jpeg")

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass(frozen=True)
class GenerationRequest:
    """
    Input for a full story generation.

    Attributes
    ----------
    idea:
        Free-text story idea (required).
    theme:
        Narrative theme.
    art_style:
        Illustration style applied to every image.
    page_count:
        Number of story pages; one of :data:`PERMITTED_PAGE_COUNTS`.
    reference_image:
        Optional picture of the protagonist.
    """

    idea: str
    theme: Theme
    art_style: ArtStyle
    page_count: int = DEFAULT_PAGE_COUNT
    reference_image: ReferenceImage | None = None

    def __post_init__(self) -> None:
        if not self.idea or not self.idea.strip():
            raise ValidationError("idea must be a non-empty string.", field="idea")
        object.__setattr__(self, "theme", Theme.parse(self.theme))
        object.__setattr__(self, "art_style", ArtStyle.parse(self.art_style))
        if isinstance(self.page_count, bool) or self.page_count not in PERMITTED_PAGE_COUNTS:
            allowed = ", ".join(str(count) for count in PERMITTED_PAGE_COUNTS)
            raise ValidationError(
                f"page_count must be one of {allowed}, received {self.page_count!r}.",
                field="page_count",
            )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GenerationRequest":
        """
        Build a request from a dict-like object (e.g., parsed form or CLI input).
        """
        reference = data.get("reference_image")
        if reference is not None and not isinstance(reference, ReferenceImage):
            reference = ReferenceImage.from_path(reference)

        if "page_count" in data:
            raw_count = data["page_count"]
        elif "pages" in data:
            raw_count = data["pages"]
        else:
            raw_count = DEFAULT_PAGE_COUNT
        try:
            page_count = int(raw_count)
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                f"Expected an integer-compatible page count, got {raw_count!r}.",
                field="page_count",
            ) from exc

        return cls(
            idea=str(data.get("idea") or "").strip(),
            theme=Theme.parse(data.get("theme")),
            art_style=ArtStyle.parse(data.get("art_style") or data.get("style")),
            page_count=page_count,
            reference_image=reference,
        )


class RegenerationKind(str, Enum):
    COVER = "cover"
    PAGE = "page"


@dataclass(frozen=True)
class RegenerationInstruction:
    """
    A targeted revision of the cover or a single page.

    The character description and art style are read-only context copied from the
    story; nothing produced by the regeneration may replace them.
    """

    kind: RegenerationKind
    instruction: str
    character_description: str
    art_style: ArtStyle
    page_index: int | None = None
    story_context: str = ""
    current_text: str = ""
    current_title: str = ""

    def __post_init__(self) -> None:
        if not self.instruction or not self.instruction.strip():
            raise ValidationError("instruction must be a non-empty string.", field="instruction")
        if self.kind is RegenerationKind.PAGE and self.page_index is None:
            raise ValidationError("Page regeneration requires a page_index.", field="page_index")

    @classmethod
    def for_page(cls, story: Story, page_index: int, instruction: str) -> "RegenerationInstruction":
        page = story.page_at(page_index)
        return cls(
            kind=RegenerationKind.PAGE,
            instruction=instruction,
            character_description=story.character_description,
            art_style=story.art_style,
            page_index=page_index,
            story_context=story.context_before(page_index),
            current_text=page.text,
            current_title=story.title,
        )

    @classmethod
    def for_cover(cls, story: Story, instruction: str) -> "RegenerationInstruction":
        return cls(
            kind=RegenerationKind.COVER,
            instruction=instruction,
            character_description=story.character_description,
            art_style=story.art_style,
            current_title=story.title,
        )
