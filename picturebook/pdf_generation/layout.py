"""
Logical export pages: cover, one per story page, and the afterword.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from picturebook.story_generation import Story

AFTERWORD_HEADING = "あとがき"


class ExportPageKind(str, Enum):
    COVER = "cover"
    STORY = "story"
    AFTERWORD = "afterword"


@dataclass(frozen=True)
class ExportPage:
    """
    One page of the exported document.

    ``image_bytes`` is filled in by the layout phase before any capture starts.
    """

    kind: ExportPageKind
    position: int
    title: str
    text: str
    image_url: str
    image_bytes: bytes | None = None

    @property
    def label(self) -> str:
        if self.kind is ExportPageKind.STORY:
            return f"page {self.position}"
        return self.kind.value


def layout_story(story: Story) -> list[ExportPage]:
    """
    Return the export pages in narrative order: cover, pages 1..N, afterword.
    """
    pages = [
        ExportPage(
            kind=ExportPageKind.COVER,
            position=0,
            title=story.title,
            text="",
            image_url=story.cover_image_url,
        )
    ]
    for page in story.pages:
        pages.append(
            ExportPage(
                kind=ExportPageKind.STORY,
                position=page.id,
                title="",
                text=page.text,
                image_url=page.image_url,
            )
        )
    pages.append(
        ExportPage(
            kind=ExportPageKind.AFTERWORD,
            position=len(story.pages) + 1,
            title=AFTERWORD_HEADING,
            text=story.afterword,
            image_url=story.cover_image_url,
        )
    )
    return pages
