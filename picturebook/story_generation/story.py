"""
Core story value types: art styles, themes, pages, and the complete Story.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

from picturebook.common.errors import ValidationError


class _LabelledEnum(str, Enum):
    """String enum parsed from either the member name or its value."""

    @classmethod
    def parse(cls, value: Any) -> "_LabelledEnum":
        if isinstance(value, cls):
            return value

        text = str(value or "").strip()
        for member in cls:
            if text == member.value or text.upper() == member.name:
                return member

        options = ", ".join(f"{member.name} ({member.value})" for member in cls)
        raise ValidationError(
            f"Unknown {cls.__name__} {value!r}. Expected one of: {options}.",
            field=cls.__name__,
        )


class ArtStyle(_LabelledEnum):
    """Illustration styles. The value is the token injected into every image prompt."""

    WATERCOLOR = "水彩画風"
    ANIME = "アニメ風"
    CRAYON = "クレヨン画風"
    DIGITAL = "デジタルアート風"


class Theme(_LabelledEnum):
    FRIENDSHIP = "友情"
    COURAGE = "勇気"
    ADVENTURE = "冒険"
    FAMILY = "家族"


@dataclass(frozen=True)
class Page:
    """
    A single story page. ``id`` is 1-based and equals the page's position.
    """

    id: int
    text: str
    image_url: str = ""
    image_prompt: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "image_url": self.image_url,
        }
        if self.image_prompt is not None:
            payload["image_prompt"] = self.image_prompt
        return payload


@dataclass(frozen=True)
class Story:
    """
    The complete illustrated story.

    ``character_description`` and ``art_style`` are fixed at generation time; the
    ``with_*`` helpers only ever rewrite the fields a revision is allowed to touch.
    """

    title: str
    cover_image_url: str
    character_description: str
    art_style: ArtStyle
    pages: tuple[Page, ...]
    afterword: str

    def __post_init__(self) -> None:
        if not isinstance(self.pages, tuple):
            object.__setattr__(self, "pages", tuple(self.pages))

        if not self.pages:
            raise ValidationError("A story must contain at least one page.", field="pages")

        for expected, page in enumerate(self.pages, start=1):
            if page.id != expected:
                raise ValidationError(
                    f"Page ids must be sequential starting from 1; found {page.id} at position {expected}.",
                    field="pages",
                )

    @property
    def is_complete(self) -> bool:
        """True once the cover and every page carry an image."""
        return bool(self.cover_image_url) and all(page.image_url for page in self.pages)

    def page_at(self, page_index: int) -> Page:
        if not 0 <= page_index < len(self.pages):
            raise ValidationError(
                f"Page index {page_index} is out of range for a {len(self.pages)}-page story.",
                field="page_index",
            )
        return self.pages[page_index]

    def with_page(self, page_index: int, **changes: Any) -> "Story":
        """Return a copy with exactly one page replaced."""
        page = dataclasses.replace(self.page_at(page_index), **changes)
        pages = list(self.pages)
        pages[page_index] = page
        return dataclasses.replace(self, pages=tuple(pages))

    def with_cover(self, *, title: str, cover_image_url: str) -> "Story":
        return dataclasses.replace(self, title=title, cover_image_url=cover_image_url)

    def context_before(self, page_index: int) -> str:
        """Narrative context for a page: the text of every preceding page."""
        self.page_at(page_index)
        return "\n".join(page.text for page in self.pages[:page_index])

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "cover_image_url": self.cover_image_url,
            "character_description": self.character_description,
            "art_style": self.art_style.name,
            "pages": [page.to_dict() for page in self.pages],
            "afterword": self.afterword,
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Story":
        for key in ("title", "character_description", "art_style", "pages"):
            if key not in payload:
                raise ValidationError(f"Story payload must include '{key}'.", field=key)

        pages_payload: Sequence[Mapping[str, Any]] = payload.get("pages") or []
        pages: list[Page] = []
        for entry in pages_payload:
            try:
                page_id = int(entry["id"])
                text = str(entry["text"])
            except (KeyError, TypeError, ValueError) as exc:
                raise ValidationError(f"Invalid page entry: {entry}", field="pages") from exc

            prompt = entry.get("image_prompt")
            pages.append(
                Page(
                    id=page_id,
                    text=text,
                    image_url=str(entry.get("image_url") or ""),
                    image_prompt=str(prompt) if prompt is not None else None,
                )
            )

        return cls(
            title=str(payload["title"]),
            cover_image_url=str(payload.get("cover_image_url") or ""),
            character_description=str(payload["character_description"]),
            art_style=ArtStyle.parse(payload["art_style"]),
            pages=tuple(pages),
            afterword=str(payload.get("afterword") or ""),
        )

    @classmethod
    def from_yaml(cls, source: str | Path) -> "Story":
        path = Path(source)
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        if not isinstance(data, Mapping):
            raise ValidationError("Story YAML must deserialize to a mapping.")
        return cls.from_dict(data)
