"""
Typed decoding of the structured responses returned by the text model.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from picturebook.common.errors import DecodeError

logger = logging.getLogger(__name__)

_EXCERPT_LENGTH = 200


@dataclass(frozen=True)
class DraftPage:
    page_number: int
    text: str
    image_prompt: str


@dataclass(frozen=True)
class StoryDraft:
    """
    Text-only skeleton of a story, before any image is attached.
    """

    title: str
    character_description: str
    pages: tuple[DraftPage, ...]
    afterword: str


@dataclass(frozen=True)
class PageRegenResult:
    new_text: str
    new_image_prompt: str


@dataclass(frozen=True)
class CoverRegenResult:
    new_title: str
    new_image_prompt: str


def parse_json_object(raw_text: str) -> Mapping[str, Any]:
    """
    Parse a JSON object, tolerating a Markdown code fence around it.
    """
    text = (raw_text or "").strip()
    if text.startswith("```"):
        lines = text.splitlines()
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        text = "\n".join(lines[1:]).strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        _log_decode_failure("response is not valid JSON", raw_text)
        raise DecodeError("Response is not valid JSON.", raw_text=raw_text) from exc

    if not isinstance(parsed, Mapping):
        _log_decode_failure("response is not a JSON object", raw_text)
        raise DecodeError("Response JSON must be an object.", raw_text=raw_text)
    return parsed


def decode_story_draft(raw_text: str, *, expected_pages: int) -> StoryDraft:
    """
    Decode the story skeleton and check it against the requested page count.
    """
    data = parse_json_object(raw_text)

    title = _require_text(data, "title", raw_text)
    character_description = _require_text(data, "character_description", raw_text)
    afterword = _require_text(data, "afterword", raw_text)

    pages_data = data.get("pages")
    if not isinstance(pages_data, Sequence) or isinstance(pages_data, (str, bytes)):
        _log_decode_failure("'pages' is not a list", raw_text)
        raise DecodeError("Story JSON must contain a 'pages' list.", raw_text=raw_text)

    if len(pages_data) != expected_pages:
        _log_decode_failure(
            f"expected {expected_pages} pages, received {len(pages_data)}", raw_text
        )
        raise DecodeError(
            f"Expected {expected_pages} pages, received {len(pages_data)}.",
            raw_text=raw_text,
        )

    pages: list[DraftPage] = []
    for expected, item in enumerate(pages_data, start=1):
        if not isinstance(item, Mapping):
            raise DecodeError(f"Invalid page payload: {item!r}", raw_text=raw_text)
        try:
            number = int(item["page_number"])
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"Page {expected} is missing a page_number.", raw_text=raw_text) from exc

        if number != expected:
            _log_decode_failure("page numbers are not sequential", raw_text)
            raise DecodeError("Page numbers must be sequential starting from 1.", raw_text=raw_text)

        pages.append(
            DraftPage(
                page_number=number,
                text=_require_text(item, "text", raw_text),
                image_prompt=_require_text(item, "image_prompt", raw_text),
            )
        )

    return StoryDraft(
        title=title,
        character_description=character_description,
        pages=tuple(pages),
        afterword=afterword,
    )


def decode_page_regen(raw_text: str) -> PageRegenResult:
    data = parse_json_object(raw_text)
    return PageRegenResult(
        new_text=_require_text(data, "new_text", raw_text),
        new_image_prompt=_require_text(data, "new_image_prompt", raw_text),
    )


def decode_cover_regen(raw_text: str) -> CoverRegenResult:
    data = parse_json_object(raw_text)
    return CoverRegenResult(
        new_title=_require_text(data, "new_title", raw_text),
        new_image_prompt=_require_text(data, "new_image_prompt", raw_text),
    )


def _require_text(data: Mapping[str, Any], key: str, raw_text: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        _log_decode_failure(f"missing or empty '{key}'", raw_text)
        raise DecodeError(f"Response field '{key}' must be a non-empty string.", raw_text=raw_text)
    return value.strip()


def _log_decode_failure(reason: str, raw_text: str | None) -> None:
    excerpt = (raw_text or "")[:_EXCERPT_LENGTH]
    logger.warning("Could not decode structured response (%s). Excerpt: %r", reason, excerpt)
