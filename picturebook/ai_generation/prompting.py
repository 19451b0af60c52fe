"""
Prompt construction utilities for PictureBookAI illustration generation.

The character description and the art style token are appended to every prompt so the
protagonist's appearance is restated on each independent image call.
"""

from __future__ import annotations

from picturebook.story_generation.story import ArtStyle

DEFAULT_ASPECT_RATIO = "4:3"


def build_page_image_prompt(
    base_prompt: str,
    art_style: ArtStyle | str,
    character_description: str,
) -> str:
    """
    Compose a page illustration prompt: scene, then style, then character.
    """
    if not base_prompt or not base_prompt.strip():
        raise ValueError("base_prompt must be a non-empty string.")

    style = _style_token(art_style)
    return f"{base_prompt.strip()}, in the style of {style}. {character_description.strip()}"


def build_cover_image_prompt(
    title: str,
    character_description: str,
    art_style: ArtStyle | str,
    extra: str | None = None,
) -> str:
    """
    Compose the cover prompt, optionally folding in revised cover guidance.
    """
    style = _style_token(art_style)
    prompt = f"Book cover illustration for a children's book titled '{title.strip()}'."
    if extra and extra.strip():
        prompt += f" {extra.strip()}"
    return (
        f"{prompt} Featuring the main character: {character_description.strip()}. "
        f"Style: {style}."
    )


def _style_token(art_style: ArtStyle | str) -> str:
    if isinstance(art_style, ArtStyle):
        return art_style.value
    return str(art_style).strip()
