"""
Orchestrates story synthesis: one structured text call followed by the cover and
page illustrations, plus the two-call regeneration sub-pipelines.
"""

from __future__ import annotations

import base64
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from io import BytesIO
from typing import Any, Callable, Sequence

from PIL import Image

from picturebook.ai_generation.prompting import (
    DEFAULT_ASPECT_RATIO,
    build_cover_image_prompt,
    build_page_image_prompt,
)
from picturebook.common import GenerationClient, PictureBookError, PipelineAbortedError
from picturebook.story_generation import (
    GenerationRequest,
    Page,
    RegenerationInstruction,
    Story,
    StoryDraft,
    build_regeneration_request,
    build_story_request,
    decode_cover_regen,
    decode_page_regen,
    decode_story_draft,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, dict[str, Any]], None]
PartialStoryCallback = Callable[[Story], None]

DEFAULT_IMAGE_MIME_TYPE = "image/png"


class PipelineState(str, Enum):
    IDLE = "idle"
    TEXT_GENERATING = "text_generating"
    COVER_IMAGE_GENERATING = "cover_image_generating"
    PAGE_IMAGE_GENERATING = "page_image_generating"
    COMPLETE = "complete"
    REGEN_TEXT_OR_META = "regen_text_or_meta"
    REGEN_IMAGE = "regen_image"
    DONE = "done"
    FAILED = "failed"


class ImageGenerationPolicy(str, Enum):
    """
    How page illustrations are requested.

    ``SEQUENTIAL`` attaches images in ascending page order and publishes the partial
    story after each one. ``PARALLEL`` fans the page calls out concurrently; it is
    faster but shows no incremental progress, and which page failed first is not
    deterministic.
    """

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"

    @classmethod
    def resolve(cls, value: "ImageGenerationPolicy | str | None") -> "ImageGenerationPolicy":
        if isinstance(value, cls):
            return value
        text = (value or os.getenv("PICTUREBOOK_IMAGE_POLICY") or cls.SEQUENTIAL.value)
        try:
            return cls(str(text).strip().lower())
        except ValueError as exc:
            raise ValueError(
                f"Unknown image generation policy {text!r}; use 'sequential' or 'parallel'."
            ) from exc


def image_mime_type(image_base64: str) -> str:
    """Mime type read from the encoded image header; PNG when it cannot be identified."""
    try:
        with Image.open(BytesIO(base64.b64decode(image_base64))) as image:
            return Image.MIME.get(image.format or "", DEFAULT_IMAGE_MIME_TYPE)
    except (OSError, ValueError, Image.DecompressionBombError):
        return DEFAULT_IMAGE_MIME_TYPE


def to_image_data_url(image_base64: str) -> str:
    return f"data:{image_mime_type(image_base64)};base64,{image_base64}"


class StorySynthesisOrchestrator:
    """
    High-level coordinator that chains together story and image generation calls.

    The orchestrator never commits anything; it returns fully-formed Story values
    and leaves history to the caller. Any failure raises
    :class:`PipelineAbortedError` chained to the original error.
    """

    def __init__(
        self,
        *,
        client: GenerationClient | None = None,
        image_policy: ImageGenerationPolicy | str | None = None,
        max_parallel_images: int = 4,
        aspect_ratio: str = DEFAULT_ASPECT_RATIO,
    ) -> None:
        self._client = client or GenerationClient()
        self._image_policy = ImageGenerationPolicy.resolve(image_policy)
        self._max_parallel_images = max(1, max_parallel_images)
        self._aspect_ratio = aspect_ratio
        self._state = PipelineState.IDLE

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def image_policy(self) -> ImageGenerationPolicy:
        return self._image_policy

    # ------------------------------------------------------------------ full generation

    def generate_story(
        self,
        request: GenerationRequest,
        *,
        progress_callback: ProgressCallback | None = None,
        on_partial_story: PartialStoryCallback | None = None,
    ) -> Story:
        """
        Run the full pipeline and return the completed story.

        ``on_partial_story`` receives the in-progress story after the cover and (in
        sequential mode) after each page image. Those values are for display only.
        """
        self._transition(PipelineState.TEXT_GENERATING, progress_callback, "text:generating")
        try:
            raw_text = self._client.generate_structured(build_story_request(request))
            draft = decode_story_draft(raw_text, expected_pages=request.page_count)
            self._notify(
                progress_callback,
                "text:generated",
                title=draft.title,
                total_pages=len(draft.pages),
            )

            self._transition(
                PipelineState.COVER_IMAGE_GENERATING, progress_callback, "cover:generating"
            )
            story = self._story_from_draft(draft, request)
            cover_prompt = build_cover_image_prompt(
                draft.title, draft.character_description, request.art_style
            )
            story = story.with_cover(
                title=story.title,
                cover_image_url=to_image_data_url(
                    self._client.generate_image(cover_prompt, self._aspect_ratio)
                ),
            )
            self._notify(progress_callback, "cover:done")
            self._publish(on_partial_story, story)

            self._transition(
                PipelineState.PAGE_IMAGE_GENERATING,
                progress_callback,
                "pages:generating",
                total_pages=len(story.pages),
                policy=self._image_policy.value,
            )
            if self._image_policy is ImageGenerationPolicy.PARALLEL:
                story = self._generate_pages_parallel(story, progress_callback)
            else:
                story = self._generate_pages_sequential(
                    story, progress_callback, on_partial_story
                )
        except PictureBookError as exc:
            raise self._abort(exc, progress_callback) from exc

        self._transition(
            PipelineState.COMPLETE,
            progress_callback,
            "pipeline:complete",
            total_pages=len(story.pages),
            title=story.title,
        )
        return story

    def _story_from_draft(self, draft: StoryDraft, request: GenerationRequest) -> Story:
        return Story(
            title=draft.title,
            cover_image_url="",
            character_description=draft.character_description,
            art_style=request.art_style,
            pages=tuple(
                Page(id=page.page_number, text=page.text, image_prompt=page.image_prompt)
                for page in draft.pages
            ),
            afterword=draft.afterword,
        )

    def _page_prompt(self, story: Story, page: Page) -> str:
        return build_page_image_prompt(
            page.image_prompt or "", story.art_style, story.character_description
        )

    def _generate_pages_sequential(
        self,
        story: Story,
        progress_callback: ProgressCallback | None,
        on_partial_story: PartialStoryCallback | None,
    ) -> Story:
        total_pages = len(story.pages)
        for index, page in enumerate(story.pages):
            self._notify(
                progress_callback,
                "page:generating",
                page_number=page.id,
                page_index=index,
                total_pages=total_pages,
            )
            image_base64 = self._client.generate_image(
                self._page_prompt(story, page), self._aspect_ratio
            )
            story = story.with_page(index, image_url=to_image_data_url(image_base64))
            self._notify(
                progress_callback,
                "page:done",
                page_number=page.id,
                page_index=index,
                total_pages=total_pages,
            )
            self._publish(on_partial_story, story)
        return story

    def _generate_pages_parallel(
        self,
        story: Story,
        progress_callback: ProgressCallback | None,
    ) -> Story:
        prompts: Sequence[str] = [self._page_prompt(story, page) for page in story.pages]
        total_pages = len(prompts)
        workers = min(self._max_parallel_images, total_pages)

        # Leaving the executor waits for every in-flight call; there is no cancellation.
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="page-image") as pool:
            futures = [
                pool.submit(self._client.generate_image, prompt, self._aspect_ratio)
                for prompt in prompts
            ]
            for index, future in enumerate(futures):
                image_base64 = future.result()
                story = story.with_page(index, image_url=to_image_data_url(image_base64))
                self._notify(
                    progress_callback,
                    "page:done",
                    page_number=story.pages[index].id,
                    page_index=index,
                    total_pages=total_pages,
                )
        return story

    # ------------------------------------------------------------------ regeneration

    def regenerate_page(
        self,
        story: Story,
        page_index: int,
        instruction: str,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> Story:
        """
        Rewrite one page's text and illustration; every other field is carried over.
        """
        regen = RegenerationInstruction.for_page(story, page_index, instruction)
        self._transition(
            PipelineState.REGEN_TEXT_OR_META,
            progress_callback,
            "regen:text",
            target="page",
            page_index=page_index,
        )
        try:
            raw_text = self._client.generate_structured(build_regeneration_request(regen))
            result = decode_page_regen(raw_text)

            self._transition(
                PipelineState.REGEN_IMAGE,
                progress_callback,
                "regen:image",
                target="page",
                page_index=page_index,
            )
            prompt = build_page_image_prompt(
                result.new_image_prompt, regen.art_style, regen.character_description
            )
            image_base64 = self._client.generate_image(prompt, self._aspect_ratio)
        except PictureBookError as exc:
            raise self._abort(exc, progress_callback) from exc

        revised = story.with_page(
            page_index,
            text=result.new_text,
            image_url=to_image_data_url(image_base64),
            image_prompt=result.new_image_prompt,
        )
        self._transition(
            PipelineState.DONE,
            progress_callback,
            "regen:done",
            target="page",
            page_index=page_index,
        )
        return revised

    def regenerate_cover(
        self,
        story: Story,
        instruction: str,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> Story:
        """
        Rewrite the title and cover illustration only.
        """
        regen = RegenerationInstruction.for_cover(story, instruction)
        self._transition(
            PipelineState.REGEN_TEXT_OR_META, progress_callback, "regen:text", target="cover"
        )
        try:
            raw_text = self._client.generate_structured(build_regeneration_request(regen))
            result = decode_cover_regen(raw_text)

            self._transition(
                PipelineState.REGEN_IMAGE, progress_callback, "regen:image", target="cover"
            )
            prompt = build_cover_image_prompt(
                result.new_title,
                regen.character_description,
                regen.art_style,
                extra=result.new_image_prompt,
            )
            image_base64 = self._client.generate_image(prompt, self._aspect_ratio)
        except PictureBookError as exc:
            raise self._abort(exc, progress_callback) from exc

        revised = story.with_cover(
            title=result.new_title,
            cover_image_url=to_image_data_url(image_base64),
        )
        self._transition(PipelineState.DONE, progress_callback, "regen:done", target="cover")
        return revised

    # ------------------------------------------------------------------ helpers

    def _transition(
        self,
        state: PipelineState,
        callback: ProgressCallback | None,
        event: str,
        **payload: Any,
    ) -> None:
        logger.info("Pipeline %s -> %s", self._state.value, state.value)
        self._state = state
        self._notify(callback, event, **payload)

    def _abort(
        self,
        exc: PictureBookError,
        callback: ProgressCallback | None,
    ) -> PipelineAbortedError:
        failed_stage = self._state
        logger.error("Pipeline failed during %s: %s", failed_stage.value, exc)
        self._state = PipelineState.FAILED
        self._notify(
            callback,
            "pipeline:failed",
            stage=failed_stage.value,
            error=exc.user_message,
        )
        return PipelineAbortedError(failed_stage, exc)

    @staticmethod
    def _publish(callback: PartialStoryCallback | None, story: Story) -> None:
        if callback is not None:
            callback(story)

    @staticmethod
    def _notify(
        callback: ProgressCallback | None,
        event: str,
        **payload: Any,
    ) -> None:
        if callback is not None:
            callback(event, payload)
