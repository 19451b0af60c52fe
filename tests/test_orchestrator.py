"""Tests for full story synthesis and the regeneration sub-pipelines."""

import base64
from io import BytesIO
from typing import Any

import httpx
import pytest
from PIL import Image

from picturebook.ai_generation import ReplicateImageGenerator
from picturebook.common import (
    ChatResult,
    DecodeError,
    GenerationClient,
    PipelineAbortedError,
    UpstreamError,
    ValidationError,
)
from picturebook.common.errors import DECODE_USER_MESSAGE
from picturebook.pipeline import ImageGenerationPolicy, PipelineState, StorySynthesisOrchestrator
from picturebook.pipeline.orchestrator import image_mime_type
from picturebook.story_generation import ArtStyle

from conftest import CHARACTER, FakeGenerationClient, make_story, story_json

PAGE_REGEN = '{"new_text": "ソラは にっこり わらいました。", "new_image_prompt": "Sora smiling widely"}'
COVER_REGEN = '{"new_title": "ソラと おつきさま", "new_image_prompt": "Sora hugging the moon"}'


def recorder():
    events: list[tuple[str, dict]] = []

    def callback(stage: str, payload: dict) -> None:
        events.append((stage, payload))

    return events, callback


# ---------------------------------------------------------------------------
# Full generation
# ---------------------------------------------------------------------------

class TestGenerateStory:
    def test_complete_story(self, generation_request) -> None:
        client = FakeGenerationClient([story_json(4)])
        orchestrator = StorySynthesisOrchestrator(client=client, image_policy="sequential")

        story = orchestrator.generate_story(generation_request)

        assert len(story.pages) == 4
        assert [page.id for page in story.pages] == [1, 2, 3, 4]
        assert story.is_complete
        assert story.cover_image_url.startswith("data:image/png;base64,")
        assert story.art_style is ArtStyle.WATERCOLOR
        assert story.character_description == CHARACTER
        assert orchestrator.state is PipelineState.COMPLETE

    def test_cover_first_then_pages_with_identity(self, generation_request) -> None:
        client = FakeGenerationClient([story_json(4)])
        StorySynthesisOrchestrator(client=client, image_policy="sequential").generate_story(
            generation_request
        )

        assert len(client.image_prompts) == 5
        assert client.image_prompts[0].startswith("Book cover illustration")
        for number, prompt in enumerate(client.image_prompts[1:], start=1):
            assert prompt.startswith(f"Sora on the moon, scene {number}")
            assert CHARACTER in prompt
            assert ArtStyle.WATERCOLOR.value in prompt

    def test_sequential_partial_stories(self, generation_request) -> None:
        client = FakeGenerationClient([story_json(4)])
        partials = []
        StorySynthesisOrchestrator(client=client, image_policy="sequential").generate_story(
            generation_request, on_partial_story=partials.append
        )

        assert len(partials) == 5
        assert partials[0].cover_image_url and not any(page.image_url for page in partials[0].pages)
        illustrated = [sum(1 for page in partial.pages if page.image_url) for partial in partials]
        assert illustrated == [0, 1, 2, 3, 4]

    def test_progress_stages(self, generation_request) -> None:
        events, callback = recorder()
        client = FakeGenerationClient([story_json(4)])
        StorySynthesisOrchestrator(client=client, image_policy="sequential").generate_story(
            generation_request, progress_callback=callback
        )

        stages = [stage for stage, _ in events]
        assert stages[:5] == [
            "text:generating",
            "text:generated",
            "cover:generating",
            "cover:done",
            "pages:generating",
        ]
        assert stages.count("page:done") == 4
        assert stages[-1] == "pipeline:complete"

    def test_parallel_policy(self, generation_request) -> None:
        client = FakeGenerationClient([story_json(4)])
        partials = []
        orchestrator = StorySynthesisOrchestrator(client=client, image_policy=ImageGenerationPolicy.PARALLEL)

        story = orchestrator.generate_story(generation_request, on_partial_story=partials.append)

        assert story.is_complete
        assert len(client.image_prompts) == 5
        # Only the cover is published incrementally.
        assert len(partials) == 1

    def test_policy_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("PICTUREBOOK_IMAGE_POLICY", "parallel")
        orchestrator = StorySynthesisOrchestrator(client=FakeGenerationClient())
        assert orchestrator.image_policy is ImageGenerationPolicy.PARALLEL

    def test_unknown_policy(self) -> None:
        with pytest.raises(ValueError):
            StorySynthesisOrchestrator(client=FakeGenerationClient(), image_policy="eventually")

    def test_malformed_text_aborts_before_images(self, generation_request) -> None:
        events, callback = recorder()
        client = FakeGenerationClient(['{"title": "x"}'])
        orchestrator = StorySynthesisOrchestrator(client=client)

        with pytest.raises(PipelineAbortedError) as excinfo:
            orchestrator.generate_story(generation_request, progress_callback=callback)

        assert isinstance(excinfo.value.cause, DecodeError)
        assert isinstance(excinfo.value.__cause__, DecodeError)
        assert excinfo.value.stage is PipelineState.TEXT_GENERATING
        assert client.image_prompts == []
        assert orchestrator.state is PipelineState.FAILED
        assert events[-1] == (
            "pipeline:failed",
            {"stage": PipelineState.TEXT_GENERATING.value, "error": DECODE_USER_MESSAGE},
        )

    def test_wrong_page_count_aborts(self, generation_request) -> None:
        client = FakeGenerationClient([story_json(6)])
        with pytest.raises(PipelineAbortedError):
            StorySynthesisOrchestrator(client=client).generate_story(generation_request)

    def test_page_image_failure_aborts(self, generation_request) -> None:
        # Call 4 is page 3: cover, page 1, page 2, page 3.
        client = FakeGenerationClient([story_json(4)], fail_image_at=4)
        partials = []
        orchestrator = StorySynthesisOrchestrator(client=client, image_policy="sequential")

        with pytest.raises(PipelineAbortedError) as excinfo:
            orchestrator.generate_story(generation_request, on_partial_story=partials.append)

        assert isinstance(excinfo.value.cause, UpstreamError)
        assert excinfo.value.cause.status_code == 500
        assert excinfo.value.user_message == "Internal error encountered."
        assert excinfo.value.stage is PipelineState.PAGE_IMAGE_GENERATING
        assert len(client.image_prompts) == 4
        assert not partials[-1].is_complete

    def test_parallel_failure_aborts(self, generation_request) -> None:
        client = FakeGenerationClient(
            [story_json(4)], fail_when=lambda prompt: "scene 2" in prompt
        )
        orchestrator = StorySynthesisOrchestrator(client=client, image_policy="parallel")

        with pytest.raises(PipelineAbortedError):
            orchestrator.generate_story(generation_request)
        assert orchestrator.state is PipelineState.FAILED


# ---------------------------------------------------------------------------
# Regeneration
# ---------------------------------------------------------------------------

class TestRegeneratePage:
    def test_only_target_page_changes(self) -> None:
        story = make_story()
        client = FakeGenerationClient([PAGE_REGEN])
        orchestrator = StorySynthesisOrchestrator(client=client)

        revised = orchestrator.regenerate_page(story, 1, "make the character smile more")

        assert revised.pages[1].text == "ソラは にっこり わらいました。"
        assert revised.pages[1].image_prompt == "Sora smiling widely"
        assert revised.pages[1].image_url != story.pages[1].image_url
        assert revised.pages[0] == story.pages[0]
        assert revised.pages[2:] == story.pages[2:]
        assert revised.title == story.title
        assert revised.cover_image_url == story.cover_image_url
        assert revised.afterword == story.afterword
        assert revised.character_description == story.character_description
        assert orchestrator.state is PipelineState.DONE

    def test_image_prompt_restates_identity(self) -> None:
        client = FakeGenerationClient([PAGE_REGEN])
        StorySynthesisOrchestrator(client=client).regenerate_page(make_story(), 1, "smile")

        assert client.image_prompts == [
            f"Sora smiling widely, in the style of {ArtStyle.WATERCOLOR.value}. {CHARACTER}"
        ]

    def test_request_carries_preceding_context(self) -> None:
        client = FakeGenerationClient([PAGE_REGEN])
        StorySynthesisOrchestrator(client=client).regenerate_page(make_story(), 2, "smile")

        text = client.structured_requests[0].user_parts[0]["text"]
        assert "ページ1の おはなし。\nページ2の おはなし。" in text

    def test_failed_image_leaves_story_untouched(self) -> None:
        story = make_story()
        client = FakeGenerationClient([PAGE_REGEN], fail_image_at=1)
        orchestrator = StorySynthesisOrchestrator(client=client)

        with pytest.raises(PipelineAbortedError) as excinfo:
            orchestrator.regenerate_page(story, 1, "smile")

        assert excinfo.value.stage is PipelineState.REGEN_IMAGE
        assert story == make_story()

    def test_out_of_range_page(self) -> None:
        client = FakeGenerationClient([PAGE_REGEN])
        with pytest.raises(ValidationError):
            StorySynthesisOrchestrator(client=client).regenerate_page(make_story(), 9, "smile")
        assert client.structured_requests == []


class TestRegenerateCover:
    def test_title_and_cover_only(self) -> None:
        story = make_story()
        client = FakeGenerationClient([COVER_REGEN])

        revised = StorySynthesisOrchestrator(client=client).regenerate_cover(
            story, "make the title about hugging the moon"
        )

        assert revised.title == "ソラと おつきさま"
        assert revised.cover_image_url != story.cover_image_url
        assert revised.pages == story.pages
        assert revised.afterword == story.afterword

    def test_character_and_style_cannot_be_overridden(self) -> None:
        story = make_story()
        client = FakeGenerationClient([COVER_REGEN])

        revised = StorySynthesisOrchestrator(client=client).regenerate_cover(
            story, "change the art style to anime and make the cat a dog"
        )

        assert revised.character_description == CHARACTER
        assert revised.art_style is ArtStyle.WATERCOLOR
        prompt = client.image_prompts[0]
        assert "Sora hugging the moon" in prompt
        assert CHARACTER in prompt
        assert ArtStyle.WATERCOLOR.value in prompt

    def test_decode_failure(self) -> None:
        client = FakeGenerationClient(["not json"])
        with pytest.raises(PipelineAbortedError) as excinfo:
            StorySynthesisOrchestrator(client=client).regenerate_cover(make_story(), "new title")
        assert excinfo.value.stage is PipelineState.REGEN_TEXT_OR_META
        assert client.image_prompts == []


# ---------------------------------------------------------------------------
# Failures raised below the generation client
# ---------------------------------------------------------------------------

def story_completion(**kwargs: Any) -> ChatResult:
    return ChatResult(text=story_json(4), raw=None)


def jpeg_base64() -> str:
    buffer = BytesIO()
    Image.new("RGB", (8, 6), (240, 200, 40)).save(buffer, format="JPEG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


class ScriptedImageGenerator:
    model_identifier = "google/imagen-4"

    def __init__(self, output: Any = None, error: Exception | None = None) -> None:
        self.output = output
        self.error = error

    def generate_image(self, **kwargs: Any) -> Any:
        if self.error is not None:
            raise self.error
        return self.output


class UnusedReplicateClient:
    def run(self, model: str, input: dict[str, Any]) -> Any:
        raise AssertionError("no prediction should be started")


class TestClientFailuresAbortPipeline:
    def test_unreachable_image_service(self, generation_request) -> None:
        events, callback = recorder()
        client = GenerationClient(
            text_model="gemini/test",
            completion_fn=story_completion,
            image_generator=ScriptedImageGenerator(error=httpx.ConnectError("connection refused")),
        )
        orchestrator = StorySynthesisOrchestrator(client=client)

        with pytest.raises(PipelineAbortedError) as excinfo:
            orchestrator.generate_story(generation_request, progress_callback=callback)

        assert isinstance(excinfo.value.cause, UpstreamError)
        assert excinfo.value.cause.status_code == 503
        assert excinfo.value.stage is PipelineState.COVER_IMAGE_GENERATING
        assert orchestrator.state is PipelineState.FAILED
        assert events[-1][0] == "pipeline:failed"

    def test_missing_image_credentials(self, generation_request, monkeypatch) -> None:
        monkeypatch.delenv("REPLICATE_API_TOKEN", raising=False)
        client = GenerationClient(text_model="gemini/test", completion_fn=story_completion)
        orchestrator = StorySynthesisOrchestrator(client=client)

        with pytest.raises(PipelineAbortedError) as excinfo:
            orchestrator.generate_story(generation_request)

        assert isinstance(excinfo.value.cause, ValidationError)
        assert excinfo.value.cause.field == "api_token"
        assert "REPLICATE_API_TOKEN" in excinfo.value.user_message
        assert orchestrator.state is PipelineState.FAILED

    def test_unconfigured_image_model(self, generation_request) -> None:
        generator = ReplicateImageGenerator(
            client=UnusedReplicateClient(), model_identifier="someone/unknown-model"
        )
        client = GenerationClient(
            text_model="gemini/test", completion_fn=story_completion, image_generator=generator
        )
        orchestrator = StorySynthesisOrchestrator(client=client)

        with pytest.raises(PipelineAbortedError) as excinfo:
            orchestrator.generate_story(generation_request)

        assert isinstance(excinfo.value.cause, ValidationError)
        assert excinfo.value.cause.field == "model_identifier"
        assert orchestrator.state is PipelineState.FAILED

    def test_regeneration_transport_failure_keeps_story(self) -> None:
        story = make_story()
        client = GenerationClient(
            text_model="gemini/test",
            completion_fn=lambda **kwargs: ChatResult(text=COVER_REGEN, raw=None),
            image_generator=ScriptedImageGenerator(error=httpx.ReadTimeout("timed out")),
        )

        with pytest.raises(PipelineAbortedError) as excinfo:
            StorySynthesisOrchestrator(client=client).regenerate_cover(story, "rocket")

        assert excinfo.value.stage is PipelineState.REGEN_IMAGE
        assert story == make_story()


class TestImageMimeType:
    def test_jpeg_data_url_keeps_its_type(self, generation_request) -> None:
        encoded = jpeg_base64()
        client = GenerationClient(
            text_model="gemini/test",
            completion_fn=story_completion,
            image_generator=ScriptedImageGenerator(output=f"data:image/jpeg;base64,{encoded}"),
        )

        story = StorySynthesisOrchestrator(client=client).generate_story(generation_request)

        assert story.cover_image_url == f"data:image/jpeg;base64,{encoded}"
        assert all(page.image_url.startswith("data:image/jpeg;base64,") for page in story.pages)

    def test_png_and_unknown_bytes(self) -> None:
        buffer = BytesIO()
        Image.new("RGB", (4, 4)).save(buffer, format="PNG")
        assert image_mime_type(base64.b64encode(buffer.getvalue()).decode("ascii")) == "image/png"
        assert image_mime_type(base64.b64encode(b"not an image").decode("ascii")) == "image/png"
