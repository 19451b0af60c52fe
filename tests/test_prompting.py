"""Tests for request assembly: story schema, regeneration prompts, image prompts."""

from picturebook.ai_generation import build_cover_image_prompt, build_page_image_prompt
from picturebook.story_generation import (
    ArtStyle,
    GenerationRequest,
    ReferenceImage,
    RegenerationInstruction,
    Theme,
    build_regeneration_request,
    build_story_request,
)
from picturebook.story_generation.prompting import COVER_REGEN_SCHEMA, PAGE_REGEN_SCHEMA

from conftest import CHARACTER, make_story


# ---------------------------------------------------------------------------
# Story request
# ---------------------------------------------------------------------------

class TestStoryRequest:
    def test_schema_pins_page_count(self, generation_request) -> None:
        request = build_story_request(generation_request)
        pages = request.response_schema["properties"]["pages"]
        assert pages["minItems"] == 4
        assert pages["maxItems"] == 4
        assert set(request.response_schema["required"]) == {
            "title",
            "character_description",
            "pages",
            "afterword",
        }

    def test_page_item_shape(self, generation_request) -> None:
        request = build_story_request(generation_request)
        item = request.response_schema["properties"]["pages"]["items"]
        assert item["required"] == ["page_number", "text", "image_prompt"]

    def test_user_text_carries_inputs(self, generation_request) -> None:
        request = build_story_request(generation_request)
        text = request.user_parts[0]["text"]
        assert "a cat named Sora visits the moon" in text
        assert Theme.ADVENTURE.value in text
        assert ArtStyle.WATERCOLOR.value in text
        assert "4ページ" in text

    def test_system_instruction_is_independent_of_input(self, generation_request) -> None:
        other = GenerationRequest(
            idea="a dragon learns to bake",
            theme=Theme.FAMILY,
            art_style=ArtStyle.CRAYON,
            page_count=8,
        )
        first = build_story_request(generation_request).system
        assert first == build_story_request(other).system
        assert "ハッピーエンド" in first
        assert "ひらがな" in first

    def test_reference_image_appended_as_data_url(self) -> None:
        request = build_story_request(
            GenerationRequest(
                idea="a cat",
                theme=Theme.COURAGE,
                art_style=ArtStyle.ANIME,
                page_count=6,
                reference_image=ReferenceImage(data=b"\x89PNGfake", mime_type="image/png"),
            )
        )
        assert len(request.user_parts) == 3
        image_part = request.user_parts[2]
        assert image_part["type"] == "image_url"
        assert image_part["image_url"]["url"].startswith("data:image/png;base64,")

    def test_response_format_is_json_schema(self, generation_request) -> None:
        request = build_story_request(generation_request)
        response_format = request.response_format()
        assert response_format["type"] == "json_schema"
        assert response_format["json_schema"]["schema"] is request.response_schema

    def test_messages_order(self, generation_request) -> None:
        messages = build_story_request(generation_request).messages()
        assert [message["role"] for message in messages] == ["system", "user"]


# ---------------------------------------------------------------------------
# Regeneration requests
# ---------------------------------------------------------------------------

class TestRegenerationRequest:
    def test_page_request_includes_context_and_verbatim_instruction(self) -> None:
        story = make_story()
        instruction = 'make the character smile more "please"'
        request = build_regeneration_request(
            RegenerationInstruction.for_page(story, 2, instruction)
        )
        text = request.user_parts[0]["text"]
        assert instruction in text
        assert "ページ1の おはなし。\nページ2の おはなし。" in text
        assert "ページ3の おはなし。" in text
        assert CHARACTER in text
        assert request.response_schema is PAGE_REGEN_SCHEMA

    def test_first_page_has_empty_context(self) -> None:
        regen = RegenerationInstruction.for_page(make_story(), 0, "brighter sky")
        assert regen.story_context == ""

    def test_cover_request_shape(self) -> None:
        story = make_story()
        request = build_regeneration_request(
            RegenerationInstruction.for_cover(story, "change the title to Sora's trip")
        )
        assert request.response_schema is COVER_REGEN_SCHEMA
        assert story.title in request.user_parts[0]["text"]
        assert set(COVER_REGEN_SCHEMA["required"]) == {"new_title", "new_image_prompt"}


# ---------------------------------------------------------------------------
# Image prompts
# ---------------------------------------------------------------------------

class TestImagePrompts:
    def test_page_prompt_order(self) -> None:
        prompt = build_page_image_prompt("Sora jumps", ArtStyle.CRAYON, CHARACTER)
        assert prompt == f"Sora jumps, in the style of {ArtStyle.CRAYON.value}. {CHARACTER}"
        assert prompt.index("Sora jumps") < prompt.index(ArtStyle.CRAYON.value) < prompt.index(CHARACTER)

    def test_cover_prompt_without_extra(self) -> None:
        prompt = build_cover_image_prompt("Moon Trip", CHARACTER, ArtStyle.DIGITAL)
        assert prompt == (
            "Book cover illustration for a children's book titled 'Moon Trip'. "
            f"Featuring the main character: {CHARACTER}. Style: {ArtStyle.DIGITAL.value}."
        )

    def test_cover_prompt_folds_in_extra_guidance(self) -> None:
        prompt = build_cover_image_prompt(
            "Moon Trip", CHARACTER, ArtStyle.DIGITAL, extra="Sora waving under the stars"
        )
        assert "Sora waving under the stars" in prompt
        assert CHARACTER in prompt
        assert ArtStyle.DIGITAL.value in prompt
