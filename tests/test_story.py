"""Tests for the story value types and request validation."""

import dataclasses

import pytest

from picturebook.common import ValidationError
from picturebook.story_generation import (
    ArtStyle,
    GenerationRequest,
    Page,
    ReferenceImage,
    RegenerationInstruction,
    Story,
    Theme,
)

from conftest import make_story


class TestStory:
    def test_requires_pages(self) -> None:
        with pytest.raises(ValidationError):
            Story(
                title="t",
                cover_image_url="x",
                character_description="c",
                art_style=ArtStyle.ANIME,
                pages=(),
                afterword="a",
            )

    def test_page_ids_must_match_positions(self) -> None:
        with pytest.raises(ValidationError):
            Story(
                title="t",
                cover_image_url="x",
                character_description="c",
                art_style=ArtStyle.ANIME,
                pages=(Page(id=1, text="a"), Page(id=3, text="b")),
                afterword="a",
            )

    def test_with_page_replaces_only_one_page(self) -> None:
        story = make_story()
        revised = story.with_page(1, text="あたらしい ぶん")
        assert revised.pages[1].text == "あたらしい ぶん"
        assert revised.pages[1].image_url == story.pages[1].image_url
        assert revised.pages[0] == story.pages[0]
        assert revised.pages[2:] == story.pages[2:]
        assert story.pages[1].text == "ページ2の おはなし。"

    def test_with_page_out_of_range(self) -> None:
        with pytest.raises(ValidationError):
            make_story().with_page(4, text="x")

    def test_with_cover_keeps_character_and_style(self) -> None:
        story = make_story()
        revised = story.with_cover(title="新しい", cover_image_url="data:image/png;base64,AA==")
        assert revised.character_description == story.character_description
        assert revised.art_style is story.art_style
        assert revised.pages == story.pages

    def test_is_complete(self) -> None:
        story = make_story()
        assert story.is_complete
        assert not dataclasses.replace(story, cover_image_url="").is_complete
        assert not story.with_page(0, image_url="").is_complete

    def test_yaml_round_trip(self, tmp_path) -> None:
        story = make_story()
        path = tmp_path / "story.yaml"
        path.write_text(story.to_yaml(), encoding="utf-8")
        assert Story.from_yaml(path) == story

    def test_context_before(self) -> None:
        story = make_story()
        assert story.context_before(2) == "ページ1の おはなし。\nページ2の おはなし。"


class TestEnums:
    def test_parse_by_name_or_value(self) -> None:
        assert ArtStyle.parse("watercolor") is ArtStyle.WATERCOLOR
        assert ArtStyle.parse("水彩画風") is ArtStyle.WATERCOLOR
        assert Theme.parse("ADVENTURE") is Theme.ADVENTURE

    def test_unknown_value(self) -> None:
        with pytest.raises(ValidationError):
            Theme.parse("horror")


class TestGenerationRequest:
    @pytest.mark.parametrize("count", [4, 6, 8])
    def test_permitted_page_counts(self, count: int) -> None:
        request = GenerationRequest(
            idea="x", theme=Theme.FAMILY, art_style=ArtStyle.CRAYON, page_count=count
        )
        assert request.page_count == count

    @pytest.mark.parametrize("count", [0, 5, 10])
    def test_rejected_page_counts(self, count: int) -> None:
        with pytest.raises(ValidationError) as excinfo:
            GenerationRequest(
                idea="x", theme=Theme.FAMILY, art_style=ArtStyle.CRAYON, page_count=count
            )
        assert excinfo.value.status_code == 400
        assert excinfo.value.field == "page_count"

    def test_blank_idea(self) -> None:
        with pytest.raises(ValidationError):
            GenerationRequest(idea="  ", theme=Theme.FAMILY, art_style=ArtStyle.CRAYON)

    def test_from_mapping(self) -> None:
        request = GenerationRequest.from_mapping(
            {"idea": "a cat", "theme": "courage", "style": "アニメ風", "pages": "6"}
        )
        assert request.theme is Theme.COURAGE
        assert request.art_style is ArtStyle.ANIME
        assert request.page_count == 6

    @pytest.mark.parametrize(
        "data", [{"page_count": 0}, {"page_count": ""}, {"pages": 0}, {"page_count": None}]
    )
    def test_from_mapping_rejects_explicit_empty_count(self, data) -> None:
        with pytest.raises(ValidationError) as excinfo:
            GenerationRequest.from_mapping({"idea": "a cat", **data})
        assert excinfo.value.field == "page_count"

    def test_from_mapping_defaults_missing_count(self) -> None:
        request = GenerationRequest.from_mapping({"idea": "a cat"})
        assert request.page_count == 8

    def test_reference_image_from_path(self, tmp_path) -> None:
        path = tmp_path / "sora.png"
        path.write_bytes(b"\x89PNG...")
        image = ReferenceImage.from_path(path)
        assert image.mime_type == "image/png"
        assert image.to_data_url().startswith("data:image/png;base64,")

    def test_missing_reference_image(self, tmp_path) -> None:
        with pytest.raises(ValidationError):
            ReferenceImage.from_path(tmp_path / "missing.jpg")


class TestRegenerationInstruction:
    def test_blank_instruction_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RegenerationInstruction.for_cover(make_story(), "   ")
