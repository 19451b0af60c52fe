import base64
import json
import threading
from io import BytesIO
from typing import Any, Callable

import pytest
from PIL import Image

from picturebook.common import UpstreamError
from picturebook.story_generation import ArtStyle, GenerationRequest, Page, Story, Theme

CHARACTER = "A small white kitten named Sora with a blue scarf and round golden eyes"


def png_base64(color: tuple[int, int, int] = (200, 120, 80), size: tuple[int, int] = (8, 6)) -> str:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def data_url(color: tuple[int, int, int] = (200, 120, 80)) -> str:
    return f"data:image/png;base64,{png_base64(color)}"


def story_json(page_count: int = 4, **overrides: Any) -> str:
    payload: dict[str, Any] = {
        "title": "ソラの つきりょこう",
        "character_description": CHARACTER,
        "pages": [
            {
                "page_number": number,
                "text": f"ページ{number}の おはなし。",
                "image_prompt": f"Sora on the moon, scene {number}",
            }
            for number in range(1, page_count + 1)
        ],
        "afterword": "ゆめを もつことは すてきな ことです。",
    }
    payload.update(overrides)
    return json.dumps(payload, ensure_ascii=False)


def make_story(page_count: int = 4) -> Story:
    return Story(
        title="ソラの つきりょこう",
        cover_image_url=data_url((10, 10, 200)),
        character_description=CHARACTER,
        art_style=ArtStyle.WATERCOLOR,
        pages=tuple(
            Page(
                id=number,
                text=f"ページ{number}の おはなし。",
                image_url=data_url((number * 40, 100, 100)),
                image_prompt=f"Sora on the moon, scene {number}",
            )
            for number in range(1, page_count + 1)
        ),
        afterword="ゆめを もつことは すてきな ことです。",
    )


class FakeGenerationClient:
    """Scripted stand-in for GenerationClient that records every call."""

    def __init__(
        self,
        structured: list[Any] | None = None,
        *,
        fail_image_at: int | None = None,
        fail_when: Callable[[str], bool] | None = None,
    ) -> None:
        self.structured_responses = list(structured or [])
        self.structured_requests: list[Any] = []
        self.image_prompts: list[str] = []
        self.fail_image_at = fail_image_at
        self.fail_when = fail_when
        self._lock = threading.Lock()

    def generate_structured(self, request: Any) -> str:
        self.structured_requests.append(request)
        response = self.structured_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def generate_image(self, prompt: str, aspect_ratio: str = "4:3") -> str:
        with self._lock:
            self.image_prompts.append(prompt)
            call_number = len(self.image_prompts)
        if self.fail_image_at == call_number or (self.fail_when and self.fail_when(prompt)):
            raise UpstreamError("Internal error encountered.", status_code=500)
        return png_base64((call_number * 20 % 255, 90, 160))


@pytest.fixture
def generation_request() -> GenerationRequest:
    return GenerationRequest(
        idea="a cat named Sora visits the moon",
        theme=Theme.ADVENTURE,
        art_style=ArtStyle.WATERCOLOR,
        page_count=4,
    )


@pytest.fixture
def story() -> Story:
    return make_story()
