"""
Prompt construction utilities for PictureBookAI structured story generation.

Every builder here is pure: it returns the full request body (system instruction,
user content parts, and JSON schema) without touching the network.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from .request import GenerationRequest, RegenerationInstruction, RegenerationKind

STORY_SYSTEM_INSTRUCTION = (
    "あなたは受賞歴のある児童文学作家であり、やさしいイラストレーターです。"
    "ユーザーの断片的なアイデアを、4〜6歳の子どもに向けた心温まる絵本"
    "（表紙、物語のページ、あとがき）に仕立てるのがあなたの仕事です。"
    "文章はひらがなを多く使い、やさしい言葉で書いてください。"
    "物語は必ずハッピーエンドで終わらせてください。"
)

PAGE_EDITOR_SYSTEM_INSTRUCTION = (
    "あなたは絵本を修正する編集者です。ユーザーの指示に従い、指定されたページの内容を更新してください。"
    "物語の一貫性を保つことが最も重要です。主人公の外見とアートスタイルは変更できません。"
)

COVER_EDITOR_SYSTEM_INSTRUCTION = (
    "あなたは絵本の表紙デザイナーです。ユーザーの指示に従い、表紙のタイトルとイラストを更新してください。"
    "主人公の外見とアートスタイルは変更できません。"
)

REFERENCE_IMAGE_NOTE = "この画像を主人公の参考にしてください。"

TARGET_AUDIENCE = "4-6歳"

_EXAMPLE_PAGE = {
    "page_number": 1,
    "text": "あるひ、ちいさな ねこの ソラは まどから おつきさまを みあげました。",
    "image_prompt": (
        "A small white kitten sitting on a windowsill at night, looking up at a big glowing full moon, "
        "soft warm light from the room behind"
    ),
}


@dataclass(frozen=True)
class StructuredRequest:
    """
    Container for a structured-output request passed to the text model.
    """

    system: str
    user_parts: tuple[Mapping[str, Any], ...]
    schema_name: str
    response_schema: Mapping[str, Any]
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def messages(self) -> list[dict[str, Any]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": [dict(part) for part in self.user_parts]},
        ]

    def response_format(self) -> dict[str, Any]:
        return {
            "type": "json_schema",
            "json_schema": {
                "name": self.schema_name,
                "schema": self.response_schema,
                "strict": True,
            },
        }


def build_story_schema(page_count: int) -> dict[str, Any]:
    """
    JSON schema for the story skeleton with exactly ``page_count`` pages.
    """
    return {
        "type": "object",
        "properties": {
            "title": {"type": "string", "description": "絵本のタイトル"},
            "character_description": {
                "type": "string",
                "description": (
                    "物語全体で一貫して使用する主人公の詳細な説明（外見、服装、性格など）。"
                    "イラスト生成に使うため英語で書いてください。"
                ),
            },
            "pages": {
                "type": "array",
                "description": f"{page_count}ページからなる物語のページ配列。",
                "minItems": page_count,
                "maxItems": page_count,
                "items": {
                    "type": "object",
                    "properties": {
                        "page_number": {"type": "integer"},
                        "text": {
                            "type": "string",
                            "description": (
                                "そのページの物語の文章。4〜6歳の子ども向けに、"
                                "ひらがなを多く使った、心温まるやさしい言葉で書いてください。"
                            ),
                        },
                        "image_prompt": {
                            "type": "string",
                            "description": (
                                "そのページのイラストを生成するための詳細な英語のプロンプト。"
                                "character_descriptionを必ず反映させてください。"
                            ),
                        },
                    },
                    "required": ["page_number", "text", "image_prompt"],
                    "additionalProperties": False,
                },
            },
            "afterword": {
                "type": "string",
                "description": "あとがき。物語の教訓や、読者へのやさしいメッセージ。",
            },
        },
        "required": ["title", "character_description", "pages", "afterword"],
        "additionalProperties": False,
    }


PAGE_REGEN_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "new_text": {
            "type": "string",
            "description": "修正指示に基づいて更新された、そのページの新しい物語の文章。",
        },
        "new_image_prompt": {
            "type": "string",
            "description": "修正指示に基づいて更新された、新しいイラストを生成するための詳細な英語のプロンプト。",
        },
    },
    "required": ["new_text", "new_image_prompt"],
    "additionalProperties": False,
}

COVER_REGEN_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "new_title": {
            "type": "string",
            "description": "修正指示に基づいて更新された絵本のタイトル。変更が不要なら現在のタイトル。",
        },
        "new_image_prompt": {
            "type": "string",
            "description": "修正指示に基づいて更新された、表紙イラストのための詳細な英語のプロンプト。",
        },
    },
    "required": ["new_title", "new_image_prompt"],
    "additionalProperties": False,
}


def build_story_request(request: GenerationRequest) -> StructuredRequest:
    """
    Build the structured request that produces the story skeleton.
    """
    example = json.dumps(_EXAMPLE_PAGE, ensure_ascii=False)
    user_text = f"""以下の要件で絵本の構成をJSON形式で生成してください:
- 物語のアイデア: {request.idea}
- テーマ: {request.theme.value}
- アートスタイル: {request.art_style.value}
- 対象読者: {TARGET_AUDIENCE}
- ページ数: {request.page_count}ページ（page_numberは1から順番に付けてください）

pagesの各要素は次の例と同じ形にしてください:
{example}"""

    parts: list[Mapping[str, Any]] = [{"type": "text", "text": user_text}]
    if request.reference_image is not None:
        parts.append({"type": "text", "text": REFERENCE_IMAGE_NOTE})
        parts.append(
            {
                "type": "image_url",
                "image_url": {"url": request.reference_image.to_data_url()},
            }
        )

    return StructuredRequest(
        system=STORY_SYSTEM_INSTRUCTION,
        user_parts=tuple(parts),
        schema_name="picture_book_story",
        response_schema=build_story_schema(request.page_count),
        metadata={"page_count": request.page_count},
    )


def build_regeneration_request(instruction: RegenerationInstruction) -> StructuredRequest:
    """
    Build the structured request for a page or cover regeneration.

    The user's instruction is embedded verbatim.
    """
    if instruction.kind is RegenerationKind.PAGE:
        user_text = f"""物語のこれまでのあらすじ: {instruction.story_context}

現在のページ内容:
- テキスト: "{instruction.current_text}"

ユーザーからの修正指示: "{instruction.instruction}"

上記の指示に基づき、このページの新しいテキストと、イラスト生成用の新しい英語プロンプトをJSON形式で生成してください。
イラストのプロンプトには、必ず主人公の特徴「{instruction.character_description}」とアートスタイル「{instruction.art_style.value}」を反映させてください。"""
        return StructuredRequest(
            system=PAGE_EDITOR_SYSTEM_INSTRUCTION,
            user_parts=({"type": "text", "text": user_text},),
            schema_name="picture_book_page_revision",
            response_schema=PAGE_REGEN_SCHEMA,
            metadata={"kind": instruction.kind.value, "page_index": instruction.page_index},
        )

    user_text = f"""現在のタイトル: "{instruction.current_title}"
主人公の特徴: {instruction.character_description}
アートスタイル: {instruction.art_style.value}

ユーザーからの修正指示: "{instruction.instruction}"

上記の指示に基づき、新しいタイトルと、表紙イラスト生成用の新しい英語プロンプトをJSON形式で生成してください。
タイトルの変更を求められていない場合は、現在のタイトルをそのまま返してください。"""
    return StructuredRequest(
        system=COVER_EDITOR_SYSTEM_INSTRUCTION,
        user_parts=({"type": "text", "text": user_text},),
        schema_name="picture_book_cover_revision",
        response_schema=COVER_REGEN_SCHEMA,
        metadata={"kind": instruction.kind.value},
    )
