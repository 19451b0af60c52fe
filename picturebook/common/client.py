"""
The single point of contact with the external generative services.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import TYPE_CHECKING, Any, Mapping

import httpx
import requests
from replicate.exceptions import ReplicateException

from picturebook.ai_generation.prompting import DEFAULT_ASPECT_RATIO
from picturebook.ai_generation.replicate_service import (
    ReplicateImageGenerator,
    normalize_image_outputs,
)

from .errors import DecodeError, UpstreamError, ValidationError
from .llm import ChatResult, CompletionCallable, call_chat_completion

if TYPE_CHECKING:
    from picturebook.story_generation.prompting import StructuredRequest

logger = logging.getLogger(__name__)

DEFAULT_TEXT_MODEL = "gemini/gemini-2.5-flash"
SUPPORTED_ASPECT_RATIOS = ("1:1", "4:3", "3:4", "16:9", "9:16")


class GenerationClient:
    """
    Issues structured-text and image-synthesis calls.

    No caching and no retries: every call maps to exactly one upstream request (plus
    the download of the generated image), and every failure surfaces to the caller.

    Parameters
    ----------
    text_model:
        LiteLLM model string. Falls back to ``PICTUREBOOK_TEXT_MODEL``, then
        ``LITELLM_MODEL``, then ``gemini/gemini-2.5-flash``.
    api_key:
        Key forwarded to LiteLLM. Falls back to ``PICTUREBOOK_API_KEY``,
        ``GEMINI_API_KEY``, then ``LITELLM_API_KEY``; when none is set LiteLLM resolves
        provider credentials itself.
    completion_fn:
        Replacement for :func:`call_chat_completion`. Mainly useful for testing.
    image_generator:
        Object exposing ``generate_image(prompt=..., aspect_ratio=..., num_outputs=...)``.
        Defaults to :class:`ReplicateImageGenerator`, created on first use.
    request_timeout:
        Timeout in seconds for downloading generated images.
    """

    def __init__(
        self,
        *,
        text_model: str | None = None,
        api_key: str | None = None,
        completion_fn: CompletionCallable | None = None,
        image_generator: Any | None = None,
        request_timeout: float = 60.0,
        temperature: float = 0.8,
    ) -> None:
        self._text_model = (
            text_model
            or os.getenv("PICTUREBOOK_TEXT_MODEL")
            or os.getenv("LITELLM_MODEL")
            or DEFAULT_TEXT_MODEL
        )
        self._api_key = (
            api_key
            or os.getenv("PICTUREBOOK_API_KEY")
            or os.getenv("GEMINI_API_KEY")
            or os.getenv("LITELLM_API_KEY")
        )
        self._completion_fn: CompletionCallable = completion_fn or call_chat_completion
        self._image_generator = image_generator
        self._request_timeout = request_timeout
        self._temperature = temperature

    @property
    def text_model(self) -> str:
        return self._text_model

    def generate_structured(self, request: "StructuredRequest") -> str:
        """
        Send a structured-output request and return its JSON text payload.
        """
        messages = request.messages()
        self._validate_call(self._text_model, {"messages": messages})
        logger.debug(
            "Structured request '%s' to %s (%d message parts)",
            request.schema_name,
            self._text_model,
            len(request.user_parts),
        )

        result: ChatResult = self._completion_fn(
            model=self._text_model,
            messages=messages,
            temperature=self._temperature,
            api_key=self._api_key,
            response_format=request.response_format(),
        )

        if not result.text:
            raise DecodeError("Text generation returned an empty payload.", raw_text="")
        return result.text

    def generate_image(self, prompt: str, aspect_ratio: str = DEFAULT_ASPECT_RATIO) -> str:
        """
        Synthesize one image and return it as base64-encoded bytes.
        """
        generator = self._ensure_image_generator()
        endpoint = getattr(generator, "model_identifier", "image")
        self._validate_call(endpoint, {"prompt": prompt, "aspect_ratio": aspect_ratio})
        if aspect_ratio not in SUPPORTED_ASPECT_RATIOS:
            raise ValidationError(
                f"Unsupported aspect ratio {aspect_ratio!r}.", field="aspect_ratio"
            )
        logger.debug("Image request to %s: %s", endpoint, prompt)

        try:
            outputs = generator.generate_image(
                prompt=prompt,
                aspect_ratio=aspect_ratio,
                num_outputs=1,
            )
        except ReplicateException as exc:
            status_code = getattr(exc, "status", None)
            message = getattr(exc, "detail", None) or str(exc)
            logger.error("Image generation failed (status=%s): %s", status_code, message)
            raise UpstreamError(message, status_code=status_code or 502) from exc
        except httpx.TransportError as exc:
            logger.error("Image service unreachable: %s", exc)
            raise UpstreamError(
                f"Image service is unreachable: {exc}", status_code=503
            ) from exc

        urls = normalize_image_outputs(outputs)
        if not urls:
            raise DecodeError("Image generation returned no output.", raw_text=repr(outputs))
        return self._fetch_image_base64(urls[0])

    def _ensure_image_generator(self) -> Any:
        if self._image_generator is None:
            self._image_generator = ReplicateImageGenerator()
        return self._image_generator

    def _fetch_image_base64(self, url: str) -> str:
        if url.startswith("data:"):
            _, _, encoded = url.partition(",")
            try:
                base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise DecodeError("Image data URL is not valid base64.", raw_text=url[:64]) from exc
            return encoded

        try:
            response = requests.get(url, timeout=self._request_timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            raise UpstreamError(
                f"Downloading the generated image failed: {exc}",
                status_code=status_code,
            ) from exc
        except requests.RequestException as exc:
            raise UpstreamError(
                f"Downloading the generated image failed: {exc}",
                status_code=503,
            ) from exc

        if not response.content:
            raise DecodeError("Generated image download was empty.", raw_text=url)
        return base64.b64encode(response.content).decode("ascii")

    @staticmethod
    def _validate_call(endpoint: str, payload: Mapping[str, Any]) -> None:
        if not endpoint or not str(endpoint).strip():
            raise ValidationError("A generation endpoint is required.", field="endpoint")
        if not payload:
            raise ValidationError("A generation payload is required.", field="payload")
        for key, value in payload.items():
            if isinstance(value, str):
                value = value.strip()
            if value is None or (isinstance(value, (str, list, tuple)) and not value):
                raise ValidationError(f"Generation payload field '{key}' is empty.", field=key)
