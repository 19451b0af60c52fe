"""
LiteLLM-powered chat completion helper utilities.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, MutableMapping, Sequence

import openai
from litellm import completion

from .errors import DecodeError, UpstreamError

ChatMessage = Mapping[str, Any]

logger = logging.getLogger(__name__)


@dataclass
class ChatResult:
    """
    Structured response returned from an LLM chat completion.
    """

    text: str
    raw: Any


CompletionCallable = Callable[..., ChatResult]


def call_chat_completion(
    *,
    model: str,
    messages: Sequence[ChatMessage],
    temperature: float | None = None,
    max_tokens: int | None = None,
    api_key: str | None = None,
    response_format: Mapping[str, Any] | None = None,
    **extra_kwargs: Any,
) -> ChatResult:
    """
    Invoke LiteLLM's `completion` API and return the consolidated text.

    Provider failures surface as :class:`UpstreamError` carrying the upstream status
    code and message; a response without message content is a :class:`DecodeError`.
    """
    payload: MutableMapping[str, Any] = {
        "model": model,
        "messages": list(messages),
    }

    if temperature is not None:
        payload["temperature"] = temperature

    if max_tokens is not None:
        payload["max_tokens"] = max_tokens

    if api_key is not None:
        payload["api_key"] = api_key

    if response_format is not None:
        payload["response_format"] = dict(response_format)

    payload.update(extra_kwargs)

    try:
        response = completion(**payload)
    except openai.APIError as exc:
        status_code = getattr(exc, "status_code", None)
        message = getattr(exc, "message", None) or str(exc)
        logger.error("Text generation failed (status=%s): %s", status_code, message)
        raise UpstreamError(
            message,
            status_code=status_code,
            payload=getattr(exc, "body", None),
        ) from exc

    try:
        message = response["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise DecodeError("Unexpected LiteLLM response format.") from exc

    if message is None:
        raise DecodeError("LiteLLM response did not contain message content.")

    text = str(message).strip()
    return ChatResult(text=text, raw=response)
