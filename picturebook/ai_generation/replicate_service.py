"""
Integration with Replicate for storybook illustration synthesis.
"""

from __future__ import annotations

import os
from collections.abc import Iterable as IterableABC
from typing import Any, Callable

import replicate

from picturebook.common.errors import ValidationError

from .prompting import DEFAULT_ASPECT_RATIO

DEFAULT_IMAGE_MODEL = "google/imagen-4"


def _build_imagen_input(*, prompt: str, aspect_ratio: str, num_outputs: int) -> dict[str, Any]:
    # Imagen always returns a single image per prediction.
    return {
        "prompt": prompt,
        "aspect_ratio": aspect_ratio,
        "output_format": "png",
        "safety_filter_level": "block_medium_and_above",
    }


def _build_flux_schnell_input(*, prompt: str, aspect_ratio: str, num_outputs: int) -> dict[str, Any]:
    return {
        "prompt": prompt,
        "aspect_ratio": aspect_ratio,
        "num_outputs": num_outputs,
        "output_format": "png",
    }


def _build_flux_pro_input(*, prompt: str, aspect_ratio: str, num_outputs: int) -> dict[str, Any]:
    return {
        "prompt": prompt,
        "aspect_ratio": aspect_ratio,
        "output_format": "png",
        "safety_tolerance": 2,
        "prompt_upsampling": False,
    }


_MODEL_INPUT_BUILDERS: dict[str, Callable[..., dict[str, Any]]] = {
    "google/imagen-4": _build_imagen_input,
    "google/imagen-4-fast": _build_imagen_input,
    "black-forest-labs/flux-schnell": _build_flux_schnell_input,
    "black-forest-labs/flux-1.1-pro": _build_flux_pro_input,
}


def _build_replicate_input_payload(
    *,
    model_identifier: str,
    prompt: str,
    aspect_ratio: str,
    num_outputs: int,
) -> dict[str, Any]:
    normalized_identifier = model_identifier.strip().lower()
    builder = _MODEL_INPUT_BUILDERS.get(normalized_identifier)
    if builder is None and ":" in normalized_identifier:
        base_identifier = normalized_identifier.split(":", maxsplit=1)[0]
        builder = _MODEL_INPUT_BUILDERS.get(base_identifier)
    if builder is None:
        supported_models = ", ".join(sorted(_MODEL_INPUT_BUILDERS))
        raise ValidationError(
            "Model identifier "
            f"'{model_identifier}' is not configured with a default input payload. "
            f"Supported models: {supported_models}.",
            field="model_identifier",
        )

    return builder(prompt=prompt, aspect_ratio=aspect_ratio, num_outputs=num_outputs)


class ReplicateImageGenerator:
    """
    Convenience wrapper around the Replicate client for storybook image generation.

    Parameters
    ----------
    api_token:
        Replicate API token. Falls back to ``REPLICATE_API_TOKEN`` environment variable.
    model_identifier:
        Model string in the ``owner/model`` or ``owner/model:version`` format. Falls back
        to ``PICTUREBOOK_IMAGE_MODEL``, then ``REPLICATE_MODEL``, then ``google/imagen-4``.
    client:
        Optional pre-configured :class:`replicate.Client`. Mainly useful for testing.
    """

    def __init__(
        self,
        *,
        api_token: str | None = None,
        model_identifier: str | None = None,
        client: replicate.Client | None = None,
    ) -> None:
        self._api_token = api_token or os.getenv("REPLICATE_API_TOKEN")
        if not self._api_token and not client:
            raise ValidationError(
                "Replicate API token is required. Set REPLICATE_API_TOKEN or pass api_token.",
                field="api_token",
            )

        self._model_identifier = (
            model_identifier
            or os.getenv("PICTUREBOOK_IMAGE_MODEL")
            or os.getenv("REPLICATE_MODEL")
            or DEFAULT_IMAGE_MODEL
        )

        self._client = client or replicate.Client(api_token=self._api_token)

    @property
    def model_identifier(self) -> str:
        """Return the model identifier currently used."""
        return self._model_identifier

    def generate_image(
        self,
        *,
        prompt: str,
        aspect_ratio: str = DEFAULT_ASPECT_RATIO,
        num_outputs: int = 1,
        **model_kwargs: Any,
    ) -> Any:
        """
        Run one prediction and return Replicate's raw output.

        Most image models return a URL, a file output object, or a list of either;
        see :func:`normalize_image_outputs`.
        """
        replicate_input = _build_replicate_input_payload(
            model_identifier=self._model_identifier,
            prompt=prompt,
            aspect_ratio=aspect_ratio,
            num_outputs=num_outputs,
        )

        # Allow the caller to tweak model-specific knobs (e.g., seed).
        replicate_input.update(model_kwargs)

        return self._client.run(
            self._model_identifier,
            input=replicate_input,
        )


def normalize_image_outputs(raw: Any) -> list[str]:
    """
    Normalize the image outputs returned by Replicate into a list of URL strings.
    """

    if raw is None:
        return []

    if isinstance(raw, str):
        return [raw]

    if isinstance(raw, bytes):
        return [raw.decode("utf-8", errors="ignore")]

    url = getattr(raw, "url", None)
    if isinstance(url, str):
        return [url]

    if isinstance(raw, IterableABC):
        collected = list(raw)
        if not collected:
            return []

        if all(isinstance(item, str) and len(item) == 1 for item in collected):
            return ["".join(collected)]

        normalized: list[str] = []
        for item in collected:
            normalized.extend(normalize_image_outputs(item))
        return normalized

    return [str(raw)]
