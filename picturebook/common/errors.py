"""
Error taxonomy shared by the PictureBookAI generation, revision, and export layers.
"""

from __future__ import annotations

from typing import Any

DECODE_USER_MESSAGE = (
    "物語データの形式が正しくありませんでした。もう一度お試しください。"
)


class PictureBookError(Exception):
    """Base class for every error raised by PictureBookAI."""

    @property
    def user_message(self) -> str:
        return str(self)


class ValidationError(PictureBookError, ValueError):
    """
    Malformed or missing input detected before any network call.
    """

    status_code = 400

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class UpstreamError(PictureBookError):
    """
    Non-success response from the generative service (or from an asset download).
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"[{self.status_code}] {self.message}"

    @property
    def user_message(self) -> str:
        return self.message


class DecodeError(PictureBookError):
    """
    Response text did not match the expected JSON shape.

    The raw text is retained for logging only; ``user_message`` never includes it.
    """

    def __init__(self, message: str, *, raw_text: str | None = None) -> None:
        super().__init__(message)
        self.raw_text = raw_text

    @property
    def user_message(self) -> str:
        return DECODE_USER_MESSAGE


class PipelineAbortedError(PictureBookError):
    """
    A multi-call pipeline failed; nothing produced by it was committed.
    """

    def __init__(self, stage: Any, cause: PictureBookError) -> None:
        super().__init__(f"Pipeline aborted during {stage}: {cause}")
        self.stage = stage
        self.cause = cause

    @property
    def user_message(self) -> str:
        return self.cause.user_message


class PipelineBusyError(PictureBookError):
    """Raised when a pipeline is started while another one is still running."""

    def __init__(self, operation: str, active_operation: str | None) -> None:
        super().__init__(
            f"Cannot start '{operation}' while '{active_operation}' is in progress."
        )
        self.operation = operation
        self.active_operation = active_operation


class ExportError(PictureBookError):
    """Raised when an export could not capture a single page."""
