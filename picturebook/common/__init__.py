"""
Common utilities shared across PictureBookAI modules.
"""

from .client import GenerationClient
from .errors import (
    DecodeError,
    ExportError,
    PictureBookError,
    PipelineAbortedError,
    PipelineBusyError,
    UpstreamError,
    ValidationError,
)
from .llm import ChatResult, CompletionCallable, call_chat_completion

__all__ = [
    "ChatResult",
    "CompletionCallable",
    "call_chat_completion",
    "GenerationClient",
    "DecodeError",
    "ExportError",
    "PictureBookError",
    "PipelineAbortedError",
    "PipelineBusyError",
    "UpstreamError",
    "ValidationError",
]
