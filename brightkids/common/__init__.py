"""
Common utilities shared across Bright Kids modules.
"""

from .errors import (
    AvatarGenerationError,
    BatchTooLargeError,
    BrightKidsError,
    ConfigurationError,
    ContentSafetyError,
    ImageDecodeError,
    InvalidResponseError,
    InvalidStoryStructureError,
    PreconditionError,
    ProviderError,
    SlotGenerationError,
    ValidationError,
)
from .llm import ChatResult, CompletionCallable, call_chat_completion

__all__ = [
    "AvatarGenerationError",
    "BatchTooLargeError",
    "BrightKidsError",
    "ChatResult",
    "CompletionCallable",
    "ConfigurationError",
    "ContentSafetyError",
    "ImageDecodeError",
    "InvalidResponseError",
    "InvalidStoryStructureError",
    "PreconditionError",
    "ProviderError",
    "SlotGenerationError",
    "ValidationError",
    "call_chat_completion",
]
