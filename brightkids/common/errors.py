"""
Exception hierarchy shared by the Bright Kids storybook pipeline.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from brightkids.pipeline.slots import Slot


class BrightKidsError(Exception):
    """Base class for every error raised by the package."""


class ValidationError(BrightKidsError, ValueError):
    """Caller input is malformed; nothing was sent to an external service."""


class BatchTooLargeError(ValidationError):
    """A batch exceeded the maximum number of synthesis items."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Maximum {limit} images per batch, received {size}.")
        self.size = size
        self.limit = limit


class ContentSafetyError(ValidationError):
    """Story goal text matched the disallowed-term filter."""

    def __init__(self, term: str) -> None:
        super().__init__(
            "Please use gentle, age-appropriate themes suitable for children's stories."
        )
        self.term = term


class ConfigurationError(ValidationError):
    """A required credential, model or local resource is missing."""


class PreconditionError(BrightKidsError):
    """An operation was invoked before the state it depends on exists."""


class ProviderError(BrightKidsError):
    """
    An external synthesis or drafting service returned a non-success status.

    Attributes
    ----------
    status_code:
        HTTP status reported by the provider, or ``None`` when the request never
        produced a response (connection failure, timeout).
    body:
        Raw error body kept for diagnostics.
    """

    def __init__(self, status_code: int | None, body: Any = None) -> None:
        label = status_code if status_code is not None else "no response"
        super().__init__(f"Provider error: {label}")
        self.status_code = status_code
        self.body = body


class InvalidResponseError(BrightKidsError):
    """The provider answered successfully but the expected payload is missing."""


class InvalidStoryStructureError(InvalidResponseError):
    """The drafted story lacks a title or a usable page list."""


class ImageDecodeError(BrightKidsError, ValueError):
    """Bytes handed to the imaging helpers cannot be read as an image."""


class AvatarGenerationError(BrightKidsError):
    """Deriving the character avatar failed; the previous avatar is kept."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Avatar generation failed: {detail}")
        self.detail = detail


class SlotGenerationError(BrightKidsError):
    """Synthesis for a single slot failed."""

    def __init__(self, slot: "Slot", detail: str, *, status_code: int | None = None) -> None:
        super().__init__(f"Failed to generate image for {slot.key}: {detail}")
        self.slot = slot
        self.detail = detail
        self.status_code = status_code
