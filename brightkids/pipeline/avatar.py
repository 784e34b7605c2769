"""
Derivation of the canonical character avatar from a photo, a description or a cover.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Union

from brightkids.ai_generation.gateway import PORTRAIT_SIZE, parse_size
from brightkids.ai_generation.prompting import (
    build_avatar_from_description_prompt,
    build_avatar_from_photo_prompt,
)
from brightkids.ai_generation.styles import IllustrationStyle
from brightkids.common.errors import (
    AvatarGenerationError,
    ConfigurationError,
    ImageDecodeError,
)
from brightkids.imaging import (
    crop_character_from_cover,
    normalize_crop_to_fill,
    prepare_reference_photo,
)

from .batch import BatchItem, BatchRunner
from .slots import Slot

logger = logging.getLogger(__name__)

TileLoader = Callable[[IllustrationStyle], bytes]

CANONICAL_SIZE: tuple[int, int] = parse_size(PORTRAIT_SIZE)


class AvatarSource(str, Enum):
    REFERENCE_PHOTO = "reference-photo"
    DESCRIPTION = "description"
    COVER_DERIVED = "cover-derived"


@dataclass(frozen=True)
class ReferencePhoto:
    """An uploaded photo of the child."""

    data: bytes = field(repr=False)

    def __post_init__(self) -> None:
        if not self.data:
            raise ValueError("Reference photo data is empty.")


@dataclass(frozen=True)
class Description:
    """A free-text description of the character to invent."""

    text: str

    def __post_init__(self) -> None:
        if not self.text or not self.text.strip():
            raise ValueError("Character description must be non-empty.")


AvatarInput = Union[ReferencePhoto, Description]


@dataclass(frozen=True)
class Avatar:
    """
    The normalised character reference plus where it came from.

    Attributes
    ----------
    image:
        PNG bytes at the canonical size.
    source:
        Which input produced the avatar.
    style:
        Illustration style used for the derivation.
    """

    image: bytes = field(repr=False)
    source: AvatarSource
    style: IllustrationStyle
    width: int
    height: int

    @property
    def dimensions(self) -> tuple[int, int]:
        return self.width, self.height


class AvatarDeriver:
    """
    Turns an :data:`AvatarInput` into an :class:`Avatar` through one edit-mode synthesis.

    Parameters
    ----------
    runner:
        Batch runner used to execute the single synthesis step.
    tiles:
        Callable returning the reference tile bytes for a style.
    canonical_size:
        ``(width, height)`` every avatar is normalised to.
    """

    def __init__(
        self,
        runner: BatchRunner,
        tiles: TileLoader,
        *,
        canonical_size: tuple[int, int] = CANONICAL_SIZE,
    ) -> None:
        self._runner = runner
        self._tiles = tiles
        self._canonical_size = canonical_size

    @property
    def canonical_size(self) -> tuple[int, int]:
        return self._canonical_size

    def derive(self, avatar_input: AvatarInput, style: IllustrationStyle) -> Avatar:
        """
        Run the photo or description path and normalise the result.

        Raises
        ------
        AvatarGenerationError
            The synthesis call failed or returned something that is not an image.
        """
        if isinstance(avatar_input, ReferencePhoto):
            try:
                source_image = prepare_reference_photo(avatar_input.data)
            except ImageDecodeError as exc:
                raise AvatarGenerationError(str(exc)) from exc
            item = BatchItem(
                slot=Slot.avatar(),
                prompt=build_avatar_from_photo_prompt(style),
                style=style.label,
                size=PORTRAIT_SIZE,
                source_image=source_image,
                style_reference=self._optional_tile(style),
            )
            source = AvatarSource.REFERENCE_PHOTO
        elif isinstance(avatar_input, Description):
            item = BatchItem(
                slot=Slot.avatar(),
                prompt=build_avatar_from_description_prompt(avatar_input.text, style),
                style=style.label,
                size=PORTRAIT_SIZE,
                source_image=self._tiles(style),
            )
            source = AvatarSource.DESCRIPTION
        else:
            raise TypeError(f"Unsupported avatar input: {type(avatar_input).__name__}")

        logger.info("Deriving avatar from %s in %s style", source.value, style.label)
        result = self._runner.execute(item)
        if not result.ok or result.image is None:
            raise AvatarGenerationError(result.error or "no image returned")

        return self._finish(result.image, source=source, style=style)

    def derive_from_cover(self, cover_image: bytes, style: IllustrationStyle) -> Avatar:
        """Build an avatar by cropping the character region out of an existing cover."""
        width, height = self._canonical_size
        try:
            image = crop_character_from_cover(cover_image, width, height)
        except ImageDecodeError as exc:
            raise AvatarGenerationError(str(exc)) from exc
        return Avatar(
            image=image,
            source=AvatarSource.COVER_DERIVED,
            style=style,
            width=width,
            height=height,
        )

    def _optional_tile(self, style: IllustrationStyle) -> bytes | None:
        # Optional on the photo path.
        try:
            return self._tiles(style)
        except ConfigurationError as exc:
            logger.warning("Deriving avatar without a style hint: %s", exc)
            return None

    def _finish(
        self,
        raw_image: bytes,
        *,
        source: AvatarSource,
        style: IllustrationStyle,
    ) -> Avatar:
        width, height = self._canonical_size
        try:
            image = normalize_crop_to_fill(raw_image, width, height)
        except ImageDecodeError as exc:
            raise AvatarGenerationError(str(exc)) from exc
        return Avatar(image=image, source=source, style=style, width=width, height=height)
