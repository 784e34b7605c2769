"""
Image normalisation helpers used by the pipeline and the exporters.
"""

from .normalize import (
    NEUTRAL_BACKGROUND,
    crop_character_from_cover,
    image_size,
    normalize_crop_to_fill,
    normalize_fit_with_padding,
    prepare_reference_photo,
)

__all__ = [
    "NEUTRAL_BACKGROUND",
    "crop_character_from_cover",
    "image_size",
    "normalize_crop_to_fill",
    "normalize_fit_with_padding",
    "prepare_reference_photo",
]
