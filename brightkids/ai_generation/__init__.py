"""
Image synthesis gateways, style catalogue and illustration prompts.
"""

from .gateway import (
    ALLOWED_SIZES,
    DEFAULT_SIZE,
    LANDSCAPE_SIZE,
    PORTRAIT_SIZE,
    SQUARE_SIZE,
    ImageSynthesisGateway,
    OpenAIImageGateway,
    decode_image_payload,
    resolve_size,
)
from .replicate_service import ReplicateImageGateway
from .styles import IllustrationStyle, StyleTileLibrary

__all__ = [
    "ALLOWED_SIZES",
    "DEFAULT_SIZE",
    "IllustrationStyle",
    "ImageSynthesisGateway",
    "LANDSCAPE_SIZE",
    "OpenAIImageGateway",
    "PORTRAIT_SIZE",
    "ReplicateImageGateway",
    "SQUARE_SIZE",
    "StyleTileLibrary",
    "decode_image_payload",
    "resolve_size",
]
