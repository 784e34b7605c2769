"""
Pure image helpers that bring every generated image onto a fixed canvas.

Two policies exist and are kept apart on purpose:

* :func:`normalize_crop_to_fill` fills the whole frame and crops the overflow. Avatars and
  every stored illustration go through it.
* :func:`normalize_fit_with_padding` letterboxes the image without cropping. PDF export
  uses it.

Both return PNG bytes, are deterministic for identical input, and raise
:class:`ImageDecodeError` rather than echoing undecodable input back.
"""

from __future__ import annotations

import io

from PIL import Image, ImageOps, UnidentifiedImageError

from brightkids.common.errors import ImageDecodeError

NEUTRAL_BACKGROUND = "#f5f5f5"
MAX_UPLOAD_DIMENSION = 1024
MAX_UPLOAD_BYTES = 4 * 1024 * 1024
REDUCED_UPLOAD_DIMENSION = 512


def _open_image(data: bytes) -> Image.Image:
    if not data:
        raise ImageDecodeError("Image data is empty.")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(f"Cannot decode image: {exc}") from exc

    width, height = image.size
    if width <= 0 or height <= 0:
        raise ImageDecodeError("Image has zero width or height.")
    return image


def _to_rgba(image: Image.Image) -> Image.Image:
    return image if image.mode == "RGBA" else image.convert("RGBA")


def _encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def _check_target(width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise ValueError(f"Target size must be positive, got {width}x{height}.")


def image_size(data: bytes) -> tuple[int, int]:
    """Return ``(width, height)`` of encoded image bytes."""
    return _open_image(data).size


def normalize_crop_to_fill(
    data: bytes,
    width: int,
    height: int,
    *,
    background: str = NEUTRAL_BACKGROUND,
) -> bytes:
    """
    Scale ``data`` onto a ``width`` x ``height`` canvas, centring it and cropping overflow.

    A source wider than the target is scaled to the target height and cropped left/right;
    otherwise it is scaled to the target width and cropped (or padded) top/bottom.
    Any uncovered area keeps the ``background`` colour.
    """
    _check_target(width, height)
    source = _to_rgba(_open_image(data))
    src_w, src_h = source.size

    source_aspect = src_w / src_h
    target_aspect = width / height

    if source_aspect > target_aspect:
        draw_h = height
        draw_w = max(1, round(draw_h * source_aspect))
        offset_x = (width - draw_w) // 2
        offset_y = 0
    else:
        draw_w = width
        draw_h = max(1, round(draw_w / source_aspect))
        offset_x = 0
        offset_y = (height - draw_h) // 2

    resized = source.resize((draw_w, draw_h), Image.Resampling.LANCZOS)
    canvas = Image.new("RGBA", (width, height), background)
    visible = _crop_to_canvas(resized, offset_x, offset_y, width, height)
    canvas.alpha_composite(visible, (max(0, offset_x), max(0, offset_y)))
    return _encode_png(canvas.convert("RGB"))


def normalize_fit_with_padding(
    data: bytes,
    width: int,
    height: int,
    *,
    background: str = NEUTRAL_BACKGROUND,
) -> bytes:
    """
    Letterbox ``data`` inside a ``width`` x ``height`` canvas without cropping.
    """
    _check_target(width, height)
    source = _to_rgba(_open_image(data))
    src_w, src_h = source.size

    scale = min(width / src_w, height / src_h)
    draw_w = max(1, min(width, round(src_w * scale)))
    draw_h = max(1, min(height, round(src_h * scale)))

    resized = source.resize((draw_w, draw_h), Image.Resampling.LANCZOS)
    canvas = Image.new("RGBA", (width, height), background)
    canvas.alpha_composite(resized, ((width - draw_w) // 2, (height - draw_h) // 2))
    return _encode_png(canvas.convert("RGB"))


def crop_character_from_cover(
    data: bytes,
    width: int,
    height: int,
    *,
    crop_ratio: float = 0.75,
) -> bytes:
    """
    Cut a centred, character-focused region out of a cover and normalise it.

    The region has the target aspect ratio and spans ``crop_ratio`` of the largest such
    region that fits the cover.
    """
    _check_target(width, height)
    if not 0 < crop_ratio <= 1:
        raise ValueError("crop_ratio must be in (0, 1].")

    source = _open_image(data)
    src_w, src_h = source.size
    target_aspect = width / height

    if src_w / src_h > target_aspect:
        region_h = src_h * crop_ratio
        region_w = region_h * target_aspect
    else:
        region_w = src_w * crop_ratio
        region_h = region_w / target_aspect

    left = round((src_w - region_w) / 2)
    top = round((src_h - region_h) / 2)
    box = (left, top, left + max(1, round(region_w)), top + max(1, round(region_h)))

    region = _to_rgba(source).crop(box)
    return normalize_crop_to_fill(_encode_png(region), width, height)


def prepare_reference_photo(
    data: bytes,
    *,
    max_dimension: int = MAX_UPLOAD_DIMENSION,
    max_bytes: int = MAX_UPLOAD_BYTES,
    reduced_dimension: int = REDUCED_UPLOAD_DIMENSION,
) -> bytes:
    """
    Bring an uploaded photo to a size and format the edit endpoint accepts.

    The photo is rotated upright from EXIF, scaled so its longest side is at most
    ``max_dimension`` and encoded as PNG. If that is still above ``max_bytes`` it is
    re-encoded at ``reduced_dimension``.
    """
    image = ImageOps.exif_transpose(_open_image(data))
    image = _to_rgba(image)

    encoded = _encode_png(_bounded(image, max_dimension))
    if len(encoded) <= max_bytes:
        return encoded

    reduced = _bounded(image, min(reduced_dimension, max_dimension))
    buffer = io.BytesIO()
    reduced.save(buffer, format="PNG", optimize=True)
    return buffer.getvalue()


def _bounded(image: Image.Image, max_dimension: int) -> Image.Image:
    width, height = image.size
    if width <= max_dimension and height <= max_dimension:
        return image
    ratio = min(max_dimension / width, max_dimension / height)
    new_size = (max(1, round(width * ratio)), max(1, round(height * ratio)))
    return image.resize(new_size, Image.Resampling.LANCZOS)


def _crop_to_canvas(
    image: Image.Image,
    offset_x: int,
    offset_y: int,
    width: int,
    height: int,
) -> Image.Image:
    """Cut the part of ``image`` placed at ``(offset_x, offset_y)`` that lands on the canvas."""
    left = max(0, -offset_x)
    top = max(0, -offset_y)
    right = min(image.width, width - offset_x)
    bottom = min(image.height, height - offset_y)
    return image.crop((left, top, right, bottom))
