import io

import pytest
from PIL import Image

from brightkids.common import ImageDecodeError
from brightkids.imaging import (
    crop_character_from_cover,
    image_size,
    normalize_crop_to_fill,
    normalize_fit_with_padding,
    prepare_reference_photo,
)
from conftest import make_png


@pytest.mark.parametrize("source_size", [(800, 800), (1536, 1024), (600, 1400), (1024, 1536)])
def test_crop_to_fill_is_exact_and_deterministic(source_size):
    data = make_png(*source_size)
    first = normalize_crop_to_fill(data, 1024, 1536)
    second = normalize_crop_to_fill(data, 1024, 1536)
    assert first == second
    assert image_size(first) == (1024, 1536)


def test_fit_with_padding_letterboxes_with_neutral_background():
    data = make_png(1536, 1024, color=(255, 0, 0))
    result = normalize_fit_with_padding(data, 1024, 1536)
    image = Image.open(io.BytesIO(result)).convert("RGB")
    assert image.size == (1024, 1536)
    assert image.getpixel((512, 5)) == (245, 245, 245)
    assert image.getpixel((512, 768)) == (255, 0, 0)


def test_crop_to_fill_covers_whole_canvas():
    data = make_png(1536, 1024, color=(0, 0, 255))
    image = Image.open(io.BytesIO(normalize_crop_to_fill(data, 1024, 1536))).convert("RGB")
    assert image.getpixel((0, 0)) == (0, 0, 255)
    assert image.getpixel((1023, 1535)) == (0, 0, 255)


@pytest.mark.parametrize("bad", [b"", b"not an image at all"])
def test_undecodable_input_raises(bad):
    with pytest.raises(ImageDecodeError):
        normalize_crop_to_fill(bad, 100, 100)
    with pytest.raises(ImageDecodeError):
        normalize_fit_with_padding(bad, 100, 100)


def test_crop_character_from_cover_has_canonical_size():
    result = crop_character_from_cover(make_png(1024, 1536), 1024, 1536)
    assert image_size(result) == (1024, 1536)


def test_prepare_reference_photo_bounds_dimensions():
    result = prepare_reference_photo(make_png(3000, 2000))
    width, height = image_size(result)
    assert max(width, height) == 1024
    assert width / height == pytest.approx(1.5, rel=0.01)


def test_prepare_reference_photo_reduces_when_over_byte_ceiling():
    result = prepare_reference_photo(make_png(2000, 2000), max_bytes=10)
    assert image_size(result) == (512, 512)
