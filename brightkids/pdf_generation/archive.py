"""
ZIP export of the illustrated slots and loading a run directory back into assets.
"""

from __future__ import annotations

import logging
import re
import zipfile
from pathlib import Path
from typing import Mapping

from brightkids.common.errors import ValidationError
from brightkids.imaging import image_size
from brightkids.pipeline.slots import GeneratedAsset, Slot, SlotKind

from .builder import sanitize_title

logger = logging.getLogger(__name__)

_PAGE_FILE_PATTERN = re.compile(r"^page-(\d+)\.png$")


def archive_filename(title: str) -> str:
    """``<title with non-alphanumerics replaced by _>_images.zip``."""
    return f"{sanitize_title(title)}_images.zip"


def asset_filename(slot: Slot) -> str:
    """``00-cover.png``, ``page-NN.png`` or ``99-dedication.png``."""
    if slot.kind is SlotKind.COVER:
        return "00-cover.png"
    if slot.kind is SlotKind.DEDICATION:
        return "99-dedication.png"
    if slot.kind is SlotKind.PAGE:
        return f"page-{slot.page_number:02d}.png"
    raise ValueError(f"{slot.key} has no export file name.")


def build_image_archive(
    assets: Mapping[Slot, GeneratedAsset],
    output_path: Path | str,
    *,
    title: str | None = None,
) -> Path:
    """
    Write every asset into a ZIP in slot order and return the archive path.

    When ``output_path`` is a directory the archive is named by :func:`archive_filename`.
    """
    slots = sorted(
        (slot for slot in assets if slot.kind is not SlotKind.AVATAR),
        key=lambda slot: slot.sort_key,
    )
    if not slots:
        raise ValidationError("No images to export. Generate illustrations first.")

    output_file = Path(output_path)
    if output_file.is_dir():
        output_file = output_file / archive_filename(title or "storybook")
    output_file.parent.mkdir(parents=True, exist_ok=True)

    with zipfile.ZipFile(output_file, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for slot in slots:
            archive.writestr(asset_filename(slot), assets[slot].image)

    logger.info("Wrote %d images to %s", len(slots), output_file)
    return output_file


def write_assets(assets: Mapping[Slot, GeneratedAsset], directory: Path | str) -> list[Path]:
    """Save each asset as a PNG named by :func:`asset_filename`."""
    target = Path(directory)
    target.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for slot in sorted(assets, key=lambda slot: slot.sort_key):
        if slot.kind is SlotKind.AVATAR:
            continue
        path = target / asset_filename(slot)
        path.write_bytes(assets[slot].image)
        written.append(path)
    return written


def load_assets(directory: Path | str) -> dict[Slot, GeneratedAsset]:
    """Read PNGs written by :func:`write_assets` back into slot-keyed assets."""
    source = Path(directory)
    if not source.is_dir():
        raise ValidationError(f"Asset directory '{source}' does not exist.")

    assets: dict[Slot, GeneratedAsset] = {}
    for path in sorted(source.glob("*.png")):
        slot = _slot_for_filename(path.name)
        if slot is None:
            continue
        data = path.read_bytes()
        width, height = image_size(data)
        assets[slot] = GeneratedAsset(slot=slot, image=data, width=width, height=height)
    return assets


def _slot_for_filename(name: str) -> Slot | None:
    if name == "00-cover.png":
        return Slot.cover()
    if name == "99-dedication.png":
        return Slot.dedication()
    match = _PAGE_FILE_PATTERN.match(name)
    if match and int(match.group(1)) > 0:
        return Slot.page(int(match.group(1)))
    return None
