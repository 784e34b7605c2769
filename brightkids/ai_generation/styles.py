"""
The closed set of illustration styles and their reference tiles.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any

from brightkids.common.errors import ConfigurationError, ValidationError

DEFAULT_TILE_DIR = Path("assets") / "styles"


class IllustrationStyle(Enum):
    """
    Supported illustration styles.

    Each member carries its display label, reference tile file name, keywords used to
    resolve free-text style names, and the lettering guidance used on pages that draw
    text (cover and dedication).
    """

    WATERCOLOR = (
        "Whimsical watercolor",
        "traditional_watercolor.png",
        ("watercolor", "traditional"),
        "Hand-lettered, whimsical title lettering with flowing, organic letters and soft "
        "painted edges in warm readable tones (golden amber, warm brown or soft charcoal); "
        "place text on light areas or a cream text box, with a subtle glow for depth.",
    )
    DIGITAL_2D = (
        "2D digital illustration",
        "2D_digital.png",
        ("2d digital", "2d", "digital"),
        "Bold, clean rounded sans-serif lettering in bright colors with a light outline "
        "and a drop shadow; crisp, evenly spaced letters.",
    )
    COMIC = (
        "Comic / graphic style",
        "comic_graphic.png",
        ("comic", "graphic"),
        "Bold comic-book lettering in uppercase, dark fill with a thick white outline, "
        "optionally on a banner or speech-bubble background.",
    )
    MODERN_3D = (
        "Modern 3D rendered",
        "modern_3D_rendered.png",
        ("3d", "modern"),
        "Modern, clean 3D-looking lettering with depth, smooth rounded sans-serif forms "
        "and a glossy, bright finish.",
    )

    def __init__(
        self,
        label: str,
        tile_filename: str,
        keywords: tuple[str, ...],
        text_style: str,
    ) -> None:
        self.label = label
        self.tile_filename = tile_filename
        self.keywords = keywords
        self.text_style = text_style

    def __str__(self) -> str:
        return self.label

    @classmethod
    def parse(cls, value: Any) -> "IllustrationStyle":
        """
        Resolve a style from its member name, label or a keyword such as ``"watercolor"``.
        """
        if isinstance(value, cls):
            return value

        text = str(value or "").strip()
        if not text:
            raise ValidationError("Illustration style is required.")

        lowered = text.lower()
        for member in cls:
            if lowered in {member.name.lower(), member.label.lower()}:
                return member

        for member in cls:
            if any(keyword in lowered for keyword in member.keywords):
                return member

        allowed = ", ".join(member.label for member in cls)
        raise ValidationError(f"Unknown illustration style {text!r}; expected one of: {allowed}.")


class StyleTileLibrary:
    """
    Loads reference tile images for each style from a directory.

    Parameters
    ----------
    tile_dir:
        Directory holding the tile PNGs. Falls back to ``BRIGHTKIDS_STYLE_TILE_DIR`` and
        then ``assets/styles``.
    """

    def __init__(self, tile_dir: str | Path | None = None) -> None:
        resolved = tile_dir or os.getenv("BRIGHTKIDS_STYLE_TILE_DIR") or DEFAULT_TILE_DIR
        self._tile_dir = Path(resolved).expanduser()
        self._cache: dict[IllustrationStyle, bytes] = {}

    @property
    def tile_dir(self) -> Path:
        return self._tile_dir

    def tile_path(self, style: IllustrationStyle) -> Path:
        return self._tile_dir / style.tile_filename

    def load(self, style: IllustrationStyle) -> bytes:
        if style in self._cache:
            return self._cache[style]

        path = self.tile_path(style)
        if not path.exists():
            raise ConfigurationError(f"Style tile for {style.label!r} not found at '{path}'.")

        data = path.read_bytes()
        self._cache[style] = data
        return data

    def __call__(self, style: IllustrationStyle) -> bytes:
        return self.load(style)
