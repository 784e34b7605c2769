"""
Renders the illustrated slots of a storybook into a printable PDF.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Mapping

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4, LETTER
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import inch, mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from reportlab.platypus import Frame, Paragraph

from brightkids.common.errors import ValidationError
from brightkids.imaging import NEUTRAL_BACKGROUND, normalize_fit_with_padding
from brightkids.pipeline.slots import GeneratedAsset, Slot, SlotKind

logger = logging.getLogger(__name__)

PAGE_SIZES = {
    "a4": A4,
    "letter": LETTER,
    "square": (8 * inch, 8 * inch),
}


@dataclass(frozen=True)
class PageLayoutConfig:
    page_background: colors.Color
    caption_color: colors.Color


DEFAULT_LAYOUT = PageLayoutConfig(
    page_background=colors.HexColor(NEUTRAL_BACKGROUND),
    caption_color=colors.HexColor("#4B506D"),
)


def pdf_filename(title: str) -> str:
    """``<title with non-alphanumerics replaced by _>_storybook.pdf``."""
    return f"{sanitize_title(title)}_storybook.pdf"


def sanitize_title(title: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", title or "storybook")


class StorybookPDFBuilder:
    """
    Render a storybook's assets as full-page illustrations, one per PDF page.

    Pages follow slot order: the cover, the numbered pages, then the dedication. Each image
    is letterboxed onto the page without cropping, since the text drawn into cover and
    dedication illustrations must survive export.

    Parameters
    ----------
    page_size:
        Page size in points. Defaults to US Letter.
    render_scale:
        Pixels per point used when letterboxing the image for the page.
    show_page_numbers:
        Draw a small ``Page N`` caption under story pages.
    """

    def __init__(
        self,
        *,
        page_size: tuple[float, float] = PAGE_SIZES["letter"],
        render_scale: float = 2.0,
        margin_mm: float = 6.0,
        layout: PageLayoutConfig = DEFAULT_LAYOUT,
        show_page_numbers: bool = False,
    ) -> None:
        if render_scale <= 0:
            raise ValueError("render_scale must be positive.")
        self.page_size = page_size
        self.render_scale = render_scale
        self.margin = margin_mm * mm
        self.layout = layout
        self.show_page_numbers = show_page_numbers

        self.footer_style = ParagraphStyle(
            name="Footer",
            fontName="Helvetica-Oblique",
            fontSize=10,
            leading=12,
            alignment=TA_CENTER,
            textColor=self.layout.caption_color,
        )

    def build(
        self,
        title: str,
        assets: Mapping[Slot, GeneratedAsset],
        output_path: Path | str,
    ) -> Path:
        """
        Write the PDF and return its path.

        ``output_path`` may be a directory, in which case :func:`pdf_filename` names the
        file.

        Raises
        ------
        ValidationError
            There is nothing to export.
        """
        ordered = _ordered_assets(assets)
        if not ordered:
            raise ValidationError("No images to export. Generate illustrations first.")

        output_file = Path(output_path)
        if output_file.is_dir():
            output_file = output_file / pdf_filename(title)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        pdf = canvas.Canvas(str(output_file), pagesize=self.page_size)
        pdf.setTitle(title)
        width, height = self.page_size

        for asset in ordered:
            self._draw_image_page(pdf, asset, width, height)

        pdf.save()
        logger.info("Wrote %d-page PDF to %s", len(ordered), output_file)
        return output_file

    def _draw_image_page(
        self,
        pdf: canvas.Canvas,
        asset: GeneratedAsset,
        width: float,
        height: float,
    ) -> None:
        pdf.setFillColor(self.layout.page_background)
        pdf.rect(0, 0, width, height, stroke=0, fill=1)

        letterboxed = normalize_fit_with_padding(
            asset.image,
            max(1, round(width * self.render_scale)),
            max(1, round(height * self.render_scale)),
        )
        pdf.drawImage(ImageReader(BytesIO(letterboxed)), 0, 0, width, height)

        if self.show_page_numbers and asset.slot.is_page:
            self._draw_footer(pdf, f"Page {asset.slot.page_number}", width)
        pdf.showPage()

    def _draw_footer(self, pdf: canvas.Canvas, text: str, width: float) -> None:
        footer_frame = Frame(
            self.margin,
            10,
            width - 2 * self.margin,
            20,
            showBoundary=0,
        )
        footer_frame.addFromList([Paragraph(text, self.footer_style)], pdf)


def _ordered_assets(assets: Mapping[Slot, GeneratedAsset]) -> list[GeneratedAsset]:
    return [
        assets[slot]
        for slot in sorted(assets, key=lambda slot: slot.sort_key)
        if slot.kind is not SlotKind.AVATAR
    ]
