"""
PDF and ZIP export of storybook illustrations.
"""

from .archive import (
    archive_filename,
    asset_filename,
    build_image_archive,
    load_assets,
    write_assets,
)
from .builder import PAGE_SIZES, StorybookPDFBuilder, pdf_filename

__all__ = [
    "PAGE_SIZES",
    "StorybookPDFBuilder",
    "archive_filename",
    "asset_filename",
    "build_image_archive",
    "load_assets",
    "pdf_filename",
    "write_assets",
]
