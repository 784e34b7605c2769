"""
Rebuild the PDF and image ZIP from a previous run directory.

Usage:
    python scripts/render_story_pdf.py \
        --run-dir runs/ava \
        --zip
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure project root is on the Python path.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from brightkids.pdf_generation import (  # noqa: E402
    PAGE_SIZES,
    StorybookPDFBuilder,
    archive_filename,
    build_image_archive,
    load_assets,
    pdf_filename,
)
from brightkids.story_generation import Story  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Convert the images of a storybook run into a PDF (and optional ZIP)."
    )
    parser.add_argument(
        "--run-dir",
        required=True,
        help="Directory written by run_full_pipeline.py.",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Destination PDF path (default: <run-dir>/<Title>_storybook.pdf).",
    )
    parser.add_argument(
        "--page-size",
        choices=sorted(PAGE_SIZES.keys()),
        default="letter",
        help="Page size to render (default: letter).",
    )
    parser.add_argument(
        "--page-numbers",
        action="store_true",
        help="Print a small page number under story pages.",
    )
    parser.add_argument("--zip", action="store_true", help="Also write the image ZIP.")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    run_dir = Path(args.run_dir)

    story = Story.from_yaml(run_dir / "story.yaml")
    assets = load_assets(run_dir)

    builder = StorybookPDFBuilder(
        page_size=PAGE_SIZES[args.page_size],
        show_page_numbers=args.page_numbers,
    )
    output = Path(args.output) if args.output else run_dir / pdf_filename(story.title)
    builder.build(story.title, assets, output)
    print(f"Rendered storybook PDF to {output}")

    if args.zip:
        archive = build_image_archive(assets, run_dir / archive_filename(story.title))
        print(f"Saved images to {archive}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
