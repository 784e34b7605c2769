"""
CLI to draft, illustrate and export a Bright Kids storybook end-to-end.

Usage:
    python scripts/run_full_pipeline.py \
        --input book_request.yaml \
        --reference-image example_images/ava.jpg \
        --output-dir runs/ava \
        --pdf --zip

The input file holds three mappings, ``child``, ``goal`` and ``style``.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict

import yaml

from tqdm.auto import tqdm

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from brightkids.ai_generation import (  # noqa: E402
    OpenAIImageGateway,
    ReplicateImageGateway,
    StyleTileLibrary,
)
from brightkids.common import BrightKidsError  # noqa: E402
from brightkids.pdf_generation import (  # noqa: E402
    StorybookPDFBuilder,
    archive_filename,
    build_image_archive,
    pdf_filename,
    write_assets,
)
from brightkids.pipeline import (  # noqa: E402
    Description,
    FixedDelayPacer,
    ReferencePhoto,
    SourcePolicy,
    StorybookSession,
)
from brightkids.story_generation import ChildProfile, StoryGoal, StyleSpec  # noqa: E402

logger = logging.getLogger("brightkids.cli")


class ProgressTracker:
    """
    Command-line progress updates for the illustration run.
    """

    def __init__(self) -> None:
        self._slot_bar: tqdm | None = None

    def __call__(self, stage: str, payload: Dict[str, Any]) -> None:
        match stage:
            case "propagation:start":
                total = payload.get("total", 0)
                policy = payload.get("policy", "")
                self._write(f"[3/4] Illustrating {total} slots ({policy})...")
                self._slot_bar = tqdm(total=total, desc="Illustrations", unit="slot")
            case "slot:done" | "slot:skipped" | "slot:failed":
                if self._slot_bar is not None:
                    self._slot_bar.set_description(str(payload.get("slot", "")))
                    self._slot_bar.update(1)
                if stage == "slot:failed":
                    self._write(f"  ! {payload.get('slot')} failed; it can be retried alone.")
            case "propagation:cancelled":
                self._write("Illustration cancelled.")
                self.close()
            case "propagation:complete":
                self.close()

    def close(self) -> None:
        if self._slot_bar is not None:
            self._slot_bar.close()
            self._slot_bar = None

    @staticmethod
    def _write(message: str) -> None:
        tqdm.write(message)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the full Bright Kids storybook pipeline.")
    parser.add_argument(
        "--input",
        required=True,
        help="YAML/JSON file with 'child', 'goal' and 'style' mappings.",
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--reference-image",
        help="Photo of the child used to derive the avatar.",
    )
    source.add_argument(
        "--description",
        help="Free-text description of the main character.",
    )
    parser.add_argument(
        "--output-dir",
        default="storybook_run",
        help="Directory for story.yaml, avatar.png and the slot PNGs.",
    )
    parser.add_argument(
        "--policy",
        choices=[policy.value for policy in SourcePolicy],
        default=SourcePolicy.ALWAYS_AVATAR.value,
        help="Source image used for page illustrations (default: always-avatar).",
    )
    parser.add_argument(
        "--backend",
        choices=["openai", "replicate"],
        default="openai",
        help="Image synthesis backend (default: openai).",
    )
    parser.add_argument(
        "--tile-dir",
        default=None,
        help="Directory holding the style reference tiles.",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=0.5,
        help="Seconds to wait between synthesis calls (default: 0.5).",
    )
    parser.add_argument("--pdf", action="store_true", help="Also export a PDF.")
    parser.add_argument("--zip", action="store_true", help="Also export a ZIP of the images.")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING).",
    )
    return parser.parse_args()


def load_request_mapping(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        data = yaml.safe_load(text)
    elif suffix == ".json":
        data = json.loads(text)
    else:
        raise ValueError("Unsupported input file format. Use YAML or JSON.")

    if not isinstance(data, dict):
        raise ValueError("Input file must deserialize to a mapping.")
    return data


def build_gateway(backend: str):
    if backend == "replicate":
        return ReplicateImageGateway()
    return OpenAIImageGateway()


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    request = load_request_mapping(Path(args.input))
    child = ChildProfile.from_mapping(request.get("child") or {})
    goal = StoryGoal.from_mapping(request.get("goal") or {})
    style = StyleSpec.from_mapping(request.get("style") or {})

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    session = StorybookSession(
        gateway=build_gateway(args.backend),
        tiles=StyleTileLibrary(args.tile_dir),
        pacer=FixedDelayPacer(args.delay),
        policy=SourcePolicy(args.policy),
        style=style,
    )
    tracker = ProgressTracker()

    try:
        tqdm.write(f"[1/4] Drafting a {style.page_count}-page story for {child.name}...")
        story = session.draft_story(child, goal, style)
        (output_dir / "story.yaml").write_text(story.to_yaml(), encoding="utf-8")
        tqdm.write(f"[1/4] Drafted {story.title!r}.")

        tqdm.write(f"[2/4] Deriving the avatar in {style.illustration_style.label} style...")
        if args.reference_image:
            avatar_input = ReferencePhoto(Path(args.reference_image).read_bytes())
        else:
            avatar_input = Description(args.description)
        avatar = session.derive_avatar(avatar_input)
        (output_dir / "avatar.png").write_bytes(avatar.image)

        report = session.illustrate_all(progress_callback=tracker)
    except BrightKidsError as exc:
        logger.error("Pipeline stopped: %s", exc)
        tqdm.write(f"Error: {exc}")
        return 1
    finally:
        tracker.close()

    assets = session.get_assets()
    write_assets(assets, output_dir)
    tqdm.write(
        f"[4/4] {len(report.completed_slots)} illustrated, "
        f"{len(report.skipped_slots)} already present, {len(report.failed_slots)} failed."
    )
    for slot, reason in report.failed_slots.items():
        tqdm.write(f"  - {slot.key}: {reason}")

    if assets and args.pdf:
        pdf_path = StorybookPDFBuilder().build(story.title, assets, output_dir / pdf_filename(story.title))
        tqdm.write(f"Saved PDF to {pdf_path}")
    if assets and args.zip:
        zip_path = build_image_archive(assets, output_dir / archive_filename(story.title))
        tqdm.write(f"Saved images to {zip_path}")

    return 0 if report.ok else 2


if __name__ == "__main__":
    raise SystemExit(main())
