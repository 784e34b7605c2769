"""
Prompt construction utilities for avatar, cover, page and dedication illustrations.
"""

from __future__ import annotations

from typing import Sequence

from .styles import IllustrationStyle

DEFAULT_ATTRIBUTION = "Created By Bright Kids AI"

NEGATIVE_PROMPT = (
    "identity drift, extra limbs, missing limbs, extra fingers, distorted anatomy, "
    "harsh shadows, frightening imagery, watermark, logo"
)

PAGE_GUIDELINES = (
    "Palette: deep-navy, candlelight-amber, peach-coral accents, soft edges, picture-book "
    "lighting. No text, no watermarks, child-friendly, gentle faces, cozy compositions."
)

ANATOMY_RULES = (
    "Character must have exactly TWO arms, TWO hands, TWO legs, TWO feet",
    "Proper human proportions for a children's book character",
    "No extra limbs, no missing limbs, no distorted anatomy",
    "Fingers clearly defined (5 per hand when visible)",
)


def build_avatar_from_photo_prompt(style: IllustrationStyle) -> str:
    """Style-transfer prompt for the reference-photo avatar path."""
    return (
        f"Transform this person into {style.label} children's book illustration style. "
        "Keep their key facial features, hair color/style, skin tone, and any accessories "
        "like glasses. Create a warm, friendly children's book character with a cozy "
        f"background scene. Style should match: {style.label}. No text, no watermarks."
    )


def build_avatar_from_description_prompt(description: str, style: IllustrationStyle) -> str:
    """
    Character-invention prompt for the description avatar path.

    The style tile is sent as the edit source, so the prompt tells the model to borrow
    only its look and replace its subject.
    """
    if not description or not description.strip():
        raise ValueError("description must be a non-empty string.")

    sections = [
        "TASK\n"
        f"Create an original main character for a {style.label} children's picture book, "
        "using the provided image only as a reference for the illustration style "
        "(line work, palette, texture). Do not copy its subject.",
        _format_bullet_section("CHARACTER", [description.strip()]),
        _format_bullet_section(
            "CONSISTENCY",
            [
                "Full-body, front-facing, neutral friendly pose on a simple background",
                "Clear, distinctive hair, skin tone, face and outfit that can be redrawn "
                "identically on every page",
            ],
        ),
        _format_bullet_section("ANATOMY", ANATOMY_RULES),
        "No text, no watermarks.",
    ]
    return "\n\n".join(sections)


def build_cover_prompt(title: str, style: IllustrationStyle) -> str:
    """Cover prompt embedding the story title as in-image lettering."""
    if not title or not title.strip():
        raise ValueError("title must be a non-empty string.")

    sections = [
        "Create a whimsical children's storybook cover illustration featuring the same "
        "character from the provided image.",
        _format_bullet_section(
            "SCENE",
            [
                f'A magical, inviting storybook scene that reflects the theme: "{title}"',
                "The character in a prominent, central position looking happy and excited",
                "Colorful, enchanting background with sparkles, swirls and decorative borders",
                f"Style: {style.label}",
            ],
        ),
        _format_bullet_section(
            "COLOR PALETTE",
            [
                "Light sky (soft blue, pale lavender or peach sunrise)",
                "Warm golden-yellow sunlight and highlights",
                "Bright, airy, magical atmosphere; avoid dark or heavy backgrounds",
            ],
        ),
        _format_bullet_section("ANATOMY", ANATOMY_RULES),
        _format_bullet_section(
            "TITLE TEXT",
            [
                f'Draw the title text "{title}" in the bottom third of the image',
                style.text_style,
                "All text must fit completely within the image with generous margins",
                "Title no wider than 75% of the image width; break into 2-3 lines if needed",
            ],
        ),
    ]
    return "\n\n".join(sections)


def build_page_prompt(
    illustration_prompt: str,
    style_label: str,
    *,
    chained: bool = False,
) -> str:
    """
    Page prompt that keeps the character from the source image and depicts the scene.

    ``chained`` selects the wording used when the source image is the previous page
    rather than the avatar.
    """
    scene = illustration_prompt.strip() or "the character in a gentle, happy moment"
    if chained:
        lead = (
            "Keep the same main character(s) and visual style as the previous page image "
            "(hair, clothing, skin tone, proportions, palette)."
        )
    else:
        lead = (
            "Keep the same main character as the provided source image (face, hair, skin "
            "tone, proportions, clothing)."
        )
    return (
        f"{lead} Now depict: {scene}. Maintain {style_label} children's book style. "
        f"{PAGE_GUIDELINES}"
    )


def build_dedication_prompt(
    dedication: str,
    style: IllustrationStyle,
    *,
    attribution: str = DEFAULT_ATTRIBUTION,
) -> str:
    """Dedication page prompt with the dedication text and a fixed attribution line."""
    text_lines: list[str] = []
    if dedication and dedication.strip():
        text_lines.append(f'Centered in the middle/upper portion: "{dedication.strip()}"')
    text_lines.append(f'Smaller, centered at the bottom: "{attribution}"')
    text_lines.append(style.text_style)
    text_lines.append("All text must fit completely within the image with generous margins")

    sections = [
        "Create a beautiful children's storybook dedication page illustration featuring "
        "the same character from the provided image.",
        _format_bullet_section(
            "SCENE",
            [
                "A gentle, heartwarming scene with the character in a peaceful, happy moment",
                "Simple, elegant background that leaves clear space for text",
                f"Style: {style.label}",
            ],
        ),
        _format_bullet_section(
            "COLOR PALETTE",
            ["Light, warm colors: cream, pale gold, soft peach, baby blue, lavender"],
        ),
        _format_bullet_section("ANATOMY", ANATOMY_RULES),
        _format_bullet_section("INCLUDE THIS TEXT IN THE IMAGE", text_lines),
    ]
    return "\n\n".join(sections)


def _format_bullet_section(title: str, lines: Sequence[str]) -> str:
    bullet_block = "\n".join(f"- {line}" for line in lines if line.strip())
    return f"{title}\n{bullet_block}"
