"""
Prompt construction utilities for the story drafting workflow.
"""

from __future__ import annotations

from dataclasses import dataclass

from .profile import ChildProfile, StoryGoal, StyleSpec

PAGE_FIELDS_GUIDANCE = (
    "For each page include: page, text, illustrationPrompt (no text-in-image), alt, style."
)


@dataclass(frozen=True)
class StoryPrompt:
    """
    Container for the system and user prompts passed to the language model.
    """

    system: str
    user: str


def build_story_prompt(
    child: ChildProfile,
    goal: StoryGoal,
    style: StyleSpec,
) -> StoryPrompt:
    """
    Build the prompt pair used to solicit a JSON story from the LLM.
    """
    system_prompt = """You are Wendy, a kind children's author and parent coach. Write age-appropriate picture-book text (2-5 sentences per page) with gentle, predictable structure and rich sensory detail.

IMPORTANT SAFETY GUIDELINES:
- Create only gentle, nurturing, age-appropriate content
- Avoid any scary, violent, or inappropriate themes
- Focus on positive learning and emotional growth
- Use warm, comforting language suitable for young children
- Never include text-in-image instructions in illustration prompts

Output valid JSON only, matching the provided schema exactly."""

    keys = "title, summary, pages[], dedication"
    if style.include_affirmation:
        keys = "title, summary, pages[], affirmation, dedication"

    child_block = "\n".join(f"- {line}" for line in child.context_bullets())
    goal_block = "\n".join(f"- {line}" for line in goal.context_bullets())
    style_block = "\n".join(f"- {line}" for line in style.context_bullets())

    user_prompt = f"""CHILD
{child_block}

GOAL
{goal_block}

STYLE
{style_block}

Write a title and {style.page_count} pages. Each page: 2-5 short sentences. If the goal involves anxiety, include a repeating comfort element (e.g., "hand on heart, slow breath"). Return JSON with keys: {keys}. {PAGE_FIELDS_GUIDANCE}"""

    return StoryPrompt(system=system_prompt, user=user_prompt)
