"""
Story drafting utilities for personalised Bright Kids picture books.
"""

from .profile import ChildProfile, ReadingLevel, StoryGoal, StyleSpec, Tone, validate_request
from .prompting import StoryPrompt, build_story_prompt
from .safety import UNSAFE_TERMS, ensure_child_safe, find_unsafe_term
from .story import Page, Story, style_slug
from .story_service import StoryDraftingClient

__all__ = [
    "ChildProfile",
    "Page",
    "ReadingLevel",
    "Story",
    "StoryDraftingClient",
    "StoryGoal",
    "StoryPrompt",
    "StyleSpec",
    "Tone",
    "UNSAFE_TERMS",
    "build_story_prompt",
    "ensure_child_safe",
    "find_unsafe_term",
    "style_slug",
    "validate_request",
]
