"""
Bright Kids storybook package: story drafting, character-consistent illustration and export.
"""

from .pdf_generation import StorybookPDFBuilder, build_image_archive
from .pipeline import (
    Avatar,
    Description,
    ReferencePhoto,
    Slot,
    SourcePolicy,
    StorybookSession,
)
from .story_generation import ChildProfile, Story, StoryGoal, StyleSpec

__all__ = [
    "Avatar",
    "ChildProfile",
    "Description",
    "ReferencePhoto",
    "Slot",
    "SourcePolicy",
    "Story",
    "StoryGoal",
    "StorybookPDFBuilder",
    "StorybookSession",
    "StyleSpec",
    "build_image_archive",
]
