"""
Keyword screen applied to the story goal before anything is sent to a model.

This is a case-insensitive substring match against a fixed list, not a moderation
system: "learning a new skill" is rejected because it contains "kill", while
unsettling themes phrased without a listed term pass. Callers should treat it as a
coarse guard only.
"""

from __future__ import annotations

from brightkids.common.errors import ContentSafetyError

from .profile import StoryGoal

UNSAFE_TERMS: tuple[str, ...] = (
    "violent",
    "scary",
    "horror",
    "death",
    "kill",
    "weapon",
    "gun",
    "knife",
    "blood",
    "murder",
)


def find_unsafe_term(text: str, terms: tuple[str, ...] = UNSAFE_TERMS) -> str | None:
    """Return the first blocked term contained in ``text``, if any."""
    lowered = text.lower()
    for term in terms:
        if term in lowered:
            return term
    return None


def ensure_child_safe(goal: StoryGoal) -> None:
    """Raise :class:`ContentSafetyError` when the goal's challenge or context is blocked."""
    term = find_unsafe_term(goal.screened_text())
    if term is not None:
        raise ContentSafetyError(term)
