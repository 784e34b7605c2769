"""
Structured representations of the child, goal and style information gathered from the form.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Sequence

from brightkids.ai_generation.styles import IllustrationStyle
from brightkids.common.errors import ValidationError

MIN_AGE = 2
MAX_AGE = 10
MIN_PAGES = 6
MAX_PAGES = 12


class ReadingLevel(str, Enum):
    PRE_READER = "pre-reader"
    EARLY_READER = "early-reader"
    INDEPENDENT_READER = "independent-reader"


class Tone(str, Enum):
    GENTLE = "gentle"
    ENCOURAGING = "encouraging"
    PLAYFUL = "playful"
    CALM = "calm"


def _normalize_list(value: Any, *, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()

    if isinstance(value, str):
        parts = [item.strip() for item in value.split(",")]
    elif isinstance(value, Sequence):
        parts = [str(item).strip() for item in value]
    else:
        raise ValidationError(f"{field_name} must be a string or sequence of strings.")

    return tuple(filter(None, parts))


def _coerce_optional_str(value: Any) -> str | None:
    if value is None:
        return None

    text = str(value).strip()
    return text or None


def _coerce_int(value: Any, *, field_name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"Expected an integer-compatible value for {field_name}, got {value!r}"
        ) from exc


def _coerce_enum(enum_cls: type[Enum], value: Any, default: Enum) -> Any:
    if value is None or value == "":
        return default
    if isinstance(value, enum_cls):
        return value
    normalized = str(value).strip().lower().replace("_", "-").replace(" ", "-")
    try:
        return enum_cls(normalized)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Unsupported value {value!r}; expected one of: {allowed}.") from exc


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@dataclass(frozen=True)
class ChildProfile:
    """
    Canonical representation of the child the story is written for.

    Attributes
    ----------
    name:
        Child's name (required, non-empty).
    age:
        Age in years; drafting accepts 2 to 10 inclusive.
    interests:
        Ordered interests to weave into the story.
    reading_level:
        Target reading level for the page text.
    sensitivities:
        Ordered sensitivities or supports the story must respect.
    """

    name: str
    age: int
    interests: tuple[str, ...] = ()
    reading_level: ReadingLevel = ReadingLevel.EARLY_READER
    sensitivities: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ChildProfile":
        return cls(
            name=str(data.get("name") or "").strip(),
            age=_coerce_int(data.get("age"), field_name="age"),
            interests=_normalize_list(data.get("interests"), field_name="interests"),
            reading_level=_coerce_enum(
                ReadingLevel,
                data.get("reading_level") or data.get("readingLevel"),
                ReadingLevel.EARLY_READER,
            ),
            sensitivities=_normalize_list(data.get("sensitivities"), field_name="sensitivities"),
        )

    def context_bullets(self) -> list[str]:
        """
        Produce bullet-friendly lines describing the child, for prompt conditioning.
        """
        return [
            f"Name: {self.name}",
            f"Age: {self.age}",
            f"Interests: {', '.join(self.interests) or 'none specified'}",
            f"Reading level: {self.reading_level.value}",
            f"Sensitivities/supports: {', '.join(self.sensitivities) or 'none specified'}",
        ]

    def summary_for_prompt(self) -> str:
        return "\n".join(f"- {line}" for line in self.context_bullets())


@dataclass(frozen=True)
class StoryGoal:
    """The life-skill challenge the story should help with."""

    challenge: str
    context: str | None = None
    tone: Tone = Tone.GENTLE
    learning_focus: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StoryGoal":
        return cls(
            challenge=str(data.get("challenge") or "").strip(),
            context=_coerce_optional_str(data.get("context")),
            tone=_coerce_enum(Tone, data.get("tone"), Tone.GENTLE),
            learning_focus=_normalize_list(
                data.get("learning_focus") or data.get("learningFocus"),
                field_name="learning_focus",
            ),
        )

    def screened_text(self) -> str:
        """Text the content-safety filter runs over."""
        return f"{self.challenge} {self.context or ''}"

    def context_bullets(self) -> list[str]:
        return [
            f"Challenge: {self.challenge}",
            f"Context: {self.context or 'none specified'}",
            f"Tone: {self.tone.value}",
            f"Learning focus: {', '.join(self.learning_focus) or 'none specified'}",
        ]


@dataclass(frozen=True)
class StyleSpec:
    """Illustration style and book-level options chosen by the parent."""

    illustration_style: IllustrationStyle = IllustrationStyle.WATERCOLOR
    page_count: int = 8
    include_affirmation: bool = False
    dedication: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StyleSpec":
        raw_style = data.get("illustration_style") or data.get("illustrationStyle")
        raw_pages = data.get("page_count", data.get("pageCount", 8))
        return cls(
            illustration_style=(
                IllustrationStyle.parse(raw_style) if raw_style else IllustrationStyle.WATERCOLOR
            ),
            page_count=_coerce_int(raw_pages, field_name="page_count"),
            include_affirmation=_coerce_bool(
                data.get("include_affirmation", data.get("includeAffirmation", False))
            ),
            dedication=_coerce_optional_str(data.get("dedication")),
        )

    def with_style(self, style: IllustrationStyle) -> "StyleSpec":
        return StyleSpec(
            illustration_style=style,
            page_count=self.page_count,
            include_affirmation=self.include_affirmation,
            dedication=self.dedication,
        )

    def context_bullets(self) -> list[str]:
        return [
            f"Illustration style: {self.illustration_style.label}",
            f"Page count: {self.page_count}",
            f"Include affirmation: {'yes' if self.include_affirmation else 'no'}",
            f"Dedication: {self.dedication or 'none specified'}",
        ]


def validate_request(child: ChildProfile, goal: StoryGoal, style: StyleSpec) -> None:
    """
    Check the drafting inputs, collecting every problem into one :class:`ValidationError`.
    """
    errors: list[str] = []

    if not child.name.strip():
        errors.append("Child's name is required")

    if not MIN_AGE <= child.age <= MAX_AGE:
        errors.append(f"Age must be between {MIN_AGE} and {MAX_AGE} years")

    if not goal.challenge.strip():
        errors.append("Challenge or situation is required")

    if not MIN_PAGES <= style.page_count <= MAX_PAGES:
        errors.append(f"Page count must be between {MIN_PAGES} and {MAX_PAGES}")

    if errors:
        raise ValidationError("; ".join(errors))
