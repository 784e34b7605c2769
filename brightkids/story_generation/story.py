"""
Story and page records produced by the drafting client.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

from brightkids.common.errors import InvalidStoryStructureError


@dataclass(frozen=True)
class Page:
    """
    A single illustrated page of the story.

    ``illustration_prompt`` describes scene content only; it never asks for text inside
    the image.
    """

    page_number: int
    text: str
    illustration_prompt: str
    alt: str
    style: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "page": self.page_number,
            "text": self.text,
            "illustration_prompt": self.illustration_prompt,
            "alt": self.alt,
            "style": self.style,
        }


@dataclass(frozen=True)
class Story:
    """Aggregated output of the drafting step. Illustrations are tracked elsewhere."""

    title: str
    pages: tuple[Page, ...]
    summary: str | None = None
    affirmation: str | None = None
    dedication: str | None = None

    @property
    def page_numbers(self) -> list[int]:
        return [page.page_number for page in self.pages]

    def page(self, page_number: int) -> Page:
        for page in self.pages:
            if page.page_number == page_number:
                return page
        raise KeyError(f"Story has no page {page_number}.")

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "summary": self.summary,
            "affirmation": self.affirmation,
            "dedication": self.dedication,
            "pages": [page.as_dict() for page in self.pages],
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any], *, default_style: str) -> "Story":
        """
        Build a story from a drafting response, filling page numbers by position.

        Raises
        ------
        InvalidStoryStructureError
            If the title is missing, ``pages`` is not a list, an entry is not an object,
            or two pages share a number.
        """
        if not isinstance(payload, Mapping):
            raise InvalidStoryStructureError("Story payload must be a JSON object.")

        title = str(payload.get("title") or "").strip()
        raw_pages = payload.get("pages")
        if not title or not isinstance(raw_pages, list):
            raise InvalidStoryStructureError("Invalid story structure returned")

        pages = _convert_pages(raw_pages, default_style=default_style)

        return cls(
            title=title,
            pages=tuple(pages),
            summary=_optional_text(payload.get("summary")),
            affirmation=_optional_text(payload.get("affirmation")),
            dedication=_optional_text(payload.get("dedication")),
        )

    @classmethod
    def from_yaml(cls, source: str | Path, *, default_style: str = "") -> "Story":
        path = Path(source)
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        if not isinstance(data, Mapping):
            raise ValueError("Story YAML must deserialize to a mapping.")
        return cls.from_mapping(data, default_style=default_style)


def style_slug(label: str) -> str:
    """Lowercase, underscore-joined label, e.g. ``whimsical_watercolor``."""
    return "_".join(label.lower().split())


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _convert_pages(raw_pages: Sequence[Any], *, default_style: str) -> list[Page]:
    pages: list[Page] = []
    seen: set[int] = set()
    for index, item in enumerate(raw_pages, start=1):
        if not isinstance(item, Mapping):
            raise InvalidStoryStructureError(f"Invalid page payload: {item!r}")

        raw_number = item.get("page") or item.get("page_number")
        try:
            number = int(raw_number) if raw_number else index
        except (TypeError, ValueError) as exc:
            raise InvalidStoryStructureError(f"Invalid page number: {raw_number!r}") from exc

        if number < 1:
            raise InvalidStoryStructureError(f"Page numbers must be positive, got {number}.")
        if number in seen:
            raise InvalidStoryStructureError(f"Duplicate page number {number}.")
        seen.add(number)

        prompt = item.get("illustrationPrompt") or item.get("illustration_prompt") or ""
        pages.append(
            Page(
                page_number=number,
                text=str(item.get("text") or "").strip(),
                illustration_prompt=str(prompt).strip(),
                alt=str(item.get("alt") or f"Page {index} illustration").strip(),
                style=str(item.get("style") or default_style).strip(),
            )
        )
    return pages
