import io
import json
from typing import Callable, Optional

import pytest
from PIL import Image

from brightkids.ai_generation.gateway import parse_size, resolve_size
from brightkids.ai_generation.styles import IllustrationStyle
from brightkids.common import ChatResult, ProviderError
from brightkids.pipeline import (
    Avatar,
    AvatarSource,
    BatchRunner,
    FixedDelayPacer,
    StorybookSession,
)
from brightkids.story_generation import Story, StoryDraftingClient


def make_png(width: int, height: int, color=(200, 120, 80)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeGateway:
    """Records every call and answers with a solid PNG of the requested size."""

    def __init__(
        self,
        fail_when: Optional[Callable[[str], bool]] = None,
        garbage_when: Optional[Callable[[str], bool]] = None,
    ) -> None:
        self.calls = []
        self.fail_when = fail_when
        self.garbage_when = garbage_when

    def generate(self, prompt, size):
        self.calls.append({"mode": "generate", "prompt": prompt, "size": size})
        return self._answer(prompt, size)

    def edit(self, prompt, source_image, size, style_hint=None):
        self.calls.append(
            {
                "mode": "edit",
                "prompt": prompt,
                "size": size,
                "source": source_image,
                "style_hint": style_hint,
            }
        )
        return self._answer(prompt, size)

    def _answer(self, prompt, size):
        if self.fail_when is not None and self.fail_when(prompt):
            raise ProviderError(500, "synthesis exploded")
        if self.garbage_when is not None and self.garbage_when(prompt):
            return b"garbage"
        width, height = parse_size(resolve_size(size))
        return make_png(width, height, color=(len(self.calls) * 20 % 255, 90, 160))


class FakeCompletion:
    def __init__(self, payload) -> None:
        self.payload = payload
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        text = self.payload if isinstance(self.payload, str) else json.dumps(self.payload)
        return ChatResult(text=text, raw=None)


def story_payload(page_count: int = 3, *, with_numbers: bool = False) -> dict:
    pages = []
    words = ["one", "two", "three", "four", "five", "six", "seven", "eight"]
    for index in range(page_count):
        entry = {
            "text": f"Page text {index + 1}.",
            "illustrationPrompt": f"scene {words[index % len(words)]} in the garden",
        }
        if with_numbers:
            entry["page"] = index + 1
        pages.append(entry)
    return {
        "title": "Ava's Brave Day",
        "summary": "Ava tries something new.",
        "pages": pages,
        "dedication": None,
    }


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def pacer(sleeps):
    return FixedDelayPacer(0.5, sleep=sleeps.append)


@pytest.fixture
def runner(gateway, pacer):
    return BatchRunner(gateway, pacer=pacer)


@pytest.fixture
def tiles():
    tile = make_png(64, 64, color=(10, 200, 10))
    return lambda style: tile


@pytest.fixture
def story():
    return Story.from_mapping(story_payload(3), default_style="whimsical_watercolor")


@pytest.fixture
def avatar():
    return Avatar(
        image=make_png(1024, 1536, color=(240, 200, 150)),
        source=AvatarSource.DESCRIPTION,
        style=IllustrationStyle.WATERCOLOR,
        width=1024,
        height=1536,
    )


@pytest.fixture
def make_session(tiles, pacer):
    def factory(gateway, payload=None, **kwargs):
        client = StoryDraftingClient(
            api_key="test",
            model="test-model",
            completion_fn=FakeCompletion(payload or story_payload(6)),
        )
        return StorybookSession(
            gateway=gateway,
            drafting_client=client,
            tiles=tiles,
            pacer=pacer,
            **kwargs,
        )

    return factory
