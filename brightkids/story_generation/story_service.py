"""
Service layer for drafting stories via LiteLLM-compatible models.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from brightkids.common import ChatResult, CompletionCallable, call_chat_completion
from brightkids.common.errors import InvalidStoryStructureError

from .profile import ChildProfile, StoryGoal, StyleSpec, validate_request
from .prompting import StoryPrompt, build_story_prompt
from .safety import ensure_child_safe
from .story import Story, style_slug

logger = logging.getLogger(__name__)


class StoryDraftingClient:
    """
    Turns a child profile, goal and style into a validated :class:`Story`.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        completion_fn: CompletionCallable | None = None,
    ) -> None:
        self._api_key = api_key or os.getenv("OPENAI_API_KEY") or os.getenv("LITELLM_API_KEY")
        self._model = (
            model
            or os.getenv("BRIGHTKIDS_STORY_MODEL")
            or os.getenv("LITELLM_STORY_MODEL")
            or os.getenv("LITELLM_MODEL")
            or "gpt-4o-mini"
        )
        self._completion_fn: CompletionCallable = completion_fn or call_chat_completion

    @property
    def model(self) -> str:
        """Return the model identifier in use."""
        return self._model

    def draft_story(
        self,
        child: ChildProfile,
        goal: StoryGoal,
        style: StyleSpec,
        *,
        temperature: float = 0.7,
        **response_kwargs: Any,
    ) -> Story:
        """
        Validate the request, screen the goal, then ask the LLM for the story JSON.

        Raises
        ------
        ValidationError
            Missing name/challenge, age outside 2-10 or page count outside 6-12.
        ContentSafetyError
            The challenge or context contains a blocked term.
        ProviderError
            The model provider rejected the call.
        InvalidStoryStructureError
            The reply was not JSON or lacked a title or page list.
        """
        validate_request(child, goal, style)
        ensure_child_safe(goal)

        prompt: StoryPrompt = build_story_prompt(child, goal, style)
        messages = [
            {"role": "system", "content": prompt.system},
            {"role": "user", "content": prompt.user},
        ]

        result: ChatResult = self._completion_fn(
            model=self._model,
            messages=messages,
            temperature=temperature,
            api_key=self._api_key,
            response_format={"type": "json_object"},
            **response_kwargs,
        )

        if not result.text:
            raise InvalidStoryStructureError("No content returned from the language model.")

        payload = self._parse_story_json(result.text)
        story = Story.from_mapping(
            payload,
            default_style=style_slug(style.illustration_style.label),
        )

        if len(story.pages) != style.page_count:
            logger.warning(
                "Requested %d pages but the drafted story has %d.",
                style.page_count,
                len(story.pages),
            )

        return story

    @staticmethod
    def _parse_story_json(text: str) -> Any:
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise InvalidStoryStructureError("Invalid JSON response from AI") from exc
