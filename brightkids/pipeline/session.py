"""
Session object that owns one storybook's story, avatar and illustrations.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping

from brightkids.ai_generation.gateway import ImageSynthesisGateway, OpenAIImageGateway
from brightkids.ai_generation.styles import IllustrationStyle, StyleTileLibrary
from brightkids.common.errors import PreconditionError
from brightkids.story_generation import (
    ChildProfile,
    Story,
    StoryDraftingClient,
    StoryGoal,
    StyleSpec,
)

from .avatar import Avatar, AvatarDeriver, AvatarInput, TileLoader
from .batch import BatchRunner, Pacer
from .propagator import (
    CharacterConsistencyPropagator,
    IllustrationReport,
    ProgressCallback,
    SourcePolicy,
)
from .slots import AssetStore, GeneratedAsset, Slot, SlotStatus

logger = logging.getLogger(__name__)


class StorybookSession:
    """
    All mutable state of one storybook, passed explicitly to the pipeline stages.

    The current avatar is written only by the avatar deriver and the asset store only by
    the propagator. Replacing the avatar is a single assignment after the new one has
    been produced, so a failed regeneration leaves the previous avatar in place.

    Parameters
    ----------
    gateway:
        Image synthesis backend. Defaults to :class:`OpenAIImageGateway`.
    drafting_client:
        Story drafting client. Defaults to :class:`StoryDraftingClient`.
    tiles:
        Style tile loader. Defaults to :class:`StyleTileLibrary`.
    pacer:
        Pacing policy shared by every synthesis call of the session.
    policy:
        Source-image policy for page illustrations.
    style:
        Initial style options, replaced by :meth:`draft_story`.
    """

    def __init__(
        self,
        *,
        gateway: ImageSynthesisGateway | None = None,
        drafting_client: StoryDraftingClient | None = None,
        tiles: TileLoader | None = None,
        pacer: Pacer | None = None,
        policy: SourcePolicy = SourcePolicy.ALWAYS_AVATAR,
        style: StyleSpec | None = None,
    ) -> None:
        self._gateway = gateway or OpenAIImageGateway()
        self._drafting_client = drafting_client or StoryDraftingClient()
        self._runner = BatchRunner(self._gateway, pacer=pacer)
        self._deriver = AvatarDeriver(self._runner, tiles or StyleTileLibrary())
        self._store = AssetStore()
        self._propagator = CharacterConsistencyPropagator(
            self._runner,
            self._store,
            policy=policy,
        )

        self._child: ChildProfile | None = None
        self._goal: StoryGoal | None = None
        self._style = style or StyleSpec()
        self._story: Story | None = None
        self._avatar: Avatar | None = None
        self._avatar_input: AvatarInput | None = None
        self._avatar_lock = threading.Lock()

    @property
    def child(self) -> ChildProfile | None:
        return self._child

    @property
    def goal(self) -> StoryGoal | None:
        return self._goal

    @property
    def style(self) -> StyleSpec:
        return self._style

    @property
    def story(self) -> Story | None:
        return self._story

    @property
    def runner(self) -> BatchRunner:
        return self._runner

    @property
    def propagator(self) -> CharacterConsistencyPropagator:
        return self._propagator

    def draft_story(
        self,
        child: ChildProfile,
        goal: StoryGoal,
        style: StyleSpec,
        **kwargs: Any,
    ) -> Story:
        """Draft a new story. Illustrations of any previous story are dropped."""
        story = self._drafting_client.draft_story(child, goal, style, **kwargs)
        self._child = child
        self._goal = goal
        self._style = style
        self.use_story(story)
        return story

    def use_story(self, story: Story) -> None:
        """Adopt an already drafted story, e.g. one loaded from disk."""
        self._story = story
        self._store.clear()
        self._propagator.reset()
        logger.info("Session story set to %r with %d pages", story.title, len(story.pages))

    def derive_avatar(
        self,
        avatar_input: AvatarInput,
        style: IllustrationStyle | str | None = None,
    ) -> Avatar:
        """
        Derive and install a new avatar. On failure the current avatar is kept.

        Raises
        ------
        AvatarGenerationError
            The synthesis step failed.
        """
        resolved = self._resolve_style(style)
        with self._avatar_lock:
            avatar = self._deriver.derive(avatar_input, resolved)
            self._avatar = avatar
            self._avatar_input = avatar_input
            if resolved is not self._style.illustration_style:
                self._style = self._style.with_style(resolved)
        return avatar

    def regenerate_avatar(self) -> Avatar:
        """Re-derive the avatar from the last photo or description in the current style."""
        if self._avatar_input is None:
            raise PreconditionError("No avatar input to regenerate from.")
        return self.derive_avatar(self._avatar_input, self._style.illustration_style)

    def derive_avatar_from_cover(self) -> Avatar:
        """Replace the avatar with the character cropped from the current cover."""
        cover = self._store.get(Slot.cover())
        if cover is None:
            raise PreconditionError("Illustrate the cover before deriving an avatar from it.")
        with self._avatar_lock:
            avatar = self._deriver.derive_from_cover(cover.image, self._style.illustration_style)
            self._avatar = avatar
        return avatar

    def change_style(self, style: IllustrationStyle | str) -> Avatar | None:
        """
        Switch the illustration style.

        When an avatar already exists it is re-derived from the same input in the new style
        and the style only changes once that succeeds. Returns the new avatar, if any.
        """
        resolved = IllustrationStyle.parse(style)
        if resolved is self._style.illustration_style:
            return self._avatar
        if self._avatar is None or self._avatar_input is None:
            self._style = self._style.with_style(resolved)
            return None
        logger.info("Style changed to %s; re-deriving avatar", resolved.label)
        return self.derive_avatar(self._avatar_input, resolved)

    def illustrate_all(
        self,
        *,
        cancel_event: threading.Event | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> IllustrationReport:
        return self._propagator.run(
            self._story,
            self._avatar,
            dedication=self.dedication_text,
            cancel_event=cancel_event,
            progress_callback=progress_callback,
        )

    def illustrate_slot(self, slot: Slot | str | int) -> GeneratedAsset:
        """
        Regenerate a single slot.

        Raises
        ------
        SlotGenerationError
            Synthesis failed; the previous asset for the slot is kept.
        """
        return self._propagator.regenerate(
            Slot.parse(slot),
            self._story,
            self._avatar,
            dedication=self.dedication_text,
        )

    def get_assets(self) -> Mapping[Slot, GeneratedAsset]:
        return self._store.snapshot()

    def get_avatar(self) -> Avatar | None:
        return self._avatar

    def slot_status(self, slot: Slot | str | int) -> SlotStatus:
        return self._propagator.status(Slot.parse(slot))

    def slot_statuses(self) -> dict[Slot, SlotStatus]:
        if self._story is None:
            return {}
        return self._propagator.statuses(self._story)

    @property
    def dedication_text(self) -> str:
        if self._story is not None and self._story.dedication:
            return self._story.dedication
        if self._style.dedication:
            return self._style.dedication
        name = self._child.name if self._child is not None else "you"
        return f"For {name}, with love"

    def _resolve_style(self, style: IllustrationStyle | str | None) -> IllustrationStyle:
        if style is None:
            return self._style.illustration_style
        return IllustrationStyle.parse(style)
