"""
Slot-by-slot illustration of a story that keeps the main character consistent.

A run walks the cover, the pages in ascending order and the dedication. Every step hands
the avatar (or, under the chaining policy, the previous page) to the gateway as the source
image, normalises the result and commits it to the :class:`AssetStore`. Failures are
recorded against their slot and never stop the remaining slots.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, cast

from brightkids.ai_generation.gateway import PORTRAIT_SIZE
from brightkids.ai_generation.prompting import (
    DEFAULT_ATTRIBUTION,
    build_cover_prompt,
    build_dedication_prompt,
    build_page_prompt,
)
from brightkids.ai_generation.styles import IllustrationStyle
from brightkids.common.errors import (
    ImageDecodeError,
    PreconditionError,
    SlotGenerationError,
    ValidationError,
)
from brightkids.imaging import normalize_crop_to_fill
from brightkids.story_generation.story import Page, Story, style_slug

from .avatar import CANONICAL_SIZE, Avatar
from .batch import BatchItem, BatchRunner
from .slots import AssetStore, GeneratedAsset, Slot, SlotKind, SlotStatus

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, dict[str, Any]], None]


class SourcePolicy(str, Enum):
    """Which image a page synthesis starts from."""

    ALWAYS_AVATAR = "always-avatar"
    CHAIN_FROM_PREVIOUS = "chain-from-previous"


class PropagationState(str, Enum):
    NOT_STARTED = "not-started"
    COVER_PENDING = "cover-pending"
    PAGES_PENDING = "pages-pending"
    DEDICATION_PENDING = "dedication-pending"
    COMPLETE = "complete"


@dataclass(frozen=True)
class PropagationStatus:
    """Machine state; ``page`` is the page being worked on while pages are pending."""

    state: PropagationState = PropagationState.NOT_STARTED
    page: int | None = None


@dataclass(frozen=True)
class IllustrationReport:
    """Summary of one :meth:`CharacterConsistencyPropagator.run`."""

    completed_slots: tuple[Slot, ...] = ()
    failed_slots: Mapping[Slot, str] = field(default_factory=dict)
    skipped_slots: tuple[Slot, ...] = ()
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed_slots and not self.cancelled

    def to_dict(self) -> dict[str, Any]:
        return {
            "completed_slots": [slot.key for slot in self.completed_slots],
            "failed_slots": {slot.key: reason for slot, reason in self.failed_slots.items()},
            "skipped_slots": [slot.key for slot in self.skipped_slots],
            "cancelled": self.cancelled,
        }


class CharacterConsistencyPropagator:
    """
    Drives cover, page and dedication synthesis for a story.

    Parameters
    ----------
    runner:
        Executes each synthesis step; its pacer spaces consecutive calls.
    store:
        Destination for committed assets. Only this class writes to it.
    policy:
        Source-image policy for page slots.
    canonical_size:
        ``(width, height)`` every committed asset is normalised to.
    attribution:
        Fixed line drawn on the dedication page.
    """

    def __init__(
        self,
        runner: BatchRunner,
        store: AssetStore | None = None,
        *,
        policy: SourcePolicy = SourcePolicy.ALWAYS_AVATAR,
        canonical_size: tuple[int, int] = CANONICAL_SIZE,
        attribution: str = DEFAULT_ATTRIBUTION,
    ) -> None:
        self._runner = runner
        self._store = store if store is not None else AssetStore()
        self._policy = SourcePolicy(policy)
        self._canonical_size = canonical_size
        self._attribution = attribution

        self._failures: dict[Slot, str] = {}
        self._status = PropagationStatus()
        self._state_lock = threading.Lock()
        self._slot_locks: dict[Slot, threading.Lock] = {}
        self._slot_locks_guard = threading.Lock()

    @property
    def store(self) -> AssetStore:
        return self._store

    @property
    def policy(self) -> SourcePolicy:
        return self._policy

    @property
    def status_info(self) -> PropagationStatus:
        with self._state_lock:
            return self._status

    @staticmethod
    def plan(story: Story) -> list[Slot]:
        """Slots of ``story`` in the order they are illustrated."""
        slots = [Slot.cover()]
        slots.extend(Slot.page(number) for number in sorted(story.page_numbers))
        slots.append(Slot.dedication())
        return slots

    def status(self, slot: Slot) -> SlotStatus:
        if slot in self._store:
            return SlotStatus.DONE
        with self._state_lock:
            if slot in self._failures:
                return SlotStatus.FAILED
        return SlotStatus.PENDING

    def statuses(self, story: Story) -> dict[Slot, SlotStatus]:
        return {slot: self.status(slot) for slot in self.plan(story)}

    def failure_reason(self, slot: Slot) -> str | None:
        with self._state_lock:
            return self._failures.get(slot)

    def run(
        self,
        story: Story | None,
        avatar: Avatar | None,
        *,
        dedication: str | None = None,
        cancel_event: threading.Event | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> IllustrationReport:
        """
        Illustrate every slot of ``story`` that has no asset yet.

        Slots already in the store are skipped, so a second run after a clean first run
        issues no synthesis calls. ``cancel_event`` is checked before each slot; once set,
        the run stops and reports ``cancelled=True``.

        Raises
        ------
        PreconditionError
            No story or no avatar is available.
        """
        story, avatar = self._require(story, avatar)

        slots = self.plan(story)
        total = len(slots)
        completed: list[Slot] = []
        failed: dict[Slot, str] = {}
        skipped: list[Slot] = []
        calls_made = 0

        self._notify(progress_callback, "propagation:start", total=total, policy=self._policy.value)

        for slot in slots:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Illustration cancelled before %s", slot)
                self._notify(
                    progress_callback,
                    "propagation:cancelled",
                    completed=len(completed) + len(failed) + len(skipped),
                    total=total,
                )
                return IllustrationReport(
                    completed_slots=tuple(completed),
                    failed_slots=dict(failed),
                    skipped_slots=tuple(skipped),
                    cancelled=True,
                )

            self._enter(slot)
            stage = "slot:skipped"
            if slot not in self._store:
                if calls_made:
                    self._runner.pacer.wait()
                calls_made += 1
                try:
                    asset = self._illustrate(
                        slot, story, avatar, dedication=dedication, skip_if_present=True
                    )
                except SlotGenerationError as exc:
                    failed[slot] = exc.detail
                    stage = "slot:failed"
                else:
                    if asset is not None:
                        completed.append(slot)
                        stage = "slot:done"

            if stage == "slot:skipped":
                skipped.append(slot)

            self._notify(
                progress_callback,
                stage,
                slot=slot.key,
                completed=len(completed) + len(failed) + len(skipped),
                total=total,
            )

        self._set_status(PropagationStatus(PropagationState.COMPLETE))
        report = IllustrationReport(
            completed_slots=tuple(completed),
            failed_slots=dict(failed),
            skipped_slots=tuple(skipped),
        )
        self._notify(progress_callback, "propagation:complete", **report.to_dict())
        return report

    def regenerate(
        self,
        slot: Slot,
        story: Story | None,
        avatar: Avatar | None,
        *,
        dedication: str | None = None,
    ) -> GeneratedAsset:
        """
        Re-run one slot and overwrite its asset on success.

        Raises
        ------
        SlotGenerationError
            Synthesis or normalisation failed; the previous asset stays in place.
        """
        story, avatar = self._require(story, avatar)

        slot = Slot.parse(slot)
        if slot not in self.plan(story):
            raise ValidationError(f"Slot {slot.key} is not part of this story.")
        asset = self._illustrate(slot, story, avatar, dedication=dedication)
        return cast(GeneratedAsset, asset)

    def reset(self) -> None:
        """Forget recorded failures and the machine state. Stored assets are untouched."""
        with self._state_lock:
            self._failures.clear()
            self._status = PropagationStatus()

    def _illustrate(
        self,
        slot: Slot,
        story: Story,
        avatar: Avatar,
        *,
        dedication: str | None,
        skip_if_present: bool = False,
    ) -> GeneratedAsset | None:
        with self._slot_lock(slot):
            # A concurrent regeneration may have filled the slot while we waited.
            if skip_if_present and slot in self._store:
                logger.info("Skipping %s, filled while waiting for its lock", slot)
                return None
            item, source_slot = self._build_item(slot, story, avatar, dedication=dedication)
            result = self._runner.execute(item)
            if not result.ok or result.image is None:
                self._fail(slot, result.error or "no image returned")
                raise SlotGenerationError(
                    slot,
                    result.error or "no image returned",
                    status_code=result.status_code,
                )

            width, height = self._canonical_size
            try:
                image = normalize_crop_to_fill(result.image, width, height)
            except ImageDecodeError as exc:
                self._fail(slot, str(exc))
                raise SlotGenerationError(slot, str(exc)) from exc

            asset = GeneratedAsset(
                slot=slot,
                image=image,
                width=width,
                height=height,
                prompt=item.prompt,
                source_slot=source_slot,
            )
            self._store.put(asset)
            with self._state_lock:
                self._failures.pop(slot, None)
            logger.info("Committed %s (source: %s)", slot, source_slot)
            return asset

    def _build_item(
        self,
        slot: Slot,
        story: Story,
        avatar: Avatar,
        *,
        dedication: str | None,
    ) -> tuple[BatchItem, Slot]:
        style = avatar.style

        if slot.kind is SlotKind.COVER:
            prompt = build_cover_prompt(story.title, style)
            return self._item(slot, prompt, style.label, avatar.image), Slot.avatar()

        if slot.kind is SlotKind.DEDICATION:
            text = dedication if dedication is not None else (story.dedication or "")
            prompt = build_dedication_prompt(text, style, attribution=self._attribution)
            return self._item(slot, prompt, style.label, avatar.image), Slot.avatar()

        if slot.kind is SlotKind.PAGE:
            page = story.page(cast(int, slot.page_number))
            source_slot, source_image = self._page_source(slot, story, avatar)
            style_label = _page_style_label(page, style.label)
            prompt = build_page_prompt(
                page.illustration_prompt,
                style_label,
                chained=source_slot.is_page,
            )
            item = self._item(slot, prompt, style_label, source_image, narration=page.text)
            return item, source_slot

        raise ValidationError(f"Slot {slot.key} cannot be illustrated.")

    def _page_source(self, slot: Slot, story: Story, avatar: Avatar) -> tuple[Slot, bytes]:
        if self._policy is SourcePolicy.CHAIN_FROM_PREVIOUS:
            numbers = sorted(story.page_numbers)
            position = numbers.index(slot.page_number)
            if position > 0:
                previous = Slot.page(numbers[position - 1])
                asset = self._store.get(previous)
                if asset is not None:
                    return previous, asset.image
                logger.warning("No asset for %s; %s falls back to the avatar", previous, slot)
        return Slot.avatar(), avatar.image

    @staticmethod
    def _item(
        slot: Slot,
        prompt: str,
        style: str,
        source_image: bytes,
        *,
        narration: str | None = None,
    ) -> BatchItem:
        return BatchItem(
            slot=slot,
            prompt=prompt,
            style=style,
            size=PORTRAIT_SIZE,
            source_image=source_image,
            narration=narration,
        )

    def _slot_lock(self, slot: Slot) -> threading.Lock:
        with self._slot_locks_guard:
            return self._slot_locks.setdefault(slot, threading.Lock())

    def _fail(self, slot: Slot, reason: str) -> None:
        logger.error("Illustration failed for %s: %s", slot, reason)
        with self._state_lock:
            self._failures[slot] = reason

    def _enter(self, slot: Slot) -> None:
        if slot.kind is SlotKind.COVER:
            status = PropagationStatus(PropagationState.COVER_PENDING)
        elif slot.kind is SlotKind.PAGE:
            status = PropagationStatus(PropagationState.PAGES_PENDING, slot.page_number)
        else:
            status = PropagationStatus(PropagationState.DEDICATION_PENDING)
        self._set_status(status)

    def _set_status(self, status: PropagationStatus) -> None:
        with self._state_lock:
            self._status = status

    @staticmethod
    def _require(story: Story | None, avatar: Avatar | None) -> tuple[Story, Avatar]:
        if story is None:
            raise PreconditionError("A drafted story is required before illustrating.")
        if avatar is None:
            raise PreconditionError("A character avatar is required before illustrating.")
        return story, avatar

    @staticmethod
    def _notify(
        callback: ProgressCallback | None,
        stage: str,
        **payload: Any,
    ) -> None:
        if callback is not None:
            callback(stage, payload)


_CATALOGUE_SLUGS = frozenset(style_slug(style.label) for style in IllustrationStyle)


def _page_style_label(page: Page, default: str) -> str:
    # Catalogue styles follow the session style; custom per-page styles are kept.
    if not page.style or page.style in _CATALOGUE_SLUGS:
        return default
    return page.style.replace("_", " ")
