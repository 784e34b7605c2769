import threading

import pytest

from brightkids.common import PreconditionError, SlotGenerationError, ValidationError
from brightkids.imaging import image_size
from brightkids.pipeline import (
    AssetStore,
    BatchRunner,
    CharacterConsistencyPropagator,
    PropagationState,
    Slot,
    SlotStatus,
    SourcePolicy,
)
from conftest import FakeGateway


def _propagator(gateway, pacer, **kwargs):
    return CharacterConsistencyPropagator(BatchRunner(gateway, pacer=pacer), AssetStore(), **kwargs)


def test_plan_orders_cover_pages_dedication(story):
    assert CharacterConsistencyPropagator.plan(story) == [
        Slot.cover(),
        Slot.page(1),
        Slot.page(2),
        Slot.page(3),
        Slot.dedication(),
    ]


def test_run_fills_every_slot_from_the_avatar(gateway, pacer, story, avatar):
    propagator = _propagator(gateway, pacer)
    report = propagator.run(story, avatar, dedication="For Ava, with love")

    assert report.ok
    assert report.completed_slots == tuple(propagator.plan(story))
    assert all(call["source"] == avatar.image for call in gateway.calls)
    assert all(call["mode"] == "edit" for call in gateway.calls)
    assert "Ava's Brave Day" in gateway.calls[0]["prompt"]
    assert "For Ava, with love" in gateway.calls[-1]["prompt"]
    assert "Created By Bright Kids AI" in gateway.calls[-1]["prompt"]
    assert "scene two in the garden" in gateway.calls[2]["prompt"]

    assets = propagator.store.snapshot()
    assert list(assets) == propagator.plan(story)
    assert {image_size(asset.image) for asset in assets.values()} == {(1024, 1536)}
    assert propagator.status_info.state is PropagationState.COMPLETE


def test_second_run_makes_no_calls(gateway, pacer, story, avatar):
    propagator = _propagator(gateway, pacer)
    propagator.run(story, avatar)
    calls_after_first = len(gateway.calls)

    report = propagator.run(story, avatar)

    assert len(gateway.calls) == calls_after_first
    assert report.completed_slots == ()
    assert len(report.skipped_slots) == 5


def test_failed_page_does_not_block_siblings(pacer, story, avatar):
    gateway = FakeGateway(fail_when=lambda prompt: "scene two" in prompt)
    propagator = _propagator(gateway, pacer)

    report = propagator.run(story, avatar)

    assert set(report.completed_slots) == {
        Slot.cover(),
        Slot.page(1),
        Slot.page(3),
        Slot.dedication(),
    }
    assert list(report.failed_slots) == [Slot.page(2)]
    assert Slot.page(2) not in propagator.store
    assert propagator.status(Slot.page(2)) is SlotStatus.FAILED
    assert propagator.status(Slot.page(3)) is SlotStatus.DONE


def test_retry_fills_only_the_failed_slot(pacer, story, avatar):
    failing = {"on": True}
    gateway = FakeGateway(fail_when=lambda prompt: failing["on"] and "scene two" in prompt)
    propagator = _propagator(gateway, pacer)
    propagator.run(story, avatar)
    failing["on"] = False
    before = len(gateway.calls)

    report = propagator.run(story, avatar)

    assert report.completed_slots == (Slot.page(2),)
    assert len(gateway.calls) == before + 1
    assert propagator.status(Slot.page(2)) is SlotStatus.DONE


def test_chain_policy_uses_previous_page(gateway, pacer, story, avatar):
    propagator = _propagator(gateway, pacer, policy=SourcePolicy.CHAIN_FROM_PREVIOUS)
    propagator.run(story, avatar)
    store = propagator.store

    cover, page1, page2, page3, dedication = gateway.calls
    assert cover["source"] == avatar.image
    assert page1["source"] == avatar.image
    assert page2["source"] == store.get(Slot.page(1)).image
    assert page3["source"] == store.get(Slot.page(2)).image
    assert dedication["source"] == avatar.image
    assert store.get(Slot.page(2)).source_slot == Slot.page(1)
    assert "previous page" in page2["prompt"]


def test_chain_policy_falls_back_to_avatar_after_failure(pacer, story, avatar):
    gateway = FakeGateway(fail_when=lambda prompt: "scene two" in prompt)
    propagator = _propagator(gateway, pacer, policy=SourcePolicy.CHAIN_FROM_PREVIOUS)
    propagator.run(story, avatar)

    page3_call = gateway.calls[3]
    assert page3_call["source"] == avatar.image
    assert propagator.store.get(Slot.page(3)).source_slot == Slot.avatar()


def test_missing_story_or_avatar_refuses_to_start(gateway, pacer, story, avatar):
    propagator = _propagator(gateway, pacer)
    with pytest.raises(PreconditionError):
        propagator.run(None, avatar)
    with pytest.raises(PreconditionError):
        propagator.run(story, None)
    assert gateway.calls == []


def test_progress_reports_every_slot(gateway, pacer, story, avatar):
    events = []
    _propagator(gateway, pacer).run(
        story, avatar, progress_callback=lambda stage, payload: events.append((stage, payload))
    )

    slot_events = [payload for stage, payload in events if stage.startswith("slot:")]
    assert [(p["completed"], p["total"]) for p in slot_events] == [(n, 5) for n in range(1, 6)]
    assert events[0][0] == "propagation:start"
    assert events[-1][0] == "propagation:complete"


def test_calls_are_paced(gateway, pacer, sleeps, story, avatar):
    _propagator(gateway, pacer).run(story, avatar)
    assert sleeps == [0.5] * 4


def test_cancel_between_slots(gateway, pacer, story, avatar):
    cancel = threading.Event()

    def on_progress(stage, payload):
        if stage == "slot:done" and payload["slot"] == "page-01":
            cancel.set()

    propagator = _propagator(gateway, pacer)
    report = propagator.run(story, avatar, cancel_event=cancel, progress_callback=on_progress)

    assert report.cancelled
    assert report.completed_slots == (Slot.cover(), Slot.page(1))
    assert len(gateway.calls) == 2
    assert propagator.status(Slot.page(2)) is SlotStatus.PENDING


def test_regenerate_overwrites_only_that_slot(gateway, pacer, story, avatar):
    propagator = _propagator(gateway, pacer)
    propagator.run(story, avatar)
    before = propagator.store.snapshot()

    asset = propagator.regenerate(Slot.cover(), story, avatar)

    after = propagator.store.snapshot()
    assert after[Slot.cover()] is asset
    assert asset.image != before[Slot.cover()].image
    for slot in propagator.plan(story)[1:]:
        assert after[slot] is before[slot]


def test_regenerate_failure_keeps_previous_asset(pacer, story, avatar):
    failing = {"on": False}
    gateway = FakeGateway(fail_when=lambda prompt: failing["on"])
    propagator = _propagator(gateway, pacer)
    propagator.run(story, avatar)
    previous = propagator.store.get(Slot.page(1))
    failing["on"] = True

    with pytest.raises(SlotGenerationError) as excinfo:
        propagator.regenerate(Slot.page(1), story, avatar)

    assert excinfo.value.slot == Slot.page(1)
    assert excinfo.value.status_code == 500
    assert propagator.store.get(Slot.page(1)) is previous


def test_regenerate_unknown_slot_is_rejected(gateway, pacer, story, avatar):
    with pytest.raises(ValidationError):
        _propagator(gateway, pacer).regenerate(Slot.page(9), story, avatar)


def test_concurrent_regenerations_of_one_slot_are_serialised(pacer, story, avatar):
    active = {"now": 0, "max": 0}
    guard = threading.Lock()

    class SlowGateway(FakeGateway):
        def edit(self, prompt, source_image, size, style_hint=None):
            with guard:
                active["now"] += 1
                active["max"] = max(active["max"], active["now"])
            threading.Event().wait(0.05)
            try:
                return super().edit(prompt, source_image, size, style_hint)
            finally:
                with guard:
                    active["now"] -= 1

    propagator = _propagator(SlowGateway(), pacer)
    threads = [
        threading.Thread(target=propagator.regenerate, args=(Slot.cover(), story, avatar))
        for _ in range(3)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert active["max"] == 1
    assert Slot.cover() in propagator.store


def test_undecodable_page_image_is_isolated(pacer, story, avatar):
    gateway = FakeGateway(garbage_when=lambda prompt: "scene two" in prompt)
    propagator = _propagator(gateway, pacer)

    report = propagator.run(story, avatar)

    assert list(report.failed_slots) == [Slot.page(2)]
    assert set(report.completed_slots) == {
        Slot.cover(),
        Slot.page(1),
        Slot.page(3),
        Slot.dedication(),
    }
    assert Slot.page(2) not in propagator.store
    assert propagator.status(Slot.page(2)) is SlotStatus.FAILED


def test_run_does_not_redo_a_slot_filled_by_a_concurrent_regeneration(pacer, story, avatar):
    cover_started = threading.Event()
    release_cover = threading.Event()

    class BlockingGateway(FakeGateway):
        def edit(self, prompt, source_image, size, style_hint=None):
            if story.title in prompt and not release_cover.is_set():
                cover_started.set()
                release_cover.wait(5)
            return super().edit(prompt, source_image, size, style_hint)

    gateway = BlockingGateway()
    propagator = _propagator(gateway, pacer)
    regeneration = threading.Thread(
        target=propagator.regenerate, args=(Slot.cover(), story, avatar)
    )
    regeneration.start()
    assert cover_started.wait(5)

    reports = []
    full_run = threading.Thread(target=lambda: reports.append(propagator.run(story, avatar)))
    full_run.start()
    threading.Event().wait(0.1)
    release_cover.set()
    regeneration.join()
    full_run.join()

    cover_calls = [call for call in gateway.calls if story.title in call["prompt"]]
    assert len(cover_calls) == 1
    assert reports[0].skipped_slots == (Slot.cover(),)
    assert Slot.cover() not in reports[0].completed_slots
