import pytest

from brightkids.ai_generation import IllustrationStyle
from brightkids.common import AvatarGenerationError, PreconditionError, SlotGenerationError
from brightkids.imaging import image_size
from brightkids.pipeline import AvatarSource, Description, ReferencePhoto, Slot, SlotStatus
from brightkids.story_generation import ChildProfile, StoryGoal, StyleSpec
from conftest import FakeGateway, make_png, story_payload


def _request(pages=6, **style):
    child = ChildProfile.from_mapping({"name": "Ava", "age": 5})
    goal = StoryGoal.from_mapping({"challenge": "first day of kindergarten"})
    style_spec = StyleSpec.from_mapping(
        {"pageCount": pages, "illustrationStyle": "watercolor", **style}
    )
    return child, goal, style_spec


def test_happy_path_end_to_end(make_session):
    gateway = FakeGateway()
    session = make_session(gateway)

    story = session.draft_story(*_request())
    assert story.page_numbers == [1, 2, 3, 4, 5, 6]

    avatar = session.derive_avatar(ReferencePhoto(make_png(800, 800)), "watercolor")
    assert (avatar.width, avatar.height) == (1024, 1536)
    assert image_size(avatar.image) == (1024, 1536)

    report = session.illustrate_all()
    assert len(report.completed_slots) == 8
    assert report.failed_slots == {}
    assert list(session.get_assets()) == [
        Slot.cover(),
        *(Slot.page(n) for n in range(1, 7)),
        Slot.dedication(),
    ]
    assert session.slot_status("page-3") is SlotStatus.DONE


def test_illustrate_before_avatar_is_a_precondition_error(make_session):
    session = make_session(FakeGateway())
    session.draft_story(*_request())
    with pytest.raises(PreconditionError):
        session.illustrate_all()


def test_failed_regeneration_keeps_the_avatar(make_session):
    failing = {"on": False}
    gateway = FakeGateway(fail_when=lambda prompt: failing["on"])
    session = make_session(gateway)
    original = session.derive_avatar(Description("a girl with a yellow raincoat"))

    failing["on"] = True
    with pytest.raises(AvatarGenerationError):
        session.regenerate_avatar()

    assert session.get_avatar() is original


def test_regenerate_without_input_is_rejected(make_session):
    with pytest.raises(PreconditionError):
        make_session(FakeGateway()).regenerate_avatar()


def test_change_style_rederives_with_same_input(make_session):
    gateway = FakeGateway()
    session = make_session(gateway)
    session.derive_avatar(Description("a boy with a red cap"), IllustrationStyle.WATERCOLOR)

    avatar = session.change_style("comic")

    assert avatar.style is IllustrationStyle.COMIC
    assert session.style.illustration_style is IllustrationStyle.COMIC
    assert len(gateway.calls) == 2
    assert "a boy with a red cap" in gateway.calls[1]["prompt"]


def test_change_style_failure_keeps_style_and_avatar(make_session):
    failing = {"on": False}
    session = make_session(FakeGateway(fail_when=lambda prompt: failing["on"]))
    original = session.derive_avatar(Description("a boy"), IllustrationStyle.WATERCOLOR)
    failing["on"] = True

    with pytest.raises(AvatarGenerationError):
        session.change_style(IllustrationStyle.MODERN_3D)

    assert session.get_avatar() is original
    assert session.style.illustration_style is IllustrationStyle.WATERCOLOR


def test_change_style_without_avatar_only_updates_style(make_session):
    gateway = FakeGateway()
    session = make_session(gateway)
    assert session.change_style("3d") is None
    assert session.style.illustration_style is IllustrationStyle.MODERN_3D
    assert gateway.calls == []


def test_illustrate_slot_failure_is_raised_and_isolated(make_session):
    failing = {"on": False}
    session = make_session(FakeGateway(fail_when=lambda prompt: failing["on"]))
    session.draft_story(*_request())
    session.derive_avatar(Description("a girl"))
    session.illustrate_all()
    before = session.get_assets()
    failing["on"] = True

    with pytest.raises(SlotGenerationError) as excinfo:
        session.illustrate_slot("cover")

    assert excinfo.value.slot == Slot.cover()
    assert session.get_assets()[Slot.cover()] is before[Slot.cover()]


def test_derive_avatar_from_cover(make_session):
    gateway = FakeGateway()
    session = make_session(gateway)
    session.draft_story(*_request())
    session.derive_avatar(Description("a girl"))

    with pytest.raises(PreconditionError):
        session.derive_avatar_from_cover()

    session.illustrate_slot(Slot.cover())
    avatar = session.derive_avatar_from_cover()
    assert avatar.source is AvatarSource.COVER_DERIVED


@pytest.mark.parametrize(
    "story_dedication, style_dedication, expected",
    [
        ("For my star", "Ignored", "For my star"),
        (None, "To Ava from Grandma", "To Ava from Grandma"),
        (None, None, "For Ava, with love"),
    ],
)
def test_dedication_text_fallbacks(make_session, story_dedication, style_dedication, expected):
    payload = dict(story_payload(6), dedication=story_dedication)
    session = make_session(FakeGateway(), payload=payload)
    extra = {"dedication": style_dedication} if style_dedication else {}
    session.draft_story(*_request(**extra))
    assert session.dedication_text == expected


def test_new_story_drops_old_illustrations(make_session):
    session = make_session(FakeGateway())
    session.draft_story(*_request())
    session.derive_avatar(Description("a girl"))
    session.illustrate_all()

    session.draft_story(*_request())

    assert len(session.get_assets()) == 0
    assert session.get_avatar() is not None
