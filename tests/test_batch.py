import base64
import json

import pytest

from brightkids.common import BatchTooLargeError, ValidationError
from brightkids.pipeline import (
    BatchItem,
    BatchRunner,
    FixedDelayPacer,
    Slot,
    TokenBucketPacer,
    results_by_slot,
)
from brightkids.pipeline.batch import coerce_image_bytes
from conftest import FakeGateway, make_png


def _items(count, source=None):
    return [
        BatchItem(
            slot=Slot.page(n),
            prompt=f"draw page {n}",
            style="watercolor",
            source_image=source,
        )
        for n in range(1, count + 1)
    ]


def test_thirteen_items_fail_fast_without_calls(runner, gateway):
    with pytest.raises(BatchTooLargeError):
        runner.run(_items(13))
    assert gateway.calls == []


def test_empty_batch_is_rejected(runner):
    with pytest.raises(ValidationError):
        runner.run([])


def test_failures_are_isolated_and_tagged(pacer):
    gateway = FakeGateway(fail_when=lambda prompt: "page 2" in prompt)
    runner = BatchRunner(gateway, pacer=pacer)

    results = runner.run(_items(3))

    assert [result.slot for result in results] == [Slot.page(1), Slot.page(2), Slot.page(3)]
    assert [result.ok for result in results] == [True, False, True]
    assert results[1].status_code == 500
    assert len(gateway.calls) == 3
    by_slot = results_by_slot(reversed(results))
    assert by_slot[Slot.page(2)].error == "Provider error: 500"


def test_pacing_between_items_only(runner, sleeps):
    runner.run(_items(4))
    assert sleeps == [0.5, 0.5, 0.5]


def test_single_item_is_not_paced(runner, sleeps):
    runner.run(_items(1))
    assert sleeps == []


def test_mode_follows_source_image(runner, gateway):
    runner.run(_items(1) + _items(1, source=make_png(8, 8)))
    assert [call["mode"] for call in gateway.calls] == ["generate", "edit"]


def test_empty_prompt_is_an_error_without_a_call(runner, gateway):
    result = runner.execute(BatchItem(slot=Slot.cover(), prompt="  ", style="comic"))
    assert not result.ok
    assert result.error == "No prompt provided"
    assert gateway.calls == []


def test_unexpected_exception_is_captured(pacer):
    class Broken:
        def generate(self, prompt, size):
            raise RuntimeError("socket closed")

    result = BatchRunner(Broken(), pacer=pacer).execute(
        BatchItem(slot=Slot.cover(), prompt="p", style="s")
    )
    assert result.error == "socket closed"


@pytest.mark.parametrize(
    "wrap",
    [
        lambda data: data,
        lambda data: base64.b64encode(data).decode(),
        lambda data: "data:image/png;base64," + base64.b64encode(data).decode(),
        lambda data: {"data": [{"b64_json": base64.b64encode(data).decode()}]},
        lambda data: json.dumps({"data": [{"b64_json": base64.b64encode(data).decode()}]}).encode(),
    ],
)
def test_payload_coercion(wrap):
    image = make_png(3, 3)
    assert coerce_image_bytes(wrap(image)) == image


def test_fixed_delay_rejects_negative():
    with pytest.raises(ValueError):
        FixedDelayPacer(-1)


def test_token_bucket_allows_burst_then_waits():
    now = [0.0]
    sleeps = []

    def sleep(seconds):
        sleeps.append(seconds)
        now[0] += seconds

    pacer = TokenBucketPacer(rate=2.0, capacity=2, clock=lambda: now[0], sleep=sleep)
    pacer.wait()
    pacer.wait()
    pacer.wait()

    assert sleeps == [pytest.approx(0.5)]
