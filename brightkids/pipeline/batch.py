"""
Sequential, failure-isolated execution of image synthesis requests.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Protocol, Sequence

from brightkids.ai_generation.gateway import (
    PORTRAIT_SIZE,
    ImageSynthesisGateway,
    decode_image_envelope,
    resolve_size,
)
from brightkids.common.errors import (
    BatchTooLargeError,
    BrightKidsError,
    InvalidResponseError,
    ProviderError,
    ValidationError,
)

from .slots import Slot

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 12
DEFAULT_DELAY_SECONDS = 0.5


class Pacer(Protocol):
    """Called before every synthesis call except the first of a run."""

    def wait(self) -> None: ...


class FixedDelayPacer:
    """Sleeps a constant delay between calls."""

    def __init__(
        self,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be non-negative.")
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    def wait(self) -> None:
        if self.delay_seconds:
            self._sleep(self.delay_seconds)


class TokenBucketPacer:
    """
    Token bucket allowing short bursts of ``capacity`` calls, refilled at ``rate`` per second.
    """

    def __init__(
        self,
        rate: float,
        capacity: int = 1,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive.")
        if capacity < 1:
            raise ValueError("capacity must be at least 1.")
        self.rate = rate
        self.capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._updated = clock()
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            self._refill()
            if self._tokens < 1:
                self._sleep((1 - self._tokens) / self.rate)
                self._refill()
            self._tokens = max(0.0, self._tokens - 1)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self.capacity), self._tokens + elapsed * self.rate)
        self._updated = now


@dataclass(frozen=True)
class BatchItem:
    """
    One synthesis request.

    Without ``source_image`` the gateway's *generate* mode is used; with it, *edit* mode.
    """

    slot: Slot
    prompt: str = field(repr=False)
    style: str
    size: str = PORTRAIT_SIZE
    source_image: bytes | None = field(default=None, repr=False)
    style_reference: bytes | None = field(default=None, repr=False)
    narration: str | None = field(default=None, repr=False)

    @property
    def mode(self) -> str:
        return "edit" if self.source_image is not None else "generate"


@dataclass(frozen=True)
class BatchResult:
    """Outcome of one :class:`BatchItem`, tagged with the item's slot."""

    slot: Slot
    image: bytes | None = field(default=None, repr=False)
    error: str | None = None
    status_code: int | None = None
    details: Any = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.image is not None and self.error is None

    @classmethod
    def success(cls, slot: Slot, image: bytes) -> "BatchResult":
        return cls(slot=slot, image=image)

    @classmethod
    def failure(
        cls,
        slot: Slot,
        error: str,
        *,
        status_code: int | None = None,
        details: Any = None,
    ) -> "BatchResult":
        return cls(slot=slot, error=error, status_code=status_code, details=details)


class BatchRunner:
    """
    Runs synthesis items strictly one after another against a gateway.

    Parameters
    ----------
    gateway:
        The image synthesis backend.
    pacer:
        Pacing policy applied between items. Defaults to a fixed 500 ms delay.
    max_batch_size:
        Upper bound on items per :meth:`run` call.
    """

    def __init__(
        self,
        gateway: ImageSynthesisGateway,
        *,
        pacer: Pacer | None = None,
        max_batch_size: int = MAX_BATCH_SIZE,
    ) -> None:
        self._gateway = gateway
        self._pacer: Pacer = pacer or FixedDelayPacer()
        self._max_batch_size = max_batch_size

    @property
    def pacer(self) -> Pacer:
        return self._pacer

    def run(self, items: Sequence[BatchItem]) -> list[BatchResult]:
        """
        Execute ``items`` in order and return one result per item.

        Raises
        ------
        BatchTooLargeError
            More than ``max_batch_size`` items; no provider call is made.
        ValidationError
            The batch is empty.
        """
        items = list(items)
        if not items:
            raise ValidationError("Batch array is required")
        if len(items) > self._max_batch_size:
            raise BatchTooLargeError(len(items), self._max_batch_size)

        results: list[BatchResult] = []
        for index, item in enumerate(items):
            if index and len(items) > 1:
                self._pacer.wait()
            results.append(self.execute(item))
        return results

    def execute(self, item: BatchItem) -> BatchResult:
        """
        Run a single item, converting any failure into an error result.
        """
        if not item.prompt or not item.prompt.strip():
            logger.error("No prompt provided for %s", item.slot)
            return BatchResult.failure(item.slot, "No prompt provided")

        try:
            raw = self._synthesize(item)
            image = coerce_image_bytes(raw)
        except ProviderError as exc:
            logger.error("Provider error for %s: %s", item.slot, exc.status_code)
            return BatchResult.failure(
                item.slot,
                f"Provider error: {exc.status_code}",
                status_code=exc.status_code,
                details=exc.body,
            )
        except BrightKidsError as exc:
            logger.error("Synthesis failed for %s: %s", item.slot, exc)
            return BatchResult.failure(item.slot, str(exc))
        except Exception as exc:
            logger.exception("Unexpected error processing %s", item.slot)
            return BatchResult.failure(item.slot, str(exc) or exc.__class__.__name__)

        return BatchResult.success(item.slot, image)

    def _synthesize(self, item: BatchItem) -> Any:
        logger.debug("Synthesizing %s in %s mode (%s)", item.slot, item.mode, item.style)
        if item.source_image is None:
            return self._gateway.generate(item.prompt, resolve_size(item.size))
        return self._gateway.edit(
            item.prompt,
            item.source_image,
            resolve_size(item.size, item.source_image),
            item.style_reference,
        )


def coerce_image_bytes(raw: Any) -> bytes:
    """
    Normalise what a gateway handed back into raw image bytes.

    Accepts raw bytes, a JSON envelope (as bytes, text or a mapping), base64 text, or a
    ``data:`` URL.
    """
    if isinstance(raw, (bytes, bytearray)):
        data = bytes(raw)
        if data[:1] == b"{":
            try:
                return decode_image_envelope(json.loads(data))
            except ValueError:
                pass
        if not data:
            raise InvalidResponseError("No image returned (empty body).")
        return data

    if isinstance(raw, Mapping):
        return decode_image_envelope(raw)

    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("{"):
            try:
                return decode_image_envelope(json.loads(text))
            except ValueError as exc:
                raise InvalidResponseError("Provider returned malformed JSON.") from exc
        if text.startswith("data:"):
            _, _, text = text.partition(",")
        try:
            return base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidResponseError("Image payload is not valid base64.") from exc

    raise InvalidResponseError(f"Unsupported image payload type: {type(raw).__name__}")


def results_by_slot(results: Iterable[BatchResult]) -> dict[Slot, BatchResult]:
    """Index results by their slot tag."""
    return {result.slot: result for result in results}
