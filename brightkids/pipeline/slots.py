"""
Slots, generated assets and the slot-keyed asset store.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping


class SlotKind(str, Enum):
    AVATAR = "avatar"
    COVER = "cover"
    PAGE = "page"
    DEDICATION = "dedication"


_KIND_ORDER = {
    SlotKind.AVATAR: 0,
    SlotKind.COVER: 1,
    SlotKind.PAGE: 2,
    SlotKind.DEDICATION: 3,
}


@dataclass(frozen=True)
class Slot:
    """
    A named output position: the cover, a numbered page or the dedication.

    The avatar also gets a slot so batch results for it can be tagged, but it never
    lives in the :class:`AssetStore`.
    """

    kind: SlotKind
    page_number: int | None = None

    def __post_init__(self) -> None:
        if self.kind is SlotKind.PAGE:
            if self.page_number is None or self.page_number < 1:
                raise ValueError("Page slots need a positive page number.")
        elif self.page_number is not None:
            raise ValueError(f"{self.kind.value} slots do not take a page number.")

    @classmethod
    def avatar(cls) -> "Slot":
        return cls(SlotKind.AVATAR)

    @classmethod
    def cover(cls) -> "Slot":
        return cls(SlotKind.COVER)

    @classmethod
    def page(cls, page_number: int) -> "Slot":
        return cls(SlotKind.PAGE, page_number)

    @classmethod
    def dedication(cls) -> "Slot":
        return cls(SlotKind.DEDICATION)

    @classmethod
    def parse(cls, value: "str | int | Slot") -> "Slot":
        """Accept a slot, a page number, or a key such as ``cover`` / ``page-3``."""
        if isinstance(value, Slot):
            return value
        if isinstance(value, int):
            return cls.page(value)

        text = str(value).strip().lower()
        if text.isdigit():
            return cls.page(int(text))
        if text.startswith("page"):
            number = text[len("page"):].lstrip("-_ ")
            if number.isdigit():
                return cls.page(int(number))
        for kind in (SlotKind.COVER, SlotKind.DEDICATION, SlotKind.AVATAR):
            if text == kind.value:
                return cls(kind)
        raise ValueError(f"Unrecognised slot {value!r}.")

    @property
    def key(self) -> str:
        if self.kind is SlotKind.PAGE:
            return f"page-{self.page_number:02d}"
        return self.kind.value

    @property
    def sort_key(self) -> tuple[int, int]:
        return _KIND_ORDER[self.kind], self.page_number or 0

    @property
    def is_page(self) -> bool:
        return self.kind is SlotKind.PAGE

    def __str__(self) -> str:
        return self.key


class SlotStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class GeneratedAsset:
    """
    A normalised illustration bound to a slot.

    ``source_slot`` records which image the synthesis used as its source (the avatar or,
    when chaining, the previous page).
    """

    slot: Slot
    image: bytes = field(repr=False)
    width: int
    height: int
    prompt: str = field(default="", repr=False)
    source_slot: Slot | None = None
    created_at: str = field(default_factory=_now_iso)


class AssetStore:
    """
    Slot-unique mapping of generated assets.

    Writes replace any previous asset for the slot in a single assignment, so readers
    never observe a half-written slot.
    """

    def __init__(self, assets: Mapping[Slot, GeneratedAsset] | None = None) -> None:
        self._lock = threading.Lock()
        self._assets: dict[Slot, GeneratedAsset] = {}
        for asset in (assets or {}).values():
            self.put(asset)

    def put(self, asset: GeneratedAsset) -> None:
        if asset.slot.kind is SlotKind.AVATAR:
            raise ValueError("The avatar is not stored as a slot asset.")
        with self._lock:
            self._assets[asset.slot] = asset

    def get(self, slot: Slot) -> GeneratedAsset | None:
        with self._lock:
            return self._assets.get(slot)

    def discard(self, slot: Slot) -> None:
        with self._lock:
            self._assets.pop(slot, None)

    def clear(self) -> None:
        with self._lock:
            self._assets.clear()

    def snapshot(self) -> Mapping[Slot, GeneratedAsset]:
        """Read-only copy of the store in canonical slot order."""
        with self._lock:
            ordered = sorted(self._assets.items(), key=lambda item: item[0].sort_key)
        return MappingProxyType(dict(ordered))

    def __contains__(self, slot: object) -> bool:
        with self._lock:
            return slot in self._assets

    def __len__(self) -> int:
        with self._lock:
            return len(self._assets)

    def __iter__(self) -> Iterator[Slot]:
        return iter(self.snapshot())
