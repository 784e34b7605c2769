"""
Avatar derivation, batch execution and character-consistent illustration of a story.
"""

from .avatar import Avatar, AvatarDeriver, AvatarSource, Description, ReferencePhoto
from .batch import (
    MAX_BATCH_SIZE,
    BatchItem,
    BatchResult,
    BatchRunner,
    FixedDelayPacer,
    Pacer,
    TokenBucketPacer,
    results_by_slot,
)
from .propagator import (
    CharacterConsistencyPropagator,
    IllustrationReport,
    PropagationState,
    PropagationStatus,
    SourcePolicy,
)
from .session import StorybookSession
from .slots import AssetStore, GeneratedAsset, Slot, SlotKind, SlotStatus

__all__ = [
    "AssetStore",
    "Avatar",
    "AvatarDeriver",
    "AvatarSource",
    "BatchItem",
    "BatchResult",
    "BatchRunner",
    "CharacterConsistencyPropagator",
    "Description",
    "FixedDelayPacer",
    "GeneratedAsset",
    "IllustrationReport",
    "MAX_BATCH_SIZE",
    "Pacer",
    "PropagationState",
    "PropagationStatus",
    "ReferencePhoto",
    "Slot",
    "SlotKind",
    "SlotStatus",
    "SourcePolicy",
    "StorybookSession",
    "TokenBucketPacer",
    "results_by_slot",
]
