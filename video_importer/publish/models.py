"""Data models and enums for the provisioning and publication flow."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from video_importer.utils.time import now_utc

ProgressCallback = Callable[[int, int], None]
"""Receives ``(bytes_copied_so_far, total_bytes)``."""

EventCallback = Callable[["PublicationEvent"], None]


class BatchState(str, Enum):
    """Lifecycle states of a capacity reservation."""

    REQUESTED = "requested"
    REFERENCE_OBTAINED = "reference_obtained"
    IDENTIFIER_PENDING = "identifier_pending"
    IDENTIFIER_RESOLVED = "identifier_resolved"
    USABILITY_PENDING = "usability_pending"
    USABLE = "usable"
    TIMED_OUT = "timed_out"


_BATCH_TRANSITIONS: Mapping[BatchState, frozenset[BatchState]] = {
    BatchState.REQUESTED: frozenset({BatchState.REFERENCE_OBTAINED}),
    BatchState.REFERENCE_OBTAINED: frozenset({BatchState.IDENTIFIER_PENDING}),
    BatchState.IDENTIFIER_PENDING: frozenset(
        {BatchState.IDENTIFIER_RESOLVED, BatchState.TIMED_OUT}
    ),
    BatchState.IDENTIFIER_RESOLVED: frozenset({BatchState.USABILITY_PENDING}),
    BatchState.USABILITY_PENDING: frozenset({BatchState.USABLE, BatchState.TIMED_OUT}),
    BatchState.USABLE: frozenset(),
    BatchState.TIMED_OUT: frozenset(),
}


class PublicationStage(str, Enum):
    """Ordered checkpoints of one asset's publication."""

    PENDING = "pending"
    BATCH_READY = "batch_ready"
    THUMBNAIL_UPLOADED = "thumbnail_uploaded"
    VARIANTS_UPLOADED = "variants_uploaded"
    MANIFEST_UPLOADED = "manifest_uploaded"
    INDEXED = "indexed"


@dataclass(slots=True)
class ResolutionVariant:
    """One encoded rendition of an asset."""

    resolution: int
    filename: str
    source_uri: str | None = None
    audio_bitrate: int | None = None
    bitrate: int | None = None
    local_path: Path | None = None
    size_bytes: int | None = None
    content_address: str | None = None

    @property
    def label(self) -> str:
        return f"{self.resolution}p"

    @property
    def uploaded(self) -> bool:
        return bool(self.content_address)


@dataclass(slots=True)
class Asset:
    """A logical video to publish, mutated as its variants get uploaded."""

    title: str
    description: str
    variants: list[ResolutionVariant]
    source_id: str | None = None
    duration_seconds: int = 0
    thumbnail_path: Path | None = None
    index_id: str | None = None
    permalink: str | None = None

    @property
    def original_quality(self) -> str | None:
        if not self.variants:
            return None
        return self.variants[0].label


@dataclass(slots=True)
class Batch:
    """A capacity reservation moving through :class:`BatchState`."""

    reference: str | None = None
    batch_id: str | None = None
    usable: bool = False
    state: BatchState = BatchState.REQUESTED
    amount: int | None = None
    depth: int | None = None

    def advance(self, target: BatchState) -> None:
        allowed = _BATCH_TRANSITIONS[self.state]
        if target not in allowed:
            raise ValueError(
                f"Batch cannot move from {self.state.value} to {target.value}"
            )
        self.state = target

    @property
    def ready(self) -> bool:
        return self.state is BatchState.USABLE and bool(self.batch_id)


@dataclass(slots=True, frozen=True)
class ThumbnailInfo:
    """Dimensions and perceptual hash of a thumbnail image."""

    width: int
    height: int
    hash: str

    @property
    def aspect_ratio(self) -> float:
        if self.height <= 0:
            return 0.0
        return self.width / self.height


@dataclass(slots=True)
class PublicationEvent:
    """Structured event emitted while publishing an asset."""

    name: str
    timestamp: datetime
    meta: Mapping[str, Any] | None = None


@dataclass(slots=True, frozen=True)
class PublicationResult:
    """Terminal result of a successful publication."""

    batch_id: str
    thumbnail_address: str
    variant_addresses: Mapping[str, str]
    manifest_address: str
    index_id: str
    created_index_entry: bool
    events: tuple[PublicationEvent, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "thumbnail_address": self.thumbnail_address,
            "variant_addresses": dict(self.variant_addresses),
            "manifest_address": self.manifest_address,
            "index_id": self.index_id,
            "created_index_entry": self.created_index_entry,
        }


@dataclass(slots=True)
class IndexOutcome:
    index_id: str
    created: bool


@dataclass(slots=True)
class PublicationRun:
    """Mutable context handed between publication stages."""

    asset: Asset
    stage: PublicationStage = PublicationStage.PENDING
    batch: Batch | None = None
    thumbnail_address: str | None = None
    thumbnail_info: ThumbnailInfo | None = None
    manifest_address: str | None = None
    index: IndexOutcome | None = None
    events: list[PublicationEvent] = field(default_factory=list)

    def record_event(
        self,
        name: str,
        *,
        meta: Mapping[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> PublicationEvent:
        """Append a publication event with sensible defaults."""

        event = PublicationEvent(
            name=name,
            timestamp=timestamp or now_utc(),
            meta=meta,
        )
        self.events.append(event)
        return event


__all__ = [
    "Asset",
    "Batch",
    "BatchState",
    "EventCallback",
    "IndexOutcome",
    "ProgressCallback",
    "PublicationEvent",
    "PublicationResult",
    "PublicationRun",
    "PublicationStage",
    "ResolutionVariant",
    "ThumbnailInfo",
]
