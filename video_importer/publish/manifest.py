"""Video manifest document published next to the uploaded media."""

from __future__ import annotations

import json

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from video_importer.errors import AssetValidationError
from video_importer.logging_events import now_ms

from .models import Asset, ThumbnailInfo

MANIFEST_VERSION = "1.1"


class _ManifestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ManifestImage(_ManifestModel):
    aspect_ratio: float
    blurhash: str
    sources: dict[str, str] = Field(default_factory=dict)


class ManifestSource(_ManifestModel):
    bitrate: int | None = None
    quality: str
    reference: str
    size: int | None = None


class VideoManifest(_ManifestModel):
    batch_id: str
    title: str
    description: str
    duration: int
    original_quality: str
    hash: str = ""
    owner_address: str | None = None
    created_at: int = Field(default_factory=now_ms)
    thumbnail: ManifestImage
    sources: list[ManifestSource] = Field(default_factory=list)
    personal_data: str | None = None
    v: str = MANIFEST_VERSION

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


def build_manifest(
    asset: Asset,
    *,
    batch_id: str,
    thumbnail_address: str,
    thumbnail: ThumbnailInfo,
    owner_address: str | None = None,
) -> VideoManifest:
    """Assemble the manifest for ``asset``; title and description are mandatory."""

    if not asset.title or not asset.title.strip():
        raise AssetValidationError("Title not defined")
    if not asset.description or not asset.description.strip():
        raise AssetValidationError("Description not defined")
    if asset.duration_seconds <= 0:
        raise AssetValidationError(
            f"Invalid Duration: {asset.duration_seconds}",
            meta={"title": asset.title},
        )
    original_quality = asset.original_quality
    if original_quality is None:
        raise AssetValidationError("Asset has no resolution variants")

    image = ManifestImage(
        aspect_ratio=thumbnail.aspect_ratio,
        blurhash=thumbnail.hash,
        sources={f"{thumbnail.width}w": thumbnail_address},
    )
    sources = [
        ManifestSource(
            bitrate=variant.bitrate,
            quality=variant.label,
            reference=variant.content_address,
            size=variant.size_bytes,
        )
        for variant in asset.variants
        if variant.content_address
    ]
    personal_data = None
    if asset.source_id:
        personal_data = json.dumps({"mode": "importer", "videoId": asset.source_id})

    return VideoManifest(
        batch_id=batch_id,
        title=asset.title,
        description=asset.description,
        duration=asset.duration_seconds,
        original_quality=original_quality,
        owner_address=owner_address,
        thumbnail=image,
        sources=sources,
        personal_data=personal_data,
    )


__all__ = [
    "MANIFEST_VERSION",
    "ManifestImage",
    "ManifestSource",
    "VideoManifest",
    "build_manifest",
]
