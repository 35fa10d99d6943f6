import json

import pytest

from video_importer.errors import AssetValidationError
from video_importer.publish.manifest import MANIFEST_VERSION, build_manifest
from video_importer.publish.models import Asset, ResolutionVariant, ThumbnailInfo

THUMBNAIL = ThumbnailInfo(width=1280, height=720, hash="00ff00ff00ff00ff")


def _asset(**overrides) -> Asset:
    fields = {
        "title": "Scaling rollups",
        "description": "Talk recording",
        "source_id": "abc123",
        "duration_seconds": 1800,
        "variants": [
            ResolutionVariant(
                720,
                "abc123_720.mp4",
                bitrate=2_000_000,
                size_bytes=450_000_000,
                content_address="addr-720",
            ),
            ResolutionVariant(
                360,
                "abc123_360.mp4",
                bitrate=600_000,
                size_bytes=135_000_000,
                content_address="addr-360",
            ),
        ],
    }
    fields.update(overrides)
    return Asset(**fields)


def test_manifest_serialises_with_camel_case_keys() -> None:
    manifest = build_manifest(
        _asset(),
        batch_id="batch-1",
        thumbnail_address="addr-thumb",
        thumbnail=THUMBNAIL,
        owner_address="0xabc",
    )

    document = json.loads(manifest.to_json())

    assert document["batchId"] == "batch-1"
    assert document["title"] == "Scaling rollups"
    assert document["duration"] == 1800
    assert document["originalQuality"] == "720p"
    assert document["ownerAddress"] == "0xabc"
    assert document["v"] == MANIFEST_VERSION
    assert isinstance(document["createdAt"], int)
    assert document["thumbnail"] == {
        "aspectRatio": pytest.approx(1280 / 720),
        "blurhash": "00ff00ff00ff00ff",
        "sources": {"1280w": "addr-thumb"},
    }
    assert document["sources"] == [
        {"bitrate": 2_000_000, "quality": "720p", "reference": "addr-720", "size": 450_000_000},
        {"bitrate": 600_000, "quality": "360p", "reference": "addr-360", "size": 135_000_000},
    ]
    assert json.loads(document["personalData"]) == {"mode": "importer", "videoId": "abc123"}


def test_variants_without_address_are_not_listed() -> None:
    asset = _asset()
    asset.variants[1].content_address = None

    manifest = build_manifest(
        asset, batch_id="b", thumbnail_address="t", thumbnail=THUMBNAIL
    )

    assert [source.quality for source in manifest.sources] == ["720p"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"title": "  "},
        {"description": ""},
        {"duration_seconds": 0},
        {"variants": []},
    ],
)
def test_incomplete_assets_are_rejected(overrides: dict) -> None:
    with pytest.raises(AssetValidationError):
        build_manifest(
            _asset(**overrides), batch_id="b", thumbnail_address="t", thumbnail=THUMBNAIL
        )
