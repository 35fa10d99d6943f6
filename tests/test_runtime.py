from pathlib import Path

import pytest

from video_importer.config import load_config
from video_importer.publish.models import Asset, ResolutionVariant
from video_importer.runtime import build_runtime
from tests.support.fakes import (
    MEDIA_URL,
    FakeClock,
    FakeDurationProbe,
    FakeImageInspector,
    FakeNetwork,
    runtime_env,
)


@pytest.mark.asyncio
async def test_import_asset_downloads_then_publishes(tmp_path: Path) -> None:
    network = FakeNetwork(
        media={"hd.mp4": b"x" * 300},
        thumbnails={"abc123": b"jpeg"},
    )
    config = load_config(
        runtime_env(tmp_path / "staging", DOWNLOAD_CHUNK_BYTES="128", OFFER_VIDEO="true")
    )
    asset = Asset(
        title="Opening talk",
        description="Keynote",
        source_id="abc123",
        variants=[ResolutionVariant(720, "abc123_720.mp4", source_uri=MEDIA_URL + "hd.mp4")],
    )

    async with build_runtime(
        config,
        http=network.client(),
        clock=FakeClock(),
        image_inspector=FakeImageInspector(),
        duration_probe=FakeDurationProbe(seconds=120),
    ) as runtime:
        result = await runtime.import_asset(asset)

    assert len(network.ranges) == 3
    assert [upload.name for upload in network.uploads] == [
        "abc123.jpg",
        "abc123_720.mp4",
        "metadata.json",
    ]
    assert network.uploads[1].body == b"x" * 300
    assert network.offers == [
        "addr-abc123.jpg",
        "addr-abc123_720.mp4",
        "addr-metadata.json",
    ]
    assert asset.variants[0].bitrate == 20
    assert result.index_id == "idx-1"
    assert sorted(path.name for path in (tmp_path / "staging").iterdir()) == []


@pytest.mark.asyncio
async def test_runtime_keeps_injected_client_open(tmp_path: Path) -> None:
    network = FakeNetwork()
    http = network.client()

    runtime = build_runtime(load_config(runtime_env(tmp_path / "staging")), http=http)
    await runtime.aclose()

    assert runtime.owns_http is False
    assert http.is_closed is False
    await http.aclose()
