import json
from pathlib import Path

import pytest

from video_importer import cli
from video_importer.config import ImporterConfig
from video_importer.errors import AssetValidationError
from video_importer.runtime import build_runtime
from tests.support.fakes import (
    MEDIA_URL,
    FakeClock,
    FakeDurationProbe,
    FakeImageInspector,
    FakeNetwork,
    runtime_env,
)


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)


def _write_asset(path: Path, **overrides) -> Path:
    document = {
        "title": "Opening talk",
        "description": "Keynote",
        "sourceId": "abc123",
        "variants": [{"resolution": 720, "uri": MEDIA_URL + "hd.mp4"}],
    }
    document.update(overrides)
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def _stub_runtime(
    monkeypatch: pytest.MonkeyPatch, network: FakeNetwork, tmp_path: Path
) -> list[ImporterConfig]:
    for key, value in runtime_env(tmp_path / "staging").items():
        monkeypatch.setenv(key, value)
    seen: list[ImporterConfig] = []

    def _build(config: ImporterConfig):
        seen.append(config)
        return build_runtime(
            config,
            http=network.client(),
            clock=FakeClock(),
            image_inspector=FakeImageInspector(),
            duration_probe=FakeDurationProbe(seconds=60),
        )

    monkeypatch.setattr(cli, "build_runtime", _build)
    return seen


def test_load_asset_maps_document_to_variants(tmp_path: Path) -> None:
    path = _write_asset(tmp_path / "asset.json", indexId="idx-3")

    asset = cli.load_asset(path)

    assert asset.source_id == "abc123"
    assert asset.index_id == "idx-3"
    assert asset.variants[0].filename == "abc123_720.mp4"
    assert asset.variants[0].source_uri == MEDIA_URL + "hd.mp4"


def test_load_asset_rejects_document_without_variants(tmp_path: Path) -> None:
    path = _write_asset(tmp_path / "asset.json", variants=[])

    with pytest.raises(AssetValidationError):
        cli.load_asset(path)


def test_publish_command_prints_result(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    network = FakeNetwork(media={"hd.mp4": b"x" * 64}, thumbnails={"abc123": b"jpeg"})
    seen = _stub_runtime(monkeypatch, network, tmp_path)
    asset_path = _write_asset(tmp_path / "asset.json")

    exit_code = cli._cli(["publish", str(asset_path), "--pin"])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert payload["ok"] is True
    assert payload["index_id"] == "idx-1"
    assert payload["manifest_address"] == "addr-metadata.json"
    assert payload["permalink"].endswith("addr-metadata.json")
    assert seen[0].publish.pin is True
    assert seen[0].publish.offer is False
    assert {upload.pin for upload in network.uploads} == {"true"}


def test_publish_command_reports_importer_errors(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    network = FakeNetwork(media={"hd.mp4": b""})
    _stub_runtime(monkeypatch, network, tmp_path)
    asset_path = _write_asset(tmp_path / "asset.json")

    exit_code = cli._cli(["publish", str(asset_path)])

    assert exit_code == 1
    payload = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert payload["ok"] is False
    assert payload["error"]["code"] == "VALIDATION_ERROR"
