from pathlib import Path

import pytest

from video_importer.config import (
    DEFAULT_BATCH_TIMEOUT_SECONDS,
    DEFAULT_CHUNK_SIZE_BYTES,
    DEFAULT_GATEWAY_URL,
    DEFAULT_MAX_RETRY,
    get_runtime_env,
    load_config,
    load_runtime_env,
    override_runtime_env,
)


def test_defaults_match_publication_constants() -> None:
    config = load_config({})

    assert config.gateway.base_url == DEFAULT_GATEWAY_URL
    assert config.gateway.api_key is None
    assert config.batch.depth == 20
    assert config.batch.ttl_seconds == 365 * 24 * 3600
    assert config.batch.block_time_seconds == 5
    assert config.batch.poll_interval_seconds == 10.0
    assert config.batch.timeout_seconds == DEFAULT_BATCH_TIMEOUT_SECONDS == 420.0
    assert config.download.chunk_size_bytes == DEFAULT_CHUNK_SIZE_BYTES == 10_485_760
    assert config.download.read_buffer_bytes == 81_920
    assert config.publish.max_attempts == DEFAULT_MAX_RETRY == 3
    assert config.publish.pin is False
    assert config.publish.offer is False


def test_environment_values_override_defaults() -> None:
    config = load_config(
        {
            "GATEWAY_URL": "https://gw.example",
            "GATEWAY_API_KEY": " key ",
            "INDEX_URL": "https://ix.example/",
            "BATCH_DEPTH": "22",
            "BATCH_TIMEOUT_SECONDS": "60",
            "MAX_RETRY": "5",
            "PIN_VIDEO": "true",
            "OFFER_VIDEO": "1",
            "OWNER_ADDRESS": "0xabc",
            "DOWNLOAD_DIR": "/data/staging",
        }
    )

    assert config.gateway.base_url == "https://gw.example/"
    assert config.gateway.api_key == "key"
    assert config.index.base_url == "https://ix.example/"
    assert config.batch.depth == 22
    assert config.batch.timeout_seconds == 60.0
    assert config.publish.max_attempts == 5
    assert config.publish.pin is True
    assert config.publish.offer is True
    assert config.publish.owner_address == "0xabc"
    assert config.download.download_dir == "/data/staging"


@pytest.mark.parametrize(
    ("key", "value", "attribute", "expected"),
    [
        ("MAX_RETRY", "zero", "max_attempts", DEFAULT_MAX_RETRY),
        ("MAX_RETRY", "0", "max_attempts", 1),
        ("MAX_RETRY", "", "max_attempts", DEFAULT_MAX_RETRY),
    ],
)
def test_malformed_numbers_fall_back_or_clamp(
    key: str, value: str, attribute: str, expected: int
) -> None:
    config = load_config({key: value})

    assert getattr(config.publish, attribute) == expected


def test_non_positive_poll_interval_uses_default() -> None:
    config = load_config({"BATCH_POLL_INTERVAL_SECONDS": "-1"})

    assert config.batch.poll_interval_seconds == 10.0


def test_process_env_wins_over_env_file(tmp_path: Path) -> None:
    env_file = tmp_path / "importer.env"
    env_file.write_text(
        "# staging settings\nGATEWAY_URL=https://file.example/\nMAX_RETRY='4'\n",
        encoding="utf-8",
    )

    env = load_runtime_env(
        env_file=env_file, base_env={"GATEWAY_URL": "https://process.example/"}
    )

    assert env["GATEWAY_URL"] == "https://process.example/"
    assert env["MAX_RETRY"] == "4"


def test_runtime_env_override_is_cached() -> None:
    override_runtime_env({"OWNER_ADDRESS": "0xdef"})

    assert get_runtime_env()["OWNER_ADDRESS"] == "0xdef"
    assert load_config().publish.owner_address == "0xdef"
