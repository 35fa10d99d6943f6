"""Command line entry point: ``python -m video_importer publish ASSET.json``."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
from dataclasses import replace
import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from video_importer.config import ImporterConfig, load_config, load_runtime_env
from video_importer.errors import AssetValidationError, ImporterError
from video_importer.logging import configure_logging, get_logger
from video_importer.logging_events import log_event
from video_importer.publish.downloader import VariantProgressCallback
from video_importer.publish.models import Asset, PublicationResult, ResolutionVariant
from video_importer.runtime import build_runtime

logger = get_logger("cli")


class _DocumentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VariantDocument(_DocumentModel):
    resolution: int = Field(gt=0)
    uri: str = Field(min_length=1)
    filename: str | None = None
    audio_bitrate: int | None = None


class AssetDocument(_DocumentModel):
    title: str
    description: str
    source_id: str
    index_id: str | None = None
    variants: list[VariantDocument] = Field(min_length=1)

    def to_asset(self) -> Asset:
        variants = [
            ResolutionVariant(
                resolution=variant.resolution,
                filename=variant.filename or f"{self.source_id}_{variant.resolution}.mp4",
                source_uri=variant.uri,
                audio_bitrate=variant.audio_bitrate,
            )
            for variant in self.variants
        ]
        return Asset(
            title=self.title,
            description=self.description,
            variants=variants,
            source_id=self.source_id,
            index_id=self.index_id,
        )


def load_asset(path: Path) -> Asset:
    """Parse an asset description file into an :class:`Asset`."""

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise AssetValidationError(f"Cannot read asset file: {exc}", meta={"path": str(path)}) from exc
    try:
        document = AssetDocument.model_validate_json(raw)
    except ValidationError as exc:
        raise AssetValidationError(
            "Invalid asset description", meta={"path": str(path), "errors": exc.error_count()}
        ) from exc
    return document.to_asset()


def _progress_logger() -> VariantProgressCallback:
    last_percent: dict[str, int] = {}

    def _report(variant: ResolutionVariant, copied: int, total: int) -> None:
        percent = copied * 100 // total if total else 100
        step = percent // 10
        if last_percent.get(variant.label) == step:
            return
        last_percent[variant.label] = step
        log_event(
            logger,
            "download.progress",
            level=logging.DEBUG,
            resolution=variant.label,
            percent=percent,
        )

    return _report


async def _publish(config: ImporterConfig, asset: Asset) -> PublicationResult:
    async with build_runtime(config) as runtime:
        return await runtime.import_asset(asset, on_progress=_progress_logger())


def _cli(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Video archive importer")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Read KEY=VALUE settings from this file before the process env",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    publish = subcommands.add_parser("publish", help="Download and publish one asset")
    publish.add_argument("asset", type=Path, help="Path to the asset description JSON")
    publish.add_argument("--pin", action="store_true", help="Pin uploaded content")
    publish.add_argument(
        "--offer", action="store_true", help="Offer uploaded content to all readers"
    )

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    config = load_config(load_runtime_env(env_file=args.env_file))
    if args.pin or args.offer:
        config = replace(
            config,
            publish=replace(
                config.publish,
                pin=config.publish.pin or args.pin,
                offer=config.publish.offer or args.offer,
            ),
        )

    try:
        asset = load_asset(args.asset)
        result = asyncio.run(_publish(config, asset))
    except ImporterError as exc:
        log_event(logger, "import.failed", level=logging.ERROR, code=exc.code.value)
        print(json.dumps({"ok": False, "error": exc.to_dict()}, default=str))
        return 1

    payload = {"ok": True, "permalink": asset.permalink, **result.to_dict()}
    print(json.dumps(payload))
    return 0


def main() -> None:
    raise SystemExit(_cli())


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
