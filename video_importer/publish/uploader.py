"""Upload & offer orchestration for one asset against one ready batch."""

from __future__ import annotations

import contextlib
import os
from pathlib import Path
import tempfile
from typing import Any

from video_importer.config import DEFAULT_PERMALINK_PREFIX
from video_importer.errors import AssetValidationError, PipelineStateError
from video_importer.integrations.gateway_client import GatewayClient
from video_importer.logging import get_logger
from video_importer.logging_events import log_event
from video_importer.utils.retry import RetryExecutor, with_retry

from .batches import BatchLifecycle
from .indexer import IndexSynchronizer
from .manifest import VideoManifest, build_manifest
from .media import ImageInspector
from .models import (
    Asset,
    Batch,
    EventCallback,
    PublicationResult,
    PublicationRun,
    PublicationStage,
)

logger = get_logger("publish.uploader")

MANIFEST_FILENAME = "metadata.json"
MANIFEST_CONTENT_TYPE = "application/json"


def _remove_file(path: Path | None) -> None:
    if path is None:
        return
    with contextlib.suppress(FileNotFoundError):
        path.unlink()


class UploadOrchestrator:
    """Sequence batch readiness, thumbnail, variants, manifest and index.

    Every stage checks the stage before it completed, so the ordering
    ``batch -> thumbnail -> variants -> manifest -> index`` is enforced rather
    than implied. Uploads and offers go through the bounded retry executor.
    """

    def __init__(
        self,
        *,
        gateway: GatewayClient,
        batches: BatchLifecycle,
        indexer: IndexSynchronizer,
        image_inspector: ImageInspector,
        retry: RetryExecutor | None = None,
        pin: bool = False,
        offer: bool = False,
        owner_address: str | None = None,
        permalink_prefix: str = DEFAULT_PERMALINK_PREFIX,
        temp_dir: Path | None = None,
        on_event: EventCallback | None = None,
    ) -> None:
        self._gateway = gateway
        self._batches = batches
        self._indexer = indexer
        self._image_inspector = image_inspector
        self._retry = retry or RetryExecutor()
        self._pin = pin
        self._offer = offer
        self._owner_address = owner_address
        self._permalink_prefix = permalink_prefix
        self._temp_dir = temp_dir
        self._on_event = on_event

    async def publish(self, asset: Asset, *, batch: Batch | None = None) -> PublicationResult:
        """Publish ``asset``; provisions a fresh batch unless a ready one is given."""

        self._validate_asset(asset)
        run = PublicationRun(asset=asset)

        await self.prepare_batch(run, batch)
        await self.upload_thumbnail(run)
        await self.upload_variants(run)
        await self.upload_metadata(run)
        await self.publish_index(run)
        return self._build_result(run)

    async def prepare_batch(self, run: PublicationRun, batch: Batch | None = None) -> Batch:
        self._require(run, PublicationStage.PENDING, stage=PublicationStage.BATCH_READY)
        if batch is None:
            batch = await self._batches.provision()
        elif not batch.ready:
            raise PipelineStateError(
                "Supplied batch is not usable yet",
                stage=PublicationStage.BATCH_READY.value,
                required=batch.state.value,
            )
        run.batch = batch
        self._advance(run, PublicationStage.BATCH_READY, batch_id=batch.batch_id)
        return batch

    async def upload_thumbnail(self, run: PublicationRun) -> str:
        self._require(run, PublicationStage.BATCH_READY, stage=PublicationStage.THUMBNAIL_UPLOADED)
        batch_id = self._batch_id(run)
        path = run.asset.thumbnail_path
        if path is None:
            raise AssetValidationError("Asset has no thumbnail")

        try:
            info = self._image_inspector.inspect(path)
            address = await self._retry.run(
                lambda: self._gateway.upload_file(batch_id, path, pin=self._pin),
                operation="upload of thumbnail",
                accept=bool,
            )
        finally:
            _remove_file(path)

        run.thumbnail_info = info
        run.thumbnail_address = address
        if self._offer:
            await self._offer_resource(run, address)
        self._advance(run, PublicationStage.THUMBNAIL_UPLOADED, thumbnail_address=address)
        return address

    async def upload_variants(self, run: PublicationRun) -> dict[str, str]:
        self._require(
            run, PublicationStage.THUMBNAIL_UPLOADED, stage=PublicationStage.VARIANTS_UPLOADED
        )
        batch_id = self._batch_id(run)
        addresses: dict[str, str] = {}

        for variant in run.asset.variants:
            if variant.uploaded:
                self._emit(run, "variant.skipped", resolution=variant.label)
                addresses[variant.label] = variant.content_address or ""
                continue
            path = variant.local_path
            if path is None:
                raise AssetValidationError(
                    "Variant was not downloaded", meta={"resolution": variant.label}
                )
            self._emit(run, "variant.uploading", resolution=variant.label)
            address = await self._retry.run(
                lambda path=path: self._gateway.upload_file(batch_id, path, pin=self._pin),
                operation=f"upload of video {variant.label}",
                accept=bool,
            )
            variant.content_address = address
            if self._offer:
                await self._offer_resource(run, address)
            _remove_file(path)
            addresses[variant.label] = address
            self._emit(run, "variant.uploaded", resolution=variant.label, address=address)

        self._advance(run, PublicationStage.VARIANTS_UPLOADED, variants=len(addresses))
        return addresses

    async def upload_metadata(self, run: PublicationRun) -> str:
        self._require(
            run, PublicationStage.VARIANTS_UPLOADED, stage=PublicationStage.MANIFEST_UPLOADED
        )
        if run.thumbnail_address is None or run.thumbnail_info is None:
            raise PipelineStateError(
                "Thumbnail details are missing",
                stage=PublicationStage.MANIFEST_UPLOADED.value,
                required=PublicationStage.THUMBNAIL_UPLOADED.value,
            )
        manifest = build_manifest(
            run.asset,
            batch_id=self._batch_id(run),
            thumbnail_address=run.thumbnail_address,
            thumbnail=run.thumbnail_info,
            owner_address=self._owner_address,
        )
        address = await self._retry.run(
            lambda: self.upload_manifest(manifest),
            operation="upload of metadata",
            accept=bool,
        )
        run.manifest_address = address
        run.asset.permalink = self._permalink_prefix + address
        if self._offer:
            await self._offer_resource(run, address)
        self._advance(run, PublicationStage.MANIFEST_UPLOADED, manifest_address=address)
        return address

    async def upload_manifest(self, manifest: VideoManifest) -> str:
        """Serialise ``manifest`` to a temporary file and upload it with retries."""

        fd, raw_path = tempfile.mkstemp(
            prefix="video-importer-manifest-",
            suffix=".json",
            dir=str(self._temp_dir) if self._temp_dir is not None else None,
        )
        tmp_path = Path(raw_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(manifest.to_json())
            return await with_retry(
                lambda: self._gateway.upload_file(
                    manifest.batch_id,
                    tmp_path,
                    filename=MANIFEST_FILENAME,
                    content_type=MANIFEST_CONTENT_TYPE,
                    pin=self._pin,
                ),
                operation="upload of metadata file",
                policy=self._retry.policy,
                accept=bool,
            )
        finally:
            _remove_file(tmp_path)

    async def publish_index(self, run: PublicationRun) -> str:
        self._require(run, PublicationStage.MANIFEST_UPLOADED, stage=PublicationStage.INDEXED)
        address = run.manifest_address or ""
        outcome = await self._indexer.sync_asset(address, run.asset)
        run.index = outcome
        self._advance(
            run,
            PublicationStage.INDEXED,
            index_id=outcome.index_id,
            created=outcome.created,
        )
        return outcome.index_id

    async def _offer_resource(self, run: PublicationRun, reference: str) -> None:
        await self._retry.run(
            lambda: self._gateway.offer_resource(reference),
            operation=f"offer of resource {reference}",
            accept=bool,
        )
        self._emit(run, "resource.offered", address=reference)

    @staticmethod
    def _validate_asset(asset: Asset) -> None:
        if not asset.variants:
            raise AssetValidationError("Asset has no resolution variants")
        if not asset.title or not asset.title.strip():
            raise AssetValidationError("Title not defined")
        if not asset.description or not asset.description.strip():
            raise AssetValidationError("Description not defined")
        if asset.duration_seconds <= 0:
            raise AssetValidationError(
                f"Invalid Duration: {asset.duration_seconds}",
                meta={"title": asset.title},
            )
        if asset.thumbnail_path is None:
            raise AssetValidationError("Asset has no thumbnail")

    @staticmethod
    def _require(
        run: PublicationRun, required: PublicationStage, *, stage: PublicationStage
    ) -> None:
        if run.stage is not required:
            raise PipelineStateError(
                f"Stage {stage.value} requires {required.value}, run is at {run.stage.value}",
                stage=stage.value,
                required=required.value,
            )

    @staticmethod
    def _batch_id(run: PublicationRun) -> str:
        if run.batch is None or not run.batch.ready or not run.batch.batch_id:
            raise PipelineStateError(
                "Uploads require a usable batch",
                stage=run.stage.value,
                required=PublicationStage.BATCH_READY.value,
            )
        return run.batch.batch_id

    def _advance(self, run: PublicationRun, stage: PublicationStage, **meta: Any) -> None:
        run.stage = stage
        self._emit(run, f"stage.{stage.value}", **meta)

    def _emit(self, run: PublicationRun, name: str, **meta: Any) -> None:
        event = run.record_event(name, meta=meta or None)
        log_event(logger, f"publish.{name}", meta=meta or None)
        if self._on_event is not None:
            self._on_event(event)

    @staticmethod
    def _build_result(run: PublicationRun) -> PublicationResult:
        if run.batch is None or run.index is None:
            raise PipelineStateError(
                "Publication did not complete",
                stage=run.stage.value,
                required=PublicationStage.INDEXED.value,
            )
        return PublicationResult(
            batch_id=run.batch.batch_id or "",
            thumbnail_address=run.thumbnail_address or "",
            variant_addresses={
                variant.label: variant.content_address or ""
                for variant in run.asset.variants
            },
            manifest_address=run.manifest_address or "",
            index_id=run.index.index_id,
            created_index_entry=run.index.created,
            events=tuple(run.events),
        )


__all__ = ["MANIFEST_FILENAME", "UploadOrchestrator"]
