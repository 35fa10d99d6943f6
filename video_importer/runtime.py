"""Runtime helpers for wiring the importer components."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import httpx

from video_importer.config import ImporterConfig
from video_importer.integrations.gateway_client import GatewayClient
from video_importer.integrations.index_client import IndexClient
from video_importer.logging import get_logger
from video_importer.logging_events import log_event
from video_importer.publish.batches import BatchLifecycle
from video_importer.publish.downloader import (
    AssetDownloader,
    ChunkedDownloader,
    VariantProgressCallback,
)
from video_importer.publish.indexer import IndexSynchronizer
from video_importer.publish.media import (
    DurationProbe,
    ImageInspector,
    MutagenDurationProbe,
    PillowImageInspector,
)
from video_importer.publish.models import Asset, EventCallback, PublicationResult
from video_importer.publish.uploader import UploadOrchestrator
from video_importer.utils.retry import RetryExecutor, RetryPolicy
from video_importer.utils.time import Clock

logger = get_logger("runtime")


@dataclass(slots=True)
class ImporterRuntime:
    """Container for the importer runtime sharing one HTTP client."""

    http: httpx.AsyncClient
    gateway: GatewayClient
    index: IndexClient
    batches: BatchLifecycle
    downloader: AssetDownloader
    orchestrator: UploadOrchestrator
    owns_http: bool = True

    async def import_asset(
        self,
        asset: Asset,
        *,
        on_progress: VariantProgressCallback | None = None,
    ) -> PublicationResult:
        """Stage ``asset`` locally, then publish it end to end."""

        log_event(logger, "import.started", title=asset.title, variants=len(asset.variants))
        await self.downloader.download_asset(asset, on_progress)
        result = await self.orchestrator.publish(asset)
        log_event(
            logger,
            "import.completed",
            index_id=result.index_id,
            manifest_address=result.manifest_address,
        )
        return result

    async def aclose(self) -> None:
        if self.owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> ImporterRuntime:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def build_runtime(
    config: ImporterConfig,
    *,
    http: httpx.AsyncClient | None = None,
    clock: Clock | None = None,
    image_inspector: ImageInspector | None = None,
    duration_probe: DurationProbe | None = None,
    on_event: EventCallback | None = None,
) -> ImporterRuntime:
    """Initialise importer components using the supplied configuration."""

    download_dir = Path(config.download.download_dir).expanduser().resolve()
    download_dir.mkdir(parents=True, exist_ok=True)

    owns_http = http is None
    if http is None:
        http = httpx.AsyncClient(timeout=config.gateway.timeout_seconds)

    retry = RetryExecutor(RetryPolicy(max_attempts=config.publish.max_attempts))

    gateway = GatewayClient(
        http, base_url=config.gateway.base_url, api_key=config.gateway.api_key
    )
    index = IndexClient(http, base_url=config.index.base_url, api_key=config.index.api_key)

    batches = BatchLifecycle(gateway, config.batch, clock=clock)
    chunked = ChunkedDownloader(
        http,
        retry=retry,
        chunk_size=config.download.chunk_size_bytes,
        read_buffer_size=config.download.read_buffer_bytes,
    )
    downloader = AssetDownloader(
        chunked,
        duration_probe or MutagenDurationProbe(),
        download_dir=download_dir,
        retry=retry,
        thumbnail_url_template=config.download.thumbnail_url_template,
    )
    orchestrator = UploadOrchestrator(
        gateway=gateway,
        batches=batches,
        indexer=IndexSynchronizer(index),
        image_inspector=image_inspector or PillowImageInspector(),
        retry=retry,
        pin=config.publish.pin,
        offer=config.publish.offer,
        owner_address=config.publish.owner_address,
        permalink_prefix=config.publish.permalink_prefix,
        temp_dir=download_dir,
        on_event=on_event,
    )

    return ImporterRuntime(
        http=http,
        gateway=gateway,
        index=index,
        batches=batches,
        downloader=downloader,
        orchestrator=orchestrator,
        owns_http=owns_http,
    )


__all__ = ["ImporterRuntime", "build_runtime"]
