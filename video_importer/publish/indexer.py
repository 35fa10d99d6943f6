"""Create-or-update publication of manifests in the index service."""

from __future__ import annotations

from video_importer.errors import DependencyError
from video_importer.integrations.http import ServiceClientError
from video_importer.integrations.index_client import IndexClient
from video_importer.logging import get_logger
from video_importer.logging_events import log_event

from .models import Asset, IndexOutcome

logger = get_logger("publish.indexer")


class IndexSynchronizer:
    """Converge to one index entry per asset identity across re-publications."""

    def __init__(self, index: IndexClient) -> None:
        self._index = index

    async def publish(self, metadata_address: str, external_id: str | None) -> str:
        outcome = await self.synchronize(metadata_address, external_id)
        return outcome.index_id

    async def synchronize(self, metadata_address: str, external_id: str | None) -> IndexOutcome:
        try:
            existing = None
            if external_id:
                existing = await self._index.get_video(external_id)

            if external_id and existing is not None:
                await self._index.update_video(external_id, metadata_address)
                log_event(
                    logger,
                    "index.updated",
                    index_id=external_id,
                    manifest_address=metadata_address,
                )
                return IndexOutcome(index_id=external_id, created=False)

            index_id = await self._index.create_video(metadata_address)
        except ServiceClientError as exc:
            raise DependencyError(
                "Index synchronisation failed",
                meta={
                    "index_id": external_id,
                    "manifest_address": metadata_address,
                    "error": str(exc),
                },
            ) from exc

        log_event(
            logger,
            "index.created",
            index_id=index_id,
            manifest_address=metadata_address,
        )
        return IndexOutcome(index_id=index_id, created=True)

    async def sync_asset(self, metadata_address: str, asset: Asset) -> IndexOutcome:
        """Publish ``metadata_address`` for ``asset`` and remember the entry id."""

        outcome = await self.synchronize(metadata_address, asset.index_id)
        asset.index_id = outcome.index_id
        return outcome


__all__ = ["IndexSynchronizer"]
