"""Provisioning, download, upload and index publication stages."""

from __future__ import annotations

from .batches import BatchLifecycle
from .downloader import AssetDownloader, ChunkedDownloader
from .indexer import IndexSynchronizer
from .models import (
    Asset,
    Batch,
    BatchState,
    PublicationResult,
    PublicationStage,
    ResolutionVariant,
)
from .uploader import UploadOrchestrator

__all__ = [
    "Asset",
    "AssetDownloader",
    "Batch",
    "BatchLifecycle",
    "BatchState",
    "ChunkedDownloader",
    "IndexSynchronizer",
    "PublicationResult",
    "PublicationStage",
    "ResolutionVariant",
    "UploadOrchestrator",
]
