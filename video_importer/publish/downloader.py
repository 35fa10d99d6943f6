"""Chunked, range-based downloads of staged media and thumbnails."""

from __future__ import annotations

from collections.abc import Callable
import math
from pathlib import Path

import httpx

from video_importer.config import (
    DEFAULT_CHUNK_SIZE_BYTES,
    DEFAULT_READ_BUFFER_BYTES,
    DEFAULT_THUMBNAIL_URL_TEMPLATE,
)
from video_importer.errors import AssetValidationError
from video_importer.integrations.http import ServiceClientError
from video_importer.logging import get_logger
from video_importer.logging_events import log_event
from video_importer.utils.retry import RetryExecutor

from .media import DurationProbe
from .models import Asset, ProgressCallback, ResolutionVariant

logger = get_logger("publish.downloader")

VariantProgressCallback = Callable[[ResolutionVariant, int, int], None]


class DownloadError(ServiceClientError):
    """Raised when a transfer failed in a way a re-request may fix."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=True)


def byte_ranges(length: int, chunk_size: int) -> list[tuple[int, int]]:
    """Partition ``[0, length)`` into inclusive ``(start, end)`` ranges."""

    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    count = math.ceil(length / chunk_size)
    return [
        (index * chunk_size, min(length, (index + 1) * chunk_size) - 1)
        for index in range(count)
    ]


class _ProgressTracker:
    """Report monotonically non-decreasing progress across range retries."""

    def __init__(self, total: int, callback: ProgressCallback | None) -> None:
        self.total = total
        self._callback = callback
        self._reported = 0

    def report(self, copied: int) -> None:
        if copied < self._reported:
            return
        self._reported = copied
        if self._callback is not None:
            self._callback(copied, self.total)


class ChunkedDownloader:
    """Fetch a remote byte stream in fixed-size ranges into a single file.

    Ranges are requested strictly in ascending order and each one is written
    at its own offset, so a failed range is re-requested on its own without
    restarting the transfer.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        retry: RetryExecutor | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE_BYTES,
        read_buffer_size: int = DEFAULT_READ_BUFFER_BYTES,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if read_buffer_size <= 0:
            raise ValueError("read_buffer_size must be positive")
        self._http = http
        self._retry = retry or RetryExecutor()
        self._chunk_size = chunk_size
        self._read_buffer_size = read_buffer_size

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    async def content_length(self, uri: str) -> int:
        """Probe ``uri`` with HEAD and return its length, failing on unknown or zero."""

        async def _probe() -> int | None:
            try:
                response = await self._http.head(uri, follow_redirects=True)
            except httpx.HTTPError as exc:
                raise DownloadError(f"Length probe for {uri} failed: {exc}") from exc
            if not response.is_success:
                raise DownloadError(
                    f"Length probe for {uri} returned status {response.status_code}"
                )
            raw = response.headers.get("content-length")
            if raw is None:
                return None
            try:
                return int(raw)
            except ValueError:
                return None

        length = await self._retry.run(_probe, operation="content length probe")
        if not length or length <= 0:
            raise AssetValidationError(
                "File has no content", meta={"uri": uri, "content_length": length}
            )
        return length

    async def download(
        self,
        uri: str,
        destination: Path,
        on_progress: ProgressCallback | None = None,
    ) -> int:
        """Download ``uri`` into ``destination`` and return the bytes written."""

        length = await self.content_length(uri)
        ranges = byte_ranges(length, self._chunk_size)
        tracker = _ProgressTracker(length, on_progress)
        destination.parent.mkdir(parents=True, exist_ok=True)

        with destination.open("wb") as output:
            for start, end in ranges:
                await self._retry.run(
                    lambda start=start, end=end: self._fetch_range(
                        uri, output, start, end, tracker
                    ),
                    operation=f"download of bytes {start}-{end}",
                )
            output.truncate(length)

        log_event(
            logger,
            "download.completed",
            uri=uri,
            path=str(destination),
            bytes_written=length,
            ranges=len(ranges),
        )
        return length

    async def _fetch_range(
        self,
        uri: str,
        output,
        start: int,
        end: int,
        tracker: _ProgressTracker,
    ) -> int:
        expected = end - start + 1
        headers = {"Range": f"bytes={start}-{end}"}
        output.seek(start)
        written = 0
        try:
            async with self._http.stream(
                "GET", uri, headers=headers, follow_redirects=True
            ) as response:
                if not response.is_success:
                    raise DownloadError(
                        f"Range {start}-{end} of {uri} returned status {response.status_code}"
                    )
                if (
                    response.status_code != httpx.codes.PARTIAL_CONTENT
                    and not (start == 0 and end + 1 == tracker.total)
                ):
                    raise DownloadError(f"Server ignored the range request for {uri}")
                async for chunk in response.aiter_bytes(self._read_buffer_size):
                    if not chunk:
                        continue
                    if written + len(chunk) > expected:
                        chunk = chunk[: expected - written]
                    output.write(chunk)
                    written += len(chunk)
                    tracker.report(start + written)
                    if written >= expected:
                        break
        except httpx.HTTPError as exc:
            raise DownloadError(f"Range {start}-{end} of {uri} failed: {exc}") from exc

        if written != expected:
            raise DownloadError(
                f"Range {start}-{end} of {uri} ended after {written} of {expected} bytes"
            )
        return written

    async def download_thumbnail(
        self,
        asset_source_id: str,
        destination_folder: Path,
        *,
        url_template: str = DEFAULT_THUMBNAIL_URL_TEMPLATE,
    ) -> Path:
        """Fetch the thumbnail for ``asset_source_id`` with a single GET per attempt."""

        url = url_template.format(video_id=asset_source_id)
        destination = destination_folder / f"{asset_source_id}.jpg"

        async def _fetch() -> Path:
            try:
                response = await self._http.get(url, follow_redirects=True)
            except httpx.HTTPError as exc:
                raise DownloadError(f"Thumbnail request {url} failed: {exc}") from exc
            if not response.is_success:
                raise DownloadError(
                    f"Thumbnail request {url} returned status {response.status_code}"
                )
            if not response.content:
                raise AssetValidationError("Downloaded thumbnail is empty", meta={"url": url})
            destination_folder.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(response.content)
            return destination

        return await self._retry.run(_fetch, operation=f"download of thumbnail {url}")


class AssetDownloader:
    """Stage every variant and the thumbnail of an asset on local disk."""

    def __init__(
        self,
        downloader: ChunkedDownloader,
        duration_probe: DurationProbe,
        *,
        download_dir: Path,
        retry: RetryExecutor | None = None,
        thumbnail_url_template: str = DEFAULT_THUMBNAIL_URL_TEMPLATE,
    ) -> None:
        self._downloader = downloader
        self._duration_probe = duration_probe
        self._download_dir = download_dir
        self._retry = retry or RetryExecutor()
        self._thumbnail_url_template = thumbnail_url_template

    async def download_asset(
        self,
        asset: Asset,
        on_progress: VariantProgressCallback | None = None,
    ) -> Asset:
        if not asset.variants:
            raise AssetValidationError("Asset has no resolution variants")
        if not asset.source_id:
            raise AssetValidationError("Asset has no source id for its thumbnail")

        for variant in asset.variants:
            await self._download_variant(asset, variant, on_progress)

        asset.thumbnail_path = await self._downloader.download_thumbnail(
            asset.source_id,
            self._download_dir,
            url_template=self._thumbnail_url_template,
        )
        return asset

    async def _download_variant(
        self,
        asset: Asset,
        variant: ResolutionVariant,
        on_progress: VariantProgressCallback | None,
    ) -> None:
        if not variant.source_uri:
            raise AssetValidationError(
                "Variant has no source URI", meta={"resolution": variant.label}
            )
        source_uri = variant.source_uri
        destination = self._download_dir / variant.filename

        def _report(copied: int, total: int) -> None:
            if on_progress is not None:
                on_progress(variant, copied, total)

        await self._retry.run(
            lambda: self._downloader.download(source_uri, destination, _report),
            operation=f"download of video {source_uri}",
        )

        size = destination.stat().st_size
        duration = self._duration_probe.duration_seconds(destination)
        if duration <= 0:
            raise AssetValidationError(
                f"Invalid Duration: {duration}",
                meta={"resolution": variant.label, "path": str(destination)},
            )
        variant.local_path = destination
        variant.size_bytes = size
        variant.bitrate = math.ceil(size * 8 / duration)
        asset.duration_seconds = duration
        log_event(
            logger,
            "download.variant_staged",
            resolution=variant.label,
            size_bytes=size,
            duration_seconds=duration,
        )


__all__ = [
    "AssetDownloader",
    "ChunkedDownloader",
    "DownloadError",
    "byte_ranges",
]
