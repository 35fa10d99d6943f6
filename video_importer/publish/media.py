"""Media inspection collaborators: thumbnail hash/dimensions and video duration."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from video_importer.errors import AssetValidationError
from video_importer.logging import get_logger

from .models import ThumbnailInfo

logger = get_logger("publish.media")

_HASH_EDGE = 8


class ImageInspector(Protocol):
    def inspect(self, path: Path) -> ThumbnailInfo:
        """Return the dimensions and a short perceptual hash of ``path``."""


class DurationProbe(Protocol):
    def duration_seconds(self, path: Path) -> int:
        """Return the media duration of ``path`` in whole seconds, ``0`` if unknown."""


class PillowImageInspector:
    """Average-hash thumbnails with :mod:`PIL`."""

    def inspect(self, path: Path) -> ThumbnailInfo:
        from PIL import Image, UnidentifiedImageError

        try:
            with Image.open(path) as image:
                width, height = image.size
                grey = image.convert("L").resize((_HASH_EDGE, _HASH_EDGE))
                pixels = list(grey.tobytes())
        except (OSError, UnidentifiedImageError) as exc:
            raise AssetValidationError(
                "Thumbnail is not a readable image", meta={"path": str(path)}
            ) from exc

        mean = sum(pixels) / len(pixels)
        bits = 0
        for value in pixels:
            bits = (bits << 1) | (1 if value >= mean else 0)
        return ThumbnailInfo(width=width, height=height, hash=f"{bits:016x}")


class MutagenDurationProbe:
    """Read container durations with :mod:`mutagen`."""

    def duration_seconds(self, path: Path) -> int:
        from mutagen import File, MutagenError

        try:
            media = File(path)
        except MutagenError as exc:
            logger.debug("Unable to parse media file %s: %s", path, exc)
            return 0
        info = getattr(media, "info", None) if media is not None else None
        length = getattr(info, "length", None)
        if not isinstance(length, (int, float)) or length <= 0:
            return 0
        return int(round(length))


__all__ = [
    "DurationProbe",
    "ImageInspector",
    "MutagenDurationProbe",
    "PillowImageInspector",
]
