"""Async client for the index service that lists published videos."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from .http import ServiceClient, ServiceInvalidResponseError, decode_text_payload

VIDEOS_PATH = "api/v0.3/videos"
PARAMETERS_PATH = "api/v0.3/System/parameters"


@dataclass(slots=True, frozen=True)
class IndexParameters:
    """Limits the index enforces on published manifests."""

    description_max_length: int | None = None
    title_max_length: int | None = None


class IndexClient(ServiceClient):
    service_name = "index"

    async def get_video(self, video_id: str) -> Mapping[str, Any] | None:
        """Return the index entry for ``video_id`` or ``None`` when absent."""

        response = await self._send("GET", f"{VIDEOS_PATH}/{video_id}")
        if response.status_code != httpx.codes.OK:
            return None
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, Mapping) else {}

    async def get_last_valid_manifest(self, video_id: str | None) -> Mapping[str, Any] | None:
        if not video_id or not video_id.strip():
            return None
        response = await self._request("GET", f"{VIDEOS_PATH}/{video_id}")
        payload = self._decode_json(response)
        if not isinstance(payload, Mapping):
            return None
        manifest = payload.get("lastValidManifest")
        return manifest if isinstance(manifest, Mapping) else None

    async def create_video(self, manifest_hash: str) -> str:
        """Create an entry for ``manifest_hash`` and return the assigned id."""

        response = await self._request(
            "POST", VIDEOS_PATH, json={"manifestHash": manifest_hash}
        )
        video_id = decode_text_payload(response)
        if not video_id:
            raise ServiceInvalidResponseError("index returned no id for the created video")
        return video_id

    async def update_video(self, video_id: str, manifest_hash: str) -> None:
        await self._request(
            "PUT",
            f"{VIDEOS_PATH}/{video_id}",
            params={"newHash": manifest_hash},
            json={},
        )

    async def delete_video(self, video_id: str) -> None:
        await self._request("DELETE", f"{VIDEOS_PATH}/{video_id}")

    async def get_parameters(self) -> IndexParameters:
        response = await self._request("GET", PARAMETERS_PATH)
        payload = self._decode_json(response)
        if not isinstance(payload, Mapping):
            return IndexParameters()
        return IndexParameters(
            description_max_length=_optional_int(payload.get("videoDescriptionMaxLength")),
            title_max_length=_optional_int(payload.get("videoTitleMaxLength")),
        )


def _optional_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


__all__ = ["IndexClient", "IndexParameters"]
