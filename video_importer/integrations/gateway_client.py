"""Async client for the storage gateway: pricing, batches, offers and uploads."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
import mimetypes
from pathlib import Path
from typing import Any

import httpx

from .http import (
    ServiceClient,
    ServiceInvalidResponseError,
    decode_text_payload,
)

CHAINSTATE_PATH = "api/v0.3/system/chainstate"
BATCHES_PATH = "api/v0.3/users/current/batches"
BATCH_REFERENCE_PATH = "api/v0.3/System/postageBatchRef"
OFFER_RESOURCE_PATH = "api/v0.3/Resources/{reference}/offers"
UPLOAD_PATH = "bzz"

_UPLOAD_READ_BYTES = 1_048_576


@dataclass(slots=True, frozen=True)
class ChainState:
    """Subset of the chain state the importer needs to price a batch."""

    current_price: int
    block_number: int | None = None


@dataclass(slots=True, frozen=True)
class BatchInfo:
    batch_id: str
    usable: bool
    depth: int | None = None
    amount: str | None = None


def guess_content_type(filename: str) -> str:
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


async def _iter_file(path: Path, chunk_size: int = _UPLOAD_READ_BYTES) -> AsyncIterator[bytes]:
    with path.open("rb") as handle:
        while True:
            chunk = await asyncio.to_thread(handle.read, chunk_size)
            if not chunk:
                return
            yield chunk


class GatewayClient(ServiceClient):
    """Gateway endpoints used while provisioning capacity and publishing files."""

    service_name = "gateway"

    async def get_chain_state(self) -> ChainState:
        response = await self._request("GET", CHAINSTATE_PATH)
        payload = self._decode_json(response)
        if not isinstance(payload, Mapping):
            raise ServiceInvalidResponseError("gateway returned an empty chain state")
        price = _coerce_int(payload.get("currentPrice"))
        if price is None:
            raise ServiceInvalidResponseError("gateway chain state has no current price")
        return ChainState(
            current_price=price,
            block_number=_coerce_int(payload.get("block")),
        )

    async def create_batch(self, *, depth: int, amount: int) -> str:
        """Reserve capacity and return the opaque batch reference."""

        response = await self._request(
            "POST",
            BATCHES_PATH,
            params={"depth": depth, "amount": amount},
            json={},
        )
        return decode_text_payload(response)

    async def get_batch_id(self, reference: str) -> str:
        """Return the batch id for ``reference`` or ``""`` when not assigned yet."""

        response = await self._send("GET", f"{BATCH_REFERENCE_PATH}/{reference}")
        if response.status_code != httpx.codes.OK:
            return ""
        return decode_text_payload(response)

    async def get_batch(self, batch_id: str) -> BatchInfo | None:
        """Return batch details, or ``None`` when the gateway does not report it."""

        response = await self._send("GET", f"{BATCHES_PATH}/{batch_id}")
        if not response.is_success:
            return None
        try:
            payload = response.json()
        except ValueError:
            return None
        if not isinstance(payload, Mapping):
            return None
        return BatchInfo(
            batch_id=str(payload.get("id") or batch_id),
            usable=bool(payload.get("usable", False)),
            depth=_coerce_int(payload.get("depth")),
            amount=None if payload.get("amount") is None else str(payload.get("amount")),
        )

    async def is_batch_usable(self, batch_id: str) -> bool:
        info = await self.get_batch(batch_id)
        return bool(info and info.usable)

    async def offer_resource(self, reference: str) -> bool:
        await self._request("POST", OFFER_RESOURCE_PATH.format(reference=reference), json={})
        return True

    async def upload_file(
        self,
        batch_id: str,
        path: Path,
        *,
        filename: str | None = None,
        content_type: str | None = None,
        pin: bool = False,
    ) -> str:
        """Stream ``path`` to the network and return its content address."""

        name = filename or path.name
        size = path.stat().st_size
        headers = {
            "Content-Type": content_type or guess_content_type(name),
            "Content-Length": str(size),
            "Swarm-Postage-Batch-Id": batch_id,
            "Swarm-Pin": "true" if pin else "false",
        }
        response = await self._request(
            "POST",
            UPLOAD_PATH,
            params={"name": name},
            content=_iter_file(path),
            headers=headers,
        )
        payload = self._decode_json(response)
        reference = payload.get("reference") if isinstance(payload, Mapping) else None
        if not isinstance(reference, str) or not reference.strip():
            raise ServiceInvalidResponseError("gateway upload returned no reference")
        return reference.strip()


def _coerce_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value.strip():
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


__all__ = [
    "BatchInfo",
    "ChainState",
    "GatewayClient",
    "guess_content_type",
]
