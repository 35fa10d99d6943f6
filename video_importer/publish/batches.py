"""Capacity reservation lifecycle: create, resolve identifier, await usability."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import logging
from typing import TypeVar

from video_importer.config import BatchConfig
from video_importer.errors import BatchTimeoutError, DependencyError
from video_importer.integrations.gateway_client import GatewayClient
from video_importer.integrations.http import ServiceClientError
from video_importer.logging import get_logger
from video_importer.logging_events import log_event
from video_importer.utils.time import Clock, SystemClock

from .models import Batch, BatchState

logger = get_logger("publish.batches")

_T = TypeVar("_T")


def compute_batch_amount(*, ttl_seconds: int, block_time_seconds: int, current_price: int) -> int:
    """Return the per-chunk amount that keeps a batch alive for ``ttl_seconds``."""

    if current_price <= 0:
        raise DependencyError(
            "Chain state reported a non-positive price",
            meta={"current_price": current_price},
        )
    return ttl_seconds * block_time_seconds // current_price


class BatchLifecycle:
    """Drive a :class:`Batch` from reservation to a usable state.

    Identifier assignment and usability are separate, eventually consistent
    facts on the gateway, so each gets its own poll with the same interval and
    wall-clock budget, measured on the injected clock.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        config: BatchConfig | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._gateway = gateway
        self._config = config or BatchConfig()
        self._clock = clock or SystemClock()

    @property
    def config(self) -> BatchConfig:
        return self._config

    async def create(self) -> Batch:
        """Price and reserve a batch; failures here are fatal and never retried."""

        batch = Batch(depth=self._config.depth)
        try:
            chain_state = await self._gateway.get_chain_state()
        except ServiceClientError as exc:
            raise DependencyError(
                "Unable to read the chain state for batch pricing",
                meta={"error": str(exc)},
            ) from exc

        amount = compute_batch_amount(
            ttl_seconds=self._config.ttl_seconds,
            block_time_seconds=self._config.block_time_seconds,
            current_price=chain_state.current_price,
        )
        try:
            reference = await self._gateway.create_batch(
                depth=self._config.depth, amount=amount
            )
        except ServiceClientError as exc:
            raise DependencyError(
                "Batch reservation request failed",
                meta={"depth": self._config.depth, "amount": amount, "error": str(exc)},
            ) from exc
        if not reference:
            raise DependencyError(
                "Batch reservation returned an empty reference",
                meta={"depth": self._config.depth, "amount": amount},
            )

        batch.reference = reference
        batch.amount = amount
        batch.advance(BatchState.REFERENCE_OBTAINED)
        log_event(
            logger,
            "batch.created",
            reference=reference,
            depth=self._config.depth,
            amount=amount,
        )
        return batch

    async def resolve_identifier(self, batch: Batch) -> str:
        """Poll until the gateway assigns a non-empty id to ``batch.reference``."""

        if batch.reference is None:
            raise ValueError("Batch has no reference to resolve")
        batch.advance(BatchState.IDENTIFIER_PENDING)
        reference = batch.reference

        async def _lookup() -> str:
            return (await self._gateway.get_batch_id(reference)).strip()

        batch_id = await self._poll(
            _lookup,
            done=bool,
            batch=batch,
            on_timeout=lambda waited: BatchTimeoutError(
                "Batch not available",
                batch_reference=reference,
                waited_seconds=waited,
            ),
        )
        batch.batch_id = batch_id
        batch.advance(BatchState.IDENTIFIER_RESOLVED)
        log_event(logger, "batch.identifier_resolved", reference=reference, batch_id=batch_id)
        return batch_id

    async def await_usable(self, batch: Batch) -> bool:
        """Poll until the batch reports usable; non-success responses mean not yet."""

        if not batch.batch_id:
            raise ValueError("Batch identifier must be resolved before awaiting usability")
        batch.advance(BatchState.USABILITY_PENDING)
        batch_id = batch.batch_id

        await self._poll(
            lambda: self._gateway.is_batch_usable(batch_id),
            done=bool,
            batch=batch,
            on_timeout=lambda waited: BatchTimeoutError(
                "Batch not usable",
                batch_id=batch_id,
                waited_seconds=waited,
            ),
        )
        batch.usable = True
        batch.advance(BatchState.USABLE)
        log_event(logger, "batch.usable", batch_id=batch_id)
        return True

    async def provision(self) -> Batch:
        """Create a batch and wait until uploads may target it."""

        batch = await self.create()
        await self.resolve_identifier(batch)
        await self.await_usable(batch)
        return batch

    async def _poll(
        self,
        probe: Callable[[], Awaitable[_T]],
        *,
        done: Callable[[_T], bool],
        batch: Batch,
        on_timeout: Callable[[float], BatchTimeoutError],
    ) -> _T:
        interval = self._config.poll_interval_seconds
        budget = self._config.timeout_seconds
        started = self._clock.monotonic()
        while True:
            waited = self._clock.monotonic() - started
            if waited >= budget:
                batch.advance(BatchState.TIMED_OUT)
                error = on_timeout(waited)
                log_event(
                    logger,
                    "batch.timed_out",
                    level=logging.WARNING,
                    meta=error.meta,
                )
                raise error

            await self._clock.sleep(interval)
            try:
                result = await probe()
            except ServiceClientError as exc:
                logger.debug("Batch poll failed, treating as not ready: %s", exc)
                continue
            if done(result):
                return result


__all__ = ["BatchLifecycle", "compute_batch_amount"]
