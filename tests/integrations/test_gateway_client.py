from pathlib import Path

import httpx
import pytest

from video_importer.integrations.gateway_client import GatewayClient
from video_importer.integrations.http import (
    ServiceClientError,
    ServiceHTTPStatusError,
    ServiceTimeoutError,
)
from tests.support.fakes import GATEWAY_URL, FakeNetwork


def _client(handler, *, api_key: str | None = None) -> GatewayClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GatewayClient(http, base_url=GATEWAY_URL, api_key=api_key)


@pytest.mark.asyncio
async def test_chain_state_reads_current_price() -> None:
    network = FakeNetwork(price=25)
    client = _client(network.handler)

    state = await client.get_chain_state()

    assert state.current_price == 25
    assert state.block_number == 42


@pytest.mark.asyncio
async def test_create_batch_sends_depth_and_amount_and_api_key() -> None:
    captured: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, text='"ref-9"')

    client = _client(_handler, api_key="secret")

    reference = await client.create_batch(depth=20, amount=1234)

    assert reference == "ref-9"
    request = captured[0]
    assert request.method == "POST"
    assert request.url.path == "/api/v0.3/users/current/batches"
    assert request.url.params["depth"] == "20"
    assert request.url.params["amount"] == "1234"
    assert request.headers["X-Api-Key"] == "secret"


@pytest.mark.asyncio
async def test_batch_id_is_empty_until_assigned() -> None:
    network = FakeNetwork(id_ready_after=2)
    client = _client(network.handler)

    assert await client.get_batch_id("ref-1") == ""
    assert await client.get_batch_id("ref-1") == "batch-1"


@pytest.mark.asyncio
async def test_batch_usability_treats_errors_as_not_usable() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    client = _client(_handler)

    assert await client.is_batch_usable("batch-1") is False
    assert await client.get_batch("batch-1") is None


@pytest.mark.asyncio
async def test_upload_file_streams_with_batch_and_pin_headers(tmp_path: Path) -> None:
    network = FakeNetwork()
    client = _client(network.handler)
    source = tmp_path / "clip_720.mp4"
    source.write_bytes(b"video-bytes")

    reference = await client.upload_file("batch-1", source, pin=True)

    assert reference == "addr-clip_720.mp4"
    record = network.uploads[0]
    assert record.batch_id == "batch-1"
    assert record.pin == "true"
    assert record.content_type == "video/mp4"
    assert record.body == b"video-bytes"


@pytest.mark.asyncio
async def test_upload_file_uses_explicit_name_and_content_type(tmp_path: Path) -> None:
    network = FakeNetwork()
    client = _client(network.handler)
    source = tmp_path / "tmp123.json"
    source.write_text("{}")

    await client.upload_file(
        "batch-1", source, filename="metadata.json", content_type="application/json"
    )

    record = network.uploads[0]
    assert record.name == "metadata.json"
    assert record.content_type == "application/json"
    assert record.pin == "false"


@pytest.mark.asyncio
async def test_server_errors_are_flagged_retryable(tmp_path: Path) -> None:
    network = FakeNetwork(upload_failures={"clip.mp4": 1})
    client = _client(network.handler)
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"x")

    with pytest.raises(ServiceHTTPStatusError) as excinfo:
        await client.upload_file("batch-1", source)

    assert excinfo.value.status_code == 500
    assert excinfo.value.retryable is True
    assert excinfo.value.body == "upload failed"


@pytest.mark.asyncio
async def test_transport_failures_are_wrapped() -> None:
    def _timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    def _broken(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    with pytest.raises(ServiceTimeoutError):
        await _client(_timeout).get_chain_state()
    with pytest.raises(ServiceClientError) as excinfo:
        await _client(_broken).offer_resource("addr-1")
    assert excinfo.value.retryable is True


@pytest.mark.asyncio
async def test_offer_resource_posts_to_offers_endpoint() -> None:
    network = FakeNetwork()
    client = _client(network.handler)

    assert await client.offer_resource("addr-7") is True
    assert network.offers == ["addr-7"]


@pytest.mark.asyncio
@pytest.mark.parametrize("body", ["null", "{}", "[]", "true"])
async def test_batch_id_ignores_non_identifier_json(body: str) -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body)

    assert await _client(_handler).get_batch_id("ref-1") == ""


@pytest.mark.asyncio
async def test_upload_file_streams_multiple_read_chunks(tmp_path: Path) -> None:
    network = FakeNetwork()
    client = _client(network.handler)
    source = tmp_path / "large.mp4"
    payload = bytes(range(256)) * 10_000
    source.write_bytes(payload)

    await client.upload_file("batch-1", source)

    assert len(payload) > 2 * 1_048_576
    assert network.uploads[0].body == payload
