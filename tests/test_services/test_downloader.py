from __future__ import annotations

import httpx
import pytest

from scenesmith.services.downloader import ImageDownloader, ImageFetcherProtocol
from scenesmith.services.http import is_retryable_status, request_with_retry


@pytest.mark.asyncio
async def test_fetch_returns_body_and_follows_redirects(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old.png":
            return httpx.Response(302, headers={"Location": "http://cdn.test/new.png"})
        return httpx.Response(200, content=b"\x89PNG-data")

    downloader = ImageDownloader(test_settings, transport=httpx.MockTransport(handler))

    assert isinstance(downloader, ImageFetcherProtocol)
    assert await downloader.fetch("http://cdn.test/old.png") == b"\x89PNG-data"


@pytest.mark.asyncio
async def test_fetch_empty_body_raises(test_settings):
    downloader = ImageDownloader(test_settings, transport=httpx.MockTransport(lambda r: httpx.Response(200)))

    with pytest.raises(RuntimeError, match="Empty response body"):
        await downloader.fetch("http://cdn.test/a.png")


@pytest.mark.asyncio
async def test_fetch_http_error_raises(test_settings):
    downloader = ImageDownloader(test_settings, transport=httpx.MockTransport(lambda r: httpx.Response(404)))

    with pytest.raises(RuntimeError, match="failed after retries"):
        await downloader.fetch("http://cdn.test/a.png")


def test_retryable_status():
    assert is_retryable_status(429)
    assert is_retryable_status(503)
    assert not is_retryable_status(404)


@pytest.mark.asyncio
async def test_request_with_retry_recovers_from_transient_status():
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"ok": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        res = await request_with_retry(client, "GET", "http://mj.test/x", max_retries=3, initial_delay_s=0.0)

    assert res.json() == {"ok": True}
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_request_with_retry_does_not_retry_client_errors():
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(400)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(RuntimeError):
            await request_with_retry(client, "GET", "http://mj.test/x", max_retries=3, initial_delay_s=0.0)

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_request_with_retry_retries_network_errors():
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ConnectError("refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(RuntimeError, match="refused"):
            await request_with_retry(client, "GET", "http://mj.test/x", max_retries=2, initial_delay_s=0.0)

    assert len(calls) == 3


@pytest.mark.asyncio
async def test_request_with_retry_can_skip_transport_error_retries():
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ReadTimeout("slow", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(RuntimeError, match="slow"):
            await request_with_retry(
                client, "POST", "http://mj.test/x",
                max_retries=3, initial_delay_s=0.0, retry_transport_errors=False,
            )

    assert len(calls) == 1
