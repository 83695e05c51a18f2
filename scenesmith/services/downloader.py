from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import httpx

from scenesmith.config import Settings
from scenesmith.services.http import request_with_retry

logger = logging.getLogger(__name__)


@runtime_checkable
class ImageFetcherProtocol(Protocol):
    async def fetch(self, url: str) -> bytes:
        ...


class ImageDownloader:
    """把后端托管的图片 URL 下载为本地字节"""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._transport = transport

    async def fetch(self, url: str) -> bytes:
        timeout = httpx.Timeout(self.settings.request_timeout_s, connect=30.0)
        async with httpx.AsyncClient(
            timeout=timeout,
            transport=self._transport,
            follow_redirects=True,
        ) as client:
            res = await request_with_retry(
                client,
                "GET",
                url,
                max_retries=self.settings.max_retries,
                headers={"User-Agent": self.settings.app_name},
            )
        data = res.content
        if not data:
            raise RuntimeError(f"Empty response body when downloading {url}")
        logger.debug("Downloaded %d bytes from %s", len(data), url)
        return data
