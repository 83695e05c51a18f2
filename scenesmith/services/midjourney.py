"""Midjourney 图像生成服务（midjourney-proxy HTTP 接口）

使用异步任务模式：提交任务 → 轮询状态 → 获取结果
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from scenesmith.config import Settings
from scenesmith.exceptions import BackendConnectionError
from scenesmith.schemas.generation import GenerationResult, Variation
from scenesmith.services.backend import ProgressCallback
from scenesmith.services.http import SUBMIT_RETRYABLE_STATUS, request_with_retry

logger = logging.getLogger(__name__)


class MidjourneyService:
    """Midjourney 代理服务客户端

    connect() 之后才能提交任务；也可以用 ``async with`` 管理连接。
    """

    IMAGINE_ENDPOINT = "/mj/submit/imagine"
    CHANGE_ENDPOINT = "/mj/submit/change"
    FETCH_ENDPOINT = "/mj/task/{task_id}/fetch"
    QUEUE_ENDPOINT = "/mj/task/queue"

    # 提交返回码：1 成功，21 任务已存在，22 排队中
    SUBMIT_ACCEPTED_CODES = {1, 21, 22}

    STATUS_SUCCESS = "SUCCESS"
    STATUS_FAILURE = "FAILURE"
    STATUS_CANCEL = "CANCEL"

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.poll_interval = settings.midjourney_poll_interval_s
        self.max_poll_time = settings.midjourney_max_poll_time_s
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "MidjourneyService":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        if self._client is not None:
            return
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.request_timeout_s, connect=30.0),
            headers=self.settings.midjourney_headers(),
            transport=self._transport,
        )
        try:
            await request_with_retry(
                client,
                "GET",
                self.settings.build_url(self.QUEUE_ENDPOINT),
                max_retries=self.settings.max_retries,
            )
        except Exception as exc:
            await client.aclose()
            raise BackendConnectionError(
                f"Cannot reach Midjourney proxy at {self.settings.midjourney_base_url}: {exc}",
                details={"base_url": self.settings.midjourney_base_url},
            ) from exc
        self._client = client
        logger.info("Connected to Midjourney proxy at %s", self.settings.midjourney_base_url)

    async def disconnect(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        await client.aclose()
        logger.info("Disconnected from Midjourney proxy")

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise BackendConnectionError("Midjourney service is not connected")
        return self._client

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        # 超时后重发可能让代理排上第二个任务，只在 429/503 时重试
        res = await request_with_retry(
            self._require_client(),
            "POST",
            self.settings.build_url(endpoint),
            max_retries=self.settings.max_retries,
            retry_statuses=SUBMIT_RETRYABLE_STATUS,
            retry_transport_errors=False,
            json=payload,
        )
        return res.json()

    async def _submit(self, endpoint: str, payload: dict[str, Any]) -> str | None:
        """提交任务，返回任务 ID；被拒绝时返回 None"""
        data = await self._post(endpoint, payload)
        code = data.get("code")
        task_id = data.get("result")
        if code not in self.SUBMIT_ACCEPTED_CODES or not task_id:
            logger.warning(
                "Midjourney proxy rejected submission (code=%s): %s",
                code,
                data.get("description"),
            )
            return None
        return str(task_id)

    async def query_task(self, task_id: str) -> dict[str, Any]:
        res = await request_with_retry(
            self._require_client(),
            "GET",
            self.settings.build_url(self.FETCH_ENDPOINT.format(task_id=task_id)),
            max_retries=self.settings.max_retries,
        )
        return res.json()

    async def wait_for_completion(
        self,
        task_id: str,
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, Any] | None:
        """轮询任务直到成功、失败或超时

        Returns:
            成功时返回任务数据；失败、取消或超时返回 None
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.max_poll_time
        while True:
            task = await self.query_task(task_id)
            status = task.get("status")

            if status == self.STATUS_SUCCESS:
                return task
            if status in (self.STATUS_FAILURE, self.STATUS_CANCEL):
                logger.warning("Midjourney task %s ended with %s: %s", task_id, status, task.get("failReason"))
                return None

            if on_progress is not None:
                self._notify(on_progress, task.get("imageUrl") or "", task.get("progress") or "0%")

            if loop.time() >= deadline:
                logger.warning("Midjourney task %s timed out after %.0f seconds", task_id, self.max_poll_time)
                return None
            await asyncio.sleep(self.poll_interval)

    def _notify(self, on_progress: ProgressCallback, uri: str, progress: str) -> None:
        # 进度回调只用于展示，异常不影响结果
        try:
            on_progress(uri, progress)
        except Exception:
            logger.debug("Progress callback raised", exc_info=True)

    @staticmethod
    def _image_urls(task: dict[str, Any]) -> list[str]:
        urls: list[str] = []
        for item in task.get("imageUrls") or []:
            url = item.get("url") if isinstance(item, dict) else item
            if isinstance(url, str) and url:
                urls.append(url)
        if not urls and task.get("imageUrl"):
            urls.append(task["imageUrl"])
        return urls

    def _to_result(self, task: dict[str, Any], *, with_options: bool) -> GenerationResult:
        props = task.get("properties") or {}
        task_id = str(task.get("id") or "")
        message_hash = props.get("messageHash")
        options: list[Variation] = []
        if with_options:
            options = [
                Variation(id=f"{task_id}-{i + 1}", hash=message_hash, uri=url)
                for i, url in enumerate(self._image_urls(task))
            ]
        return GenerationResult(
            id=task_id or None,
            hash=message_hash,
            flags=int(props.get("flags") or 0),
            uri=task.get("imageUrl"),
            options=options,
        )

    async def submit_prompt(
        self,
        text: str,
        on_progress: ProgressCallback | None = None,
    ) -> GenerationResult | None:
        task_id = await self._submit(self.IMAGINE_ENDPOINT, {"prompt": text})
        if task_id is None:
            return None
        logger.info("Midjourney imagine task submitted: %s", task_id)

        task = await self.wait_for_completion(task_id, on_progress)
        if task is None:
            return None
        return self._to_result(task, with_options=True)

    async def upscale(
        self,
        *,
        index: int,
        msg_id: str,
        hash: str | None,
        flags: int,
        on_progress: ProgressCallback | None = None,
    ) -> GenerationResult | None:
        # 代理服务以任务 ID 定位原始消息，hash/flags 由代理自行维护
        task_id = await self._submit(
            self.CHANGE_ENDPOINT,
            {"taskId": msg_id, "action": "UPSCALE", "index": index},
        )
        if task_id is None:
            return None
        logger.info("Midjourney upscale task submitted: %s (U%d of %s)", task_id, index, msg_id)

        task = await self.wait_for_completion(task_id, on_progress)
        if task is None:
            return None
        return self._to_result(task, with_options=False)
