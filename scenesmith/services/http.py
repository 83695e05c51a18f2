from __future__ import annotations

import asyncio
import logging
from collections.abc import Collection
from typing import Any

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}

# 提交类请求：只在服务端明确拒绝处理时重试
SUBMIT_RETRYABLE_STATUS = {429, 503}


def is_retryable_status(status_code: int, retry_statuses: Collection[int] = RETRYABLE_STATUS) -> bool:
    return status_code in retry_statuses


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_retries: int = 3,
    initial_delay_s: float = 0.5,
    max_delay_s: float = 8.0,
    retry_statuses: Collection[int] = RETRYABLE_STATUS,
    retry_transport_errors: bool = True,
    **kwargs: Any,
) -> httpx.Response:
    """带指数退避的 HTTP 请求

    默认对超时、网络错误和 408/429/5xx 重试。非幂等的提交请求应传入
    retry_transport_errors=False 和 SUBMIT_RETRYABLE_STATUS：请求可能已经到达服务端时不再重发。
    """
    delay_s = initial_delay_s
    last_exc: Exception | None = None

    for attempt in range(max_retries + 1):
        try:
            res = await client.request(method, url, **kwargs)
            if is_retryable_status(res.status_code, retry_statuses) and attempt < max_retries:
                logger.warning(
                    "%s %s returned %s, retrying (%d/%d)",
                    method, url, res.status_code, attempt + 1, max_retries,
                )
                await asyncio.sleep(delay_s)
                delay_s = min(delay_s * 2, max_delay_s)
                continue
            res.raise_for_status()
            return res
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            last_exc = exc
            if not retry_transport_errors or attempt >= max_retries:
                break
            logger.warning("%s %s failed: %s, retrying (%d/%d)", method, url, exc, attempt + 1, max_retries)
            await asyncio.sleep(delay_s)
            delay_s = min(delay_s * 2, max_delay_s)
        except httpx.HTTPStatusError as exc:
            # 可重试状态码已在上面处理，这里只剩最终失败
            last_exc = exc
            break

    raise RuntimeError(f"{method} {url} failed after retries: {last_exc}") from last_exc
