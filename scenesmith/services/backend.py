"""图像生成后端

流程只依赖 ImageBackendProtocol，具体实现由配置创建。
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from scenesmith.config import Settings
from scenesmith.schemas.generation import GenerationResult

# on_progress(uri, percent_text)：仅用于展示进度，调用次数与时机由后端决定
ProgressCallback = Callable[[str, str], None]


@runtime_checkable
class ImageBackendProtocol(Protocol):
    """图像生成后端协议（接口定义）"""

    async def connect(self) -> None:
        ...

    async def disconnect(self) -> None:
        ...

    async def submit_prompt(
        self,
        text: str,
        on_progress: ProgressCallback | None = None,
    ) -> GenerationResult | None:
        """提交 prompt 并等待完成

        Returns:
            生成结果；后端未产出结果时返回 None
        """
        ...

    async def upscale(
        self,
        *,
        index: int,
        msg_id: str,
        hash: str | None,
        flags: int,
        on_progress: ProgressCallback | None = None,
    ) -> GenerationResult | None:
        """放大某一个变体（index 从 1 开始）"""
        ...


def create_image_backend(settings: Settings) -> ImageBackendProtocol:
    from scenesmith.services.midjourney import MidjourneyService

    return MidjourneyService(settings)
