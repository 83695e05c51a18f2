"""应用异常定义

致命错误（脚本无法加载、输出目录无法创建、后端无法连接）会终止整次运行；
GenerationError 只影响单个角色/场景，由 Agent 捕获后继续处理下一项。
"""

from __future__ import annotations

from typing import Any


class AppException(Exception):
    code: str = "app_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ScriptLoadError(AppException):
    code = "script_invalid"


class StorageSetupError(AppException):
    code = "storage_setup_failed"


class BackendConnectionError(AppException):
    code = "backend_unavailable"


class GenerationError(AppException):
    """单项生成失败（空结果、无变体、Upscale 无 URL 等）"""

    code = "generation_failed"
