from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Note: do not hardcode env_file here; tests instantiate Settings() directly and
    # should not implicitly read the repo's .env. Runtime uses get_settings().
    model_config = SettingsConfigDict(extra="ignore")

    app_name: str = "scenesmith"
    log_level: str = Field(default="INFO", description="logging 级别")

    # 输出目录（角色图、场景图、进度文件）
    output_dir: Path = Field(default=Path("./anime_output"))

    # ============================================
    # Midjourney 代理服务（midjourney-proxy HTTP 接口）
    # ============================================
    midjourney_base_url: str = Field(
        default="http://localhost:8080",
        description="Midjourney 代理服务地址",
    )
    midjourney_api_secret: str | None = Field(
        default=None,
        description="代理服务的 mj-api-secret（未开启鉴权时留空）",
    )
    midjourney_poll_interval_s: float = Field(
        default=3.0,
        description="任务状态轮询间隔（秒）",
    )
    midjourney_max_poll_time_s: float = Field(
        default=600.0,
        description="单个任务最长等待时间（秒）",
    )
    request_timeout_s: float = 120.0
    max_retries: int = Field(default=3, description="HTTP 请求最大重试次数")

    # ============================================
    # 生成流程
    # ============================================
    item_delay_s: float = Field(
        default=2.0,
        description="每个角色/场景提交后的固定等待时间（秒），避免后端限流",
    )
    variation_index: int = Field(
        default=0,
        description="作为正式图片保存的变体序号（从 0 开始）",
    )
    upscale_selected: bool = Field(
        default=False,
        description="是否对选中的变体执行 Upscale，并以放大结果作为正式图片",
    )
    scene_style_reference: bool = Field(
        default=False,
        description="是否将第一个场景作为后续场景的风格参考（--sref）",
    )

    def midjourney_headers(self) -> dict[str, str]:
        """Midjourney 代理请求头"""
        headers: dict[str, str] = {
            "User-Agent": self.app_name,
            "Content-Type": "application/json",
        }
        if self.midjourney_api_secret:
            headers["mj-api-secret"] = self.midjourney_api_secret
        return headers

    def build_url(self, path: str) -> str:
        """拼接代理服务完整 URL"""
        base = self.midjourney_base_url.rstrip("/")
        if not path.startswith("/"):
            path = "/" + path
        return f"{base}{path}"


@lru_cache
def get_settings() -> Settings:
    return Settings(_env_file=".env", _env_file_encoding="utf-8")
