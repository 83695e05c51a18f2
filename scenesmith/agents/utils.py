"""Agent 工具函数。"""
from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, UTC

from scenesmith.schemas.script import Scene, character_output_name

__all__ = ["character_output_name", "scene_ids", "scene_output_name", "utcnow"]


def utcnow() -> datetime:
    return datetime.now(UTC)


def scene_output_name(scene_number: int) -> str:
    return f"scene_{scene_number:03d}"


def scene_ids(scenes: Sequence[Scene]) -> list[tuple[str, Scene]]:
    """为场景分配 ID（零填充场景号）

    场景号重复时按声明顺序追加 _2、_3 后缀，保证每个场景都有独立的输出。
    """
    seen: dict[str, int] = {}
    result: list[tuple[str, Scene]] = []
    for scene in scenes:
        base = scene_output_name(scene.scene_number)
        count = seen.get(base, 0) + 1
        seen[base] = count
        result.append((base if count == 1 else f"{base}_{count}", scene))
    return result
